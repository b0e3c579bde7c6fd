from __future__ import annotations

from typing import Any, Mapping

from .graph_client import GraphClient
from .models import MediaRef
from .normalize import first_id, first_str
from .run_log import RunLogger
from .shortcode import permalink_matches

MEDIA_FIELDS = "id,caption,timestamp,media_url,thumbnail_url,permalink,media_type"
MEDIA_PAGE_SIZE = 50
# A giveaway post is assumed to sit near the front of the account's media list.
MAX_MEDIA_PAGES = 20


def _media_ref(item: Mapping[str, Any]) -> MediaRef | None:
    media_id = first_id(item, (("id",),))
    if media_id is None:
        return None
    return MediaRef(
        media_id=media_id,
        permalink=first_str(item, (("permalink",),)) or "",
        caption=first_str(item, (("caption",),)),
        timestamp=first_str(item, (("timestamp",),)),
        media_url=first_str(item, (("media_url",),)),
        thumbnail_url=first_str(item, (("thumbnail_url",),)),
        media_type=first_str(item, (("media_type",),)),
    )


def resolve_media(
    client: GraphClient,
    account_id: str,
    shortcode: str,
    *,
    page_size: int = MEDIA_PAGE_SIZE,
    max_pages: int = MAX_MEDIA_PAGES,
    logger: RunLogger | None = None,
) -> MediaRef | None:
    """
    Find the account's media item whose permalink matches ``shortcode``.

    The Graph API does not expose shortcodes, so matching is done on permalinks,
    walking the media list newest-first. Returns None (not found) once ``max_pages``
    pages are exhausted. Any non-success status raises GraphAPIError: a skipped page
    could hide the true match.
    """
    acct = (account_id or "").strip()
    if not acct:
        raise ValueError("account_id must be non-empty")
    if max_pages < 1:
        raise ValueError("max_pages must be >= 1")

    next_url: str | None = None
    pages = 0
    scanned = 0

    while pages < max_pages:
        if pages == 0:
            resp = client.get_json(
                f"{acct}/media",
                params={"fields": MEDIA_FIELDS, "limit": int(page_size)},
                operation="Media list",
            )
        else:
            resp = client.get_json(url=next_url, operation="Media list")
        pages += 1

        for item in resp.data():
            if not isinstance(item, Mapping):
                continue
            scanned += 1
            permalink = first_str(item, (("permalink",),)) or ""
            if not permalink_matches(permalink, shortcode):
                continue
            ref = _media_ref(item)
            if ref is None:
                continue
            if logger is not None:
                logger.info(
                    "media_resolved",
                    media_id=ref.media_id,
                    pages=pages,
                    scanned=scanned,
                )
            return ref

        next_url = resp.next_url()
        if next_url is None:
            break

    if logger is not None:
        logger.warning(
            "media_not_found",
            shortcode=shortcode,
            pages=pages,
            scanned=scanned,
            ceiling_reached=pages >= max_pages,
        )
    return None
