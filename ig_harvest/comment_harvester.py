from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .graph_client import GraphClient, graph_error
from .models import Comment
from .normalize import iter_thread_records, normalize_records
from .run_log import RunLogger

COMMENT_FIELDS = "id,text,timestamp,username,replies{id,text,timestamp,username}"
COMMENTS_PAGE_SIZE = 50
# Safety bound against pathological volumes (400 * 50 = 20,000 comments), not a business limit.
MAX_COMMENT_PAGES = 400

HTTP_TOO_MANY_REQUESTS = 429


@dataclass(frozen=True)
class CommentHarvest:
    comments: Sequence[Comment]
    pages: int
    rate_limited: bool = False
    truncated: bool = False

    @property
    def partial(self) -> bool:
        return self.rate_limited or self.truncated


def harvest_comments(
    client: GraphClient,
    media_id: str,
    *,
    page_size: int = COMMENTS_PAGE_SIZE,
    max_pages: int = MAX_COMMENT_PAGES,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> CommentHarvest:
    """
    Walk every comment page of a media item, flattening one level of replies.

    Each reply is emitted directly after its parent. An HTTP 429 stops the walk and
    the comments gathered so far are returned as a successful partial result. Any
    other non-success status raises GraphAPIError.
    """
    mid = (media_id or "").strip()
    if not mid:
        raise ValueError("media_id must be non-empty")
    if max_pages < 1:
        raise ValueError("max_pages must be >= 1")

    comments: list[Comment] = []
    seen_ids: set[str] = set()
    next_url: str | None = None
    pages = 0
    rate_limited = False

    while pages < max_pages:
        if pages == 0:
            resp = client.get(
                f"{mid}/comments",
                params={"fields": COMMENT_FIELDS, "limit": int(page_size)},
                operation="Comments fetch",
            )
        else:
            resp = client.get(url=next_url, operation="Comments fetch")

        if resp.status == HTTP_TOO_MANY_REQUESTS:
            rate_limited = True
            if logger is not None:
                logger.warning(
                    "comments_rate_limited",
                    media_id=mid,
                    pages=pages,
                    comments=len(comments),
                )
            break
        if not resp.ok or resp.payload is None:
            raise graph_error("Comments fetch", resp.status, resp.body)

        pages += 1
        page_comments = normalize_records(
            iter_thread_records(resp.data()),
            now=now,
            seen_ids=seen_ids,
        )
        comments.extend(page_comments)

        if logger is not None:
            logger.info(
                "comments_page_fetched",
                media_id=mid,
                page=pages,
                page_comments=len(page_comments),
                total_comments=len(comments),
            )

        next_url = resp.next_url()
        if next_url is None:
            break

    truncated = not rate_limited and pages >= max_pages and next_url is not None

    if truncated and logger is not None:
        logger.warning("comments_page_ceiling_reached", media_id=mid, pages=pages)

    return CommentHarvest(
        comments=tuple(comments),
        pages=pages,
        rate_limited=rate_limited,
        truncated=truncated,
    )
