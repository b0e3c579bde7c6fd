from __future__ import annotations

import uuid
from typing import Mapping

import requests
from apify_client import ApifyClient

from .config_schema import AppConfig
from .errors import HarvestError, MalformedInputError
from .models import HarvestRequest, HarvestResult
from .run_log import RunLogger
from .sources import select_source


def harvest_post(
    request: HarvestRequest,
    config: AppConfig | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
    apify_client: ApifyClient | None = None,
    logger: RunLogger | None = None,
) -> HarvestResult:
    """
    Collect the full comment thread of one post.

    Each call is independent: the media id is resolved afresh and nothing is cached.
    Rate-limited harvests come back as successful results with ``meta.partial`` set.
    """
    cfg = config or AppConfig()
    url = (request.post_url or "").strip()

    if logger is not None:
        logger.set_request_id(uuid.uuid4().hex)

    try:
        if not url:
            raise MalformedInputError("Missing post URL")

        source = select_source(
            request,
            cfg,
            environ=environ,
            session=session,
            apify_client=apify_client,
            logger=logger,
        )
        if logger is not None:
            logger.info("harvest_started", url=url, source=source.name)

        result = source.fetch(url)
    except HarvestError as e:
        if logger is not None:
            logger.exception("harvest_failed", exc=e, url=url)
        raise
    except Exception as e:
        if logger is not None:
            logger.exception("harvest_failed", exc=e, url=url, unexpected=True)
        raise

    if logger is not None:
        meta = result.meta
        logger.info(
            "harvest_completed",
            url=url,
            source=meta.source if meta else None,
            total_comments=len(result.comments),
            partial=meta.partial if meta else False,
        )
    return result
