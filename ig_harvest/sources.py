from __future__ import annotations

from typing import Mapping, Protocol

import requests
from apify_client import ApifyClient

from .apify_client import InstagramPostScraper
from .comment_harvester import harvest_comments
from .compose import compose_result
from .config import resolve_apify_token
from .config_schema import AppConfig, ApifyConfig, GraphConfig
from .errors import ConfigError, PostNotFoundError
from .graph_client import GraphClient
from .media_resolver import resolve_media
from .mock_data import mock_harvest_result
from .models import AuthCredentials, HarvestRequest, HarvestResult, PostMeta, SourceName
from .normalize import normalize_meta, normalize_records
from .profile import fetch_profile
from .run_log import RunLogger
from .shortcode import require_shortcode


class DataSource(Protocol):
    name: SourceName

    def fetch(self, post_url: str) -> HarvestResult: ...


class MockSource:
    name: SourceName = "mock"

    def fetch(self, post_url: str) -> HarvestResult:
        return mock_harvest_result(post_url)


class AuthenticatedSource:
    """Graph API path: resolve the media id, then walk its comments, then read the profile."""

    name: SourceName = "authenticated"

    def __init__(
        self,
        credentials: AuthCredentials,
        *,
        graph: GraphConfig,
        session: requests.Session | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._credentials = credentials
        self._graph = graph
        self._session = session
        self._logger = logger

    def fetch(self, post_url: str) -> HarvestResult:
        shortcode = require_shortcode(post_url)
        account_id = self._credentials.account_id

        with GraphClient(
            self._credentials.access_token,
            graph=self._graph,
            session=self._session,
        ) as client:
            media = resolve_media(
                client,
                account_id,
                shortcode,
                page_size=self._graph.media_page_size,
                max_pages=self._graph.max_media_pages,
                logger=self._logger,
            )
            if media is None:
                raise PostNotFoundError(
                    "Could not find this post in your Instagram account. Make sure it is "
                    "YOUR post and your account is Business or Creator.",
                    shortcode=shortcode,
                )

            harvest = harvest_comments(
                client,
                media.media_id,
                page_size=self._graph.comments_page_size,
                max_pages=self._graph.max_comment_pages,
                logger=self._logger,
            )
            profile = fetch_profile(client, account_id, logger=self._logger)

        post = PostMeta(
            caption=media.caption,
            image_url=media.media_url or media.thumbnail_url,
            owner_username=profile.username,
            owner_avatar_url=profile.profile_picture_url,
            created_at=media.timestamp,
        )
        return compose_result(
            harvest.comments,
            post,
            source=self.name,
            media_id=media.media_id,
            media_type=media.media_type,
            partial=harvest.partial,
        )


class ScrapedSource:
    """Apify path: one blocking job run, one dataset read, then normalization."""

    name: SourceName = "scraped"

    def __init__(
        self,
        token: str,
        *,
        apify: ApifyConfig,
        client: ApifyClient | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._scraper = InstagramPostScraper(token, apify=apify, client=client, logger=logger)

    def fetch(self, post_url: str) -> HarvestResult:
        require_shortcode(post_url)
        result = self._scraper.scrape_and_fetch(post_url.strip())
        comments = normalize_records(result.raw_comments)
        post = normalize_meta(result.raw_post, comments=comments)
        return compose_result(
            comments,
            post,
            source=self.name,
            partial=not result.run.finished,
        )


def select_source(
    request: HarvestRequest,
    config: AppConfig,
    *,
    environ: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
    apify_client: ApifyClient | None = None,
    logger: RunLogger | None = None,
) -> DataSource:
    """
    Pick the data source once per request.

    Mock (request flag or config) wins, then authenticated when credentials are
    given, else scraped.
    """
    if request.mock or config.source.mock:
        return MockSource()

    if request.auth is not None:
        missing: list[str] = []
        if not (request.auth.account_id or "").strip():
            missing.append("account_id")
        if not (request.auth.access_token or "").strip():
            missing.append("access_token")
        if missing:
            raise ConfigError(f"Missing credentials for authenticated harvest: {', '.join(missing)}")
        creds = AuthCredentials(
            account_id=request.auth.account_id.strip(),
            access_token=request.auth.access_token.strip(),
        )
        return AuthenticatedSource(creds, graph=config.graph, session=session, logger=logger)

    if apify_client is not None:
        token = ""
    else:
        token = resolve_apify_token(config, environ=environ)
    return ScrapedSource(token, apify=config.apify, client=apify_client, logger=logger)
