from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import requests

from .config_schema import GraphConfig
from .errors import GraphAPIError, TokenExpiredError

_TOKEN_ERROR_MARKERS = ("OAuthException", "Invalid OAuth")


@dataclass(frozen=True)
class GraphResponse:
    status: int
    body: str
    payload: dict[str, Any] | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def next_url(self) -> str | None:
        if not isinstance(self.payload, Mapping):
            return None
        paging = self.payload.get("paging")
        if not isinstance(paging, Mapping):
            return None
        nxt = paging.get("next")
        if isinstance(nxt, str) and nxt.strip():
            return nxt.strip()
        return None

    def data(self) -> list[Any]:
        if not isinstance(self.payload, Mapping):
            return []
        items = self.payload.get("data")
        return list(items) if isinstance(items, list) else []


def graph_error(operation: str, status: int | None, body: str | None) -> GraphAPIError:
    """Build the error for a failed Graph call; token rejections get their own type."""
    text = body or ""
    message = f"{operation} failed ({status}): {text}" if status is not None else f"{operation} failed: {text}"
    if any(marker in text for marker in _TOKEN_ERROR_MARKERS):
        return TokenExpiredError(message, status=status, body=body)
    return GraphAPIError(message, status=status, body=body)


class GraphClient:
    """
    Minimal Instagram Graph API GET client.

    It never retries and never raises on HTTP status by itself: callers decide how
    each status is handled (e.g. the comment harvester treats 429 as a stop signal).
    """

    def __init__(
        self,
        access_token: str,
        *,
        graph: GraphConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        token = (access_token or "").strip()
        if not token:
            raise ValueError("access_token must be non-empty")
        self._token = token
        self._graph = graph or GraphConfig()
        self._session = session or requests.Session()
        self._owns_session = session is None

    @property
    def graph(self) -> GraphConfig:
        return self._graph

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def url_for(self, path: str) -> str:
        return f"{self._graph.root}/{path.lstrip('/')}"

    def get(
        self,
        path: str | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        operation: str = "graph.get",
    ) -> GraphResponse:
        """
        GET either ``path`` (relative to the versioned root) or an absolute ``url``.

        Absolute urls are cursor links from ``paging.next`` and already carry the token.
        """
        if url is not None:
            target = url
            query: dict[str, Any] | None = None
        elif path is not None:
            target = self.url_for(path)
            query = dict(params or {})
            query["access_token"] = self._token
        else:
            raise ValueError("either path or url is required")

        try:
            resp = self._session.get(
                target,
                params=query,
                timeout=self._graph.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise GraphAPIError(f"{operation} request error: {type(e).__name__}") from e

        body = resp.text or ""
        payload: dict[str, Any] | None = None
        try:
            parsed = resp.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            payload = parsed

        return GraphResponse(status=int(resp.status_code), body=body, payload=payload)

    def get_json(
        self,
        path: str | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        url: str | None = None,
        operation: str = "graph.get",
    ) -> GraphResponse:
        """Like get(), but any non-success status (or non-JSON body) raises GraphAPIError."""
        resp = self.get(path, params=params, url=url, operation=operation)
        if not resp.ok:
            raise graph_error(operation, resp.status, resp.body)
        if resp.payload is None:
            raise GraphAPIError(
                f"{operation} returned a non-JSON body",
                status=resp.status,
                body=resp.body,
            )
        return resp
