from __future__ import annotations

from typing import Any


class HarvestError(RuntimeError):
    """Base class for every error the harvest pipeline surfaces to callers."""

    kind = "harvest_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "details": str(self)}


class ConfigError(HarvestError):
    """Raised when configuration or credentials for the chosen path are missing or invalid."""

    kind = "configuration"


class MalformedInputError(HarvestError):
    """Raised when the post URL is missing or cannot be parsed."""

    kind = "malformed_input"


class PostNotFoundError(HarvestError):
    """Raised when media resolution exhausts its page ceiling without a match."""

    kind = "not_found"

    def __init__(self, message: str, *, shortcode: str | None = None) -> None:
        super().__init__(message)
        self.shortcode = shortcode


class UpstreamError(HarvestError):
    """A non-success response from an upstream API, with its status and body when known."""

    kind = "upstream_failure"

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status"] = self.status
        payload["body"] = self.body
        return payload


class GraphAPIError(UpstreamError):
    """Raised when an Instagram Graph API request fails."""


class TokenExpiredError(GraphAPIError):
    """Raised when the Graph API rejects the access token."""

    kind = "token_expired"


class ApifyError(UpstreamError):
    """Raised when an Apify Actor run or dataset read fails."""


class ScrapeJobError(ApifyError):
    """Raised when submitting or waiting for the scrape job fails."""


class DatasetFetchError(ApifyError):
    """Raised when the finished job's dataset cannot be read."""


class OAuthError(UpstreamError):
    """Raised when a step of the OAuth login sequence fails."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: str | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status=status, body=body)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.reason:
            payload["reason"] = self.reason
        return payload
