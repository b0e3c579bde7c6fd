from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping
from urllib.parse import urlencode

import requests

from .config import OAuthSecrets
from .config_schema import AppConfig, OAuthConfig
from .errors import ConfigError, OAuthError
from .normalize import first_id, first_str
from .run_log import RunLogger


@dataclass(frozen=True)
class InstagramSession:
    """Credentials for the authenticated harvest path, produced by a completed login."""

    access_token: str
    ig_user_id: str
    ig_username: str | None
    ig_profile_pic_url: str | None
    page_id: str
    page_name: str | None
    expires_at: str | None

    def __repr__(self) -> str:
        return (
            f"InstagramSession(ig_user_id={self.ig_user_id!r}, "
            f"ig_username={self.ig_username!r}, access_token='***')"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "igUserId": self.ig_user_id,
            "igUsername": self.ig_username,
            "igProfilePicUrl": self.ig_profile_pic_url,
            "pageId": self.page_id,
            "pageName": self.page_name,
            "expiresAt": self.expires_at,
        }


def build_login_url(oauth: OAuthConfig, app_id: str, *, state: str | None = None) -> str:
    """Facebook OAuth dialog URL requesting the scopes needed to read comments."""
    if not (oauth.redirect_uri or "").strip():
        raise ConfigError("oauth.redirect_uri is required to build the login URL")

    params: dict[str, str] = {
        "client_id": app_id,
        "redirect_uri": str(oauth.redirect_uri).strip(),
        "scope": ",".join(oauth.scopes),
        "response_type": "code",
    }
    st = (state or "").strip()
    if st:
        params["state"] = st
    return f"{oauth.dialog_url}?{urlencode(params)}"


def _get_json(
    session: requests.Session,
    url: str,
    params: Mapping[str, Any],
    *,
    step: str,
    timeout: float | None,
) -> dict[str, Any]:
    try:
        resp = session.get(url, params=dict(params), timeout=timeout)
    except requests.RequestException as e:
        raise OAuthError(f"{step} request error: {type(e).__name__}", reason=step) from e

    body = resp.text or ""
    if not (200 <= resp.status_code < 300):
        raise OAuthError(
            f"{step} failed ({resp.status_code}): {body}",
            status=int(resp.status_code),
            body=body,
            reason=step,
        )
    try:
        data = resp.json()
    except ValueError as e:
        raise OAuthError(f"{step} returned a non-JSON body", status=int(resp.status_code), body=body) from e
    if not isinstance(data, dict):
        raise OAuthError(f"{step} returned an unexpected payload", status=int(resp.status_code), body=body)
    return data


def _require_token(data: Mapping[str, Any], step: str) -> str:
    token = first_str(data, (("access_token",),))
    if not token:
        raise OAuthError(f"{step} response has no access_token", reason=step)
    return token


def complete_login(
    code: str,
    *,
    config: AppConfig,
    secrets: OAuthSecrets,
    session: requests.Session | None = None,
    logger: RunLogger | None = None,
    now: datetime | None = None,
) -> InstagramSession:
    """
    Turn an authorization code into an Instagram session.

    code -> short-lived token -> long-lived token -> Page with a linked Instagram
    Business/Creator account -> profile (best effort). Any failing step raises OAuthError.
    """
    auth_code = (code or "").strip()
    if not auth_code:
        raise ConfigError("Missing authorization code")
    redirect_uri = (config.oauth.redirect_uri or "").strip()
    if not redirect_uri:
        raise ConfigError("oauth.redirect_uri is required to exchange the code")

    root = config.graph.root
    timeout = config.graph.request_timeout_seconds
    http = session or requests.Session()

    try:
        short = _get_json(
            http,
            f"{root}/oauth/access_token",
            {
                "client_id": secrets.app_id,
                "redirect_uri": redirect_uri,
                "client_secret": secrets.app_secret,
                "code": auth_code,
            },
            step="token_exchange",
            timeout=timeout,
        )
        short_token = _require_token(short, "token_exchange")
        if logger is not None:
            logger.info("oauth_short_token_obtained")

        long_lived = _get_json(
            http,
            f"{root}/oauth/access_token",
            {
                "grant_type": "fb_exchange_token",
                "client_id": secrets.app_id,
                "client_secret": secrets.app_secret,
                "fb_exchange_token": short_token,
            },
            step="long_lived_token_exchange",
            timeout=timeout,
        )
        token = _require_token(long_lived, "long_lived_token_exchange")
        expires_in = long_lived.get("expires_in")
        if logger is not None:
            logger.info("oauth_long_lived_token_obtained", expires_in=expires_in)

        pages = _get_json(
            http,
            f"{root}/me/accounts",
            {
                "fields": "id,name,access_token,instagram_business_account",
                "access_token": token,
            },
            step="pages_fetch",
            timeout=timeout,
        )
        page = _page_with_instagram(pages)
        if page is None:
            raise OAuthError(
                "No Instagram Business/Creator account found linked to any Facebook Page. "
                "Convert the account to Business or Creator and link it to a Facebook Page.",
                reason="no_business_account",
            )
        ig_user_id = first_id(page, (("instagram_business_account", "id"),)) or ""

        username, picture = _profile(http, root, ig_user_id, token, timeout=timeout, logger=logger)
    finally:
        if session is None:
            http.close()

    expires_at: str | None = None
    if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
        issued = now or datetime.now(timezone.utc)
        expires_at = (issued + timedelta(seconds=float(expires_in))).isoformat()

    if logger is not None:
        logger.info("oauth_login_completed", ig_user_id=ig_user_id, ig_username=username)

    return InstagramSession(
        access_token=token,
        ig_user_id=ig_user_id,
        ig_username=username,
        ig_profile_pic_url=picture,
        page_id=first_id(page, (("id",),)) or "",
        page_name=first_str(page, (("name",),)),
        expires_at=expires_at,
    )


def _page_with_instagram(payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
    data = payload.get("data")
    if not isinstance(data, list):
        return None
    for page in data:
        if isinstance(page, Mapping) and first_id(page, (("instagram_business_account", "id"),)):
            return page
    return None


def _profile(
    http: requests.Session,
    root: str,
    ig_user_id: str,
    token: str,
    *,
    timeout: float | None,
    logger: RunLogger | None,
) -> tuple[str | None, str | None]:
    try:
        data = _get_json(
            http,
            f"{root}/{ig_user_id}",
            {"fields": "id,username,profile_picture_url,name", "access_token": token},
            step="profile_fetch",
            timeout=timeout,
        )
    except OAuthError as e:
        if logger is not None:
            logger.warning("oauth_profile_fetch_failed", status=e.status)
        return None, None
    return first_str(data, (("username",),)), first_str(data, (("profile_picture_url",),))
