from __future__ import annotations

from dataclasses import dataclass

from .errors import GraphAPIError
from .graph_client import GraphClient
from .normalize import first_str
from .run_log import RunLogger

PROFILE_FIELDS = "id,username,profile_picture_url"


@dataclass(frozen=True)
class AccountProfile:
    account_id: str
    username: str | None = None
    profile_picture_url: str | None = None


def fetch_profile(
    client: GraphClient,
    account_id: str,
    *,
    logger: RunLogger | None = None,
) -> AccountProfile:
    """Best-effort: a failed profile lookup yields an id-only profile instead of an error."""
    try:
        resp = client.get(
            account_id,
            params={"fields": PROFILE_FIELDS},
            operation="Profile fetch",
        )
    except GraphAPIError as e:
        if logger is not None:
            logger.warning("profile_fetch_failed", account_id=account_id, error=str(e))
        return AccountProfile(account_id=account_id)

    if not resp.ok or resp.payload is None:
        if logger is not None:
            logger.warning("profile_fetch_failed", account_id=account_id, status=resp.status)
        return AccountProfile(account_id=account_id)

    return AccountProfile(
        account_id=account_id,
        username=first_str(resp.payload, (("username",),)),
        profile_picture_url=first_str(resp.payload, (("profile_picture_url",),)),
    )
