from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_SCOPES = [
    "instagram_basic",
    "instagram_manage_comments",
    "pages_show_list",
    "pages_read_engagement",
]


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]


class GraphConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://graph.facebook.com"
    api_version: str = "v21.0"
    media_page_size: PositiveInt = 50
    max_media_pages: PositiveInt = 20  # ~1000 media items
    comments_page_size: PositiveInt = 50
    max_comment_pages: PositiveInt = 400  # ~20,000 comments
    request_timeout_seconds: float | None = Field(None, gt=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url:
            raise ValueError("must be non-empty")
        return url

    @property
    def root(self) -> str:
        return f"{self.base_url}/{self.api_version.strip('/')}"


class ApifyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    token_env: str = "APIFY_TOKEN"
    actor: str | None = "apify/instagram-scraper"
    task_id: str | None = None
    wait_secs: NonNegativeInt = 50
    results_limit: PositiveInt = 300
    use_proxy: bool = True

    @field_validator("token_env")
    @classmethod
    def _token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("actor", "task_id")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        s = v.strip()
        return s or None

    @model_validator(mode="after")
    def _actor_or_task(self) -> "ApifyConfig":
        if not self.actor and not self.task_id:
            raise ValueError("either actor or task_id is required")
        return self


class OAuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    app_id_env: str = "META_APP_ID"
    app_secret_env: str = "META_APP_SECRET"
    redirect_uri: str | None = None
    dialog_url: str = "https://www.facebook.com/v21.0/dialog/oauth"
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))

    @field_validator("app_id_env", "app_secret_env")
    @classmethod
    def _env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("scopes")
    @classmethod
    def _normalize_scopes(cls, v: list[str]) -> list[str]:
        out: list[str] = []
        for item in v:
            scope = (item or "").strip()
            if scope and scope not in out:
                out.append(scope)
        if not out:
            raise ValueError("must contain at least one scope")
        return out


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # Serve the deterministic mock result for every request (local development).
    mock: bool = False


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    graph: GraphConfig = Field(default_factory=GraphConfig)
    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
