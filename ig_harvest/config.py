from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class OAuthSecrets:
    app_id: str
    app_secret: str

    def __repr__(self) -> str:
        return f"OAuthSecrets(app_id={self.app_id!r}, app_secret='***')"


def load_config(path: str | Path | None) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    A None path yields the defaults. Raises ConfigError with a readable validation
    message on failure.
    """
    if path is None:
        return AppConfig()

    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except Exception as e:  # PyYAML can raise multiple exception types
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def _require_env(names: list[str], env: Mapping[str, str]) -> None:
    missing = [name for name in names if not (env.get(name) or "").strip()]
    if missing:
        joined = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {joined}")


def resolve_apify_token(config: AppConfig, *, environ: Mapping[str, str] | None = None) -> str:
    """The Apify token is only required on the scraped path."""
    env = os.environ if environ is None else environ
    name = config.apify.token_env
    _require_env([name], env)
    return env[name].strip()


def resolve_oauth_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> OAuthSecrets:
    env = os.environ if environ is None else environ
    id_env = config.oauth.app_id_env
    secret_env = config.oauth.app_secret_env
    _require_env([id_env, secret_env], env)
    return OAuthSecrets(app_id=env[id_env].strip(), app_secret=env[secret_env].strip())


def resolve_oauth_app_id(config: AppConfig, *, environ: Mapping[str, str] | None = None) -> str:
    env = os.environ if environ is None else environ
    name = config.oauth.app_id_env
    _require_env([name], env)
    return env[name].strip()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
