from __future__ import annotations

from .config import load_config
from .config_schema import AppConfig
from .errors import (
    ConfigError,
    HarvestError,
    MalformedInputError,
    PostNotFoundError,
    UpstreamError,
)
from .mock_data import mock_harvest_result
from .models import AuthCredentials, Comment, HarvestRequest, HarvestResult, PostMeta
from .pipeline import harvest_post

__all__ = [
    "AppConfig",
    "AuthCredentials",
    "Comment",
    "ConfigError",
    "HarvestError",
    "HarvestRequest",
    "HarvestResult",
    "MalformedInputError",
    "PostMeta",
    "PostNotFoundError",
    "UpstreamError",
    "harvest_post",
    "load_config",
    "mock_harvest_result",
]
