from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Sequence

SourceName = Literal["authenticated", "scraped", "mock"]


@dataclass(frozen=True)
class Comment:
    """A canonical comment record; replies are emitted as their own Comments."""

    id: str
    username: str
    text: str
    timestamp: str
    avatar_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "text": self.text,
            "timestamp": self.timestamp,
            "avatarUrl": self.avatar_url,
        }


@dataclass(frozen=True)
class PostMeta:
    caption: str | None = None
    image_url: str | None = None
    owner_username: str | None = None
    owner_avatar_url: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "caption": self.caption,
            "imageUrl": self.image_url,
            "ownerUsername": self.owner_username,
            "ownerAvatarUrl": self.owner_avatar_url,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class MediaRef:
    """A media item on the authenticated account, as matched by the resolver."""

    media_id: str
    permalink: str
    caption: str | None = None
    timestamp: str | None = None
    media_url: str | None = None
    thumbnail_url: str | None = None
    media_type: str | None = None


@dataclass(frozen=True)
class HarvestMeta:
    source: SourceName
    total_comments: int
    media_id: str | None = None
    media_type: str | None = None
    partial: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "source": self.source,
            "totalComments": self.total_comments,
            "partial": self.partial,
        }
        if self.media_id is not None:
            out["mediaId"] = self.media_id
        if self.media_type is not None:
            out["mediaType"] = self.media_type
        return out


@dataclass(frozen=True)
class HarvestResult:
    """
    The single output contract of both ingestion paths.

    Comment order is upstream arrival order (a reply directly follows its parent).
    It is not re-sorted and is not guaranteed to be chronological.
    """

    comments: Sequence[Comment]
    post: PostMeta
    meta: HarvestMeta | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "comments": [c.to_dict() for c in self.comments],
            "post": self.post.to_dict(),
        }
        if self.meta is not None:
            out["meta"] = self.meta.to_dict()
        return out


@dataclass(frozen=True)
class AuthCredentials:
    account_id: str
    access_token: str

    def __repr__(self) -> str:
        return f"AuthCredentials(account_id={self.account_id!r}, access_token='***')"


@dataclass(frozen=True)
class HarvestRequest:
    post_url: str
    auth: AuthCredentials | None = None
    mock: bool = False
