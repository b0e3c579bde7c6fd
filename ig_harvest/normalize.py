from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .models import Comment, PostMeta

# Ordered candidate key paths per field. Scraper datasets have shipped legacy flat
# keys, nested "owner"/"user" objects and GraphQL-shaped nodes over time.
KeyPath = tuple[Any, ...]

COMMENT_ID_PATHS: tuple[KeyPath, ...] = (
    ("id",),
    ("pk",),
    ("commentId",),
    ("comment_id",),
)
COMMENT_USERNAME_PATHS: tuple[KeyPath, ...] = (
    ("ownerUsername",),
    ("username",),
    ("owner", "username"),
    ("user", "username"),
    ("from", "username"),
)
COMMENT_TEXT_PATHS: tuple[KeyPath, ...] = (
    ("text",),
    ("comment",),
    ("content",),
    ("body",),
)
COMMENT_TIMESTAMP_PATHS: tuple[KeyPath, ...] = (
    ("timestamp",),
    ("takenAt",),
    ("taken_at",),
    ("createdAt",),
    ("created_at",),
)
COMMENT_AVATAR_PATHS: tuple[KeyPath, ...] = (
    ("avatarUrl",),
    ("ownerProfilePicUrl",),
    ("profilePicUrl",),
    ("owner", "profile_pic_url"),
    ("owner", "profilePicUrl"),
    ("user", "profile_pic_url"),
)

POST_CAPTION_PATHS: tuple[KeyPath, ...] = (
    ("postCaption",),
    ("caption",),
    ("captionText",),
    ("edge_media_to_caption", "edges", 0, "node", "text"),
)
POST_IMAGE_PATHS: tuple[KeyPath, ...] = (
    ("imageUrl",),
    ("displayUrl",),
    ("display_url",),
    ("thumbnailUrl",),
    ("thumbnail_url",),
)
POST_OWNER_USERNAME_PATHS: tuple[KeyPath, ...] = (
    ("ownerUsername",),
    ("owner", "username"),
)
POST_OWNER_AVATAR_PATHS: tuple[KeyPath, ...] = (
    ("ownerProfilePicUrl",),
    ("owner", "profile_pic_url"),
    ("owner", "profilePicUrl"),
)
POST_CREATED_AT_PATHS: tuple[KeyPath, ...] = (
    ("timestamp",),
    ("takenAt",),
    ("taken_at_timestamp",),
    ("taken_at",),
)

_POST_MARKER_KEYS = (
    "shortCode",
    "shortcode",
    "displayUrl",
    "display_url",
    "latestComments",
    "commentsCount",
    "postCaption",
    "edge_media_to_comment",
    "edge_media_to_parent_comment",
)
_GRAPHQL_COMMENT_EDGE_KEYS = ("edge_media_to_parent_comment", "edge_media_to_comment")


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_id(value: Any) -> str | None:
    if isinstance(value, str):
        v = value.strip()
        return v if v else None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def _get_path(record: Any, path: KeyPath) -> Any:
    cur = record
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, Sequence) or isinstance(cur, str) or len(cur) <= key:
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, Mapping):
                return None
            cur = cur.get(key)
        if cur is None:
            return None
    return cur


def first_str(record: Mapping[str, Any], paths: Iterable[KeyPath]) -> str | None:
    """Return the first non-empty string found along the candidate paths, stripped."""
    for path in paths:
        value = _coerce_str(_get_path(record, path))
        if value is not None:
            return value
    return None


def first_id(record: Mapping[str, Any], paths: Iterable[KeyPath]) -> str | None:
    for path in paths:
        value = _coerce_id(_get_path(record, path))
        if value is not None:
            return value
    return None


def _first_raw_text(record: Mapping[str, Any], paths: Iterable[KeyPath]) -> str | None:
    # Comment bodies are kept byte-for-byte, whitespace-only ones included.
    for path in paths:
        value = _get_path(record, path)
        if isinstance(value, str) and value:
            return value
    return None


def _first_timestamp_value(record: Mapping[str, Any], paths: Iterable[KeyPath]) -> Any:
    for path in paths:
        value = _get_path(record, path)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str) and value.strip():
            return value
    return None


def _iso_utc(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def normalize_timestamp(value: Any, *, now: datetime | None = None) -> str:
    """
    Normalize an upstream timestamp to ISO-8601 UTC.

    - int/float: Unix epoch seconds (not milliseconds), e.g. 1700000000 -> 2023-11-14T22:13:20.000Z
    - non-empty string: passed through (stripped)
    - anything else: the execution time of this call
    """
    parsed = _parse_timestamp(value)
    if parsed is not None:
        return parsed
    return _iso_utc(now or datetime.now(timezone.utc))


def _parse_timestamp(value: Any) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return _iso_utc(datetime.fromtimestamp(float(value), tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _derived_id(username: str, text: str, raw_timestamp: Any) -> str:
    payload = json.dumps(
        [username, text, raw_timestamp],
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    ).encode("utf-8")
    return "derived:" + hashlib.sha256(payload).hexdigest()[:24]


def _unwrap_node(record: Mapping[str, Any]) -> Mapping[str, Any]:
    node = record.get("node")
    if isinstance(node, Mapping) and "id" not in record:
        return node
    return record


def normalize_comment(raw: Mapping[str, Any], *, now: datetime | None = None) -> Comment | None:
    """
    Map one upstream comment record to a Comment.

    Returns None when neither an id nor a username can be resolved; such a record
    cannot be attributed to anyone. A record with a username but no id gets a
    deterministic derived id.
    """
    if not isinstance(raw, Mapping):
        return None
    record = _unwrap_node(raw)

    comment_id = first_id(record, COMMENT_ID_PATHS)
    username = first_str(record, COMMENT_USERNAME_PATHS) or ""
    if not comment_id and not username:
        return None

    text = _first_raw_text(record, COMMENT_TEXT_PATHS) or ""
    raw_ts = _first_timestamp_value(record, COMMENT_TIMESTAMP_PATHS)

    return Comment(
        id=comment_id or _derived_id(username, text, raw_ts),
        username=username,
        text=text,
        timestamp=normalize_timestamp(raw_ts, now=now),
        avatar_url=first_str(record, COMMENT_AVATAR_PATHS),
    )


def _reply_records(record: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    replies = record.get("replies")
    if isinstance(replies, Mapping):
        # Graph API: {"replies": {"data": [...]}}
        replies = replies.get("data")
    if isinstance(replies, list):
        return [r for r in replies if isinstance(r, Mapping)]

    threaded = _get_path(record, ("edge_threaded_comments", "edges"))
    if isinstance(threaded, list):
        return [r for r in threaded if isinstance(r, Mapping)]

    return []


def iter_thread_records(records: Iterable[Any]) -> Iterator[Mapping[str, Any]]:
    """Yield each top-level record followed directly by its (one level of) replies."""
    for raw in records:
        if not isinstance(raw, Mapping):
            continue
        record = _unwrap_node(raw)
        yield record
        for reply in _reply_records(record):
            yield _unwrap_node(reply)


def is_post_record(item: Mapping[str, Any]) -> bool:
    return any(key in item for key in _POST_MARKER_KEYS)


def flatten_comment_records(items: Sequence[Any]) -> list[Mapping[str, Any]]:
    """
    Extract the flat comment record sequence from a scraper dataset.

    Post-shaped datasets carry comments on the first item (``latestComments`` or
    GraphQL comment edges). Otherwise every dataset item is one comment record.
    """
    rows = [item for item in items if isinstance(item, Mapping)]
    if not rows:
        return []

    first = rows[0]
    if not is_post_record(first):
        return list(iter_thread_records(rows))

    latest = first.get("latestComments")
    if isinstance(latest, list):
        return list(iter_thread_records(latest))

    for key in _GRAPHQL_COMMENT_EDGE_KEYS:
        edges = _get_path(first, (key, "edges"))
        if isinstance(edges, list):
            return list(iter_thread_records(edges))

    return []


def normalize_records(
    records: Iterable[Mapping[str, Any]],
    *,
    now: datetime | None = None,
    seen_ids: set[str] | None = None,
) -> list[Comment]:
    """
    Normalize already-flattened records, dropping unattributable ones.

    ``seen_ids`` can be shared across calls (e.g. across pages) to keep ids unique
    within one harvest; repeats of an id are skipped.
    """
    seen = seen_ids if seen_ids is not None else set()
    out: list[Comment] = []
    for record in records:
        comment = normalize_comment(record, now=now)
        if comment is None:
            continue
        if comment.id in seen:
            continue
        seen.add(comment.id)
        out.append(comment)
    return out


def normalize_comments(items: Sequence[Any], *, now: datetime | None = None) -> list[Comment]:
    return normalize_records(flatten_comment_records(items), now=now)


def normalize_meta(
    raw: Mapping[str, Any] | None,
    *,
    comments: Iterable[Comment] = (),
) -> PostMeta:
    """
    Best-effort post metadata from the first dataset item.

    When the item has no owner avatar, the owner's own comment (if any) supplies it.
    """
    if not isinstance(raw, Mapping):
        return PostMeta()

    owner_username = first_str(raw, POST_OWNER_USERNAME_PATHS)
    owner_avatar = first_str(raw, POST_OWNER_AVATAR_PATHS)
    if owner_avatar is None and owner_username:
        for comment in comments:
            if comment.username == owner_username and comment.avatar_url:
                owner_avatar = comment.avatar_url
                break

    # Unknown or unreadable creation times stay None, never the harvest time.
    created_at = _parse_timestamp(_first_timestamp_value(raw, POST_CREATED_AT_PATHS))

    return PostMeta(
        caption=first_str(raw, POST_CAPTION_PATHS),
        image_url=first_str(raw, POST_IMAGE_PATHS),
        owner_username=owner_username,
        owner_avatar_url=owner_avatar,
        created_at=created_at,
    )
