from __future__ import annotations

from typing import Iterable

from .models import Comment, HarvestMeta, HarvestResult, PostMeta, SourceName


def compose_result(
    comments: Iterable[Comment],
    post: PostMeta,
    *,
    source: SourceName,
    media_id: str | None = None,
    media_type: str | None = None,
    partial: bool = False,
) -> HarvestResult:
    """Assemble the output contract shared by every data source. Order is kept as given."""
    items = tuple(comments)
    return HarvestResult(
        comments=items,
        post=post,
        meta=HarvestMeta(
            source=source,
            total_comments=len(items),
            media_id=media_id,
            media_type=media_type,
            partial=bool(partial),
        ),
    )
