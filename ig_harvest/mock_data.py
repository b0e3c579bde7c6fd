from __future__ import annotations

from .compose import compose_result
from .models import Comment, HarvestResult, PostMeta

MOCK_COMMENT_COUNT = 20
MOCK_TIMESTAMP = "2025-01-01T00:00:00.000Z"

_MOCK_TEXTS = (
    "I want to win! @friend1 @friend2 #giveaway",
    "Participando! Gracias por el sorteo",
    "Me encanta este premio!!!",
)

MOCK_CAPTION = (
    "SORTEO! 🎁 Para participar: 1) Seguir nuestra cuenta 2) Dar like "
    "3) Comentar mencionando 2 amigos. Sorteo válido hasta el 30/09. #giveaway"
)
MOCK_IMAGE_URL = "https://placehold.co/600x600?text=Instagram+Post"
MOCK_OWNER_USERNAME = "mock_giveaway_account"


def _mock_comment(index: int) -> Comment:
    username = f"mock_user_{index + 1}"
    return Comment(
        id=str(index + 1),
        username=username,
        text=_MOCK_TEXTS[index % len(_MOCK_TEXTS)],
        timestamp=MOCK_TIMESTAMP,
        avatar_url=f"https://unavatar.io/instagram/{username}?size=256",
    )


def mock_harvest_result(post_url: str | None = None) -> HarvestResult:
    """
    Fixed, deterministic result for local development and network-free tests.

    Pure: no I/O, no clock. ``post_url`` is accepted for signature parity only.
    """
    _ = post_url
    comments = [_mock_comment(i) for i in range(MOCK_COMMENT_COUNT)]
    post = PostMeta(
        caption=MOCK_CAPTION,
        image_url=MOCK_IMAGE_URL,
        owner_username=MOCK_OWNER_USERNAME,
        owner_avatar_url=None,
        created_at=MOCK_TIMESTAMP,
    )
    return compose_result(comments, post, source="mock")
