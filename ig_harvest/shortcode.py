from __future__ import annotations

import re

from .errors import MalformedInputError

_SHORTCODE_RE = re.compile(r"instagram\.com/(?:[A-Za-z0-9_.]+/)?(?:p|reel|reels|tv)/([A-Za-z0-9_-]+)")


def extract_shortcode(url: str) -> str | None:
    """Extract the shortcode from /p/, /reel/ or /tv/ post URLs."""
    match = _SHORTCODE_RE.search((url or "").strip())
    return match.group(1) if match else None


def require_shortcode(url: str) -> str:
    u = (url or "").strip()
    if not u:
        raise MalformedInputError("Missing post URL")
    code = extract_shortcode(u)
    if not code:
        raise MalformedInputError(f"Could not extract shortcode from URL: {u}")
    return code


def permalink_candidates(shortcode: str) -> tuple[str, ...]:
    return (
        f"https://www.instagram.com/p/{shortcode}/",
        f"https://www.instagram.com/reel/{shortcode}/",
    )


def permalink_matches(permalink: str, shortcode: str) -> bool:
    """Exact post/reel permalink match, with a substring check as a lenient fallback."""
    link = (permalink or "").strip()
    if not link or not shortcode:
        return False
    if link in permalink_candidates(shortcode):
        return True
    return f"/{shortcode}/" in link
