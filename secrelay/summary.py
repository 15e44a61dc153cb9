"""Description cleanup for chat and API output."""

from __future__ import annotations

SUMMARY_MAX_CHARS = 200
ELLIPSIS = "..."

# Only these tags are recognised; anything else passes through untouched.
# feedparser rewrites <br> as <br />, so every spelling is listed.
_TAG_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("<br>", " "),
    ("<br/>", " "),
    ("<br />", " "),
    ("<p>", " "),
    ("</p>", " "),
    ("<strong>", ""),
    ("</strong>", ""),
    ("<em>", ""),
    ("</em>", ""),
)


def normalize_summary(raw: str | None, max_chars: int = SUMMARY_MAX_CHARS) -> str:
    """Strip the known inline tags, collapse whitespace and cap the length.

    Text longer than *max_chars* is cut to exactly *max_chars* characters
    and suffixed with ``...``.
    """
    if not raw:
        return ""
    text = raw
    for tag, replacement in _TAG_REPLACEMENTS:
        text = text.replace(tag, replacement)
    text = " ".join(text.split())
    if len(text) > max_chars:
        text = text[:max_chars] + ELLIPSIS
    return text
