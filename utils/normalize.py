from __future__ import annotations

import html
import re
from urllib.parse import urlsplit

_NON_WORD_RE = re.compile(r"[^\w\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]*>")

ID_SEPARATOR = "::"


def normalize_word(text: str) -> str:
    """Lower-case, trim, drop punctuation and collapse whitespace."""
    cleaned = _NON_WORD_RE.sub("", (text or "").lower().strip())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def normalize_context(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", (text or "").strip())


def normalize_url(url: str) -> str:
    """Return host + path (no trailing slash) + query, without the scheme.

    Anything that does not parse as an absolute URL comes back trimmed but
    otherwise unchanged.
    """
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
        host = parts.hostname
    except ValueError:
        return raw
    if not parts.scheme or not host:
        return raw
    path = parts.path
    if path.endswith("/"):
        path = path[:-1]
    query = f"?{parts.query}" if parts.query else ""
    return f"{host}{path}{query}"


def sanitize_html(text: str) -> str:
    return html.unescape(_TAG_RE.sub("", text or "")).replace("\xa0", " ").strip()


def derive_id(text: str, url: str) -> str:
    return f"{normalize_word(text)}{ID_SEPARATOR}{normalize_url(url)}"


def split_id(word_id: str) -> tuple:
    """Split an item id (or a quiz progress key) into its word and source parts."""
    word, _, rest = (word_id or "").partition(ID_SEPARATOR)
    return word, rest
