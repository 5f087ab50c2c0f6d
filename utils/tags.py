from __future__ import annotations

import re
from typing import Iterable, List, Union


_TAG_SPLIT_RE = re.compile(r"[,\n]+")


def parse_tag_names(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Turn a comma/newline separated string or a list into unique lower-case tags."""
    if not raw:
        return []
    parts = _TAG_SPLIT_RE.split(raw) if isinstance(raw, str) else list(raw)
    seen = set()
    tags: List[str] = []
    for part in parts:
        name = str(part).strip()
        if not name:
            continue
        normalized = name.lower()
        if normalized in seen:
            continue
        seen.add(normalized)
        tags.append(normalized)
    return tags


def tag_matches(tags: Iterable[str], term: str) -> bool:
    term = term.lower()
    return any(term in tag.lower() for tag in tags)
