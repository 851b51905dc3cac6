from __future__ import annotations

import re
from typing import Optional

from bs4 import Comment, Tag


_SPACES_RE = re.compile(r"[ \t\r\f\v\u00a0]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def clean_text(value: Optional[str]) -> str:
    """
    Collapse runs of spaces (including NBSP) and blank lines; trim each line.
    """
    if not value:
        return ""
    s = _SPACES_RE.sub(" ", value)
    lines = [line.strip() for line in s.split("\n")]
    s = "\n".join(lines)
    return _BLANK_LINES_RE.sub("\n", s).strip()


def element_text(el: Optional[Tag]) -> str:
    """
    Text content of an element with `<br>` kept as line breaks.
    """
    if el is None:
        return ""
    parts: list[str] = []
    for node in el.descendants:
        if isinstance(node, Tag):
            if node.name == "br":
                parts.append("\n")
            continue
        if isinstance(node, Comment) or (node.parent is not None and node.parent.name in ("script", "style")):
            continue
        parts.append(str(node))
    return clean_text("".join(parts))
