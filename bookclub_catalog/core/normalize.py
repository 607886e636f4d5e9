from __future__ import annotations

import html
import re

_HTML_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def normalize_isbn(x: str) -> str:
    x = (x or "").strip()
    x = re.sub(r"[^0-9Xx]", "", x).upper()
    return x


def resolve_isbn(isbn13: str, isbn10: str) -> str:
    """13-digit ISBN when present and non-empty, else the 10-digit one, else ""."""
    isbn13 = normalize_isbn(isbn13)
    if isbn13:
        return isbn13
    return normalize_isbn(isbn10)


def clean_text(text: str, max_len: int | None = None) -> str:
    if not text:
        return ""
    t = html.unescape(str(text))
    t = _HTML_RE.sub(" ", t)
    t = _WS_RE.sub(" ", t).strip()
    if max_len and len(t) > max_len:
        return t[: max_len - 1].rstrip() + "…"
    return t
