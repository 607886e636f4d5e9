from __future__ import annotations

import json
import logging
import string
from typing import List

from bookclub_catalog.core.errors import CatalogParseError
from bookclub_catalog.core.models import RawCatalogItem
from bookclub_catalog.core.normalize import clean_text, normalize_isbn

logger = logging.getLogger(__name__)

_IDENT_START = frozenset(string.ascii_letters + "_$")
_IDENT_CHARS = _IDENT_START | frozenset(string.digits)
_LITERALS = frozenset({"true", "false", "null"})
_TRAILER_CHARS = "; \t\r\n"

# payload key -> RawCatalogItem field
ITEM_FIELDS = {
    "title": "title",
    "author": "author",
    "cover": "cover_url",
    "description": "description",
    "categoryName": "category_text",
    "publisher": "publisher",
    "pubDate": "published_date",
}

_DECODER = json.JSONDecoder(strict=False)


def _copy_double_quoted(text: str, i: int, out: List[str]) -> int:
    n = len(text)
    out.append('"')
    j = i + 1
    while j < n:
        c = text[j]
        if c == "\\":
            nxt = text[j + 1] if j + 1 < n else ""
            # \' is not a JSON escape but catalogs emit it
            out.append("'" if nxt == "'" else text[j : j + 2])
            j += 2
            continue
        out.append(c)
        j += 1
        if c == '"':
            return j
    return j


def _convert_single_quoted(text: str, i: int, out: List[str]) -> int:
    n = len(text)
    out.append('"')
    j = i + 1
    while j < n:
        c = text[j]
        if c == "\\":
            nxt = text[j + 1] if j + 1 < n else ""
            out.append("'" if nxt == "'" else text[j : j + 2])
            j += 2
            continue
        if c == "'":
            out.append('"')
            return j + 1
        out.append('\\"' if c == '"' else c)
        j += 1
    return j


def normalize_lenient_json(text: str) -> str:
    """
    Rewrite recoverable JSON-ish text into strict JSON.

      - 'single quoted' strings become "double quoted"
      - bare object keys ({title: ...}) get quoted
      - \\' inside strings becomes a plain apostrophe

    Anything else is passed through untouched so the strict parser can reject it.
    """
    if not text:
        return ""
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            i = _copy_double_quoted(text, i, out)
        elif ch == "'":
            i = _convert_single_quoted(text, i, out)
        elif ch in _IDENT_START:
            j = i + 1
            while j < n and text[j] in _IDENT_CHARS:
                j += 1
            word = text[i:j]
            k = j
            while k < n and text[k].isspace():
                k += 1
            if word not in _LITERALS and k < n and text[k] == ":":
                out.append(json.dumps(word))
            else:
                out.append(word)
            i = j
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _scalar_text(entry: dict, key: str, idx: int) -> str:
    val = entry.get(key)
    if val is None:
        return ""
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, (int, float, str)):
        return str(val)
    raise CatalogParseError(f"item[{idx}].{key} has unexpected type {type(val).__name__}")


def _parse_item(entry, idx: int) -> RawCatalogItem:
    if not isinstance(entry, dict):
        raise CatalogParseError(f"item[{idx}] is not an object")

    fields = {attr: _scalar_text(entry, key, idx) for key, attr in ITEM_FIELDS.items()}

    isbn13 = normalize_isbn(_scalar_text(entry, "isbn13", idx))
    isbn10 = normalize_isbn(_scalar_text(entry, "isbn", idx))
    if not isbn13 and not isbn10:
        raise CatalogParseError(f"item[{idx}] has neither isbn13 nor isbn")

    return RawCatalogItem(
        title=clean_text(fields["title"]),
        author=clean_text(fields["author"]),
        isbn13=isbn13,
        isbn10=isbn10,
        cover_url=fields["cover_url"].strip(),
        description=clean_text(fields["description"]),
        category_text=clean_text(fields["category_text"]),
        publisher=clean_text(fields["publisher"]),
        published_date=fields["published_date"].strip(),
    )


def decode_catalog_items(raw_text: str) -> List[RawCatalogItem]:
    """
    Decode a catalog search response into RawCatalogItem records.

    A missing or non-array top-level "item" field means "no results" and yields [].
    One bad entry fails the whole decode with CatalogParseError; partial pages are
    never returned.
    """
    text = normalize_lenient_json(raw_text or "").lstrip("\ufeff").strip()
    try:
        root, end = _DECODER.raw_decode(text)
    except ValueError as e:
        raise CatalogParseError(f"catalog payload is not valid JSON: {e}") from e

    trailer = text[end:]
    if trailer.strip(_TRAILER_CHARS):
        raise CatalogParseError(f"unexpected data after catalog payload at offset {end}")

    if not isinstance(root, dict):
        return []
    items = root.get("item")
    if not isinstance(items, list):
        logger.debug("catalog payload has no item array | keys=%s", sorted(root.keys())[:20])
        return []

    out = [_parse_item(entry, idx) for idx, entry in enumerate(items)]
    logger.debug("decoded catalog items | count=%s", len(out))
    return out
