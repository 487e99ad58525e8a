"""
Tab-delimited feed parsing with alias-tolerant headers.

The upstream sheet is hand-maintained, so column names drift ("Deal ID",
"sku", "RRP", ...). Every canonical field is declared once in ``FeedField``
together with the header spellings it accepts, and rows are always read
through ``resolve_field`` rather than by raw header name.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from dealfeed.models import RawRow

DELIMITER = "\t"

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def normalize_header(name: str) -> str:
    """Case-fold a header cell and drop punctuation/whitespace ("Original Price" -> "originalprice")."""
    return _NON_ALNUM_RE.sub("", (name or "").casefold())


class FeedField(Enum):
    """Canonical deal fields and the header spellings each one accepts.

    Aliases are stored in normalized form and tried in order.
    """

    ID = ("id", ("id", "dealid", "sku", "key"))
    TITLE = ("title", ("title", "name", "dealtitle", "productname", "product"))
    RETAILER = ("retailer", ("retailer", "store", "merchant", "shop", "seller"))
    CATEGORY = ("category", ("category", "cat", "department"))
    URL = ("url", ("url", "link", "dealurl", "producturl", "affiliateurl", "href"))
    IMAGE = ("image", ("image", "imageurl", "img", "picture", "thumbnail"))
    PRICE = ("price", ("price", "saleprice", "dealprice", "nowprice", "currentprice"))
    ORIGINAL_PRICE = (
        "originalPrice",
        ("originalprice", "rrp", "was", "wasprice", "listprice", "regularprice"),
    )
    CURRENCY = ("currency", ("currency", "currencycode", "ccy"))
    TAGS = ("tags", ("tags", "tag", "keywords", "labels"))
    REGIONS = ("regions", ("regions", "region", "countries", "country"))
    POPULARITY = ("popularity", ("popularity", "popular", "votes", "clicks"))
    ENDS_AT = ("endsAt", ("endsat", "ends", "enddate", "expires", "expiresat", "expiry"))
    UPDATED_AT = ("updatedAt", ("updatedat", "updated", "lastupdated", "modified"))

    def __init__(self, canonical: str, aliases: Tuple[str, ...]):
        self.canonical = canonical
        self.aliases = aliases

    @classmethod
    def for_header(cls, header: str) -> Optional["FeedField"]:
        """Map a raw header cell to the field it names, if any."""
        key = normalize_header(header)
        if not key:
            return None
        for feed_field in cls:
            if key in feed_field.aliases:
                return feed_field
        return None


# Distinct recognized fields a first line needs to count as a header
MIN_HEADER_FIELDS = 2

# Column order assumed when the first line carries no recognizable header
FALLBACK_COLUMN_ORDER: Tuple[FeedField, ...] = (
    FeedField.ID,
    FeedField.TITLE,
    FeedField.RETAILER,
    FeedField.CATEGORY,
    FeedField.URL,
    FeedField.IMAGE,
    FeedField.PRICE,
    FeedField.ORIGINAL_PRICE,
    FeedField.CURRENCY,
    FeedField.TAGS,
    FeedField.REGIONS,
    FeedField.POPULARITY,
    FeedField.ENDS_AT,
    FeedField.UPDATED_AT,
)


def clean_cell(value: str) -> str:
    """Strip control characters and surrounding whitespace from one cell."""
    return _CONTROL_CHARS_RE.sub("", value or "").strip()


def build_header_index(headers: Iterable[str]) -> Dict[FeedField, int]:
    """
    Build a canonical field -> column index lookup.

    When two columns name the same field, the left-most one wins.

    Args:
        headers: Raw header cells in column order

    Returns:
        Mapping of recognized fields to their column index
    """
    index: Dict[FeedField, int] = {}
    for position, header in enumerate(headers):
        feed_field = FeedField.for_header(header)
        if feed_field is not None and feed_field not in index:
            index[feed_field] = position
    return index


def looks_like_header(cells: List[str]) -> bool:
    """
    Decide whether a first line is a header row.

    It must name at least ``MIN_HEADER_FIELDS`` distinct fields, so a data
    row whose title happens to be "Product" or "Name" is not taken for one.
    A one-cell line only needs that cell to be recognized.
    """
    filled = [cell for cell in cells if cell]
    needed = min(MIN_HEADER_FIELDS, len(filled))
    return needed > 0 and len(build_header_index(cells)) >= needed


def _split_lines(text: str) -> List[str]:
    text = (text or "").lstrip("\ufeff").replace("\r", "")
    return [line for line in text.split("\n") if clean_cell(line.replace(DELIMITER, ""))]


def parse_table(text: str) -> List[RawRow]:
    """
    Parse tab-delimited feed text into header-keyed rows.

    The first non-blank line is the header row. If ``looks_like_header``
    rejects it, ``FALLBACK_COLUMN_ORDER`` is assumed and that line is read
    as data. Short rows are padded with empty strings.

    Args:
        text: Raw feed text (may be empty)

    Returns:
        One RawRow per non-blank data line, keyed by header text
    """
    lines = _split_lines(text)
    if not lines:
        return []

    header_cells = [clean_cell(cell) for cell in lines[0].split(DELIMITER)]
    if looks_like_header(header_cells):
        headers = header_cells
        data_lines = lines[1:]
    else:
        headers = [feed_field.canonical for feed_field in FALLBACK_COLUMN_ORDER]
        data_lines = lines

    rows: List[RawRow] = []
    for line in data_lines:
        cells = line.split(DELIMITER)
        row: RawRow = {}
        for position, header in enumerate(headers):
            if not header or header in row:
                continue
            row[header] = clean_cell(cells[position]) if position < len(cells) else ""
        rows.append(row)
    return rows


def _by_normalized_key(row: RawRow) -> Dict[str, str]:
    # left-most column wins when two headers normalize to the same key
    return {normalize_header(key): value for key, value in reversed(list(row.items()))}


def _lookup(by_key: Dict[str, str], feed_field: FeedField) -> str:
    for alias in feed_field.aliases:
        value = by_key.get(alias)
        if value is not None:
            return value
    return ""


def resolve_field(row: RawRow, feed_field: FeedField) -> str:
    """
    Read one canonical field from a row, trying each alias in order.

    Missing fields resolve to an empty string.
    """
    return _lookup(_by_normalized_key(row), feed_field)


def resolve_fields(row: RawRow) -> Dict[FeedField, str]:
    """Resolve every canonical field of a row in one pass."""
    by_key = _by_normalized_key(row)
    return {feed_field: _lookup(by_key, feed_field) for feed_field in FeedField}
