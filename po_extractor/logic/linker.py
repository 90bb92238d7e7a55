import logging
import re
from typing import Any, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = "$€£¥₹"
_STRIP_PATTERN = re.compile(r"[\s,%s]" % re.escape(CURRENCY_SYMBOLS))
_SEPARATOR_PATTERN = re.compile(r"[,%s]" % re.escape(CURRENCY_SYMBOLS))
_NUMBER_PATTERN = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)$")


def clean_numeric_text(text: str) -> str:
    """Drops currency symbols and thousands separators; inner spacing stays."""
    return _SEPARATOR_PATTERN.sub("", text).strip()


def parse_number(raw: Any) -> Optional[Union[int, float]]:
    """
    Parses OCR numeric text: '$1,234.50' -> 1234.5, '(100)' -> -100, '5' -> 5.
    Returns None when the text is not a number.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw

    text = str(raw or "").strip()
    if not text:
        return None

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    text = _STRIP_PATTERN.sub("", text)
    if text.startswith("-") and negative:
        return None
    if not _NUMBER_PATTERN.match(text):
        return None

    value = float(text) if "." in text else int(text)
    return -value if negative else value


def coerce_value(raw: Any):
    """Cell text -> number when it parses as one, trimmed string otherwise, None when blank."""
    if raw is None:
        return None
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    if not text:
        return None

    number = parse_number(text)
    return text if number is None else number


def link_table_rows(headers: Sequence[str], rows: List[List[str]]) -> List[dict]:
    """
    The 'Glue' Function.
    Zips classified headers with raw table rows into line items, coercing
    numeric cells. Rows with no content at all are dropped.
    """
    if not headers:
        if rows:
            logger.warning(f"{len(rows)} row(s) without headers; nothing to link.")
        return []

    linked_items = []
    for row in rows:
        if not any(str(cell or "").strip() for cell in row):
            continue

        item = {}
        for index, header in enumerate(headers):
            value = row[index] if index < len(row) else ""
            item[header] = coerce_value(value)
        linked_items.append(item)

    return linked_items
