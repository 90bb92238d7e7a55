"""
Excel projection: the last cleanup before records reach the spreadsheet encoder.

Blank text becomes None so an empty cell can be told apart from a key the
source never had (absent keys stay absent). Numeric columns keep 0 and
negative values as they are.
"""
import json
import logging
from dataclasses import replace
from datetime import date, datetime, time
from typing import Any, Dict

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from ..extractors.models import DocumentRecord, LineItem
from .linker import clean_numeric_text, parse_number

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = frozenset({
    "pu_quant", "pu_price", "total",
    "Quantity", "OrderQuantity", "UnitPrice", "Amount", "Tax",
    "SubTotal", "TotalTax", "InvoiceTotal", "AmountDue", "PreviousUnpaidBalance",
})


def sanitize_value(key: str, value: Any):
    if value is None or isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        return value

    if isinstance(value, (datetime, date, time)):
        return value

    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)

    text = str(value)
    if ILLEGAL_CHARACTERS_RE.search(text):
        logger.warning(f"Removed control characters from '{key}' value {text!r}.")
        text = ILLEGAL_CHARACTERS_RE.sub("", text)

    text = text.strip()
    if not text:
        return None

    if key in NUMERIC_FIELDS:
        number = parse_number(text)
        if number is None:
            cleaned = clean_numeric_text(text)
            logger.warning(f"Could not parse numeric field '{key}' from {text!r}; keeping {cleaned!r}.")
            return cleaned or None
        return number

    return text


def sanitize_item(item: LineItem) -> Dict[str, Any]:
    return {key: sanitize_value(key, value) for key, value in item.items()}


def sanitize_for_export(record: DocumentRecord) -> DocumentRecord:
    """Returns a copy of the record with header fields and items ready for the encoder."""
    return replace(
        record,
        header_fields=sanitize_item(record.header_fields),
        items=[sanitize_item(item) for item in record.items],
    )
