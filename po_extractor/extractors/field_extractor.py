"""
Structured-field extraction.

The analysis service returns typed fields whose shape depends on the API and
SDK version that produced them:

- REST / current SDK JSON: ``{"type": "currency", "valueCurrency": {"amount": 5}}``
- older SDK JSON:          ``{"type": "currency", "value": {"amount": 5}}``
- Python SDK ``to_dict()``: ``{"value_type": "currency", "value": {"amount": 5}}``

Arrays expose elements under ``valueArray`` or ``values`` (or a list under
``value``) and objects expose sub-fields under ``valueObject`` or
``properties`` (or a mapping under ``value``). Each shape is handled by a
small strategy that answers NOT_APPLICABLE when the field is not in its
shape; ``field_value`` tries them in order.
"""
import json
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from .header_classifier import classify_and_normalize
from .models import DocumentKind, DocumentRecord, LineItem
from .table_extractor import _read, cells_from_table, extract_grid

logger = logging.getLogger(__name__)


class _NotApplicable:
    def __repr__(self):
        return "NOT_APPLICABLE"


NOT_APPLICABLE = _NotApplicable()

TYPED_VALUE_KEYS = (
    "valueString", "valueNumber", "valueInteger", "valueDate", "valueTime",
    "valuePhoneNumber", "valueCountryRegion", "valueSelectionMark",
)

ITEMS_FIELD_NAMES = ("Items", "items", "LineItems")

# Purchase-order fields -> canonical line-item keys
PO_ITEM_FIELD_MAP = {
    "Description": "description",
    "Quantity": "pu_quant",
    "UnitPrice": "pu_price",
    "Amount": "total",
    "ProductCode": "pr_codenum",
    "Unit": "unit",
}


def _get(field: Any, key: str):
    if isinstance(field, Mapping):
        return field.get(key)
    return getattr(field, key, None)


def _amount_of(value: Any):
    """Currency payloads: {'amount': .., 'currencySymbol': ..} or its JSON text."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return NOT_APPLICABLE
    amount = _get(value, "amount") if value is not None else None
    if amount is None and not (isinstance(value, Mapping) and "amount" in value):
        return NOT_APPLICABLE
    return amount


# --- STRATEGIES (newest shape first) ---

def _typed_value(field: Any):
    for key in TYPED_VALUE_KEYS:
        value = _get(field, key)
        if value is not None:
            return value
    return NOT_APPLICABLE


def _currency_value(field: Any):
    currency = _get(field, "valueCurrency")
    if currency is not None:
        return _amount_of(currency)

    field_type = _get(field, "type") or _get(field, "value_type")
    if field_type == "currency":
        return _amount_of(_get(field, "value"))
    return NOT_APPLICABLE


def _generic_value(field: Any):
    value = _get(field, "value")
    if value is None:
        return NOT_APPLICABLE
    if isinstance(value, Mapping):
        amount = _amount_of(value)
        if amount is not NOT_APPLICABLE:
            return amount
    if isinstance(value, (Mapping, list, tuple)):
        # Addresses, arrays and objects are not scalars; the OCR text stands in for them
        content = _get(field, "content")
        return content if content is not None else NOT_APPLICABLE
    return value


def _content_value(field: Any):
    content = _get(field, "content")
    return content if content is not None else NOT_APPLICABLE


FIELD_STRATEGIES: List[Callable[[Any], Any]] = [
    _typed_value,
    _currency_value,
    _generic_value,
    _content_value,
]


def field_value(field: Any):
    """Scalar value of a service field, whatever its shape. Missing → None."""
    if field is None:
        return None
    if isinstance(field, (str, int, float)):
        return field
    for strategy in FIELD_STRATEGIES:
        value = strategy(field)
        if value is not NOT_APPLICABLE:
            return value
    return None


def array_elements(field: Any) -> Optional[list]:
    if field is None:
        return None
    for key in ("valueArray", "values"):
        elements = _get(field, key)
        if isinstance(elements, (list, tuple)):
            return list(elements)
    value = _get(field, "value")
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def object_properties(field: Any) -> Optional[Dict[str, Any]]:
    if field is None:
        return None
    for key in ("valueObject", "properties"):
        props = _get(field, key)
        if isinstance(props, Mapping):
            return dict(props)
    value = _get(field, "value")
    if isinstance(value, Mapping) and _amount_of(value) is NOT_APPLICABLE:
        return dict(value)
    return None


# =========================================================
#                   DOCUMENT LEVEL
# =========================================================

def _documents(result: Any) -> list:
    return list(_read(result, "documents", default=[]) or [])


def _fields(document: Any) -> Dict[str, Any]:
    fields = _read(document, "fields", default={}) or {}
    return dict(fields) if isinstance(fields, Mapping) else {}


def _find_items_field(fields: Dict[str, Any]):
    """Returns (name, elements) for the line-item array, wherever the service put it."""
    for name in ITEMS_FIELD_NAMES:
        elements = array_elements(fields.get(name))
        if elements is not None:
            return name, elements
    for name, field in fields.items():
        elements = array_elements(field)
        if elements is not None:
            return name, elements
    return None, []


def _element_properties(element: Any) -> Dict[str, Any]:
    props = object_properties(element)
    if props is None:
        logger.warning(f"Skipping line item without sub-fields: {element!r:.120}")
        return {}
    return {name: field_value(sub) for name, sub in props.items()}


def _invoice_items(elements: list) -> List[LineItem]:
    items = []
    for element in elements:
        item = _element_properties(element)
        if item:
            items.append(item)
    return items


def _purchase_order_items(elements: list) -> List[LineItem]:
    items = []
    for element in elements:
        props = _element_properties(element)
        if not any(value is not None for value in props.values()):
            continue
        # Known properties get canonical names; the rest keep the service's names
        item: LineItem = {PO_ITEM_FIELD_MAP.get(name, name): value for name, value in props.items()}
        items.append(item)
    return items


def extract_from_fields(result: Any, kind: DocumentKind) -> DocumentRecord:
    """
    Builds a DocumentRecord from the service's typed document fields.
    Falls back to the table pipeline when no documents came back.
    """
    from ..logic.aggregator import aggregate

    documents = _documents(result)
    if not documents:
        logger.warning("Structured fields unavailable (no documents in result); falling back to tables.")
        return extract_from_tables(result, kind)

    fields = _fields(documents[0])
    items_name, elements = _find_items_field(fields)

    header_fields = {
        name: field_value(field)
        for name, field in fields.items()
        if name != items_name
    }

    if kind == DocumentKind.INVOICE:
        items = _invoice_items(elements)
    else:
        items = _purchase_order_items(elements)
        if not items:
            # prebuilt-document rarely types line items; the tables still hold them
            items = extract_from_tables(result, kind).items

    logger.debug(f"Structured extraction: {len(header_fields)} header fields, {len(items)} items")
    return aggregate(items, header_fields, kind)


def extract_from_tables(result: Any, kind: DocumentKind) -> DocumentRecord:
    """Table pipeline: cells → grid → classified headers → line items."""
    from ..logic.aggregator import aggregate
    from ..logic.linker import link_table_rows

    items: List[LineItem] = []
    for index, table in enumerate(_read(result, "tables", default=[]) or []):
        grid = extract_grid(cells_from_table(table))
        if not grid:
            logger.warning(f"Table {index + 1} is empty; skipped.")
            continue
        classified = classify_and_normalize(grid)
        items.extend(link_table_rows(classified.headers, classified.rows))

    return aggregate(items, {}, kind)
