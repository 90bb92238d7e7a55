import logging
from typing import Any, Dict, List, Optional, Sequence

from ..extractors.models import DocumentKind, DocumentRecord, LineItem
from .linker import parse_number

logger = logging.getLogger(__name__)

SOURCE_PAGE_COLUMN = "source_page"


def _to_number(value: Any) -> float:
    number = parse_number(value)
    return 0 if number is None else number


def compute_total(items: Sequence[LineItem], kind: DocumentKind, header_fields: Optional[Dict[str, Any]] = None) -> float:
    """
    Purchase orders: sum of each item's `total` (absent/blank/unparseable count as 0).
    Invoices: the service's InvoiceTotal when it is numeric, otherwise the sum of `Amount`.
    """
    if kind == DocumentKind.INVOICE:
        invoice_total = parse_number((header_fields or {}).get("InvoiceTotal"))
        if invoice_total is not None:
            return invoice_total
        return sum(_to_number(item.get("Amount")) for item in items)

    return sum(_to_number(item.get("total")) for item in items)


def aggregate(items: List[LineItem], header_fields: Optional[Dict[str, Any]], kind: DocumentKind) -> DocumentRecord:
    header_fields = dict(header_fields or {})
    return DocumentRecord(
        kind=kind,
        header_fields=header_fields,
        items=list(items),
        total=compute_total(items, kind, header_fields),
    )


def provenance_column(items: Sequence[LineItem], name: str = SOURCE_PAGE_COLUMN) -> str:
    """Picks a provenance column name that does not collide with existing item keys."""
    taken = set()
    for item in items:
        taken.update(item.keys())

    candidate, suffix = name, 2
    while candidate in taken:
        candidate = f"{name}_{suffix}"
        suffix += 1
    return candidate


def merge_pages(
    records: Sequence[DocumentRecord],
    kind: DocumentKind,
    page_names: Optional[Sequence[str]] = None,
    include_source_page: bool = False,
) -> DocumentRecord:
    """
    Treats several OCR pages as one logical document.

    Items are concatenated in page order. Header fields come from the first
    page that produced any; later pages' header fields are dropped. With
    include_source_page, every item is tagged with the page it came from.
    """
    if include_source_page and (page_names is None or len(page_names) != len(records)):
        raise ValueError("page_names must name every record when include_source_page is set")

    header_fields: Dict[str, Any] = {}
    for record in records:
        if record.header_fields:
            header_fields = dict(record.header_fields)
            break

    column = None
    if include_source_page:
        column = provenance_column([item for record in records for item in record.items])

    items: List[LineItem] = []
    for index, record in enumerate(records):
        for item in record.items:
            item = dict(item)
            if column:
                item[column] = page_names[index]
            items.append(item)

    logger.debug(f"Merged {len(records)} page(s) into {len(items)} item(s)")
    return aggregate(items, header_fields, kind)
