from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

LineItem = Dict[str, Union[str, int, float, None]]
Grid = List[List[str]]


class DocumentKind(str, Enum):
    PURCHASE_ORDER = "purchase-order"
    INVOICE = "invoice"

    @classmethod
    def parse(cls, value: str) -> "DocumentKind":
        """Accepts 'invoice', 'purchase-order', 'purchase_order' or 'po'."""
        key = str(value).strip().lower().replace("_", "-")
        if key in ("po", "purchaseorder"):
            key = cls.PURCHASE_ORDER.value
        return cls(key)


@dataclass(frozen=True)
class AnalysisRequest:
    """
    One page (or file) on its way to the document-analysis service.
    Built per page and consumed by a single retry-controller call.
    """
    document_bytes: bytes
    document_kind: DocumentKind
    file_name: str = "document.pdf"


@dataclass(frozen=True)
class RawCell:
    row_index: int
    column_index: int
    content: str = ""


@dataclass
class DocumentRecord:
    """
    The unified record produced for a purchase order or an invoice.

    header_fields holds document-level values (invoice id, vendor, ...),
    items the line items and total the derived document total.
    """
    kind: DocumentKind
    header_fields: Dict[str, Any] = field(default_factory=dict)
    items: List[LineItem] = field(default_factory=list)
    total: float = 0.0

    def has_data(self) -> bool:
        return bool(self.items) or any(v is not None for v in self.header_fields.values())


@dataclass
class RetryState:
    attempt: int = 0
    last_error: Optional[BaseException] = None


@dataclass
class AnalysisOutcome:
    result: Any
    attempts: int = 1
    rate_limited: bool = False


@dataclass
class PageResult:
    file_name: str
    parent_file: str
    record: Optional[DocumentRecord] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    rate_limited: bool = False

    @property
    def success(self) -> bool:
        return self.record is not None and self.error is None


@dataclass
class RunSummary:
    files: int = 0
    pages: List[PageResult] = field(default_factory=list)
    failures: List[PageResult] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)

    @property
    def completed_cleanly(self) -> bool:
        return not self.failures

    def message(self) -> str:
        if self.completed_cleanly:
            return f"Successfully processed all pages from {self.files} file(s)."
        return (
            f"Processing complete. {self.files} file(s) processed with "
            f"{len(self.failures)} permanent error(s)."
        )
