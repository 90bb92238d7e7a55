import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..extractors.models import DocumentKind, DocumentRecord, PageResult
from ..logic.projection import sanitize_for_export

logger = logging.getLogger(__name__)


def _frame(rows: List[Dict]) -> pd.DataFrame:
    """DataFrame whose columns follow first-seen key order across all rows."""
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    frame = pd.DataFrame(rows, columns=columns)
    # Keep None as an empty cell instead of NaN coercion artefacts
    return frame.astype(object).where(pd.notna(frame), None)


class ReportGenerator:
    """
    Writes sanitized records to .xlsx workbooks (pandas + openpyxl).

    Invoices: 'Invoice Details' (one row of header fields) + 'Line Items'.
    Purchase orders: 'Line Items', plus 'Order Details' when header fields exist.
    """

    def __init__(self, output_dir="excel_outputs"):
        self.output_dir = Path(output_dir)

    def build_sheets(self, record: DocumentRecord) -> Dict[str, pd.DataFrame]:
        clean = sanitize_for_export(record)
        sheets: Dict[str, pd.DataFrame] = {}

        if clean.kind == DocumentKind.INVOICE:
            sheets['Invoice Details'] = _frame([clean.header_fields])
        elif clean.header_fields:
            sheets['Order Details'] = _frame([clean.header_fields])

        sheets['Line Items'] = _frame(clean.items)
        return sheets

    def write_record(self, record: DocumentRecord, excel_name: str) -> Optional[str]:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / excel_name
        sheets = self.build_sheets(record)

        try:
            with pd.ExcelWriter(path, engine='openpyxl') as writer:
                for sheet_name, frame in sheets.items():
                    frame.to_excel(writer, sheet_name=sheet_name, index=False)
        except OSError as e:
            logger.error(f"Failed to write workbook {path}: {e}")
            return None

        logger.info(f"Workbook written: {path}")
        return str(path)

    def log_failures(self, failures: List[PageResult]):
        """One line per permanently failed page: file name and reason."""
        for failure in failures:
            code = f" (status {failure.status_code})" if failure.status_code else ""
            logger.error(f"Permanent failure for page: {failure.file_name}. Error: {failure.error}{code}")
