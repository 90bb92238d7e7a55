import logging
from typing import Any

from .models import DocumentKind, DocumentRecord
from .field_extractor import extract_from_fields, extract_from_tables
from .api_connector import AnalysisFailure, DocumentAnalysisService, analyze_with_retry

logger = logging.getLogger(__name__)


def extract_record(result: Any, kind: DocumentKind) -> DocumentRecord:
    """
    The Main Public Facade.
    Strategy: typed document fields first -> OCR tables when the service
    returned no documents.
    """
    if result is None:
        logger.warning("Service returned no result; nothing to extract.")
        return DocumentRecord(kind=kind)

    record = extract_from_fields(result, kind)
    logger.info(f" Extracted {len(record.items)} item(s), total={record.total}")
    return record


__all__ = [
    "AnalysisFailure",
    "DocumentAnalysisService",
    "DocumentKind",
    "DocumentRecord",
    "analyze_with_retry",
    "extract_from_fields",
    "extract_from_tables",
    "extract_record",
]
