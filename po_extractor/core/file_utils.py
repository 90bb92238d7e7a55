import logging
import re
from io import BytesIO
from pathlib import Path
from typing import List, Tuple

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_MB = 50


class InvalidDocumentError(ValueError):
    """The file is not a readable PDF (or is too large to process)."""


class FileSystemManager:
    """
    Handles all physical interactions with the hard drive:
    finding input PDFs, splitting them into pages and naming outputs.
    """

    def __init__(self, input_dir: str = "input_pdfs", output_dir: str = "excel_outputs"):
        self.dirs = {
            'input': Path(input_dir),
            'output': Path(output_dir),
        }

    def scan_inputs(self) -> List[Path]:
        """Lists the PDFs waiting in the input folder, sorted by name."""
        folder = self.dirs['input']
        if not folder.exists():
            logger.warning(f"Input folder missing: {folder}")
            return []
        return sorted(p for p in folder.glob("*") if p.is_file() and p.suffix.lower() == '.pdf')

    @staticmethod
    def page_file_name(file_name: str, page_number: int) -> str:
        """'0507.pdf', 2 -> '0507_2.pdf'"""
        path = Path(file_name)
        suffix = path.suffix or ".pdf"
        return f"{path.stem}_{page_number}{suffix}"

    @staticmethod
    def excel_name(file_name: str) -> str:
        stem = re.sub(r'\.pdf$', '', Path(file_name).name, flags=re.IGNORECASE)
        return f"{stem}.xlsx"

    def _check_size(self, file_path: Path):
        size = file_path.stat().st_size
        if size > MAX_FILE_SIZE_MB * 1024 * 1024:
            raise InvalidDocumentError(f"{file_path.name} is larger than {MAX_FILE_SIZE_MB}MB")

    def split_pdf(self, file_path) -> List[Tuple[str, bytes]]:
        """
        Splits one PDF into single-page PDFs.
        Returns (page_file_name, pdf_bytes) pairs in page order.
        """
        file_path = Path(file_path)
        self._check_size(file_path)

        try:
            reader = PdfReader(str(file_path))
            pages = list(reader.pages)
        except (PdfReadError, ValueError) as e:
            raise InvalidDocumentError(f"{file_path.name} is not a readable PDF: {e}") from e

        split_pages = []
        for index, page in enumerate(pages, start=1):
            writer = PdfWriter()
            writer.add_page(page)
            buffer = BytesIO()
            writer.write(buffer)
            split_pages.append((self.page_file_name(file_path.name, index), buffer.getvalue()))

        logger.info(f"Split {file_path.name} into {len(split_pages)} page(s)")
        return split_pages
