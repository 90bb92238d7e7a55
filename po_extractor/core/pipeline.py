import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config_loader import ConfigurationError
from .file_utils import FileSystemManager, InvalidDocumentError
from .reporter import ReportGenerator
from ..extractors import extract_record
from ..extractors.api_connector import (
    MAX_DELAY_MS,
    MAX_RETRIES,
    AnalysisFailure,
    analyze_with_retry,
)
from ..extractors.models import AnalysisRequest, DocumentKind, DocumentRecord, PageResult, RunSummary
from ..logic.aggregator import merge_pages

logger = logging.getLogger(__name__)

INITIAL_PAGE_DELAY_MS = 1000
RETRY_PASS_DELAY_MS = 5000

NO_DATA_MESSAGES = {
    DocumentKind.INVOICE: "No invoice data found in document",
    DocumentKind.PURCHASE_ORDER: "No table data found in document",
}


@dataclass
class PacingState:
    """Inter-page delay shared by every page of one run; only the driver loop touches it."""
    delay_ms: int = INITIAL_PAGE_DELAY_MS

    def escalate(self) -> int:
        self.delay_ms = min(self.delay_ms * 2, MAX_DELAY_MS)
        return self.delay_ms


@dataclass
class PageTask:
    request: AnalysisRequest
    parent_file: str
    page_index: int


class PipelineOrchestrator:
    """
    Runs a batch of PDFs through split -> analyze -> extract -> export.

    Pages are analyzed strictly one at a time. Pages that exhaust their
    inline retries are retried once more after the first pass, with a
    fixed, longer delay.
    """

    def __init__(
        self,
        service_factory: Callable,
        reporter: Optional[ReportGenerator] = None,
        fs: Optional[FileSystemManager] = None,
        page_delay_ms: int = INITIAL_PAGE_DELAY_MS,
        retry_pass_delay_ms: int = RETRY_PASS_DELAY_MS,
        max_retries: int = MAX_RETRIES,
        sleep=asyncio.sleep,
    ):
        self.service_factory = service_factory
        self.reporter = reporter or ReportGenerator()
        self.fs = fs or FileSystemManager()
        self.page_delay_ms = page_delay_ms
        self.retry_pass_delay_ms = retry_pass_delay_ms
        self.max_retries = max_retries
        self.sleep = sleep
        self._service = None

    @classmethod
    def from_config(cls, settings, **overrides):
        from ..extractors.api_connector import DocumentAnalysisService

        processing = settings.get_processing_settings()
        paths = settings.get_paths()
        options = dict(
            service_factory=lambda: DocumentAnalysisService.from_config(settings),
            reporter=ReportGenerator(paths["output_dir"]),
            fs=FileSystemManager(paths["input_dir"], paths["output_dir"]),
            page_delay_ms=processing["page_delay_ms"],
            retry_pass_delay_ms=processing["retry_pass_delay_ms"],
        )
        options.update(overrides)
        return cls(**options)

    # --- STEP 1: SPLIT ---
    def _prepare_pages(self, files: Sequence, kind: DocumentKind, summary: RunSummary) -> List[PageTask]:
        tasks = []
        for file_path in files:
            name = Path(file_path).name
            try:
                pages = self.fs.split_pdf(file_path)
            except InvalidDocumentError as e:
                logger.error(f"Skipping {name}: {e}")
                summary.failures.append(PageResult(file_name=name, parent_file=name, error=str(e)))
                continue

            for index, (page_name, page_bytes) in enumerate(pages):
                request = AnalysisRequest(page_bytes, kind, page_name)
                tasks.append(PageTask(request=request, parent_file=name, page_index=index))
        return tasks

    # --- STEP 2: ANALYZE ONE PAGE ---
    def _analyzer(self):
        if self._service is None:
            self._service = self.service_factory()
        return self._service.analyze

    async def _process_page(self, task: PageTask) -> PageResult:
        request = task.request
        base = dict(file_name=request.file_name, parent_file=task.parent_file)

        try:
            analyze = self._analyzer()
        except ConfigurationError as e:
            logger.error(f"Request for {request.file_name} not sent: {e}")
            return PageResult(error=str(e), **base)

        try:
            outcome = await analyze_with_retry(request, analyze, sleep=self.sleep, max_retries=self.max_retries)
        except ConfigurationError as e:
            logger.error(f"Request for {request.file_name} not sent: {e}")
            return PageResult(error=str(e), **base)
        except AnalysisFailure as e:
            return PageResult(error=e.message, status_code=e.status_code, rate_limited=e.rate_limited, **base)

        record = extract_record(outcome.result, request.document_kind)
        if not record.has_data():
            return PageResult(error=NO_DATA_MESSAGES[request.document_kind], rate_limited=outcome.rate_limited, **base)
        return PageResult(record=record, rate_limited=outcome.rate_limited, **base)

    # --- STEP 3: EXPORT ---
    def _export(self, record: DocumentRecord, source_name: str, summary: RunSummary):
        path = self.reporter.write_record(record, FileSystemManager.excel_name(source_name))
        if path:
            summary.exports.append(path)

    def _deliver(self, task: PageTask, result: PageResult, summary: RunSummary, aggregation: Optional[Dict]):
        summary.pages.append(result)
        if aggregation is not None:
            aggregation.setdefault(task.parent_file, []).append((task.page_index, result))
            return
        self._export(result.record, result.file_name, summary)

    def _export_aggregates(self, aggregation: Dict, kind: DocumentKind, summary: RunSummary):
        for parent_file, pages in aggregation.items():
            pages = sorted(pages, key=lambda p: p[0])
            if not pages:
                continue
            merged = merge_pages(
                [r.record for _, r in pages],
                kind,
                page_names=[r.file_name for _, r in pages],
                include_source_page=True,
            )
            stem = Path(parent_file).stem
            self._export(merged, f"{stem}_aggregated.pdf", summary)

    async def run(self, files: Sequence, kind: DocumentKind, multi_page: bool = False) -> RunSummary:
        logger.info(">>> Starting Extraction Run")
        summary = RunSummary(files=len(files))
        pacing = PacingState(self.page_delay_ms)
        aggregation = OrderedDict() if (multi_page and kind == DocumentKind.INVOICE) else None

        tasks = self._prepare_pages(files, kind, summary)
        failed: List[PageTask] = []

        for position, task in enumerate(tasks, start=1):
            if position > 1:
                await self.sleep(pacing.delay_ms / 1000)

            logger.info(f"Analyzing page {task.request.file_name} ({position}/{len(tasks)})")
            result = await self._process_page(task)

            if result.rate_limited:
                logger.warning(f"Rate limit hit. Delay increased to {pacing.escalate()}ms.")

            if result.success:
                self._deliver(task, result, summary, aggregation)
            else:
                logger.error(f"Initial processing failed for page: {result.file_name}. Error: {result.error}")
                failed.append(task)

        if failed:
            logger.info(f"Retrying {len(failed)} failed page(s)...")
        for task in failed:
            await self.sleep(self.retry_pass_delay_ms / 1000)
            result = await self._process_page(task)
            if result.rate_limited:
                pacing.escalate()

            if result.success:
                logger.info(f"Successfully processed {result.file_name} on retry.")
                self._deliver(task, result, summary, aggregation)
            else:
                summary.failures.append(result)

        if aggregation:
            self._export_aggregates(aggregation, kind, summary)

        self.reporter.log_failures(summary.failures)
        if summary.completed_cleanly:
            logger.info(summary.message())
        else:
            logger.warning(summary.message())
        return summary
