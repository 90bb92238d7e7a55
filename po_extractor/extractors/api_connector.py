import asyncio
import logging
import math
import re
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional, Tuple

from azure.ai.formrecognizer.aio import DocumentAnalysisClient
from azure.core.credentials import AzureKeyCredential

from ..core.config_loader import ConfigurationError
from .models import AnalysisOutcome, AnalysisRequest, DocumentKind, RetryState

logger = logging.getLogger(__name__)

# --- CONFIGURATION ---
MAX_RETRIES = 3
INITIAL_DELAY_MS = 3000
MAX_DELAY_MS = 30000

SERVICE_SUGGESTED = "service-suggested delay"
EXPONENTIAL_BACKOFF = "exponential backoff"

MODEL_IDS = {
    DocumentKind.INVOICE: "prebuilt-invoice",
    DocumentKind.PURCHASE_ORDER: "prebuilt-document",
}

RETRY_AFTER_MESSAGE = re.compile(r"retry after (\d+) seconds", re.IGNORECASE)


class AnalysisFailure(Exception):
    """Every attempt for one document failed."""

    def __init__(self, message, status_code=None, file_name=None, attempts=0, rate_limited=False):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.file_name = file_name
        self.attempts = attempts
        self.rate_limited = rate_limited


# --- ERROR INSPECTION ---
def error_message(error: BaseException) -> str:
    return str(getattr(error, "message", None) or error) or error.__class__.__name__


def status_code_of(error: BaseException) -> Optional[int]:
    code = getattr(error, "status_code", None) or getattr(error, "statusCode", None)
    if code is None:
        response = getattr(error, "response", None)
        code = getattr(response, "status_code", None)
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


def is_rate_limited(error: BaseException) -> bool:
    if status_code_of(error) == 429:
        return True
    return "too many requests" in error_message(error).lower()


def _header(headers: Any, name: str):
    if headers is None:
        return None
    if isinstance(headers, Mapping):
        for key, value in headers.items():
            if str(key).lower() == name:
                return value
        return None
    getter = getattr(headers, "get", None)
    return getter(name) if callable(getter) else None


# --- DELAY STRATEGIES (each returns milliseconds or None) ---
def _suggested_delay_ms(error: BaseException) -> Optional[float]:
    for attr in ("retry_after_in_ms", "retryAfterInMs"):
        value = getattr(error, attr, None)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            return value
    return None


def _retry_after_header_ms(error: BaseException) -> Optional[float]:
    response = getattr(error, "response", None)
    raw = _header(getattr(response, "headers", None), "retry-after")
    if raw is None:
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    # Values above 1000 are taken to be milliseconds already
    return value if value > 1000 else value * 1000


def _retry_after_message_ms(error: BaseException) -> Optional[float]:
    match = RETRY_AFTER_MESSAGE.search(error_message(error))
    return int(match.group(1)) * 1000 if match else None


SUGGESTED_DELAY_STRATEGIES = (
    _suggested_delay_ms,
    _retry_after_header_ms,
    _retry_after_message_ms,
)


def compute_retry_delay(error: BaseException, attempt: int) -> Tuple[int, str]:
    """
    Delay before the attempt after `attempt` (0-indexed), and where it came from.
    Service hints win over exponential backoff; the result is clamped to [0, MAX_DELAY_MS].
    """
    delay, source = None, EXPONENTIAL_BACKOFF
    for strategy in SUGGESTED_DELAY_STRATEGIES:
        delay = strategy(error)
        if delay is not None:
            source = SERVICE_SUGGESTED
            break

    if delay is None:
        delay = INITIAL_DELAY_MS * (2 ** attempt)

    return int(min(max(delay, 0), MAX_DELAY_MS)), source


async def analyze_with_retry(
    request: AnalysisRequest,
    analyze: Callable[[AnalysisRequest], Awaitable[Any]],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    max_retries: int = MAX_RETRIES,
) -> AnalysisOutcome:
    """
    Runs one analysis call with up to `max_retries` retries.

    Returns an AnalysisOutcome on success; raises AnalysisFailure once the last
    attempt fails. Holds no state between calls.
    """
    state = RetryState()
    rate_limited = False
    total_attempts = max_retries + 1

    while True:
        try:
            result = await analyze(request)
            return AnalysisOutcome(result=result, attempts=state.attempt + 1, rate_limited=rate_limited)
        except ConfigurationError:
            raise
        except Exception as e:
            state.last_error = e
            rate_limited = rate_limited or is_rate_limited(e)

        if state.attempt >= max_retries:
            break

        delay_ms, source = compute_retry_delay(state.last_error, state.attempt)
        logger.warning(
            f'Attempt {state.attempt + 1} of {total_attempts} failed for document "{request.file_name}". '
            f'Error: {error_message(state.last_error)}. '
            f'Retrying in {delay_ms}ms (using {source}).'
        )
        await sleep(delay_ms / 1000)
        state.attempt += 1

    last_error = state.last_error
    logger.error(
        f'All {total_attempts} attempts to process document "{request.file_name}" failed. '
        f'Last error: {error_message(last_error)}'
    )
    raise AnalysisFailure(
        error_message(last_error),
        status_code=status_code_of(last_error),
        file_name=request.file_name,
        attempts=total_attempts,
        rate_limited=rate_limited,
    ) from last_error


# =========================================================
#                   REMOTE SERVICE
# =========================================================

def _to_plain(result: Any) -> Any:
    to_dict = getattr(result, "to_dict", None)
    return to_dict() if callable(to_dict) else result


class DocumentAnalysisService:
    """
    Thin async adapter over Azure Form Recognizer.
    `analyze` submits the bytes, waits for the poller and returns a plain mapping.
    """

    def __init__(self, endpoint: str, key: str, client_factory=None):
        if not endpoint or not key:
            raise ConfigurationError("Document analysis endpoint and key are required.")
        self.endpoint = endpoint
        self.key = key
        self._client_factory = client_factory or (
            lambda: DocumentAnalysisClient(endpoint=self.endpoint, credential=AzureKeyCredential(self.key))
        )

    @classmethod
    def from_config(cls, settings):
        endpoint, key = settings.get_azure_credentials()
        return cls(endpoint, key)

    async def analyze(self, request: AnalysisRequest) -> Any:
        model_id = MODEL_IDS[request.document_kind]
        logger.info(f"[ANALYZE] Sending {request.file_name} to {model_id}...")
        async with self._client_factory() as client:
            poller = await client.begin_analyze_document(model_id, request.document_bytes)
            result = await poller.result()
        return _to_plain(result)
