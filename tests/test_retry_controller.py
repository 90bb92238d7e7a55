"""Tests for the bounded retry loop around the analysis call."""

import asyncio
import logging
from types import SimpleNamespace

import pytest

from po_extractor.core.config_loader import ConfigurationError
from po_extractor.extractors.api_connector import (
    EXPONENTIAL_BACKOFF,
    MAX_DELAY_MS,
    SERVICE_SUGGESTED,
    AnalysisFailure,
    analyze_with_retry,
    compute_retry_delay,
    is_rate_limited,
)
from po_extractor.extractors.models import AnalysisRequest, DocumentKind


class ServiceError(Exception):
    def __init__(self, message, status_code=None, retry_after_in_ms=None, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after_in_ms = retry_after_in_ms
        self.response = SimpleNamespace(headers=headers or {}, status_code=status_code)


class FlakyService:
    """Raises the queued errors in order, then returns the result."""

    def __init__(self, errors, result=None):
        self.errors = list(errors)
        self.result = result if result is not None else {"tables": []}
        self.calls = 0

    async def analyze(self, request):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(round(seconds * 1000))


def _request(name="retry.pdf"):
    return AnalysisRequest(b"%PDF-1.4", DocumentKind.PURCHASE_ORDER, name)


def _run(coro):
    return asyncio.run(coro)


@pytest.mark.parametrize("attempt", range(6))
def test_backoff_without_hints(attempt):
    delay, source = compute_retry_delay(Exception("boom"), attempt)
    assert delay == min(3000 * 2 ** attempt, 30000)
    assert source == EXPONENTIAL_BACKOFF


def test_suggested_delay_wins_and_is_capped():
    assert compute_retry_delay(ServiceError("x", retry_after_in_ms=1234), 0) == (1234, SERVICE_SUGGESTED)
    assert compute_retry_delay(ServiceError("x", retry_after_in_ms=90000), 0) == (MAX_DELAY_MS, SERVICE_SUGGESTED)


def test_retry_after_header_in_seconds_or_milliseconds():
    assert compute_retry_delay(ServiceError("x", headers={"Retry-After": "7"}), 0) == (7000, SERVICE_SUGGESTED)
    assert compute_retry_delay(ServiceError("x", headers={"retry-after": "2500"}), 0) == (2500, SERVICE_SUGGESTED)


def test_retry_after_parsed_from_message():
    error = ServiceError("Rate limit exceeded. Please Retry after 4 seconds.")
    assert compute_retry_delay(error, 2) == (4000, SERVICE_SUGGESTED)


def test_delay_is_never_negative():
    delay, _ = compute_retry_delay(ServiceError("x", retry_after_in_ms=-50), 0)
    assert 0 <= delay <= MAX_DELAY_MS


def test_rate_limit_detection():
    assert is_rate_limited(ServiceError("x", status_code=429))
    assert is_rate_limited(Exception("429 Too Many Requests"))
    assert not is_rate_limited(ServiceError("x", status_code=500))


def test_success_on_first_attempt_logs_nothing(caplog):
    service, sleep = FlakyService([]), RecordingSleep()
    with caplog.at_level(logging.WARNING):
        outcome = _run(analyze_with_retry(_request(), service.analyze, sleep=sleep))
    assert outcome.attempts == 1
    assert service.calls == 1
    assert sleep.delays == []
    assert not caplog.records


def test_two_generic_failures_then_success(caplog):
    service = FlakyService([Exception("Generic service error"), Exception("Generic service error")])
    sleep = RecordingSleep()
    with caplog.at_level(logging.WARNING):
        outcome = _run(analyze_with_retry(_request(), service.analyze, sleep=sleep))

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert 'Attempt 1 of 4 failed for document "retry.pdf". Error: Generic service error. ' \
           'Retrying in 3000ms (using exponential backoff).' in warnings[0].getMessage()
    assert sleep.delays == [3000, 6000]
    assert sum(sleep.delays) == 9000
    assert outcome.result == {"tables": []}
    assert outcome.attempts == 3


def test_exhausted_retries_raise_terminal_failure(caplog):
    errors = [ServiceError("Persistent failure", status_code=503) for _ in range(4)]
    service, sleep = FlakyService(errors), RecordingSleep()

    with caplog.at_level(logging.WARNING):
        with pytest.raises(AnalysisFailure) as info:
            _run(analyze_with_retry(_request("fail.pdf"), service.analyze, sleep=sleep))

    assert service.calls == 4
    assert info.value.message == "Persistent failure"
    assert info.value.status_code == 503
    assert info.value.file_name == "fail.pdf"
    assert info.value.attempts == 4

    errors_logged = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors_logged) == 1
    assert 'All 4 attempts to process document "fail.pdf" failed' in errors_logged[0].getMessage()
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 3


def test_rate_limit_is_reported_on_success():
    service = FlakyService([ServiceError("slow down", status_code=429, retry_after_in_ms=100)])
    sleep = RecordingSleep()
    outcome = _run(analyze_with_retry(_request(), service.analyze, sleep=sleep))
    assert outcome.rate_limited is True
    assert sleep.delays == [100]


def test_configuration_errors_are_not_retried():
    service = FlakyService([ConfigurationError("MISSING API KEY")])
    with pytest.raises(ConfigurationError):
        _run(analyze_with_retry(_request(), service.analyze, sleep=RecordingSleep()))
    assert service.calls == 1


@pytest.mark.parametrize("error", [
    ServiceError("x", headers={"Retry-After": "NaN"}),
    ServiceError("x", headers={"Retry-After": "inf"}),
    ServiceError("x", retry_after_in_ms=float("nan")),
])
def test_non_finite_hints_fall_back_to_backoff(error):
    assert compute_retry_delay(error, 1) == (6000, EXPONENTIAL_BACKOFF)


def test_non_finite_hint_is_retried_not_raised():
    service = FlakyService([ServiceError("busy", headers={"Retry-After": "nan"})])
    sleep = RecordingSleep()
    outcome = _run(analyze_with_retry(_request(), service.analyze, sleep=sleep))
    assert outcome.attempts == 2
    assert sleep.delays == [3000]
