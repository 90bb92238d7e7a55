"""Tests for the async Form Recognizer adapter, driven through a fake client."""

import asyncio

import pytest

from po_extractor.core.config_loader import ConfigurationError
from po_extractor.extractors.api_connector import DocumentAnalysisService
from po_extractor.extractors.models import AnalysisRequest, DocumentKind


class FakeResult:
    def to_dict(self):
        return {"documents": [], "tables": []}


class FakePoller:
    def __init__(self, result):
        self._result = result

    async def result(self):
        return self._result


class FakeClient:
    def __init__(self, result):
        self.result = result
        self.calls = []
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    async def begin_analyze_document(self, model_id, document):
        self.calls.append((model_id, document))
        return FakePoller(self.result)


def _service(client):
    return DocumentAnalysisService("https://x.example.com/", "key", client_factory=lambda: client)


@pytest.mark.parametrize("kind, model_id", [
    (DocumentKind.INVOICE, "prebuilt-invoice"),
    (DocumentKind.PURCHASE_ORDER, "prebuilt-document"),
])
def test_model_follows_document_kind(kind, model_id):
    client = FakeClient({"documents": []})
    asyncio.run(_service(client).analyze(AnalysisRequest(b"%PDF", kind, "a_1.pdf")))
    assert client.calls == [(model_id, b"%PDF")]


def test_sdk_result_is_converted_and_client_closed():
    client = FakeClient(FakeResult())
    result = asyncio.run(_service(client).analyze(AnalysisRequest(b"%PDF", DocumentKind.INVOICE)))
    assert result == {"documents": [], "tables": []}
    assert client.entered and client.closed


def test_plain_mapping_results_pass_through():
    client = FakeClient({"tables": [{"cells": []}]})
    result = asyncio.run(_service(client).analyze(AnalysisRequest(b"%PDF", DocumentKind.PURCHASE_ORDER)))
    assert result == {"tables": [{"cells": []}]}


def test_client_closed_when_analysis_raises():
    client = FakeClient(None)

    async def broken(model_id, document):
        raise RuntimeError("service down")

    client.begin_analyze_document = broken
    with pytest.raises(RuntimeError):
        asyncio.run(_service(client).analyze(AnalysisRequest(b"%PDF", DocumentKind.INVOICE)))
    assert client.closed


@pytest.mark.parametrize("endpoint, key", [("", "key"), ("https://x.example.com/", ""), (None, None)])
def test_missing_endpoint_or_key_is_a_configuration_error(endpoint, key):
    with pytest.raises(ConfigurationError):
        DocumentAnalysisService(endpoint, key)
