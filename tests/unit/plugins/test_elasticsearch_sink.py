"""Tests for the Elasticsearch bulk sink."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from flatwire.contracts import SinkError
from flatwire.plugins.sinks.elasticsearch import ElasticsearchSink, ElasticsearchSinkConfig, build_bulk_body


class _RecordingHandler:
    """httpx.MockTransport handler that records requests."""

    def __init__(self, response: httpx.Response | None = None, exc: Exception | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._response = response or httpx.Response(200, json={"took": 1, "errors": False, "items": []})
        self._exc = exc

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._exc is not None:
            raise self._exc
        return self._response


def _sink(handler: _RecordingHandler, **options: Any) -> ElasticsearchSink:
    return ElasticsearchSink(options, transport=httpx.MockTransport(handler))


class TestBuildBulkBody:
    """Tests for NDJSON body construction."""

    def test_alternates_action_and_document_lines(self) -> None:
        body, included = build_bulk_body("if-stats", [{"a": 1}, {"b": "x"}])
        lines = body.decode("utf-8").splitlines()

        assert included == 2
        assert lines == [
            '{"index":{"_index":"if-stats"}}',
            '{"a":1}',
            '{"index":{"_index":"if-stats"}}',
            '{"b":"x"}',
        ]

    def test_ends_with_newline(self) -> None:
        body, _ = build_bulk_body("i", [{"a": 1}])
        assert body.endswith(b"\n")

    def test_empty_batch(self) -> None:
        assert build_bulk_body("i", []) == (b"", 0)

    def test_non_finite_records_skipped(self) -> None:
        body, included = build_bulk_body("i", [{"a": float("nan")}, {"b": 1}])
        assert included == 1
        assert b'"b":1' in body
        assert b"NaN" not in body


class TestElasticsearchSinkConfig:
    def test_defaults(self) -> None:
        config = ElasticsearchSinkConfig()
        assert config.base_url == "http://localhost:9200"
        assert config.timeout_seconds == 30.0

    def test_invalid_options(self) -> None:
        with pytest.raises(ValueError, match="Invalid elasticsearch sink options"):
            ElasticsearchSink({"port": 0})

    def test_unknown_options(self) -> None:
        with pytest.raises(ValueError):
            ElasticsearchSink({"hostname": "x"})


class TestElasticsearchSinkWrite:
    """Tests for write()."""

    def test_posts_bulk_request(self) -> None:
        handler = _RecordingHandler()
        sink = _sink(handler, host="es01", port=9201)

        sink.write("if-stats", [{"eth0.in": 5}])

        (request,) = handler.requests
        assert request.method == "POST"
        assert str(request.url) == "http://es01:9201/_bulk"
        assert request.headers["content-type"] == "application/x-ndjson"
        lines = request.content.decode("utf-8").splitlines()
        assert json.loads(lines[0]) == {"index": {"_index": "if-stats"}}
        assert json.loads(lines[1]) == {"eth0.in": 5}
        sink.close()

    def test_empty_batch_sends_nothing(self) -> None:
        handler = _RecordingHandler()
        sink = _sink(handler)
        sink.write("i", [])
        assert handler.requests == []

    def test_basic_auth(self) -> None:
        handler = _RecordingHandler()
        sink = _sink(handler, username="elastic", password="secret")
        sink.write("i", [{"a": 1}])
        assert handler.requests[0].headers["authorization"].startswith("Basic ")

    @pytest.mark.parametrize("status", [429, 502, 503, 504])
    def test_capacity_errors_are_retryable(self, status: int) -> None:
        sink = _sink(_RecordingHandler(httpx.Response(status, text="busy")))
        with pytest.raises(SinkError) as exc_info:
            sink.write("i", [{"a": 1}])
        assert exc_info.value.retryable
        assert exc_info.value.index == "i"

    @pytest.mark.parametrize("status", [400, 401, 404, 500])
    def test_other_http_errors_not_retryable(self, status: int) -> None:
        sink = _sink(_RecordingHandler(httpx.Response(status, text="nope")))
        with pytest.raises(SinkError, match=f"HTTP {status}") as exc_info:
            sink.write("i", [{"a": 1}])
        assert not exc_info.value.retryable

    def test_timeout_is_retryable(self) -> None:
        sink = _sink(_RecordingHandler(exc=httpx.ReadTimeout("slow")))
        with pytest.raises(SinkError, match="timed out") as exc_info:
            sink.write("i", [{"a": 1}])
        assert exc_info.value.retryable

    def test_connection_error_is_retryable(self) -> None:
        sink = _sink(_RecordingHandler(exc=httpx.ConnectError("refused")))
        with pytest.raises(SinkError, match="refused") as exc_info:
            sink.write("i", [{"a": 1}])
        assert exc_info.value.retryable

    def test_item_errors_raise(self) -> None:
        payload = {
            "errors": True,
            "items": [
                {"index": {"status": 201}},
                {"index": {"status": 400, "error": {"type": "mapper_parsing_exception"}}},
            ],
        }
        sink = _sink(_RecordingHandler(httpx.Response(200, json=payload)))
        with pytest.raises(SinkError, match="1 bulk item") as exc_info:
            sink.write("i", [{"a": 1}, {"a": "x"}])
        assert "mapper_parsing_exception" in str(exc_info.value)
        assert not exc_info.value.retryable

    def test_invalid_response_json(self) -> None:
        sink = _sink(_RecordingHandler(httpx.Response(200, text="<html>")))
        with pytest.raises(SinkError, match="not valid JSON"):
            sink.write("i", [{"a": 1}])
