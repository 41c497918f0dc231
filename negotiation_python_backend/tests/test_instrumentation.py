"""
Tests for token estimates, provider response parsing and request timing.

Run with: pytest negotiation_python_backend/tests/test_instrumentation.py -v
"""

from types import SimpleNamespace

import pytest
from fastapi import Request, Response

from negotiation_python_backend.instrumentation import (
    estimate_input_tokens,
    estimate_output_tokens,
    estimate_output_tokens_for_records,
    estimate_tokens,
    extract_message_content,
    parse_response_metrics,
)
from negotiation_python_backend.instrumentation.middleware import RequestTimingMiddleware


class TestTokenEstimation:
    """Tests for token estimates."""

    def test_estimate_tokens_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_input_estimate_includes_overhead(self):
        assert estimate_input_tokens("abcd", "abcd") == 202

    def test_output_estimate(self):
        assert estimate_output_tokens(0) == 500
        assert estimate_output_tokens(4, has_summary=True) == 1000
        assert estimate_output_tokens(2, has_summary=True, has_barometer=True) == 1000

    def test_output_estimate_for_records(self):
        records = [{"type": "highlight"}, {"type": "highlight"}, {"type": "summary"}]
        assert estimate_output_tokens_for_records(records) == 900
        assert estimate_output_tokens_for_records([]) == 500


class TestResponseParsing:
    """Tests for usage extraction from provider responses."""

    def test_openai_style_dict(self):
        response = {
            "model": "gpt-4o-mini",
            "usage": {"prompt_tokens": 120, "completion_tokens": 45},
            "choices": [{"message": {"content": '{"type": "summary"}'}, "finish_reason": "stop"}],
        }

        metrics = parse_response_metrics(response)

        assert metrics.model == "gpt-4o-mini"
        assert (metrics.input_tokens, metrics.output_tokens) == (120, 45)
        assert metrics.metadata == {"finish_reason": "stop"}
        assert extract_message_content(response) == '{"type": "summary"}'

    def test_anthropic_style_object(self):
        response = SimpleNamespace(
            model="claude",
            usage=SimpleNamespace(input_tokens=10, output_tokens=20),
            content=[SimpleNamespace(text="part one "), SimpleNamespace(text="part two")],
            stop_reason="end_turn",
        )

        metrics = parse_response_metrics(response)

        assert (metrics.input_tokens, metrics.output_tokens) == (10, 20)
        assert metrics.metadata == {"finish_reason": "end_turn"}
        assert extract_message_content(response) == "part one part two"

    def test_plain_text_response(self):
        metrics = parse_response_metrics("just text")

        assert metrics.model == "unknown"
        assert (metrics.input_tokens, metrics.output_tokens) == (0, 0)
        assert extract_message_content("just text") == "just text"

    def test_garbage_usage(self):
        metrics = parse_response_metrics({"usage": {"prompt_tokens": "many", "completion_tokens": -5}})
        assert (metrics.input_tokens, metrics.output_tokens) == (0, 0)

    def test_missing_content(self):
        assert extract_message_content({"choices": []}) == ""
        assert extract_message_content(None) == ""


def _request(path):
    return Request({
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": [],
        "query_string": b"",
    })


class TestRequestTimingMiddleware:
    """Tests for the timing middleware's per-path counters."""

    @pytest.mark.asyncio
    async def test_counts_budget_rejections_per_path(self):
        middleware = RequestTimingMiddleware(app=None, enable_logging=False)

        async def rejected(request):
            return Response(status_code=429)

        async def accepted(request):
            return Response(status_code=200)

        await middleware.dispatch(_request("/api/analysis/run"), rejected)
        await middleware.dispatch(_request("/api/analysis/run"), rejected)
        response = await middleware.dispatch(_request("/api/usage/today"), accepted)

        assert middleware.get_metrics() == {"rate_limited": {"/api/analysis/run": 2}}
        assert int(response.headers["X-Request-Duration-Ms"]) >= 0

    def test_metrics_are_a_copy(self):
        middleware = RequestTimingMiddleware(app=None)

        middleware.get_metrics()["rate_limited"]["/x"] = 1

        assert middleware.get_metrics() == {"rate_limited": {}}
