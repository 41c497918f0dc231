"""
Instrumentation package for LLM usage metering.

This package provides:
- Token estimates for metering requests before they are sent
- Usage and content extraction from provider responses
- Request timing middleware for the HTTP app
"""

from .token_estimation import (
    estimate_tokens,
    estimate_input_tokens,
    estimate_output_tokens,
    estimate_output_tokens_for_records,
)
from .response_parsing import (
    ParsedResponseMetrics,
    extract_message_content,
    parse_response_metrics,
)

__all__ = [
    # Token estimates
    'estimate_tokens',
    'estimate_input_tokens',
    'estimate_output_tokens',
    'estimate_output_tokens_for_records',
    # Response parsing
    'ParsedResponseMetrics',
    'extract_message_content',
    'parse_response_metrics',
]
