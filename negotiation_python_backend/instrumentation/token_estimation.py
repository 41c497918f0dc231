"""
Token estimates for metering LLM calls against the daily budget.

Estimates are deliberately simple so input metering can happen before the
request is sent. Provider-reported usage replaces the output estimate when
the response carries it (see ``response_parsing``).
"""

from typing import Any, Dict, Iterable

# Rough approximation: 1 token ~ 4 characters
CHARS_PER_TOKEN = 4
REQUEST_OVERHEAD_TOKENS = 200

OUTPUT_BASE_TOKENS = 500
OUTPUT_TOKENS_PER_HIGHLIGHT = 50
OUTPUT_SUMMARY_TOKENS = 300
OUTPUT_BAROMETER_TOKENS = 100


def estimate_tokens(text: str) -> int:
    """
    Rough estimation of token count for a given text.

    Uses rule of thumb: ~4 characters per token. Never returns less than 1
    for non-empty text.

    Example:
        >>> estimate_tokens("Analyze this transcript")
        6
    """
    if not text:
        return 0
    return max(1, -(-len(text) // CHARS_PER_TOKEN))


def estimate_input_tokens(*parts: str) -> int:
    """Estimate for a request made of several text parts plus fixed overhead."""
    return sum(estimate_tokens(part) for part in parts) + REQUEST_OVERHEAD_TOKENS


def estimate_output_tokens(
    highlight_count: int,
    has_summary: bool = False,
    has_barometer: bool = False,
) -> int:
    """
    Output size estimate when the provider does not report usage.

    Example:
        >>> estimate_output_tokens(4, has_summary=True)
        1000  # 500 + 4 * 50 + 300
    """
    tokens = OUTPUT_BASE_TOKENS + max(0, highlight_count) * OUTPUT_TOKENS_PER_HIGHLIGHT
    if has_summary:
        tokens += OUTPUT_SUMMARY_TOKENS
    if has_barometer:
        tokens += OUTPUT_BAROMETER_TOKENS
    return tokens


def estimate_output_tokens_for_records(records: Iterable[Dict[str, Any]]) -> int:
    """Output estimate from the typed records a response produced."""
    kinds = [record.get("type") for record in records]
    return estimate_output_tokens(
        kinds.count("highlight"),
        has_summary="summary" in kinds,
        has_barometer="barometer" in kinds,
    )
