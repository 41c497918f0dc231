"""
Helpers for extracting content and usage metrics from LLM provider responses.

Call sites hand the raw provider response (an SDK object or a plain dict)
to ``parse_response_metrics`` so output tokens can be metered from what the
provider actually reports.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple


@dataclass(frozen=True)
class ParsedResponseMetrics:
    """Normalized usage fields extracted from a provider response."""

    model: str
    input_tokens: int
    output_tokens: int
    metadata: Dict[str, Any]


def _to_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _extract_usage_tokens(usage: Any) -> Tuple[int, int]:
    if usage is None:
        return 0, 0

    prompt_tokens = _get(usage, "prompt_tokens", _get(usage, "input_tokens", 0))
    completion_tokens = _get(usage, "completion_tokens", _get(usage, "output_tokens", 0))
    return _to_int(prompt_tokens), _to_int(completion_tokens)


def _first_choice(response: Any) -> Any:
    choices = _get(response, "choices")
    if not isinstance(choices, (list, tuple)) or len(choices) == 0:
        return None
    return choices[0]


def extract_message_content(response: Any) -> str:
    """
    Text content of a chat-completion response.

    Accepts a plain string, an OpenAI-style ``choices[0].message.content``
    (or streamed ``delta.content``) response, or an Anthropic-style
    ``content[0].text`` response. Returns "" when nothing usable is found.
    """
    if isinstance(response, str):
        return response

    choice = _first_choice(response)
    if choice is not None:
        message = _get(choice, "message") or _get(choice, "delta")
        content = _get(message, "content") if message is not None else None
        return content if isinstance(content, str) else ""

    blocks = _get(response, "content")
    if isinstance(blocks, str):
        return blocks
    if isinstance(blocks, (list, tuple)):
        parts = [_get(block, "text") for block in blocks]
        return "".join(part for part in parts if isinstance(part, str))
    return ""


def parse_response_metrics(response: Any) -> ParsedResponseMetrics:
    """
    Parse model/token metadata from object-based or dict-based responses.
    """
    if isinstance(response, str):
        return ParsedResponseMetrics(model="unknown", input_tokens=0, output_tokens=0, metadata={})

    model = str(_get(response, "model") or "unknown")
    input_tokens, output_tokens = _extract_usage_tokens(_get(response, "usage"))

    metadata: Dict[str, Any] = {}
    choice = _first_choice(response)
    if choice is not None:
        finish_reason = _get(choice, "finish_reason")
    else:
        finish_reason = _get(response, "stop_reason")
    if finish_reason is not None:
        metadata["finish_reason"] = finish_reason

    return ParsedResponseMetrics(
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        metadata=metadata,
    )
