"""
Analysis pipeline: raw LLM output -> normalized, merged, scored result.

Stages:
1. Extraction of JSON records from the (possibly streamed) response
2. Normalization of each record into its bounded shape
3. Merging of records that arrive across chunks
4. Metrics and success probability over the merged highlights

``run_analysis`` drives the whole thing for one transcript and meters token
usage against the shared daily budget around the LLM calls.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from negotiation_python_backend.config import (
    ANALYSIS_CHUNK_SIZE,
    MAX_TEXT_LENGTH,
    MIN_TEXT_LENGTH,
)
from negotiation_python_backend.instrumentation import (
    estimate_input_tokens,
    estimate_output_tokens_for_records,
    extract_message_content,
    parse_response_metrics,
)
from negotiation_python_backend.services.response_extraction import (
    StreamingObjectParser,
    explode_document,
    iter_response_objects,
)
from negotiation_python_backend.services.result_merging import (
    merge_barometer,
    merge_bias_clusters,
    merge_negotiation_map,
    merge_overlapping_highlights,
    merge_persona_focus,
    merge_summary,
)
from negotiation_python_backend.services.risk_metrics import (
    AnalysisMetrics,
    NegotiationSignals,
    SuccessProbability,
    calculate_metrics,
    signals_from_metrics,
    success_probability_breakdown,
)
from negotiation_python_backend.services.schema_normalizer import normalize_record
from negotiation_python_backend.services.text_segmentation import (
    Paragraph,
    TextChunk,
    create_smart_chunks,
    normalize_text,
    split_to_paragraphs,
)
from negotiation_python_backend.services.token_budget import TokenBudgetGuard
from negotiation_python_backend.services.value_coercion import to_int

logger = logging.getLogger("negotiation_backend")

# Injected LLM call: chunk text in, provider response (or plain text) out
LLMCall = Callable[[str], Awaitable[Any]]

_MERGERS = {
    "summary": merge_summary,
    "barometer": merge_barometer,
    "persona_focus": merge_persona_focus,
    "bias_cluster": merge_bias_clusters,
    "negotiation_map": merge_negotiation_map,
}


@dataclass
class AnalysisResult:
    highlights: List[Dict[str, Any]] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None
    barometer: Optional[Dict[str, Any]] = None
    persona_focus: Optional[Dict[str, Any]] = None
    bias_clusters: Optional[Dict[str, Any]] = None
    negotiation_map: Optional[Dict[str, Any]] = None
    metrics: AnalysisMetrics = field(default_factory=AnalysisMetrics)
    success_probability: Optional[SuccessProbability] = None
    degraded: bool = False
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        probability = self.success_probability or success_probability_breakdown(NegotiationSignals())
        return {
            "highlights": self.highlights,
            "summary": self.summary,
            "barometer": self.barometer,
            "persona_focus": self.persona_focus,
            "bias_clusters": self.bias_clusters,
            "negotiation_map": self.negotiation_map,
            "metrics": self.metrics.to_dict(),
            "success_probability": probability.to_dict(),
            "degraded": self.degraded,
            "error": self.error,
        }


def fallback_result(reason: str) -> AnalysisResult:
    """Empty, clearly degraded result used when the pipeline itself fails."""
    return AnalysisResult(
        success_probability=success_probability_breakdown(NegotiationSignals()),
        degraded=True,
        error=reason,
    )


class AnalysisAccumulator:
    """
    Collects normalized records for one analysis and merges them on ``finish``.

    Records can arrive as streamed deltas (``feed``), as whole responses
    (``feed_response``) or one by one (``add_record``). When a chunk is set,
    highlight paragraph indexes are shifted to global transcript positions.
    """

    def __init__(self, chunk: Optional[TextChunk] = None, paragraphs: Optional[List[Paragraph]] = None):
        self.chunk = chunk
        self.paragraphs = paragraphs
        self.parser = StreamingObjectParser()
        self.highlights: List[Dict[str, Any]] = []
        self.records: Dict[str, Optional[Dict[str, Any]]] = {kind: None for kind in _MERGERS}
        self.dropped = 0

    def add_record(self, raw: Any) -> Optional[Dict[str, Any]]:
        """Normalize and keep one record. Returns it, or None when it was dropped."""
        if isinstance(raw, dict) and raw.get("type") == "highlight" and self.chunk and self.chunk.first_paragraph:
            local_index = max(0, to_int(raw.get("paragraph_index"), 0))
            raw = {**raw, "paragraph_index": local_index + self.chunk.first_paragraph}

        result = normalize_record(raw)
        if not result.ok:
            self.dropped += 1
            logger.debug("[PIPELINE] Dropped %s record: %s", result.kind or "untyped", result.reason)
            return None

        if result.kind == "highlight":
            self.highlights.append(result.record)
        else:
            self.records[result.kind] = _MERGERS[result.kind](self.records[result.kind], result.record)
        return result.record

    def feed(self, delta: str) -> List[Dict[str, Any]]:
        """Consume a streamed delta; returns the records completed by it."""
        added = []
        for raw in self.parser.feed(delta):
            record = self.add_record(raw)
            if record is not None:
                added.append(record)
        return added

    def feed_response(self, content: Any, chunk: Optional[TextChunk] = None) -> List[Dict[str, Any]]:
        """Consume a complete response: text, a decoded object, or a list of objects."""
        if chunk is not None:
            self.chunk = chunk

        if isinstance(content, str):
            raws = list(iter_response_objects(content))
        elif isinstance(content, dict):
            raws = list(explode_document(content))
        elif isinstance(content, list):
            raws = [record for item in content if isinstance(item, dict) for record in explode_document(item)]
        else:
            raws = []

        added = []
        for raw in raws:
            record = self.add_record(raw)
            if record is not None:
                added.append(record)
        return added

    def finish(self) -> AnalysisResult:
        highlights = merge_overlapping_highlights(self.highlights, self.paragraphs)
        metrics = calculate_metrics(highlights)
        probability = success_probability_breakdown(signals_from_metrics(metrics, highlights))

        if self.dropped:
            logger.info("[PIPELINE] %d records dropped during normalization", self.dropped)

        return AnalysisResult(
            highlights=highlights,
            summary=self.records["summary"],
            barometer=self.records["barometer"],
            persona_focus=self.records["persona_focus"],
            bias_clusters=self.records["bias_cluster"],
            negotiation_map=self.records["negotiation_map"],
            metrics=metrics,
            success_probability=probability,
        )


def process_response(content: Any, chunk: Optional[TextChunk] = None) -> AnalysisResult:
    """
    Turn one complete LLM response into an AnalysisResult.

    Never raises: an unexpected failure anywhere in the pipeline produces a
    degraded fallback result instead.
    """
    try:
        accumulator = AnalysisAccumulator(chunk=chunk)
        accumulator.feed_response(content)
        return accumulator.finish()
    except Exception as e:
        logger.error("[PIPELINE] Failed to process response, returning fallback: %s", e, exc_info=True)
        return fallback_result(str(e))


# ============================================================================
# Full analysis run
# ============================================================================

def _response_content(response: Any) -> Any:
    """Message text of a provider response; already-decoded documents pass through."""
    if isinstance(response, list):
        return response
    if isinstance(response, dict) and "choices" not in response and "content" not in response:
        return response
    return extract_message_content(response)


def _output_tokens_for(response: Any, added: List[Dict[str, Any]]) -> int:
    """Provider-reported output tokens, or an estimate from what was produced."""
    metrics = parse_response_metrics(response)
    if metrics.output_tokens > 0:
        return metrics.output_tokens
    return estimate_output_tokens_for_records(added)


async def run_analysis(
    text: str,
    call_llm: LLMCall,
    guard: TokenBudgetGuard,
    chunk_size: int = ANALYSIS_CHUNK_SIZE,
) -> AnalysisResult:
    """
    Analyze a transcript chunk by chunk.

    Input tokens for all chunks are metered before the first LLM call and
    output tokens after the responses are in.

    Raises:
        ValueError: text is shorter than MIN_TEXT_LENGTH or longer than MAX_TEXT_LENGTH
        TokenLimitExceededError: the daily budget is exhausted (propagated as is)
    """
    normalized = normalize_text(text)
    if len(normalized) < MIN_TEXT_LENGTH:
        raise ValueError(f"Text is too short for analysis (minimum {MIN_TEXT_LENGTH} characters)")
    if len(normalized) > MAX_TEXT_LENGTH:
        raise ValueError(f"Text is too long for analysis (maximum {MAX_TEXT_LENGTH} characters)")

    chunks = create_smart_chunks(normalized, chunk_size)
    input_tokens = sum(estimate_input_tokens(chunk.text) for chunk in chunks)
    await guard.add_tokens_and_check(input_tokens)

    accumulator = AnalysisAccumulator(paragraphs=split_to_paragraphs(normalized))
    output_tokens = 0
    for chunk in chunks:
        logger.info("[PIPELINE] Analyzing chunk %d/%d (%d chars)", chunk.chunk_index + 1, len(chunks), len(chunk.text))
        response = await call_llm(chunk.text)
        added = accumulator.feed_response(_response_content(response), chunk)
        output_tokens += _output_tokens_for(response, added)

    await guard.add_tokens_and_check(output_tokens)

    result = accumulator.finish()
    logger.info(
        "[PIPELINE] Analysis complete: %d highlights, risk %s, %d input / %d output tokens",
        len(result.highlights), result.metrics.risk_level, input_tokens, output_tokens,
    )
    return result
