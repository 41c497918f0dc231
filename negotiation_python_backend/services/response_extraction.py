"""
Pull JSON records out of raw (possibly streamed, possibly broken) LLM output.

Models are asked for newline-delimited JSON objects but routinely wrap them
in code fences, interleave prose, or get cut off mid-object. The scanner
below keeps only complete top-level objects and hands back the unfinished
tail so streamed deltas can be fed in as they arrive.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Tuple

from negotiation_python_backend.services.schema_normalizer import RECORD_TYPES

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_ARTIFACT_RE = re.compile(r"</?artifact[^>]*>", re.IGNORECASE)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

# Whole-document responses use plural/collection keys for the same records.
_DOCUMENT_KEYS = {
    "highlights": "highlight",
    "summary": "summary",
    "barometer": "barometer",
    "persona_focus": "persona_focus",
    "bias_clusters": "bias_cluster",
    "bias_cluster": "bias_cluster",
    "negotiation_map": "negotiation_map",
}
MAX_DOCUMENT_HIGHLIGHTS = 2000


def sanitize_chunk(text: str) -> str:
    text = _FENCE_RE.sub("", text or "")
    text = _ARTIFACT_RE.sub("", text)
    return _CONTROL_RE.sub("", text)


class JsonObjectScanner:
    """
    Brace-matching scanner that resumes where the previous ``scan`` stopped.

    Depth, string and escape state survive between calls, so each delta is
    read once. Pieces of an unfinished object are kept as a list and joined
    only when the object closes.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self._pieces: List[str] = []
        self.pending_chars = 0

    @property
    def pending(self) -> str:
        """Text of the unfinished object, if any."""
        return "".join(self._pieces)

    def scan(self, text: str) -> List[str]:
        """Consume ``text``; return the top-level objects it completes."""
        objects: List[str] = []
        start = 0 if self.depth > 0 else -1

        for index, char in enumerate(text):
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif char == "\\":
                    self.escaped = True
                elif char == '"':
                    self.in_string = False
                continue

            if char == '"':
                if self.depth > 0:
                    self.in_string = True
            elif char == "{":
                if self.depth == 0:
                    start = index
                self.depth += 1
            elif char == "}" and self.depth > 0:
                self.depth -= 1
                if self.depth == 0:
                    objects.append(self.pending + text[start:index + 1])
                    self._pieces = []
                    self.pending_chars = 0
                    start = -1

        if self.depth > 0 and start >= 0:
            self._pieces.append(text[start:])
            self.pending_chars += len(text) - start
        return objects


def extract_json_objects(buffer: str) -> Tuple[List[str], str]:
    """
    Split ``buffer`` into complete top-level ``{...}`` objects and the remainder.

    String literals (and escapes inside them) are respected, so braces in
    quoted text do not confuse the depth count. Text between objects is
    discarded; an unfinished object is returned as the remainder.
    """
    scanner = JsonObjectScanner()
    objects = scanner.scan(buffer)
    return objects, scanner.pending


def decode_object(raw: str) -> Any:
    """Decode one extracted object, or None when it is not valid JSON."""
    try:
        return json.loads(raw)
    except (ValueError, RecursionError) as exc:
        logger.debug("[EXTRACT] Skipping undecodable object (%d chars): %s", len(raw), exc)
        return None


def explode_document(obj: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """
    Yield typed records from one decoded object.

    Typed records pass through. A whole-document response such as
    ``{"highlights": [...], "summary": {...}}`` is split into one record per
    entry with its ``type`` filled in.
    """
    record_type = obj.get("type")
    if isinstance(record_type, str):
        if record_type in RECORD_TYPES:
            yield obj
        return

    for key, kind in _DOCUMENT_KEYS.items():
        value = obj.get(key)
        if kind == "highlight":
            if isinstance(value, list):
                for entry in value[:MAX_DOCUMENT_HIGHLIGHTS]:
                    if isinstance(entry, dict):
                        yield {**entry, "type": "highlight"}
        elif kind == "bias_cluster" and isinstance(value, list):
            yield {"type": "bias_cluster", "clusters": value}
        elif isinstance(value, dict):
            yield {**value, "type": kind}


def iter_response_objects(text: str) -> Iterator[Dict[str, Any]]:
    """Yield every typed record found in a complete LLM response."""
    objects, _rest = extract_json_objects(sanitize_chunk(text))
    for raw in objects:
        obj = decode_object(raw)
        if isinstance(obj, dict):
            yield from explode_document(obj)


class StreamingObjectParser:
    """Incrementally extracts typed records from streamed response deltas."""

    def __init__(self, max_buffer_chars: int = 2_000_000):
        self.scanner = JsonObjectScanner()
        self.max_buffer_chars = max_buffer_chars

    @property
    def buffer(self) -> str:
        return self.scanner.pending

    def feed(self, delta: str) -> List[Dict[str, Any]]:
        if not delta:
            return []
        objects = self.scanner.scan(sanitize_chunk(delta))

        if self.scanner.pending_chars > self.max_buffer_chars:
            logger.warning("[EXTRACT] Dropping oversized unfinished object (%d chars)", self.scanner.pending_chars)
            self.scanner.reset()

        records: List[Dict[str, Any]] = []
        for raw in objects:
            obj = decode_object(raw)
            if isinstance(obj, dict):
                records.extend(explode_document(obj))
        return records
