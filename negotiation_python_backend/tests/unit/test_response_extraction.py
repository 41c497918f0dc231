"""
Tests for pulling JSON records out of raw LLM output.

Run with: pytest negotiation_python_backend/tests/unit/test_response_extraction.py -v
"""

import json
import time

from negotiation_python_backend.services.response_extraction import (
    JsonObjectScanner,
    StreamingObjectParser,
    decode_object,
    explode_document,
    extract_json_objects,
    iter_response_objects,
    sanitize_chunk,
)


class TestSanitizeChunk:
    def test_removes_code_fences(self):
        assert sanitize_chunk('```json\n{"a":1}\n```') == '\n{"a":1}\n'

    def test_removes_artifact_tags_and_control_chars(self):
        assert sanitize_chunk('<artifact id="x">{"a":\x071}</artifact>') == '{"a":1}'

    def test_keeps_newlines_and_tabs(self):
        assert sanitize_chunk("a\n\tb") == "a\n\tb"


class TestExtractJsonObjects:
    """Brace matching over noisy text."""

    def test_returns_objects_and_unfinished_tail(self):
        objects, rest = extract_json_objects('noise {"a": "}"} tail {"b": 1')

        assert objects == ['{"a": "}"}']
        assert rest == '{"b": 1'

    def test_escaped_quotes_inside_strings(self):
        objects, rest = extract_json_objects('{"a": "say \\"{hi}\\""}')

        assert len(objects) == 1
        assert json.loads(objects[0]) == {"a": 'say "{hi}"'}
        assert rest == ""

    def test_nested_objects_stay_whole(self):
        objects, _ = extract_json_objects('{"a": {"b": {"c": 1}}} {"d": 2}')
        assert objects == ['{"a": {"b": {"c": 1}}}', '{"d": 2}']

    def test_stray_closing_brace_is_ignored(self):
        objects, rest = extract_json_objects('} {"a": 1}')

        assert objects == ['{"a": 1}']
        assert rest == ""


class TestDecoding:
    def test_invalid_json_is_none(self):
        assert decode_object("{bad}") is None

    def test_deep_nesting_is_none(self):
        raw = '{"a": ' + "[" * 100000 + "]" * 100000 + "}"
        assert decode_object(raw) is None

    def test_typed_record_passes_through(self):
        assert list(explode_document({"type": "summary", "top_patterns": []})) == [
            {"type": "summary", "top_patterns": []}
        ]

    def test_unknown_type_is_dropped(self):
        assert list(explode_document({"type": "gossip"})) == []

    def test_whole_document_is_exploded(self):
        records = list(explode_document({
            "highlights": [{"label": "A"}, "junk", {"label": "B"}],
            "summary": {"top_patterns": ["x"]},
            "barometer": {"score": 10},
            "bias_clusters": [{"bias_family": "Anchoring"}],
            "persona_focus": "not an object",
        }))

        assert [r["type"] for r in records] == ["highlight", "highlight", "summary", "barometer", "bias_cluster"]
        assert records[4]["clusters"] == [{"bias_family": "Anchoring"}]


class TestIterResponseObjects:
    def test_mixed_response(self):
        text = (
            "Here is the analysis:\n"
            "```json\n"
            '{"type": "highlight", "label": "Ultimatum", "severity": 4}\n'
            '{"type": "weather", "value": 1}\n'
            "{not json}\n"
            '{"type": "barometer", "score": 80}\n'
            "```"
        )

        records = list(iter_response_objects(text))

        assert [r["type"] for r in records] == ["highlight", "barometer"]

    def test_empty_and_none(self):
        assert list(iter_response_objects("")) == []
        assert list(iter_response_objects(None)) == []


class TestStreamingObjectParser:
    """Records complete across delta boundaries."""

    def test_object_split_across_deltas(self):
        parser = StreamingObjectParser()

        assert parser.feed('{"type": "highlight", "lab') == []
        records = parser.feed('el": "A"}\n{"type": "summary"')

        assert records == [{"type": "highlight", "label": "A"}]
        assert parser.buffer == '{"type": "summary"'

        assert parser.feed("}") == [{"type": "summary"}]
        assert parser.buffer == ""

    def test_empty_delta(self):
        assert StreamingObjectParser().feed("") == []

    def test_oversized_unfinished_object_is_dropped(self):
        parser = StreamingObjectParser(max_buffer_chars=10)

        assert parser.feed('{"type": "highlight", "text": "' + "x" * 50) == []
        assert parser.buffer == ""

    def test_escape_state_survives_delta_boundary(self):
        parser = StreamingObjectParser()

        assert parser.feed('{"type": "highlight", "text": "a\\') == []
        assert parser.feed('"}') == []
        assert parser.feed('"}') == [{"type": "highlight", "text": 'a"}'}]

    def test_large_object_in_small_deltas_is_linear(self):
        payload = json.dumps({"type": "highlight", "text": "x" * 200_000})
        deltas = [payload[i:i + 20] for i in range(0, len(payload), 20)]
        parser = StreamingObjectParser()

        started = time.perf_counter()
        records = []
        for delta in deltas:
            records.extend(parser.feed(delta))
        elapsed = time.perf_counter() - started

        assert len(records) == 1
        assert len(records[0]["text"]) == 200_000
        assert elapsed < 5


class TestJsonObjectScanner:
    """Scanner state carries over between calls."""

    def test_pending_grows_only_by_new_text(self):
        scanner = JsonObjectScanner()

        assert scanner.scan('noise {"a": ') == []
        assert scanner.pending == '{"a": '
        assert scanner.scan("[1, ") == []
        assert scanner.pending_chars == len('{"a": [1, ')

        assert scanner.scan("2]} tail") == ['{"a": [1, 2]}']
        assert scanner.pending == ""
        assert scanner.pending_chars == 0

    def test_reset_forgets_unfinished_object(self):
        scanner = JsonObjectScanner()
        scanner.scan('{"a": "open')

        scanner.reset()

        assert scanner.depth == 0
        assert scanner.in_string is False
        assert scanner.scan('{"b": 1}') == ['{"b": 1}']
