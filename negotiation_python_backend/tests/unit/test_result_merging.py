"""
Tests for merging records produced across several LLM chunks.

Run with: pytest negotiation_python_backend/tests/unit/test_result_merging.py -v
"""

from negotiation_python_backend.services.result_merging import (
    extract_highlight_text,
    merge_barometer,
    merge_bias_clusters,
    merge_negotiation_map,
    merge_overlapping_highlights,
    merge_persona_focus,
    merge_string_lists,
    merge_summary,
)
from negotiation_python_backend.services.schema_normalizer import (
    normalize_barometer,
    normalize_bias_clusters,
    normalize_highlight,
    normalize_negotiation_map,
    normalize_persona_focus,
    normalize_summary,
)
from negotiation_python_backend.services.text_segmentation import split_to_paragraphs


def test_merge_string_lists():
    assert merge_string_lists(["a", " b "], None, ["b", "c", None, ""]) == ["a", "b", "c"]


class TestSummaryAndBarometer:
    def test_summary_counts_add_up(self, sample_summary):
        current = normalize_summary(sample_summary)
        incoming = normalize_summary({
            "counts_by_category": {"manipulation": 1, "rhetological_fallacy": 2},
            "top_patterns": ["Якоріння", "Ультиматум"],
            "overall_observations": "",
            "strategic_assessment": "Hold the line",
            "cognitive_bias_heatmap": {"anchoring": 5, "framing": 1},
        })

        merged = merge_summary(current, incoming)

        assert merged["counts_by_category"] == {
            "manipulation": 3,
            "cognitive_bias": 1,
            "rhetological_fallacy": 2,
        }
        assert merged["top_patterns"] == ["Тиск часом", "Якоріння", "Ультиматум"]
        assert merged["overall_observations"] == "The seller controls the pace."
        assert merged["strategic_assessment"] == "Hold the line"
        assert merged["cognitive_bias_heatmap"] == {"anchoring": 5, "framing": 1}

    def test_summary_top_patterns_recapped(self):
        current = normalize_summary({"top_patterns": [f"a{i}" for i in range(12)]})
        incoming = normalize_summary({"top_patterns": [f"b{i}" for i in range(12)]})

        assert len(merge_summary(current, incoming)["top_patterns"]) == 12

    def test_missing_side_returns_other(self, sample_summary):
        summary = normalize_summary(sample_summary)

        assert merge_summary(None, summary) is summary
        assert merge_summary(summary, None) is summary

    def test_barometer_highest_score_wins(self, sample_barometer):
        high = normalize_barometer(sample_barometer)
        low = normalize_barometer({"score": 20})

        assert merge_barometer(low, high) is high
        assert merge_barometer(high, low) is high


class TestPersonaFocus:
    def test_people_merge_by_name(self):
        current = normalize_persona_focus({
            "people": [{"name": "Anna", "risk_score": 40, "triggers": ["price"], "role": "buyer"}],
        })
        incoming = normalize_persona_focus({
            "people": [
                {"name": "anna", "risk_score": 70, "triggers": ["price", "time"], "workload_status": "busy"},
                {"name": "Ivan", "risk_score": 10},
            ],
            "focus_filter": ["Ivan"],
        })

        merged = merge_persona_focus(current, incoming)

        assert [p["name"] for p in merged["people"]] == ["Anna", "Ivan"]
        anna = merged["people"][0]
        assert anna["risk_score"] == 70
        assert anna["triggers"] == ["price", "time"]
        assert anna["role"] == "buyer"
        assert anna["workload_status"] == "busy"
        assert merged["focus_filter"] == ["Ivan"]


class TestBiasClustersAndMap:
    def test_clusters_merge_by_family(self):
        current = normalize_bias_clusters({"clusters": [{"bias_family": "Anchoring", "occurrences": 2}]})
        incoming = normalize_bias_clusters({
            "clusters": [
                {"bias_family": "anchoring", "occurrences": 3, "impact": "high", "linked_actors": ["Anna"]},
                {"bias_family": "Framing", "occurrences": 1},
            ],
        })

        merged = merge_bias_clusters(current, incoming)

        assert [c["bias_family"] for c in merged["clusters"]] == ["Anchoring", "Framing"]
        assert merged["clusters"][0]["occurrences"] == 5
        assert merged["clusters"][0]["impact"] == "high"
        assert merged["clusters"][0]["linked_actors"] == ["Anna"]

    def test_map_phases_and_flags_merge(self):
        current = normalize_negotiation_map({
            "phases": [{"phase": "Opening", "pressure_points": ["price"], "raci_flags": [{"task": "Draft", "issue": "no owner"}]}],
            "watchouts": ["deadline"],
        })
        incoming = normalize_negotiation_map({
            "phases": [
                {"phase": "opening", "pressure_points": ["scope"], "raci_flags": [{"task": "draft", "suggestion": "assign Anna"}]},
                {"phase": "Closing"},
            ],
            "watchouts": ["deadline", "budget"],
        })

        merged = merge_negotiation_map(current, incoming)

        assert [p["phase"] for p in merged["phases"]] == ["opening", "Closing"]
        opening = merged["phases"][0]
        assert opening["pressure_points"] == ["price", "scope"]
        assert opening["raci_flags"] == [{"task": "draft", "issue": "no owner", "suggestion": "assign Anna"}]
        assert merged["watchouts"] == ["deadline", "budget"]


class TestHighlights:
    """Overlap merging within a paragraph."""

    def test_overlapping_spans_merge(self):
        highlights = [
            normalize_highlight({"paragraph_index": 0, "char_start": 5, "char_end": 20, "label": "B", "severity": 4}),
            normalize_highlight({"paragraph_index": 0, "char_start": 0, "char_end": 10, "label": "A", "severity": 2}),
            normalize_highlight({"paragraph_index": 1, "char_start": 0, "char_end": 4, "label": "C"}),
        ]

        merged = merge_overlapping_highlights(highlights)

        assert len(merged) == 2
        first = merged[0]
        assert (first["char_start"], first["char_end"]) == (0, 20)
        assert first["label"] == "A"
        assert first["labels"] == ["A", "B"]
        assert first["severity"] == 4
        assert merged[1]["paragraph_index"] == 1

    def test_disjoint_spans_stay_separate(self):
        highlights = [
            normalize_highlight({"char_start": 0, "char_end": 5}),
            normalize_highlight({"char_start": 6, "char_end": 9}),
        ]
        assert len(merge_overlapping_highlights(highlights)) == 2

    def test_labels_capped_after_merge(self):
        highlights = [
            normalize_highlight({"char_start": 0, "char_end": 10, "labels": ["a", "b", "c", "d"]}),
            normalize_highlight({"char_start": 2, "char_end": 12, "labels": ["e", "f", "g", "h"]}),
        ]

        merged = merge_overlapping_highlights(highlights)

        assert merged[0]["labels"] == ["a", "b", "c", "d", "e", "f"]

    def test_text_filled_from_paragraphs(self):
        paragraphs = split_to_paragraphs("Hello world, this is a test.\n\nSecond paragraph")
        highlights = [
            normalize_highlight({"paragraph_index": 0, "char_start": 0, "char_end": 5}),
            normalize_highlight({"paragraph_index": 1, "char_start": 0, "char_end": 6, "text": "kept"}),
        ]

        merged = merge_overlapping_highlights(highlights, paragraphs)

        assert merged[0]["text"] == "Hello"
        assert merged[1]["text"] == "kept"

    def test_extract_highlight_text_out_of_range(self):
        paragraphs = split_to_paragraphs("only one")
        assert extract_highlight_text({"paragraph_index": 3, "char_start": 0, "char_end": 2}, paragraphs) == ""
