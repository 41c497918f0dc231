"""
Merging of normalized records produced across several LLM chunks.

Inputs are already-normalized records. Each merge re-runs the matching
normalizer on its output, so list caps and length bounds still hold after
records are combined.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from negotiation_python_backend.services.schema_normalizer import (
    HIGHLIGHT_LIST_CAP,
    normalize_bias_clusters,
    normalize_highlight,
    normalize_negotiation_map,
    normalize_persona_focus,
    normalize_summary,
)
from negotiation_python_backend.services.text_segmentation import Paragraph

SUMMARY_TEXT_FIELDS = (
    "overall_observations",
    "strategic_assessment",
    "hidden_agenda_analysis",
    "power_dynamics",
    "communication_style_profile",
)


def merge_string_lists(*lists: Optional[Iterable[Any]]) -> List[str]:
    seen = set()
    merged = []
    for values in lists:
        for value in values or []:
            if value is None:
                continue
            text = value.strip() if isinstance(value, str) else str(value)
            if text and text not in seen:
                seen.add(text)
                merged.append(text)
    return merged


def _key(value: Any) -> str:
    return str(value or "").strip().lower()


def _filled(record: Dict[str, Any]) -> Dict[str, Any]:
    """Fields that carry a value; empty ones must not overwrite what is already known."""
    return {key: value for key, value in record.items() if value not in ("", None, [], {})}


# ============================================================================
# Summary / barometer
# ============================================================================

def merge_summary(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not current:
        return incoming
    if not incoming:
        return current

    counts = dict(current.get("counts_by_category") or {})
    for category, count in (incoming.get("counts_by_category") or {}).items():
        counts[category] = counts.get(category, 0) + count

    merged = {
        "type": "summary",
        "counts_by_category": counts,
        "top_patterns": merge_string_lists(current.get("top_patterns"), incoming.get("top_patterns")),
        "cognitive_bias_heatmap": {
            **(current.get("cognitive_bias_heatmap") or {}),
            **(incoming.get("cognitive_bias_heatmap") or {}),
        },
    }
    for field in SUMMARY_TEXT_FIELDS:
        merged[field] = incoming.get(field) or current.get(field) or ""

    return normalize_summary(merged)


def merge_barometer(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The most severe reading wins."""
    if not current:
        return incoming
    if not incoming:
        return current
    if incoming.get("score", 0) > current.get("score", 0):
        return incoming
    return current


# ============================================================================
# Persona focus
# ============================================================================

def merge_persona_focus(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not current:
        return incoming
    if not incoming:
        return current

    people: Dict[str, Dict[str, Any]] = {}
    for person in current.get("people") or []:
        people[_key(person.get("name"))] = dict(person)

    for person in incoming.get("people") or []:
        key = _key(person.get("name"))
        existing = people.get(key)
        if existing is None:
            people[key] = dict(person)
            continue

        for field in ("manipulation_profile", "biases_detected", "triggers", "in_text_aliases"):
            existing[field] = merge_string_lists(existing.get(field), person.get(field))
        existing["recommended_actions"] = {
            **(existing.get("recommended_actions") or {}),
            **(person.get("recommended_actions") or {}),
        }
        if person.get("workload_status"):
            existing["workload_status"] = person["workload_status"]
        if person.get("role") and not existing.get("role"):
            existing["role"] = person["role"]
        existing["risk_score"] = max(existing.get("risk_score") or 0, person.get("risk_score") or 0)

    return normalize_persona_focus({
        "people": list(people.values()),
        "focus_filter": merge_string_lists(current.get("focus_filter"), incoming.get("focus_filter")),
    })


# ============================================================================
# Bias clusters
# ============================================================================

def merge_bias_clusters(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not current:
        return incoming
    if not incoming:
        return current

    clusters = [dict(cluster) for cluster in current.get("clusters") or []]
    index = {_key(cluster.get("bias_family")): cluster for cluster in clusters}

    for cluster in incoming.get("clusters") or []:
        existing = index.get(_key(cluster.get("bias_family")))
        if existing is None:
            copy = dict(cluster)
            clusters.append(copy)
            index[_key(copy.get("bias_family"))] = copy
            continue

        existing["occurrences"] = (existing.get("occurrences") or 0) + (cluster.get("occurrences") or 0)
        for field in ("representative_quotes", "recommended_countermeasures", "linked_actors", "related_highlights"):
            existing[field] = merge_string_lists(existing.get(field), cluster.get(field))
        if cluster.get("impact"):
            existing["impact"] = cluster["impact"]

    return normalize_bias_clusters({"clusters": clusters})


# ============================================================================
# Negotiation map
# ============================================================================

def merge_raci_flags(current: Optional[Sequence[Dict[str, Any]]], incoming: Optional[Sequence[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    flags: Dict[str, Dict[str, Any]] = {}
    for flag in list(current or []) + list(incoming or []):
        key = _key(flag.get("task") or flag.get("issue")) or f"flag-{len(flags)}"
        flags[key] = {**flags.get(key, {}), **_filled(flag)}
    return list(flags.values())


def merge_negotiation_map(current: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not current:
        return incoming
    if not incoming:
        return current

    phases = [dict(phase) for phase in current.get("phases") or []]
    for phase in incoming.get("phases") or []:
        match = next(
            (existing for existing in phases if _key(existing.get("phase")) == _key(phase.get("phase"))),
            None,
        )
        if match is None:
            phases.append(dict(phase))
            continue

        match.update({
            **_filled(phase),
            "pressure_points": merge_string_lists(match.get("pressure_points"), phase.get("pressure_points")),
            "opportunities": merge_string_lists(match.get("opportunities"), phase.get("opportunities")),
            "owners": merge_string_lists(match.get("owners"), phase.get("owners")),
            "raci_flags": merge_raci_flags(match.get("raci_flags"), phase.get("raci_flags")),
        })

    return normalize_negotiation_map({
        "phases": phases,
        "escalation_paths": merge_string_lists(current.get("escalation_paths"), incoming.get("escalation_paths")),
        "watchouts": merge_string_lists(current.get("watchouts"), incoming.get("watchouts")),
        "quick_wins": merge_string_lists(current.get("quick_wins"), incoming.get("quick_wins")),
    })


# ============================================================================
# Highlights
# ============================================================================

def extract_highlight_text(highlight: Dict[str, Any], paragraphs: Sequence[Paragraph]) -> str:
    """Text covered by a highlight, taken from the paragraph it points at."""
    if highlight.get("text"):
        return highlight["text"]

    index = highlight.get("paragraph_index")
    if not isinstance(index, int) or not 0 <= index < len(paragraphs):
        return ""

    paragraph = paragraphs[index].text
    start = max(0, highlight.get("char_start") or 0)
    end = min(len(paragraph), highlight.get("char_end") or len(paragraph))
    return paragraph[start:end]


def merge_overlapping_highlights(
    highlights: Iterable[Dict[str, Any]],
    paragraphs: Optional[Sequence[Paragraph]] = None,
) -> List[Dict[str, Any]]:
    """
    Collapse highlights whose spans overlap inside the same paragraph.

    The merged span covers both, labels are unioned, and the higher severity
    wins. Output is ordered by paragraph, then by start offset.
    """
    by_paragraph: Dict[int, List[Dict[str, Any]]] = {}
    for highlight in highlights:
        item = dict(highlight)
        if paragraphs is not None and not item.get("text"):
            item["text"] = extract_highlight_text(item, paragraphs)
        by_paragraph.setdefault(item.get("paragraph_index", 0), []).append(item)

    merged: List[Dict[str, Any]] = []
    for paragraph_index in sorted(by_paragraph):
        items = sorted(by_paragraph[paragraph_index], key=lambda h: h.get("char_start", 0))
        current: Optional[Dict[str, Any]] = None
        for item in items:
            if current is None:
                current = item
                continue

            if item.get("char_start", 0) <= current.get("char_end", -1):
                current["char_end"] = max(current.get("char_end", 0), item.get("char_end", 0))
                current["labels"] = merge_string_lists(
                    current.get("labels"), item.get("labels")
                )[:HIGHLIGHT_LIST_CAP]
                current["severity"] = max(current.get("severity", 0), item.get("severity", 0))
                current["category"] = current.get("category") or item.get("category")
                if paragraphs is not None:
                    current["text"] = ""
                    current["text"] = extract_highlight_text(current, paragraphs)
            else:
                merged.append(current)
                current = item
        if current is not None:
            merged.append(current)

    return [h for h in (normalize_highlight(item) for item in merged) if h is not None]
