"""
Schema normalization for LLM analysis records.

Converts one untyped JSON value into one bounded record, or None when the
value is not usable at all. Six record types are supported:

- highlight: a detected pattern anchored to a text span
- summary: category counts, top patterns and narrative fields
- barometer: a single 0-100 difficulty score with an adequacy sub-record
- persona_focus: per-person risk breakdown
- bias_cluster: grouped bias occurrences
- negotiation_map: phases, pressure points and RACI flags

Normalizers never raise. Field-level problems drop or default the field;
a malformed entry inside a list drops that entry only.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from negotiation_python_backend.services.value_coercion import (
    as_dict,
    as_list,
    clamp,
    number_map,
    pick_enum,
    safe_string,
    to_int,
    to_number,
    truncate,
    unique_strings,
)

logger = logging.getLogger(__name__)

HIGHLIGHT_CATEGORIES = ("manipulation", "cognitive_bias", "rhetological_fallacy")
DEFAULT_CATEGORY = "manipulation"
CONFIDENCE_LEVELS = ("high", "medium", "low")
IMPACT_LEVELS = ("low", "medium", "high", "critical")

DEFAULT_HIGHLIGHT_LABEL = "Маніпуляція"
DEFAULT_BAROMETER_LABEL = "Medium"
DEFAULT_ADEQUACY_LABEL = "Невідомо"

MIN_SEVERITY = 1
MAX_SEVERITY = 5
HIGHLIGHT_LIST_CAP = 6

MAX_PEOPLE = 20
MAX_CLUSTERS = 20
MAX_PHASES = 12
MAX_RACI_FLAGS = 12
MAX_RECOMMENDED_ACTIONS = 10

LABEL_LENGTH = 160
NAME_LENGTH = 160
TAG_LENGTH = 120
TRIGGER_LENGTH = 200


def never_raises(func: Callable[[Any], Optional[Dict[str, Any]]]):
    """Turn any unexpected failure of a normalizer into ``None``."""

    @functools.wraps(func)
    def wrapper(raw: Any) -> Optional[Dict[str, Any]]:
        try:
            return func(raw)
        except Exception as exc:
            logger.debug("[NORMALIZE] %s dropped a record: %s", func.__name__, exc)
            return None

    return wrapper


def _set_list(record: Dict[str, Any], key: str, values: List[Any]) -> None:
    """Only assert a collection when the model actually produced entries."""
    if values:
        record[key] = values


def _set_text(record: Dict[str, Any], key: str, value: str) -> None:
    if value:
        record[key] = value


# ============================================================================
# Highlight
# ============================================================================

@never_raises
def normalize_highlight(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    paragraph_index = max(0, to_int(raw.get("paragraph_index"), 0))
    char_start = max(0, to_int(raw.get("char_start"), 0))
    char_end = max(char_start, to_int(raw.get("char_end"), char_start))

    raw_labels = raw.get("labels")
    label = truncate(raw.get("label"), LABEL_LENGTH)
    if not label and isinstance(raw_labels, (list, tuple)) and raw_labels:
        label = truncate(raw_labels[0], LABEL_LENGTH)
    label = label or DEFAULT_HIGHLIGHT_LABEL

    labels = unique_strings(raw_labels, HIGHLIGHT_LIST_CAP, max_length=LABEL_LENGTH)
    if label not in labels:
        labels = [label] + labels[:HIGHLIGHT_LIST_CAP - 1]

    highlight: Dict[str, Any] = {
        "type": "highlight",
        "id": truncate(raw.get("id"), 120) or f"{paragraph_index}-{char_start}-{char_end}",
        "paragraph_index": paragraph_index,
        "char_start": char_start,
        "char_end": char_end,
        "category": pick_enum(raw.get("category"), HIGHLIGHT_CATEGORIES, DEFAULT_CATEGORY),
        "label": label,
        "labels": labels,
        "text": truncate(raw.get("text"), 2000),
        "explanation": truncate(raw.get("explanation"), 2000),
        "severity": int(round(clamp(to_number(raw.get("severity"), MIN_SEVERITY), MIN_SEVERITY, MAX_SEVERITY))),
    }

    _set_list(highlight, "actors", unique_strings(raw.get("actors"), HIGHLIGHT_LIST_CAP, max_length=NAME_LENGTH))
    _set_list(highlight, "bias_tags", unique_strings(raw.get("bias_tags"), HIGHLIGHT_LIST_CAP, max_length=TAG_LENGTH))
    _set_list(highlight, "tactics", unique_strings(raw.get("tactics"), HIGHLIGHT_LIST_CAP, max_length=TAG_LENGTH))
    _set_text(highlight, "counter_strategy", truncate(raw.get("counter_strategy"), 600))

    confidence = pick_enum(raw.get("confidence"), CONFIDENCE_LEVELS)
    if confidence:
        highlight["confidence"] = confidence

    return highlight


# ============================================================================
# Summary
# ============================================================================

@never_raises
def normalize_summary(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    counts = as_dict(raw.get("counts_by_category"))
    summary: Dict[str, Any] = {
        "type": "summary",
        "counts_by_category": {
            category: max(0, to_int(counts.get(category), 0))
            for category in HIGHLIGHT_CATEGORIES
        },
        "top_patterns": unique_strings(raw.get("top_patterns"), 12, max_length=220),
        "overall_observations": truncate(raw.get("overall_observations"), 1500),
        "strategic_assessment": truncate(raw.get("strategic_assessment"), 800),
        "hidden_agenda_analysis": truncate(raw.get("hidden_agenda_analysis"), 800),
        "power_dynamics": truncate(raw.get("power_dynamics"), 600),
        "communication_style_profile": truncate(raw.get("communication_style_profile"), 600),
    }

    heatmap = number_map(raw.get("cognitive_bias_heatmap"), max_keys=40, key_length=120, minimum=0)
    if heatmap:
        summary["cognitive_bias_heatmap"] = heatmap

    return summary


# ============================================================================
# Barometer
# ============================================================================

def normalize_adequacy(raw: Any) -> Dict[str, Any]:
    """Adequacy is always present on a barometer; unusable input gets the neutral default."""
    if not isinstance(raw, dict):
        return {"score": 0, "label": DEFAULT_ADEQUACY_LABEL, "comment": ""}

    score = raw.get("score")
    if score is None:
        score = raw.get("value")
    return {
        "score": clamp(to_number(score, 0), 0, 100),
        "label": truncate(raw.get("label"), 80) or DEFAULT_ADEQUACY_LABEL,
        "comment": truncate(raw.get("comment"), 600),
    }


@never_raises
def normalize_barometer(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    try:
        adequacy = normalize_adequacy(raw.get("adequacy"))
    except Exception:
        adequacy = normalize_adequacy(None)

    return {
        "type": "barometer",
        "score": clamp(to_number(raw.get("score"), 50), 0, 100),
        "label": truncate(raw.get("label"), 80) or DEFAULT_BAROMETER_LABEL,
        "rationale": truncate(raw.get("rationale"), 1500),
        "factors": number_map(raw.get("factors"), max_keys=24, key_length=80),
        "recommended_modus_operandi": truncate(raw.get("recommended_modus_operandi"), 800),
        "adequacy": adequacy,
    }


# ============================================================================
# Persona focus
# ============================================================================

def _normalize_recommended_actions(raw: Any) -> Dict[str, Any]:
    actions: Dict[str, Any] = {}
    for key, value in as_dict(raw).items():
        name = truncate(key, 80)
        if not name or name in actions:
            continue
        if isinstance(value, (list, tuple)):
            items = unique_strings(value, 6, max_length=300)
            if items:
                actions[name] = items
        else:
            text = truncate(value, 400)
            if text:
                actions[name] = text
        if len(actions) >= MAX_RECOMMENDED_ACTIONS:
            break
    return actions


def _normalize_person(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    name = truncate(raw.get("name"), 160)
    if not name:
        return None

    person: Dict[str, Any] = {
        "name": name,
        "role": truncate(raw.get("role"), 160),
        "risk_score": clamp(to_number(raw.get("risk_score"), 0), 0, 100),
        "workload_status": truncate(raw.get("workload_status"), 40),
    }
    _set_list(person, "in_text_aliases", unique_strings(raw.get("in_text_aliases"), 6, max_length=NAME_LENGTH))
    _set_list(person, "manipulation_profile", unique_strings(raw.get("manipulation_profile"), 10, max_length=TAG_LENGTH))
    _set_list(person, "biases_detected", unique_strings(raw.get("biases_detected"), 10, max_length=TAG_LENGTH))
    _set_list(person, "triggers", unique_strings(raw.get("triggers"), 10, max_length=TRIGGER_LENGTH))

    actions = _normalize_recommended_actions(raw.get("recommended_actions"))
    if actions:
        person["recommended_actions"] = actions
    return person


@never_raises
def normalize_persona_focus(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict) or not isinstance(raw.get("people"), (list, tuple)):
        return None

    people = []
    seen = set()
    for entry in raw["people"]:
        try:
            person = _normalize_person(entry)
        except Exception:
            person = None
        if person is None or person["name"].lower() in seen:
            continue
        seen.add(person["name"].lower())
        people.append(person)
        if len(people) >= MAX_PEOPLE:
            break

    if not people:
        return None

    persona: Dict[str, Any] = {"type": "persona_focus", "people": people}
    _set_list(persona, "focus_filter", unique_strings(raw.get("focus_filter"), 10, max_length=NAME_LENGTH))
    return persona


# ============================================================================
# Bias clusters
# ============================================================================

def _normalize_cluster(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    bias_family = truncate(raw.get("bias_family"), 120)
    if not bias_family:
        return None

    cluster: Dict[str, Any] = {
        "bias_family": bias_family,
        "occurrences": max(0, to_int(raw.get("occurrences"), 0)),
        "impact": pick_enum(raw.get("impact"), IMPACT_LEVELS, "medium"),
    }
    _set_list(cluster, "representative_quotes", unique_strings(raw.get("representative_quotes"), 5, max_length=400))
    _set_list(cluster, "recommended_countermeasures", unique_strings(raw.get("recommended_countermeasures"), 8, max_length=300))
    _set_list(cluster, "linked_actors", unique_strings(raw.get("linked_actors"), 10, max_length=NAME_LENGTH))
    _set_list(cluster, "related_highlights", unique_strings(raw.get("related_highlights"), 10, max_length=TAG_LENGTH))
    return cluster


@never_raises
def normalize_bias_clusters(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict) or not isinstance(raw.get("clusters"), (list, tuple)):
        return None

    clusters = []
    for entry in raw["clusters"]:
        try:
            cluster = _normalize_cluster(entry)
        except Exception:
            cluster = None
        if cluster is not None:
            clusters.append(cluster)
        if len(clusters) >= MAX_CLUSTERS:
            break

    if not clusters:
        return None
    return {"type": "bias_cluster", "clusters": clusters}


# ============================================================================
# Negotiation map
# ============================================================================

def _normalize_raci_flag(raw: Any) -> Optional[Dict[str, str]]:
    if not isinstance(raw, dict):
        return None
    flag = {
        "task": truncate(raw.get("task"), 200),
        "issue": truncate(raw.get("issue"), 400),
        "suggestion": truncate(raw.get("suggestion"), 400),
    }
    if not any(flag.values()):
        return None
    return flag


def _normalize_phase(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    phase: Dict[str, Any] = {
        "phase": truncate(raw.get("phase"), 160),
        "goal": truncate(raw.get("goal"), 400),
    }
    _set_list(phase, "pressure_points", unique_strings(raw.get("pressure_points"), 12, max_length=300))
    _set_list(phase, "opportunities", unique_strings(raw.get("opportunities"), 12, max_length=300))
    _set_list(phase, "owners", unique_strings(raw.get("owners"), 8, max_length=200))

    flags = []
    for entry in as_list(raw.get("raci_flags"), MAX_RACI_FLAGS):
        flag = _normalize_raci_flag(entry)
        if flag is not None:
            flags.append(flag)
    _set_list(phase, "raci_flags", flags)
    return phase


@never_raises
def normalize_negotiation_map(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    phases = []
    for entry in as_list(raw.get("phases"), MAX_PHASES):
        try:
            phase = _normalize_phase(entry)
        except Exception:
            phase = None
        if phase is not None:
            phases.append(phase)

    negotiation_map: Dict[str, Any] = {"type": "negotiation_map", "phases": phases}
    _set_list(negotiation_map, "escalation_paths", unique_strings(raw.get("escalation_paths"), 10, max_length=300))
    _set_list(negotiation_map, "watchouts", unique_strings(raw.get("watchouts"), 10, max_length=300))
    _set_list(negotiation_map, "quick_wins", unique_strings(raw.get("quick_wins"), 10, max_length=300))
    return negotiation_map


# ============================================================================
# Dispatch
# ============================================================================

NORMALIZERS: Dict[str, Callable[[Any], Optional[Dict[str, Any]]]] = {
    "highlight": normalize_highlight,
    "summary": normalize_summary,
    "barometer": normalize_barometer,
    "persona_focus": normalize_persona_focus,
    "bias_cluster": normalize_bias_clusters,
    "negotiation_map": normalize_negotiation_map,
}

RECORD_TYPES = tuple(NORMALIZERS)


@dataclass(frozen=True)
class NormalizationResult:
    """Either a usable record (``ok``) or an explanation of why there is none."""

    kind: Optional[str]
    record: Optional[Dict[str, Any]] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.record is not None

    @property
    def absent(self) -> bool:
        return self.record is None

    @classmethod
    def present(cls, kind: str, record: Dict[str, Any]) -> "NormalizationResult":
        return cls(kind=kind, record=record)

    @classmethod
    def missing(cls, kind: Optional[str], reason: str) -> "NormalizationResult":
        return cls(kind=kind, record=None, reason=reason)


def normalize_record(raw: Any, kind: Optional[str] = None) -> NormalizationResult:
    """
    Normalize one record, dispatching on ``kind`` or ``raw["type"]``.

    Returns a NormalizationResult; never raises.
    """
    if not isinstance(raw, dict):
        return NormalizationResult.missing(kind, "not an object")

    record_type = kind or safe_string(raw.get("type")).strip().lower()
    normalizer = NORMALIZERS.get(record_type)
    if normalizer is None:
        return NormalizationResult.missing(record_type or None, "unsupported type")

    record = normalizer(raw)
    if record is None:
        return NormalizationResult.missing(record_type, "no usable content")
    return NormalizationResult.present(record_type, record)
