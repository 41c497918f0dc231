"""
Deterministic risk scoring over normalized analysis records.

- Highlight metrics: category counts, severity average, discrete risk level
- Success probability / adequacy: a neutral baseline plus fixed weighted
  adjustments for named positive and negative signals
- Emotional volatility: coefficient of variation of emotion counts
- Weighted risk factors with a four-level categorization

Everything here is pure: no I/O, no clock, no randomness. Every weight is a
module-level constant so each term can be audited and tested on its own.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from negotiation_python_backend.services.value_coercion import clamp, safe_string, to_number

# ---------------------------------------------------------------------------
# Risk level thresholds (either signal alone escalates)
# ---------------------------------------------------------------------------

HIGH_COUNT_THRESHOLD = 10
HIGH_SEVERITY_THRESHOLD = 2.5
MEDIUM_COUNT_THRESHOLD = 5
MEDIUM_SEVERITY_THRESHOLD = 1.5

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_CRITICAL = "critical"

# ---------------------------------------------------------------------------
# Success probability weights (0-1 scale)
# ---------------------------------------------------------------------------

SUCCESS_BASELINE = 0.5

COLLABORATION_THRESHOLD = 0.6
COLLABORATION_BONUS = 0.15
TRUST_INDICATOR_THRESHOLD = 3
TRUST_INDICATOR_BONUS = 0.10
CREATIVE_SOLUTIONS_BONUS = 0.10
MUTUAL_GAINS_BONUS = 0.15

MANIPULATION_PENALTY = 0.20
HIGH_PRESSURE_PENALTY = 0.15
TRUST_VIOLATION_PENALTY = 0.25
ULTIMATUM_PENALTY = 0.10

OPENING_COMPLETED_BONUS = 0.10
EXPLORATION_QUALITY_THRESHOLD = 0.6
EXPLORATION_QUALITY_BONUS = 0.15
CREATIVE_BARGAINING_BONUS = 0.20
CLEAR_CLOSING_BONUS = 0.15

ULTIMATUM_MARKERS = ("ultimatum", "ультиматум")

# ---------------------------------------------------------------------------
# Weighted risk factors: name -> (weight, threshold)
# ---------------------------------------------------------------------------

RISK_FACTOR_WEIGHTS: Dict[str, tuple] = {
    "manipulation_detected": (0.3, 1),
    "emotional_volatility": (0.2, 0.6),
    "power_imbalance": (0.2, 0.5),
    "communication_breakdown": (0.15, 0.4),
    "trust_violations": (0.15, 1),
}
CRITICAL_RISK_SCORE = 0.7
HIGH_RISK_SCORE = 0.5
MEDIUM_RISK_SCORE = 0.3

RISK_MITIGATIONS = {
    "manipulation_detected": "Document everything, seek third-party mediation",
    "emotional_volatility": "Take breaks, focus on facts",
    "power_imbalance": "Build coalition, improve BATNA",
    "communication_breakdown": "Clarify understanding, use written summaries",
    "trust_violations": "Address directly, rebuild with small steps",
}


# ============================================================================
# Highlight metrics
# ============================================================================

@dataclass
class AnalysisMetrics:
    manipulation_count: int = 0
    bias_count: int = 0
    fallacy_count: int = 0
    total_highlights: int = 0
    severity_average: float = 0.0
    risk_level: str = RISK_LOW

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_risk_level(total_highlights: int, severity_average: float) -> str:
    """
    Discrete risk level from two independent signals.

    Either the highlight count or the severity average crossing a threshold
    is enough to escalate.
    """
    if total_highlights > HIGH_COUNT_THRESHOLD or severity_average > HIGH_SEVERITY_THRESHOLD:
        return RISK_HIGH
    if total_highlights > MEDIUM_COUNT_THRESHOLD or severity_average > MEDIUM_SEVERITY_THRESHOLD:
        return RISK_MEDIUM
    return RISK_LOW


def calculate_metrics(highlights: Optional[Iterable[Any]]) -> AnalysisMetrics:
    """
    Aggregate normalized highlights into counts, severity average and risk level.

    Non-object entries are ignored; an empty or missing list gives zeroes.
    """
    metrics = AnalysisMetrics()
    if not isinstance(highlights, (list, tuple)):
        return metrics

    severity_sum = 0.0
    for highlight in highlights:
        if not isinstance(highlight, dict):
            continue
        category = highlight.get("category")
        if category == "manipulation":
            metrics.manipulation_count += 1
        elif category == "cognitive_bias":
            metrics.bias_count += 1
        elif category == "rhetological_fallacy":
            metrics.fallacy_count += 1

        severity_sum += clamp(to_number(highlight.get("severity"), 1), 1, 5)
        metrics.total_highlights += 1

    severity_average = severity_sum / metrics.total_highlights if metrics.total_highlights else 0.0
    # Classification sees the exact mean; only the reported value is rounded
    metrics.risk_level = classify_risk_level(metrics.total_highlights, severity_average)
    metrics.severity_average = round(severity_average, 2)
    return metrics


# ============================================================================
# Success probability / adequacy
# ============================================================================

@dataclass
class NegotiationSignals:
    """Named inputs to the success-probability model."""

    collaboration_level: float = 0.0
    trust_indicators: int = 0
    creative_solutions: int = 0
    mutual_gains: bool = False
    manipulation_detected: bool = False
    high_pressure: bool = False
    trust_violations: int = 0
    ultimatums: int = 0
    opening_completed: bool = False
    exploration_quality: float = 0.0
    creative_bargaining: bool = False
    clear_closing_agreements: bool = False

    @classmethod
    def from_mapping(cls, raw: Any) -> "NegotiationSignals":
        """Build signals from untrusted input; unknown keys are ignored."""
        data = raw if isinstance(raw, Mapping) else {}
        signals = cls()
        for name, default in asdict(signals).items():
            value = data.get(name)
            if isinstance(default, bool):
                setattr(signals, name, value is True or to_number(value, 0) > 0)
            elif isinstance(default, int):
                setattr(signals, name, max(0, int(to_number(value, 0))))
            else:
                setattr(signals, name, clamp(to_number(value, 0), 0, 1))
        return signals


@dataclass
class ProbabilityTerm:
    name: str
    weight: float


@dataclass
class SuccessProbability:
    probability: float
    adequacy_score: int
    terms: List[ProbabilityTerm] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "probability": self.probability,
            "adequacy_score": self.adequacy_score,
            "breakdown": [asdict(term) for term in self.terms],
        }


def success_probability_breakdown(signals: NegotiationSignals) -> SuccessProbability:
    terms: List[ProbabilityTerm] = []

    if signals.collaboration_level > COLLABORATION_THRESHOLD:
        terms.append(ProbabilityTerm("collaboration_level", COLLABORATION_BONUS))
    if signals.trust_indicators > TRUST_INDICATOR_THRESHOLD:
        terms.append(ProbabilityTerm("trust_indicators", TRUST_INDICATOR_BONUS))
    if signals.creative_solutions > 0:
        terms.append(ProbabilityTerm("creative_solutions", CREATIVE_SOLUTIONS_BONUS))
    if signals.mutual_gains:
        terms.append(ProbabilityTerm("mutual_gains", MUTUAL_GAINS_BONUS))

    if signals.manipulation_detected:
        terms.append(ProbabilityTerm("manipulation_detected", -MANIPULATION_PENALTY))
    if signals.high_pressure:
        terms.append(ProbabilityTerm("high_pressure", -HIGH_PRESSURE_PENALTY))
    if signals.trust_violations > 0:
        terms.append(ProbabilityTerm("trust_violations", -TRUST_VIOLATION_PENALTY))
    if signals.ultimatums > 0:
        terms.append(ProbabilityTerm("ultimatums", -ULTIMATUM_PENALTY))

    if signals.opening_completed:
        terms.append(ProbabilityTerm("opening_completed", OPENING_COMPLETED_BONUS))
    if signals.exploration_quality > EXPLORATION_QUALITY_THRESHOLD:
        terms.append(ProbabilityTerm("exploration_quality", EXPLORATION_QUALITY_BONUS))
    if signals.creative_bargaining:
        terms.append(ProbabilityTerm("creative_bargaining", CREATIVE_BARGAINING_BONUS))
    if signals.clear_closing_agreements:
        terms.append(ProbabilityTerm("clear_closing_agreements", CLEAR_CLOSING_BONUS))

    probability = round(clamp(SUCCESS_BASELINE + sum(term.weight for term in terms), 0.0, 1.0), 4)
    return SuccessProbability(
        probability=probability,
        adequacy_score=int(round(probability * 100)),
        terms=terms,
    )


def calculate_success_probability(signals: NegotiationSignals) -> float:
    """Probability on the 0-1 scale."""
    return success_probability_breakdown(signals).probability


def adequacy_score(signals: NegotiationSignals) -> int:
    """The same model on the 0-100 scale."""
    return success_probability_breakdown(signals).adequacy_score


def _mentions_ultimatum(highlight: Dict[str, Any]) -> bool:
    values = [highlight.get("label")]
    for key in ("labels", "tactics"):
        values.extend(highlight.get(key) or [])
    for value in values:
        text = safe_string(value).lower()
        if any(marker in text for marker in ULTIMATUM_MARKERS):
            return True
    return False


def signals_from_metrics(
    metrics: AnalysisMetrics,
    highlights: Optional[Iterable[Any]] = None,
) -> NegotiationSignals:
    """Signals that can be read straight off normalized highlights."""
    ultimatums = 0
    if isinstance(highlights, (list, tuple)):
        ultimatums = sum(1 for h in highlights if isinstance(h, dict) and _mentions_ultimatum(h))
    return NegotiationSignals(
        manipulation_detected=metrics.manipulation_count > 0,
        ultimatums=ultimatums,
    )


# ============================================================================
# Emotional volatility and weighted risk factors
# ============================================================================

def calculate_emotional_volatility(emotion_counts: Any) -> float:
    """Population standard deviation over max(1, mean) of per-emotion counts."""
    if not isinstance(emotion_counts, Mapping):
        return 0.0
    counts = [max(0, to_number(value, 0)) for value in emotion_counts.values()]
    if not counts:
        return 0.0

    mean = sum(counts) / len(counts)
    variance = sum((count - mean) ** 2 for count in counts) / len(counts)
    return round(math.sqrt(variance) / max(1, mean), 4)


def categorize_risk_score(score: float) -> str:
    if score > CRITICAL_RISK_SCORE:
        return RISK_CRITICAL
    if score > HIGH_RISK_SCORE:
        return RISK_HIGH
    if score > MEDIUM_RISK_SCORE:
        return RISK_MEDIUM
    return RISK_LOW


def assess_risk(factors: Any) -> Dict[str, Any]:
    """
    Weighted risk assessment over named factor values.

    A factor contributes ``value * weight`` only when it reaches its threshold.
    """
    data = factors if isinstance(factors, Mapping) else {}
    total = 0.0
    detected = []
    for name, (weight, threshold) in RISK_FACTOR_WEIGHTS.items():
        value = max(0, to_number(data.get(name), 0))
        if value >= threshold:
            contribution = value * weight
            total += contribution
            detected.append({
                "factor": name,
                "severity": round(contribution, 4),
                "mitigation": RISK_MITIGATIONS[name],
            })

    total = round(total, 4)
    return {"level": categorize_risk_score(total), "score": total, "factors": detected}
