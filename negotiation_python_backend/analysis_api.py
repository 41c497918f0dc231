"""
API endpoints for negotiation analysis.

Provides endpoints for:
- Normalizing a raw LLM response into a bounded, scored analysis result
- Computing highlight metrics and success probability on their own
- Weighted risk assessment
- Reading today's shared token usage
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from negotiation_python_backend.db_session import AsyncSessionLocal
from negotiation_python_backend.services.analysis_pipeline import process_response
from negotiation_python_backend.services.risk_metrics import (
    NegotiationSignals,
    assess_risk,
    calculate_emotional_volatility,
    calculate_metrics,
    success_probability_breakdown,
)
from negotiation_python_backend.services.schema_normalizer import normalize_highlight
from negotiation_python_backend.services.token_budget import TokenBudgetGuard

# Configure logger
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


# Pydantic models for API requests

class NormalizeRequest(BaseModel):
    """Raw LLM output: response text, a decoded document, or a list of records."""
    content: Any


class MetricsRequest(BaseModel):
    highlights: List[Any] = Field(default_factory=list)


class SuccessProbabilityRequest(BaseModel):
    signals: Dict[str, Any] = Field(default_factory=dict)


class RiskAssessmentRequest(BaseModel):
    factors: Dict[str, Any] = Field(default_factory=dict)
    emotion_counts: Optional[Dict[str, Any]] = None


def get_budget_guard() -> TokenBudgetGuard:
    """Dependency returning the guard over the shared usage ledger."""
    return TokenBudgetGuard(AsyncSessionLocal)


# Create router
router = APIRouter(tags=["analysis"])


@router.post("/api/analysis/normalize")
async def normalize_analysis(request: NormalizeRequest):
    """
    Normalize a raw LLM response.

    Always answers 200: unusable content gives an empty (or degraded) result,
    never an error.
    """
    result = process_response(request.content)
    logger.info(f"Normalized response: {len(result.highlights)} highlights, risk {result.metrics.risk_level}")
    return result.to_dict()


@router.post("/api/analysis/metrics")
async def analysis_metrics(request: MetricsRequest):
    """Counts, severity average and risk level for a list of highlights."""
    highlights = [h for h in (normalize_highlight(raw) for raw in request.highlights) if h is not None]
    return calculate_metrics(highlights).to_dict()


@router.post("/api/analysis/success-probability")
async def success_probability(request: SuccessProbabilityRequest):
    """Probability (0-1), adequacy score (0-100) and the terms that produced them."""
    signals = NegotiationSignals.from_mapping(request.signals)
    return success_probability_breakdown(signals).to_dict()


@router.post("/api/analysis/risk")
async def risk_assessment(request: RiskAssessmentRequest):
    """
    Weighted risk assessment.

    When ``emotion_counts`` is given and ``emotional_volatility`` is not,
    volatility is computed from the counts.
    """
    factors = dict(request.factors)
    if request.emotion_counts is not None and "emotional_volatility" not in factors:
        factors["emotional_volatility"] = calculate_emotional_volatility(request.emotion_counts)
    return assess_risk(factors)


@router.get("/api/usage/today")
async def usage_today(guard: TokenBudgetGuard = Depends(get_budget_guard)):
    """Today's shared token usage and lock state."""
    try:
        snapshot = await guard.get_usage()
        return snapshot.to_dict()
    except Exception as e:
        logger.error(f"Failed to read token usage: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to read token usage: {str(e)}")
