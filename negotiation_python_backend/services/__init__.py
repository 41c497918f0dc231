"""Services for the negotiation analysis backend."""

from .analysis_pipeline import AnalysisAccumulator, AnalysisResult, process_response, run_analysis
from .token_budget import TokenBudgetGuard, TokenLimitExceededError

__all__ = [
    'AnalysisAccumulator',
    'AnalysisResult',
    'process_response',
    'run_analysis',
    'TokenBudgetGuard',
    'TokenLimitExceededError',
]
