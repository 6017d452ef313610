"""Advisory services package."""

from finvault.agents.interface import (
    AdvisorError,
    DocumentExtractionService,
    ExchangeRateService,
    ExtractedTransaction,
    ExtractionFailedError,
    FinancialHealth,
    GapAnalysis,
    HealthAnalysisService,
    MalformedResponseError,
    RateQuote,
    ValuationResult,
    ValuationService,
)
from finvault.agents.gemini_service import GeminiAdvisor

__all__ = [
    # Interfaces
    "DocumentExtractionService",
    "ExchangeRateService",
    "HealthAnalysisService",
    "ValuationService",
    # Results
    "ExtractedTransaction",
    "FinancialHealth",
    "GapAnalysis",
    "RateQuote",
    "ValuationResult",
    # Exceptions
    "AdvisorError",
    "ExtractionFailedError",
    "MalformedResponseError",
    # Gemini
    "GeminiAdvisor",
]
