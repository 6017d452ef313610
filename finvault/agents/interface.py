"""
Advisory Service Interfaces

The core never talks to an LLM directly. Exchange rates, property
valuation, health analysis and statement extraction are external,
fallible services behind these interfaces.

CRITICAL BOUNDARY: every service response is parsed and validated into
the strict models below before it reaches the vault. A response that
does not validate is a failure, never partially-typed data.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import Field

from finvault.models.finance import (
    CATEGORY_GENERAL,
    EntryType,
    GroundingSource,
    UserData,
    VaultModel,
)


# =============================================================================
# RESULT MODELS
# =============================================================================

class RateQuote(VaultModel):
    """Units of `code` per 1 unit of the base currency."""

    code: str = Field(..., min_length=3, max_length=3)
    rate: float = Field(..., gt=0)


class ValuationResult(VaultModel):
    """Estimated market value of a property, with cited sources."""

    estimated_value: float = Field(..., ge=0)
    currency: str = "USD"
    reasoning: str = ""
    sources: list[GroundingSource] = Field(default_factory=list)


class GapAnalysis(VaultModel):
    missing_insurance: list[str] = Field(default_factory=list)
    risk_warnings: list[str] = Field(default_factory=list)


class FinancialHealth(VaultModel):
    """Coach-style assessment of the whole vault."""

    score: float = Field(..., ge=0, le=100)
    safety_net_score: float = Field(..., ge=0, le=100)
    summary: str
    recommendations: list[str]
    net_worth: float
    monthly_cash_flow: float
    liquidity_ratio: float
    gap_analysis: GapAnalysis


class ExtractedTransaction(VaultModel):
    """
    One transaction read from a scanned statement.

    Name and currency may be missing; the controller fills them in.
    """

    name: Optional[str] = None
    amount: float = Field(..., ge=0)
    currency: Optional[str] = None
    date: str
    type: EntryType
    category: str = CATEGORY_GENERAL
    reference_number: Optional[str] = None


# =============================================================================
# SERVICE INTERFACES
# =============================================================================

class ExchangeRateService(ABC):

    @abstractmethod
    async def fetch_rates(self, base_currency: str, codes: list[str]) -> dict[str, float]:
        """
        Current rates for codes against base_currency.

        Returns:
            code -> units of that currency per 1 unit of base

        Raises:
            AdvisorError: If rates could not be obtained
        """
        pass


class ValuationService(ABC):

    @abstractmethod
    async def estimate(
        self,
        address: str,
        plot_size: Optional[str] = None,
        property_type: Optional[str] = None,
    ) -> ValuationResult:
        """
        Estimate the market value of a property.

        Raises:
            AdvisorError: If no usable estimate was produced
        """
        pass


class HealthAnalysisService(ABC):

    @abstractmethod
    async def analyze(self, data: UserData) -> FinancialHealth:
        """
        Assess the vault as a whole.

        Raises:
            AdvisorError: If the analysis failed or did not validate
        """
        pass


class DocumentExtractionService(ABC):

    @abstractmethod
    async def extract(self, document_bytes: bytes, mime_type: str) -> list[ExtractedTransaction]:
        """
        Read every transaction from a statement image or PDF.

        Raises:
            ExtractionFailedError: If nothing usable could be read
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class AdvisorError(Exception):
    """Base exception for advisory services."""
    pass


class ExtractionFailedError(AdvisorError):
    """Failed to extract transactions from a document."""
    pass


class MalformedResponseError(AdvisorError):
    """The service answered, but not in the expected shape."""
    pass
