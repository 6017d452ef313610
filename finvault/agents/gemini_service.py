"""
Gemini Advisory Services

One Gemini-backed implementation of every advisory interface.

DESIGN DECISION: The LLM is a TRANSLATOR, not a source of truth.
1. Prompts ask for a strict JSON shape
2. The JSON is parsed and validated into pydantic models
3. Anything that does not validate is reported as a failure

It NEVER writes to the vault. The controller decides what to do with
a validated result, and keeps its cached values when a call fails.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
import structlog
from google.api_core.exceptions import GoogleAPIError
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finvault.agents.interface import (
    AdvisorError,
    DocumentExtractionService,
    ExchangeRateService,
    ExtractedTransaction,
    ExtractionFailedError,
    FinancialHealth,
    HealthAnalysisService,
    MalformedResponseError,
    RateQuote,
    ValuationResult,
    ValuationService,
)
from finvault.config import get_settings
from finvault.config.settings import GeminiSettings
from finvault.models.finance import FINANCIAL_CATEGORIES, GroundingSource, UserData


logger = structlog.get_logger(__name__)


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Pull the outermost JSON object out of a model reply.

    Raises:
        MalformedResponseError: If there is no parseable object
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise MalformedResponseError("No JSON object in model response")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in model response: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Model response is not a JSON object")
    return data


def grounding_sources(response: Any) -> list[GroundingSource]:
    """Web sources cited by a search-grounded response."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    sources = []
    for chunk in getattr(metadata, "grounding_chunks", None) or []:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if uri:
            sources.append(GroundingSource(title=getattr(web, "title", None) or "Source", uri=uri))
    return sources


class GeminiAdvisor(
    ExchangeRateService,
    ValuationService,
    HealthAnalysisService,
    DocumentExtractionService,
):
    """
    Gemini implementation of the advisory services.

    BOUNDARIES:
    - Returns validated models or raises AdvisorError
    - NEVER mutates or persists vault data
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
        vision_model: Any = None,
    ):
        self._settings = settings or get_settings().gemini
        if model is None or vision_model is None:
            genai.configure(api_key=self._settings.api_key)
        generation_config = {
            "temperature": self._settings.temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        self._model = model or genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=generation_config,
        )
        self._vision_model = vision_model or genai.GenerativeModel(
            model_name=self._settings.vision_model_name,
            generation_config={**generation_config, "response_mime_type": "application/json"},
        )

    @retry(
        retry=retry_if_exception_type(GoogleAPIError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, model: Any, contents: Any, **kwargs) -> Any:
        return await model.generate_content_async(contents, **kwargs)

    async def _ask(self, model: Any, contents: Any, **kwargs) -> tuple[Any, str]:
        """Call the model; returns the raw response and its text."""
        try:
            response = await self._generate(model, contents, **kwargs)
            return response, response.text.strip()
        except Exception as e:
            logger.warning("gemini_call_failed", error=str(e))
            raise AdvisorError(f"Gemini request failed: {e}") from e

    async def fetch_rates(self, base_currency: str, codes: list[str]) -> dict[str, float]:
        targets = sorted({c for c in codes if c and c != base_currency})
        if not targets:
            return {base_currency: 1.0}

        prompt = f"""Find the current exchange rates for 1 {base_currency} to the following currencies: {', '.join(targets)}.

Each rate is how many units of that currency 1 {base_currency} buys.

Respond with ONLY a JSON object in this exact format:
{{"rates": [{{"code": "EUR", "rate": 0.92}}]}}"""

        _, text = await self._ask(
            self._model,
            prompt,
            generation_config={"response_mime_type": "application/json"},
        )
        data = extract_json_object(text)
        try:
            quotes = [RateQuote.model_validate(item) for item in data.get("rates", [])]
        except (ValidationError, TypeError) as e:
            raise MalformedResponseError(f"Invalid rate table: {e}") from e

        rates = {quote.code.upper(): quote.rate for quote in quotes}
        rates[base_currency] = 1.0
        return rates

    async def estimate(
        self,
        address: str,
        plot_size: Optional[str] = None,
        property_type: Optional[str] = None,
    ) -> ValuationResult:
        subject = f"a {property_type}" if property_type else "a property"
        size = f" with a size of {plot_size}" if plot_size else ""
        prompt = f"""Research the current market value for {subject} at: {address}{size}.

Find recent sales of similar properties in the immediate vicinity. Factor in the plot size if provided.
Use current listings and neighbourhood price-per-square-foot trends.

End your answer with ONLY a JSON object in this exact format:
{{"estimatedValue": 450000, "currency": "USD", "reasoning": "brief explanation of how size and location influenced the number"}}"""

        response, text = await self._ask(self._model, prompt, tools="google_search_retrieval")
        data = extract_json_object(text)
        try:
            return ValuationResult.model_validate(
                {**data, "sources": grounding_sources(response)}
            )
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid valuation: {e}") from e

    async def analyze(self, data: UserData) -> FinancialHealth:
        document = data.to_document()
        prompt = f"""Act as a supportive financial coach for {data.settings.user_name}.

Entries (amounts in their own currency, base currency {data.base_currency}):
{json.dumps(document.get("entries", []))}

Goals:
{json.dumps(document.get("goals", []))}

Use a warm, encouraging tone. Scores are 0-100.

Respond with ONLY a JSON object with these keys:
score, safetyNetScore, summary, recommendations (list of strings), netWorth,
monthlyCashFlow, liquidityRatio, gapAnalysis ({{"missingInsurance": [...], "riskWarnings": [...]}})"""

        _, text = await self._ask(
            self._model,
            prompt,
            generation_config={"response_mime_type": "application/json"},
        )
        try:
            return FinancialHealth.model_validate(extract_json_object(text))
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid health analysis: {e}") from e

    async def extract(self, document_bytes: bytes, mime_type: str) -> list[ExtractedTransaction]:
        categories = ", ".join(f"'{c}'" for c in FINANCIAL_CATEGORIES if c != "General")
        prompt = f"""Extract every transaction from this financial statement.

It may be a multi-page document. Capture items from the start to the end of the ledger.

Fields:
- name: merchant or primary description, without reference codes
- amount: absolute numerical value
- currency: ISO code (USD, GBP, EUR, ...)
- date: YYYY-MM-DD
- type: 'ASSET' for deposits, 'EXPENSE' for withdrawals
- category: exactly one of {categories}
- referenceNumber: if printed

Respond with ONLY a JSON object: {{"transactions": [...]}}"""

        try:
            _, text = await self._ask(
                self._vision_model,
                [{"mime_type": mime_type, "data": document_bytes}, prompt],
            )
            data = extract_json_object(text)
            raw = data.get("transactions")
            if not isinstance(raw, list):
                raise MalformedResponseError("Response has no transactions list")
            return [ExtractedTransaction.model_validate(item) for item in raw]
        except (AdvisorError, ValidationError) as e:
            raise ExtractionFailedError(f"Failed to extract transactions: {e}") from e
