"""
Tests for the Gemini advisory services.

The generative model is replaced with a fake exposing
generate_content_async; responses are canned text.
"""

import json
from types import SimpleNamespace

import pytest

from finvault.agents import (
    AdvisorError,
    ExtractionFailedError,
    GeminiAdvisor,
    MalformedResponseError,
)
from finvault.agents.gemini_service import extract_json_object, grounding_sources
from finvault.config.settings import GeminiSettings
from finvault.models.finance import EntryType, UserData


class FakeModel:
    """Returns queued replies; raises if a reply is an exception."""

    def __init__(self, *replies, candidates=None):
        self.replies = list(replies)
        self.candidates = candidates or []
        self.prompts = []

    async def generate_content_async(self, contents, **kwargs):
        self.prompts.append((contents, kwargs))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(text=reply, candidates=self.candidates)


def make_advisor(model=None, vision_model=None) -> GeminiAdvisor:
    return GeminiAdvisor(
        settings=GeminiSettings(api_key="test-key"),
        model=model or FakeModel(),
        vision_model=vision_model or FakeModel(),
    )


HEALTH_REPLY = {
    "score": 72,
    "safetyNetScore": 55,
    "summary": "Solid footing, thin emergency fund.",
    "recommendations": ["Build three months of runway"],
    "netWorth": 42000,
    "monthlyCashFlow": 800,
    "liquidityRatio": 1.4,
    "gapAnalysis": {"missingInsurance": ["Life"], "riskWarnings": []},
}


class TestJsonExtraction:

    def test_object_inside_prose(self):
        text = 'Here you go:\n```json\n{"rates": []}\n```'
        assert extract_json_object(text) == {"rates": []}

    def test_no_object(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object("I could not find rates today.")

    def test_broken_object(self):
        with pytest.raises(MalformedResponseError):
            extract_json_object('{"rates": [}')


class TestExchangeRates:
    """Tests for fetch_rates."""

    @pytest.mark.asyncio
    async def test_rates_parsed_with_identity(self):
        model = FakeModel(json.dumps({"rates": [{"code": "gbp", "rate": 0.79}, {"code": "EUR", "rate": 0.92}]}))
        rates = await make_advisor(model).fetch_rates("USD", ["GBP", "EUR", "USD"])
        assert rates == {"GBP": 0.79, "EUR": 0.92, "USD": 1.0}

    @pytest.mark.asyncio
    async def test_only_base_makes_no_call(self):
        model = FakeModel()
        assert await make_advisor(model).fetch_rates("USD", ["USD"]) == {"USD": 1.0}
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_non_positive_rate_rejected(self):
        """Test that a malformed table fails closed."""
        model = FakeModel(json.dumps({"rates": [{"code": "GBP", "rate": -1}]}))
        with pytest.raises(MalformedResponseError):
            await make_advisor(model).fetch_rates("USD", ["GBP"])

    @pytest.mark.asyncio
    async def test_model_error_becomes_advisor_error(self):
        model = FakeModel(RuntimeError("blocked"))
        with pytest.raises(AdvisorError):
            await make_advisor(model).fetch_rates("USD", ["GBP"])


class TestValuation:

    @pytest.mark.asyncio
    async def test_estimate_with_sources(self):
        """Test that grounding chunks become valuation sources."""
        web = SimpleNamespace(web=SimpleNamespace(title="Listing", uri="https://example.com/1"))
        untitled = SimpleNamespace(web=SimpleNamespace(title="", uri="https://example.com/2"))
        candidate = SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=[web, untitled]))
        model = FakeModel(
            'Comparable sales suggest...\n{"estimatedValue": 450000, "currency": "USD", "reasoning": "3 comps"}',
            candidates=[candidate],
        )

        result = await make_advisor(model).estimate("1 Main St", "500 sqm", "House")

        assert result.estimated_value == 450000
        assert result.reasoning == "3 comps"
        assert [s.uri for s in result.sources] == ["https://example.com/1", "https://example.com/2"]
        assert result.sources[1].title == "Source"
        assert "500 sqm" in model.prompts[0][0]

    @pytest.mark.asyncio
    async def test_infinite_valuation_rejected(self):
        model = FakeModel('{"estimatedValue": Infinity, "currency": "USD"}')
        with pytest.raises(MalformedResponseError):
            await make_advisor(model).estimate("1 Main St")

    def test_no_grounding(self):
        assert grounding_sources(SimpleNamespace(candidates=[])) == []


class TestHealthAnalysis:

    @pytest.mark.asyncio
    async def test_analysis_validated(self):
        model = FakeModel(json.dumps(HEALTH_REPLY))
        health = await make_advisor(model).analyze(UserData.create_initial())
        assert health.score == 72
        assert health.gap_analysis.missing_insurance == ["Life"]

    @pytest.mark.asyncio
    async def test_missing_field_rejected(self):
        reply = {k: v for k, v in HEALTH_REPLY.items() if k != "summary"}
        model = FakeModel(json.dumps(reply))
        with pytest.raises(MalformedResponseError):
            await make_advisor(model).analyze(UserData.create_initial())


class TestDocumentExtraction:
    """Tests for statement scanning."""

    @pytest.mark.asyncio
    async def test_transactions_validated(self):
        vision = FakeModel(json.dumps({"transactions": [
            {"name": "ACME Payroll", "amount": 3200, "currency": "GBP", "date": "2025-06-01",
             "type": "ASSET", "category": "Income"},
            {"amount": 12.4, "date": "2025-06-02", "type": "EXPENSE", "category": "Wants"},
        ]}))

        transactions = await make_advisor(vision_model=vision).extract(b"%PDF", "application/pdf")

        assert len(transactions) == 2
        assert transactions[0].type == EntryType.ASSET
        assert transactions[1].name is None
        assert vision.prompts[0][0][0] == {"mime_type": "application/pdf", "data": b"%PDF"}

    @pytest.mark.asyncio
    async def test_malformed_transaction_fails_whole_extraction(self):
        vision = FakeModel(json.dumps({"transactions": [
            {"name": "Refund", "amount": -5, "date": "2025-06-01", "type": "ASSET", "category": "Income"},
        ]}))
        with pytest.raises(ExtractionFailedError):
            await make_advisor(vision_model=vision).extract(b"img", "image/png")

    @pytest.mark.asyncio
    async def test_missing_transactions_key(self):
        vision = FakeModel('{"items": []}')
        with pytest.raises(ExtractionFailedError):
            await make_advisor(vision_model=vision).extract(b"img", "image/png")

    @pytest.mark.asyncio
    async def test_infinite_amount_fails_extraction(self):
        """Test that an Infinity token in the reply never becomes an entry amount."""
        vision = FakeModel(
            '{"transactions": [{"name": "Shop", "amount": Infinity, "date": "2025-06-01",'
            ' "type": "EXPENSE", "category": "Wants"}]}'
        )
        with pytest.raises(ExtractionFailedError):
            await make_advisor(vision_model=vision).extract(b"img", "image/png")
