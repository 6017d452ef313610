"""Tests for currency normalization."""

import pytest

from finvault.agents.interface import AdvisorError
from finvault.audit import AuditLogger
from finvault.models.audit import AuditEventType
from finvault.models.finance import EntryType, UserData
from finvault.services.currency import (
    CurrencyNormalizer,
    convert_to_base,
    distinct_currencies,
    normalize_rate_table,
)

from conftest import FakeRateService


RATES = {"USD": 1.0, "GBP": 1.27}


class TestConvertToBase:
    """Tests for single-amount conversion."""

    def test_foreign_amount_divides_by_rate(self):
        """Test the worked example: 100 GBP at 1.27 is 78.74 USD."""
        assert convert_to_base(100, "GBP", "USD", RATES) == pytest.approx(78.74, abs=0.005)

    def test_base_currency_unchanged(self):
        assert convert_to_base(100, "USD", "USD", RATES) == 100

    def test_missing_currency_means_base(self):
        assert convert_to_base(100, None, "USD", RATES) == 100

    def test_unknown_code_returns_raw_amount(self):
        """Test graceful fallback for codes absent from the table."""
        assert convert_to_base(100, "JPY", "USD", RATES) == 100

    def test_no_table_returns_raw_amount(self):
        assert convert_to_base(100, "GBP", "USD", None) == 100

    @pytest.mark.parametrize("rate", [0, -1.5, float("nan"), float("inf")])
    def test_unusable_rate_returns_raw_amount(self, rate):
        assert convert_to_base(100, "GBP", "USD", {"GBP": rate}) == 100


class TestRateTable:
    """Tests for rate table helpers."""

    def test_distinct_currencies(self, make_entry):
        entries = [
            make_entry(currency="GBP"),
            make_entry(currency="EUR"),
            make_entry(currency="GBP"),
            make_entry(),
        ]
        assert distinct_currencies(entries) == ["EUR", "GBP"]

    def test_normalize_forces_identity(self):
        """Test that the base currency always maps to 1."""
        table = normalize_rate_table("USD", {"USD": 0.99, "GBP": 1.27})
        assert table["USD"] == 1.0
        assert table["GBP"] == 1.27

    def test_normalize_drops_bad_values(self):
        table = normalize_rate_table("USD", {"GBP": -1, "EUR": "0.9", "JPY": 0, "INR": 83, "X": True})
        assert table == {"INR": 83.0, "USD": 1.0}


class TestCurrencyNormalizer:
    """Tests for fetching fresh rate tables."""

    @pytest.mark.asyncio
    async def test_refresh_requests_foreign_codes(self, make_entry):
        """Test that only non-base codes are requested."""
        service = FakeRateService(rates={"GBP": 1.27, "EUR": 1.1})
        data = UserData(entries=[
            make_entry(currency="GBP"),
            make_entry(currency="EUR"),
            make_entry(currency="USD"),
        ])

        table = await CurrencyNormalizer(service).refresh(data)

        assert service.calls == [("USD", ["EUR", "GBP"])]
        assert table == {"GBP": 1.27, "EUR": 1.1, "USD": 1.0}

    @pytest.mark.asyncio
    async def test_refresh_without_foreign_codes_makes_no_request(self, make_entry):
        service = FakeRateService(rates={"GBP": 1.27})
        data = UserData(entries=[make_entry(), make_entry(currency="USD")])

        assert await CurrencyNormalizer(service).refresh(data) is None
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_refresh_failure_returns_none(self, make_entry):
        """Test that a service failure keeps the caller's cached table."""
        audit = AuditLogger()
        service = FakeRateService(error=AdvisorError("quota"))
        data = UserData(entries=[make_entry(type=EntryType.ASSET, currency="GBP")])

        assert await CurrencyNormalizer(service, audit).refresh(data) is None
        assert audit.recent_events()[0].event_type == AuditEventType.RATES_FAILED
