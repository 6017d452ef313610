"""
Shared fixtures.

No test talks to Google or Gemini: backends and advisory services are
replaced with in-memory fakes defined here.
"""

import asyncio
from datetime import date
from typing import Optional

import pytest

from finvault.agents.interface import (
    AdvisorError,
    DocumentExtractionService,
    ExchangeRateService,
    ExtractedTransaction,
    ExtractionFailedError,
    FinancialHealth,
    HealthAnalysisService,
    ValuationResult,
    ValuationService,
)
from finvault.config.settings import AppSettings
from finvault.models.finance import EntryType, FinanceEntry, UserData
from finvault.services.storage.interface import (
    NotFoundError,
    StorageBackend,
    StorageError,
    StorageMode,
    parse_vault_document,
)


class InMemoryBackend(StorageBackend):
    """Storage backend keeping the vault document in a dict."""

    mode = StorageMode.LOCAL_DB

    def __init__(
        self,
        document: Optional[dict] = None,
        login_error: Optional[Exception] = None,
        fail_saves: bool = False,
        fail_archive: bool = False,
        save_delay: float = 0.0,
        mirror_id: Optional[str] = None,
    ):
        super().__init__()
        self.document = document
        self.login_error = login_error
        self.fail_saves = fail_saves
        self.fail_archive = fail_archive
        self.save_delay = save_delay
        self.mirror_id = mirror_id
        self.saved: list[UserData] = []
        self.archived: list[tuple[str, str, str]] = []
        self.mirror_calls: list[Optional[str]] = []

    async def login(self) -> None:
        if self.login_error is not None:
            raise self.login_error

    async def find_vault(self) -> Optional[str]:
        return "memory" if self.document is not None else None

    async def save_data(self, data: UserData) -> None:
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        if self.fail_saves:
            raise StorageError("disk full")
        self.saved.append(data)
        self.document = data.to_document()

    async def download_data(self, reference: Optional[str] = None) -> UserData:
        if self.document is None:
            raise NotFoundError("nothing saved")
        return parse_vault_document(self.document)

    async def archive_attachment(self, base64_data, mime_type, account_name, date):
        if self.fail_archive:
            return None
        self.archived.append((account_name, date, mime_type))
        return f"idb://blob_{len(self.archived)}"

    async def export_tabular_mirror(self, entries, base_currency, mirror_id=None):
        self.mirror_calls.append(mirror_id)
        return self.mirror_id


class FakeRateService(ExchangeRateService):

    def __init__(self, rates: Optional[dict] = None, error: Optional[Exception] = None):
        self.rates = rates or {}
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    async def fetch_rates(self, base_currency, codes):
        self.calls.append((base_currency, list(codes)))
        if self.error is not None:
            raise self.error
        return dict(self.rates)


class FakeExtractionService(DocumentExtractionService):

    def __init__(self, transactions: Optional[list[dict]] = None, fail: bool = False):
        self.transactions = transactions or []
        self.fail = fail

    async def extract(self, document_bytes, mime_type):
        if self.fail:
            raise ExtractionFailedError("unreadable statement")
        return [ExtractedTransaction.model_validate(t) for t in self.transactions]


class FakeHealthService(HealthAnalysisService):

    def __init__(self, result: Optional[FinancialHealth] = None):
        self.result = result

    async def analyze(self, data):
        if self.result is None:
            raise AdvisorError("model unavailable")
        return self.result


class FakeValuationService(ValuationService):

    def __init__(self, result: ValuationResult):
        self.result = result
        self.calls: list[tuple] = []

    async def estimate(self, address, plot_size=None, property_type=None):
        self.calls.append((address, plot_size, property_type))
        return self.result


@pytest.fixture
def today() -> date:
    return date(2025, 6, 15)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        default_currency="USD",
        default_user_name="FinVault User",
        default_monthly_budget=5000.0,
    )


@pytest.fixture
def make_entry():
    """Factory for entries with sensible defaults."""
    def _make(
        type: EntryType = EntryType.EXPENSE,
        amount: float = 100.0,
        category: str = "General",
        date: str = "2025-06-10",
        **kwargs,
    ) -> FinanceEntry:
        return FinanceEntry(
            type=type,
            name=kwargs.pop("name", f"{type.value.title()} entry"),
            amount=amount,
            category=category,
            date=date,
            **kwargs,
        )
    return _make
