"""
Currency Normalization

Rate convention: rates[code] is how many units of `code` one unit of the
base currency buys, so amount_in_base = amount / rates[code], and
rates[base] is always 1.

    base USD, rates {"USD": 1, "GBP": 1.27}  ->  100 GBP = 78.74 USD

DESIGN DECISION: conversion never fails. A currency missing from the
table (or with an unusable rate) is shown unconverted rather than
blocking anything.
"""

import math
from typing import Iterable, Mapping, Optional

import structlog

from finvault.agents.interface import AdvisorError, ExchangeRateService
from finvault.audit.logger import AuditLogger
from finvault.models.audit import AuditEventBuilder
from finvault.models.finance import FinanceEntry, UserData


logger = structlog.get_logger(__name__)


def convert_to_base(
    amount: float,
    currency: Optional[str],
    base_currency: str,
    rates: Optional[Mapping[str, float]],
) -> float:
    """Convert an amount into the base currency, or return it unchanged."""
    if not currency or currency == base_currency or not rates:
        return amount
    rate = rates.get(currency)
    if not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate <= 0:
        return amount
    return amount / rate


def entry_in_base(entry: FinanceEntry, data: UserData) -> float:
    return convert_to_base(entry.amount, entry.currency, data.base_currency, data.exchange_rates)


def distinct_currencies(entries: Iterable[FinanceEntry]) -> list[str]:
    """Sorted distinct currency codes used by entries."""
    return sorted({entry.currency for entry in entries if entry.currency})


def normalize_rate_table(base_currency: str, raw: Mapping[str, object]) -> dict[str, float]:
    """Keep only finite positive numeric rates and pin the base to 1."""
    table = {}
    for code, rate in raw.items():
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            continue
        if math.isfinite(rate) and rate > 0:
            table[str(code)] = float(rate)
    table[base_currency] = 1.0
    return table


class CurrencyNormalizer:
    """Fetches fresh rate tables for a vault's currencies."""

    def __init__(
        self,
        service: ExchangeRateService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = service
        self._audit_logger = audit_logger

    async def refresh(self, data: UserData) -> Optional[dict[str, float]]:
        """
        Fetch a rate table for every currency the entries use.

        Returns:
            The normalized table, or None when there is nothing to fetch
            or the service failed (the caller keeps its cached table)
        """
        base = data.base_currency
        codes = [c for c in distinct_currencies(data.entries) if c != base]
        if not codes:
            return None

        try:
            raw = await self._service.fetch_rates(base, codes)
        except AdvisorError as e:
            logger.warning("exchange_rate_refresh_failed", base=base, codes=codes, error=str(e))
            if self._audit_logger:
                self._audit_logger.log(AuditEventBuilder.rates_failed(base, str(e)))
            return None

        return normalize_rate_table(base, raw)
