"""
Vault Controller

Owns the canonical in-memory vault for one session and mediates every
change to it.

Mutation protocol, the same for every intent:
1. Build a copy of the current snapshot with the change applied,
   last_synced refreshed and revision + 1
2. Swap it in synchronously (readers see it immediately)
3. Schedule a save of that snapshot without waiting for it
4. If the entries changed, also schedule an exchange-rate refresh

DESIGN DECISION: saves are serialized and guarded by revision. A queued
save whose snapshot is no longer the current one is skipped, because
the newer snapshot has its own save queued behind it. An older snapshot
can therefore never overwrite a newer one.

Rate refreshes apply their result to whatever snapshot is current when
they finish, never to the one that triggered them.
"""

import asyncio
import base64
import math
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional

import structlog

from finvault.agents.interface import (
    AdvisorError,
    DocumentExtractionService,
    ExchangeRateService,
    FinancialHealth,
    HealthAnalysisService,
    ValuationResult,
    ValuationService,
)
from finvault.audit import AuditLogger
from finvault.config import get_settings
from finvault.config.settings import AppSettings
from finvault.models.audit import AuditEventBuilder, AuditEventType
from finvault.models.finance import (
    FinanceEntry,
    Goal,
    UserData,
    VaultSettings,
    utc_now_iso,
)
from finvault.models.legacy import LegacyProfile
from finvault.services.currency import CurrencyNormalizer
from finvault.services.storage import NotFoundError, StorageBackend, StorageError


logger = structlog.get_logger(__name__)

UNKNOWN_MERCHANT = "Unknown Merchant"
UNNAMED_TRANSACTION = "Unnamed Transaction"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    READY = "ready"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class VaultError(Exception):
    """Base exception for controller operations."""
    pass


class SessionNotReadyError(VaultError):
    """No vault is loaded yet."""
    pass


class VaultLockedError(VaultError):
    """The vault lock has not been cleared."""
    pass


class ItemNotFoundError(VaultError, KeyError):
    """No entry or goal with that id."""
    pass


class VaultController:
    """
    Session-scoped owner of the user's vault.

    The storage backend is chosen by the caller and injected; advisory
    services are optional and their features fail with AdvisorError
    when missing.
    """

    def __init__(
        self,
        backend: StorageBackend,
        rate_service: Optional[ExchangeRateService] = None,
        valuation_service: Optional[ValuationService] = None,
        health_service: Optional[HealthAnalysisService] = None,
        extraction_service: Optional[DocumentExtractionService] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._backend = backend
        self._valuation_service = valuation_service
        self._health_service = health_service
        self._extraction_service = extraction_service
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._normalizer = (
            CurrencyNormalizer(rate_service, self._audit_logger) if rate_service else None
        )

        self._data: Optional[UserData] = None
        self._save_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

        self.state = SessionState.UNAUTHENTICATED
        self.auth_error: Optional[str] = None
        self.sync_status = SyncStatus.IDLE
        self.is_locked = False

    # =========================================================================
    # SESSION
    # =========================================================================

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def data(self) -> UserData:
        """The canonical snapshot."""
        if self._data is None:
            raise SessionNotReadyError("No vault loaded")
        return self._data

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    def _initial_data(self) -> UserData:
        return UserData.create_initial(
            base_currency=self._settings.default_currency,
            user_name=self._settings.default_user_name,
            monthly_budget_limit=self._settings.default_monthly_budget,
        )

    async def _load_or_create(self) -> tuple[UserData, bool]:
        reference = await self._backend.find_vault()
        if reference is None:
            return self._initial_data(), True
        try:
            return await self._backend.download_data(reference), False
        except NotFoundError:
            return self._initial_data(), True

    async def login(self) -> UserData:
        """
        Authenticate against the backend and load (or create) the vault.

        A vault that does not exist yet is created with default settings
        and saved right away. A vault that exists but cannot be read fails
        the login rather than being replaced.

        Raises:
            StorageError: Login or load failed; auth_error holds the message
        """
        mode = self._backend.mode.value
        self.state = SessionState.AUTHENTICATING
        self.auth_error = None

        try:
            await self._backend.login()
            data, created = await self._load_or_create()
        except StorageError as e:
            self.state = SessionState.UNAUTHENTICATED
            self.auth_error = str(e)
            self._audit_logger.log(AuditEventBuilder.login_failed(mode, str(e)))
            raise

        self._data = data
        self.state = SessionState.READY
        self.is_locked = data.settings.vault_lock_enabled
        self._audit_logger.log(AuditEventBuilder.login_succeeded(mode))
        self._audit_logger.log(
            AuditEventBuilder.vault_opened(mode, created, len(data.entries))
        )
        if self.is_locked:
            self._audit_logger.log(AuditEventBuilder.vault_lock_changed(True))

        if created:
            await self._save_snapshot(data)
        self._schedule(self._refresh_rates())
        return data

    # =========================================================================
    # VAULT LOCK
    # =========================================================================

    def lock(self) -> None:
        """Re-engage the lock, if the vault has it enabled."""
        if self.data.settings.vault_lock_enabled and not self.is_locked:
            self.is_locked = True
            self._audit_logger.log(AuditEventBuilder.vault_lock_changed(True))

    def unlock_with_passkey(self, candidate: str) -> bool:
        """Clear the lock with the legacy recovery passkey."""
        legacy = self.data.legacy
        if legacy is None or not legacy.unlocks_with(candidate):
            reason = "no passkey configured" if legacy is None else "passkey mismatch"
            self._audit_logger.log(AuditEventBuilder.unlock_failed("passkey", reason))
            return False
        self.is_locked = False
        self._audit_logger.log(AuditEventBuilder.vault_lock_changed(False, "passkey"))
        return True

    async def unlock_with_biometric(self, check: Callable[[], Awaitable[bool]]) -> bool:
        """Clear the lock with a platform check supplied by the host."""
        if self._data is None:
            raise SessionNotReadyError("No vault loaded")
        if not await check():
            self._audit_logger.log(AuditEventBuilder.unlock_failed("biometric", "check declined"))
            return False
        self.is_locked = False
        self._audit_logger.log(AuditEventBuilder.vault_lock_changed(False, "biometric"))
        return True

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    @staticmethod
    def _revalidated(model):
        # model_copy(update=...) skips validation, so re-check caller-built copies
        return type(model).model_validate(model.model_dump())

    def _require_writable(self) -> UserData:
        if self.state != SessionState.READY or self._data is None:
            raise SessionNotReadyError("Log in before changing the vault")
        if self.is_locked:
            raise VaultLockedError("Unlock the vault before changing it")
        return self._data

    def _commit(self, changes: dict[str, Any], refresh_rates: bool = False) -> UserData:
        current = self.data
        snapshot = current.model_copy(update={
            **changes,
            "last_synced": utc_now_iso(),
            "revision": current.revision + 1,
        })
        self._data = snapshot
        self._schedule(self._save_snapshot(snapshot))
        if refresh_rates:
            self._schedule(self._refresh_rates())
        return snapshot

    def add_entry(self, entry: FinanceEntry) -> UserData:
        current = self._require_writable()
        entry = self._revalidated(entry)
        snapshot = self._commit({"entries": [entry, *current.entries]}, refresh_rates=True)
        self._audit_logger.log(
            AuditEventBuilder.entry_added(entry.id, entry.name, snapshot.revision)
        )
        return snapshot

    def add_entries(self, entries: list[FinanceEntry]) -> UserData:
        """Add several entries in one mutation, newest first."""
        current = self._require_writable()
        entries = [self._revalidated(e) for e in entries]
        snapshot = self._commit({"entries": [*entries, *current.entries]}, refresh_rates=True)
        for entry in entries:
            self._audit_logger.log(
                AuditEventBuilder.entry_added(entry.id, entry.name, snapshot.revision)
            )
        return snapshot

    def update_entry(self, entry: FinanceEntry) -> UserData:
        """Replace the entry with the same id."""
        current = self._require_writable()
        entry = self._revalidated(entry)
        if current.find_entry(entry.id) is None:
            raise ItemNotFoundError(f"No entry with id {entry.id}")
        snapshot = self._commit(
            {"entries": [entry if e.id == entry.id else e for e in current.entries]},
            refresh_rates=True,
        )
        self._audit_logger.log(
            AuditEventBuilder.entry_updated(entry.id, entry.name, snapshot.revision)
        )
        return snapshot

    def add_goal(self, goal: Goal) -> UserData:
        current = self._require_writable()
        goal = self._revalidated(goal)
        snapshot = self._commit({"goals": [*current.goals, goal]})
        self._audit_logger.log(
            AuditEventBuilder.goal_changed(goal.id, goal.name, snapshot.revision)
        )
        return snapshot

    def contribute_to_goal(self, goal_id: str, amount: float) -> UserData:
        """Add a positive contribution to a goal's current amount."""
        if not math.isfinite(amount) or amount <= 0:
            raise ValueError("Contribution must be a positive number")
        current = self._require_writable()
        goal = current.find_goal(goal_id)
        if goal is None:
            raise ItemNotFoundError(f"No goal with id {goal_id}")

        updated = goal.model_copy(update={"current_amount": goal.current_amount + amount})
        snapshot = self._commit(
            {"goals": [updated if g.id == goal_id else g for g in current.goals]}
        )
        self._audit_logger.log(
            AuditEventBuilder.goal_changed(goal.id, goal.name, snapshot.revision, amount)
        )
        return snapshot

    def set_legacy_profile(self, profile: LegacyProfile) -> UserData:
        self._require_writable()
        snapshot = self._commit({"legacy": profile})
        self._audit_logger.log(AuditEventBuilder.vault_mutated(
            AuditEventType.LEGACY_CONFIGURED,
            f"Successor set: {profile.successor_name}",
            snapshot.revision,
        ))
        return snapshot

    def accept_terms(self) -> UserData:
        current = self._require_writable()
        snapshot = self._commit({
            "settings": current.settings.model_copy(update={"terms_accepted": True})
        })
        self._audit_logger.log(AuditEventBuilder.vault_mutated(
            AuditEventType.TERMS_ACCEPTED, "Terms accepted", snapshot.revision
        ))
        return snapshot

    def update_settings(self, **changes: Any) -> UserData:
        """
        Change vault settings by field name (base_currency, user_name, ...).

        Raises:
            pydantic.ValidationError: If a value is invalid
        """
        current = self._require_writable()
        settings = VaultSettings.model_validate(
            {**current.settings.model_dump(), **changes}
        )
        snapshot = self._commit(
            {"settings": settings},
            refresh_rates=settings.base_currency != current.settings.base_currency,
        )
        self._audit_logger.log(AuditEventBuilder.vault_mutated(
            AuditEventType.SETTINGS_UPDATED,
            f"Settings changed: {', '.join(sorted(changes))}",
            snapshot.revision,
        ))
        return snapshot

    def apply_valuation(self, entry_id: str, result: ValuationResult) -> UserData:
        """Record a property valuation on an entry."""
        entry = self.data.find_entry(entry_id)
        if entry is None:
            raise ItemNotFoundError(f"No entry with id {entry_id}")
        return self.update_entry(entry.model_copy(update={
            "amount": result.estimated_value,
            "currency": result.currency,
            "valuation_sources": result.sources,
            "last_valuated": utc_now_iso(),
        }))

    # =========================================================================
    # ADVISORY FLOWS
    # =========================================================================

    def _report_service_error(self, service: str, error: Exception) -> None:
        self._audit_logger.log(AuditEventBuilder.external_service_error(service, str(error)))

    async def request_valuation(self, entry_id: str) -> ValuationResult:
        """
        Value a property entry and apply the result.

        Raises:
            AdvisorError: No valuation service, or the valuation failed
        """
        entry = self.data.find_entry(entry_id)
        if entry is None:
            raise ItemNotFoundError(f"No entry with id {entry_id}")
        if not entry.address:
            raise ValueError("Entry has no address to value")
        if self._valuation_service is None:
            raise AdvisorError("No valuation service configured")

        try:
            result = await self._valuation_service.estimate(
                entry.address, entry.plot_size, entry.property_type
            )
        except AdvisorError as e:
            self._report_service_error("valuation", e)
            raise

        self.apply_valuation(entry_id, result)
        return result

    async def analyze_health(self) -> FinancialHealth:
        """
        Raises:
            AdvisorError: No analysis service, or the analysis failed
        """
        data = self.data
        if self._health_service is None:
            raise AdvisorError("No health analysis service configured")
        try:
            return await self._health_service.analyze(data)
        except AdvisorError as e:
            self._report_service_error("health_analysis", e)
            raise

    async def import_statement(self, document_bytes: bytes, mime_type: str) -> list[FinanceEntry]:
        """
        Scan a statement, archive it, and add its transactions.

        The document is archived once per extracted transaction, filed
        under that transaction's merchant and date. An archive failure
        only leaves the entry without an attachment reference.

        Raises:
            AdvisorError: No extraction service, or extraction failed
        """
        self._require_writable()
        if self._extraction_service is None:
            raise AdvisorError("No document extraction service configured")

        try:
            transactions = await self._extraction_service.extract(document_bytes, mime_type)
        except AdvisorError as e:
            self._report_service_error("document_extraction", e)
            raise

        encoded = base64.b64encode(document_bytes).decode("ascii")
        base_currency = self.data.base_currency
        entries = []
        for transaction in transactions:
            account = transaction.name or UNKNOWN_MERCHANT
            reference = await self._backend.archive_attachment(
                encoded, mime_type, account, transaction.date
            )
            self._audit_logger.log(AuditEventBuilder.attachment_archived(reference, account))
            entries.append(FinanceEntry(
                type=transaction.type,
                category=transaction.category,
                name=transaction.name or UNNAMED_TRANSACTION,
                amount=transaction.amount,
                currency=transaction.currency or base_currency,
                date=transaction.date,
                reference_number=transaction.reference_number,
                attachment_ref=reference,
            ))

        if entries:
            self.add_entries(entries)
        return entries

    # =========================================================================
    # BACKGROUND WORK
    # =========================================================================

    def _schedule(self, coroutine: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled save and refresh has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _save_snapshot(self, snapshot: UserData) -> None:
        """
        Persist a snapshot unless a newer one has replaced it.

        Never raises: failures are logged and the next mutation saves again.
        """
        mode = self._backend.mode.value
        async with self._save_lock:
            current = self._data
            if current is not None and current.revision != snapshot.revision:
                self._audit_logger.log(
                    AuditEventBuilder.save_skipped(snapshot.revision, current.revision)
                )
                return

            self.sync_status = SyncStatus.SYNCING
            try:
                await self._backend.save_data(snapshot)
                self._audit_logger.log(AuditEventBuilder.vault_saved(snapshot.revision, mode))
            except StorageError as e:
                logger.error("vault_save_failed", revision=snapshot.revision, error=str(e))
                self._audit_logger.log(
                    AuditEventBuilder.save_failed(snapshot.revision, mode, str(e))
                )
                return
            finally:
                self.sync_status = SyncStatus.IDLE

            await self._export_mirror(snapshot)

    async def _export_mirror(self, snapshot: UserData) -> None:
        cached_id = snapshot.settings.spreadsheet_id
        try:
            mirror_id = await self._backend.export_tabular_mirror(
                snapshot.entries, snapshot.base_currency, cached_id
            )
        except StorageError as e:
            logger.warning("mirror_export_failed", error=str(e))
            self._report_service_error("tabular_mirror", e)
            return

        if mirror_id is None:
            return
        self._audit_logger.log(AuditEventBuilder.mirror_exported(mirror_id, len(snapshot.entries)))
        if mirror_id != cached_id and self._data is not None:
            self._commit({
                "settings": self._data.settings.model_copy(update={"spreadsheet_id": mirror_id})
            })

    async def _refresh_rates(self) -> None:
        if self._normalizer is None or self._data is None:
            return
        requested = self._data
        table = await self._normalizer.refresh(requested)

        current = self._data
        if table is None or current.base_currency != requested.base_currency:
            return
        if table == current.exchange_rates:
            return
        self._commit({"exchange_rates": table})
        self._audit_logger.log(AuditEventBuilder.rates_refreshed(current.base_currency, table))
