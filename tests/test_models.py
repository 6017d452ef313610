"""
Tests for FinVault

Test strategy:
1. Unit tests for individual components (models, metrics, storage)
2. Integration tests for flows (with fake backends and services)
3. No real API calls in tests (use fakes)
"""

import json

import pytest
from pydantic import ValidationError

from finvault.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finvault.models.finance import (
    EntryType,
    FinanceEntry,
    Goal,
    GoalCategory,
    Liquidity,
    UserData,
    VaultSettings,
)
from finvault.models.legacy import (
    PASSKEY_ALPHABET,
    LegacyProfile,
    generate_passkey,
    normalize_passkey,
    verify_passkey,
)


class TestFinanceModels:
    """Tests for vault data models."""

    def test_entry_creation(self):
        """Test FinanceEntry creation with defaults."""
        entry = FinanceEntry(type=EntryType.ASSET, name="Brokerage", amount=1200)
        assert entry.category == "General"
        assert entry.currency is None
        assert entry.id

    def test_entry_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValidationError):
            FinanceEntry(type=EntryType.EXPENSE, name="Refund", amount=-5)

    def test_entry_rejects_non_finite_amount(self):
        """Test that inf and nan never enter a vault document."""
        for amount in (float("inf"), float("nan")):
            with pytest.raises(ValidationError):
                FinanceEntry(type=EntryType.ASSET, name="Cash", amount=amount)

    def test_goal_rejects_infinite_target(self):
        with pytest.raises(ValidationError):
            Goal(name="Trip", target_amount=float("inf"))

    def test_entry_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        entry = FinanceEntry(type=EntryType.BILL, name="  Water  ", amount=30)
        assert entry.name == "Water"

    def test_entry_is_immutable(self):
        """Test that entries cannot be changed in place."""
        entry = FinanceEntry(type=EntryType.BILL, name="Water", amount=30)
        with pytest.raises(ValidationError):
            entry.amount = 40

    def test_entry_serializes_camel_case(self):
        """Test persisted key names."""
        entry = FinanceEntry(
            type=EntryType.LIABILITY,
            name="Mortgage",
            amount=200000,
            months_remaining=240,
            initial_amount=250000,
            attachment_ref="drive-file-1",
        )
        document = entry.model_dump(mode="json", by_alias=True, exclude_none=True)
        assert document["monthsRemaining"] == 240
        assert document["initialAmount"] == 250000
        assert document["statementDriveId"] == "drive-file-1"
        assert "months_remaining" not in document

    def test_entry_loads_from_camel_case(self):
        """Test loading a persisted entry."""
        entry = FinanceEntry.model_validate({
            "id": "e1",
            "type": "ASSET",
            "name": "Savings account",
            "amount": 900,
            "liquidity": "high",
            "isWorkProvided": False,
            "statementDriveId": "fs://2025-06/Bank/Statement.png",
        })
        assert entry.liquidity == Liquidity.HIGH
        assert entry.is_work_provided is False
        assert entry.attachment_ref == "fs://2025-06/Bank/Statement.png"

    def test_goal_category_is_closed(self):
        """Test that unknown goal categories are rejected."""
        with pytest.raises(ValidationError):
            Goal(name="Boat", target_amount=1000, category="Boats")

    def test_goal_defaults(self):
        """Test Goal defaults."""
        goal = Goal(name="Trip", target_amount=3000)
        assert goal.current_amount == 0
        assert goal.category == GoalCategory.OTHER

    def test_goal_target_must_be_positive(self):
        with pytest.raises(ValidationError):
            Goal(name="Nothing", target_amount=0)


class TestUserData:
    """Tests for the vault aggregate."""

    def test_initial_vault_defaults(self):
        """Test a fresh vault."""
        data = UserData.create_initial()
        assert data.entries == []
        assert data.goals == []
        assert data.settings.base_currency == "USD"
        assert data.settings.vault_lock_enabled is False
        assert data.settings.terms_accepted is False
        assert data.settings.monthly_budget_limit == 5000
        assert data.revision == 0

    def test_document_keys(self):
        """Test the top-level persisted shape."""
        data = UserData.create_initial(base_currency="GBP", user_name="Ada")
        document = data.to_document()
        assert set(document) >= {"entries", "goals", "lastSynced", "settings", "revision"}
        assert document["settings"]["currency"] == "GBP"
        assert document["settings"]["userName"] == "Ada"
        assert document["settings"]["biometricEnabled"] is False

    def test_document_round_trip(self):
        """Test that a saved document loads back identically."""
        data = UserData.create_initial().model_copy(update={
            "entries": [FinanceEntry(type=EntryType.ASSET, name="Cash", amount=10, currency="EUR")],
            "goals": [Goal(name="Trip", target_amount=500, category=GoalCategory.TRAVEL)],
            "exchange_rates": {"USD": 1.0, "EUR": 0.92},
            "legacy": LegacyProfile.create("Grace"),
            "revision": 7,
        })
        loaded = UserData.from_document(data.to_document())
        assert loaded == data

    def test_document_with_infinite_amount_rejected(self):
        """Test that a JSON Infinity token fails validation instead of loading."""
        document = json.loads(
            '{"entries": [{"id": "e1", "type": "ASSET", "name": "Cash", "amount": Infinity}]}'
        )
        with pytest.raises(ValidationError):
            UserData.from_document(document)

    def test_document_round_trip_keeps_numbers(self):
        data = UserData(
            entries=[FinanceEntry(type=EntryType.ASSET, name="Cash", amount=1e12)],
            exchange_rates={"USD": 1.0, "JPY": 157.3},
        )
        document = json.loads(data.to_json())
        assert document["entries"][0]["amount"] == 1e12
        assert UserData.from_document(document) == data

    def test_old_document_without_optional_sections(self):
        """Test that missing goals, settings and revision take defaults."""
        loaded = UserData.from_document({
            "entries": [{"id": "e1", "type": "EXPENSE", "name": "Lunch", "amount": 12}],
            "lastSynced": "2025-01-01T00:00:00.000Z",
        })
        assert loaded.goals == []
        assert loaded.settings == VaultSettings()
        assert loaded.revision == 0
        assert loaded.entries[0].name == "Lunch"

    def test_find_entry_and_goal(self):
        entry = FinanceEntry(id="e1", type=EntryType.ASSET, name="Cash", amount=1)
        goal = Goal(id="g1", name="Trip", target_amount=10)
        data = UserData(entries=[entry], goals=[goal])
        assert data.find_entry("e1") == entry
        assert data.find_goal("g1") == goal
        assert data.find_entry("missing") is None


class TestLegacyProtocol:
    """Tests for recovery passkeys."""

    def test_passkey_shape(self):
        """Test 4-4-4-4 grouping from the fixed alphabet."""
        for _ in range(50):
            passkey = generate_passkey()
            groups = passkey.split("-")
            assert [len(g) for g in groups] == [4, 4, 4, 4]
            assert all(c in PASSKEY_ALPHABET for c in "".join(groups))

    def test_alphabet_excludes_ambiguous_characters(self):
        assert len(PASSKEY_ALPHABET) == 32
        assert not set("IO01") & set(PASSKEY_ALPHABET)

    def test_normalize(self):
        assert normalize_passkey(" abcd-efgh jkmn-pqrs ") == "ABCDEFGHJKMNPQRS"

    def test_verify_ignores_case_hyphens_and_spaces(self):
        """Test passkey comparison leniency."""
        expected = "ABCD-EFGH-JKMN-PQRS"
        assert verify_passkey("abcdefghjkmnpqrs", expected)
        assert verify_passkey("abcd efgh jkmn pqrs", expected)
        assert verify_passkey("ABCD-EFGH-JKMN-PQRS", expected)

    def test_verify_rejects_wrong_or_empty(self):
        expected = "ABCD-EFGH-JKMN-PQRS"
        assert not verify_passkey("ABCD-EFGH-JKMN-PQRT", expected)
        assert not verify_passkey("", expected)
        assert not verify_passkey("ABCD", "")

    def test_profile_create(self):
        """Test LegacyProfile.create generates a usable passkey."""
        profile = LegacyProfile.create("Grace")
        assert profile.successor_name == "Grace"
        assert profile.is_configured is True
        assert profile.unlocks_with(profile.recovery_passkey.lower())


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.ENTRY_ADDED,
            description="Entry added",
        )
        assert event.event_type == AuditEventType.ENTRY_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.VAULT_SAVED,
            description="Vault saved",
            details={"revision": 3},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "vault_saved"
        assert log_dict["details"]["revision"] == 3

    def test_builder_entry_added(self):
        """Test AuditEventBuilder.entry_added."""
        event = AuditEventBuilder.entry_added("e1", "Rent", revision=4)
        assert event.event_type == AuditEventType.ENTRY_ADDED
        assert event.entity_id == "e1"
        assert event.is_user_action is True

    def test_builder_save_failed_is_error(self):
        event = AuditEventBuilder.save_failed(5, "drive", "quota exceeded")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "quota exceeded"

    def test_builder_attachment_without_reference(self):
        """Test that a missing reference is recorded as a failed archive."""
        event = AuditEventBuilder.attachment_archived(None, "Bank")
        assert event.event_type == AuditEventType.ATTACHMENT_FAILED
        assert event.severity == AuditSeverity.WARNING
