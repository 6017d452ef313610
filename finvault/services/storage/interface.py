"""
Abstract Storage Interface

DESIGN DECISION: We define one abstract interface for vault storage
with one concrete class per storage mode. The mode is picked once at
login and the controller keeps a single handle for the session.
This allows us to:
1. Use a local database as the zero-setup guest mode
2. Keep the vault in a folder the user controls
3. Mirror it to Google Drive
4. Use a fake backend in tests

Every save overwrites the whole vault document. There is no delta
write in any mode.
"""

import asyncio
import random
import string
from abc import ABC, abstractmethod
from datetime import date as date_type
from enum import Enum
from mimetypes import guess_extension
from typing import Any, Optional

from pydantic import ValidationError

from finvault.models.finance import MONTH_KEY_PATTERN, FinanceEntry, UserData


class StorageMode(str, Enum):
    """Storage mode selected at login, fixed for the session."""
    DRIVE = "drive"
    LOCAL_FS = "local-fs"
    LOCAL_DB = "local-db"


class StorageBackend(ABC):
    """
    Abstract interface for vault storage operations.

    Any storage implementation must implement these methods.
    """

    mode: StorageMode

    def __init__(self):
        # Serializes lookup-or-create of folders and documents
        self._create_lock = asyncio.Lock()

    @abstractmethod
    async def login(self) -> None:
        """
        Acquire whatever access the mode needs.

        Raises:
            ConfigurationError: Mode is not provisioned
            PermissionDeniedError: User declined access
            LoginTimeoutError: User did not answer in time
        """
        pass

    @abstractmethod
    async def find_vault(self) -> Optional[str]:
        """
        Locate the persisted vault document.

        Returns:
            A backend-specific reference, or None if nothing is saved yet
        """
        pass

    @abstractmethod
    async def save_data(self, data: UserData) -> None:
        """
        Persist the full vault document, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def download_data(self, reference: Optional[str] = None) -> UserData:
        """
        Load the persisted vault document.

        Args:
            reference: Result of find_vault(), looked up again if omitted

        Raises:
            NotFoundError: No vault has been saved yet
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def archive_attachment(
        self,
        base64_data: str,
        mime_type: str,
        account_name: str,
        date: str,
    ) -> Optional[str]:
        """
        Archive a scanned statement page.

        Never raises: any failure is logged and returns None, so a
        missing attachment never blocks the entry it belongs to.

        Returns:
            Attachment reference (fs://..., idb://... or a Drive file id)
        """
        pass

    async def export_tabular_mirror(
        self,
        entries: list[FinanceEntry],
        base_currency: str,
        mirror_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Rewrite the spreadsheet mirror of all entries.

        Only the Drive mode keeps a mirror; other modes return None.
        """
        return None


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConfigurationError(StorageError):
    """Backend is missing credentials it needs."""
    pass


class PermissionDeniedError(StorageError):
    """User declined (or never granted) access."""
    pass


class LoginTimeoutError(PermissionDeniedError):
    """User did not grant access within the allowed time."""
    pass


class NotFoundError(StorageError):
    """No persisted vault document exists yet."""
    pass


class StorageUnavailableError(StorageError):
    """The storage facility itself could not be opened."""
    pass


def parse_vault_document(document: Any) -> UserData:
    """
    Validate a loaded vault document.

    A corrupt document is a storage error, not a missing one: it must
    not be silently replaced by an empty vault.
    """
    if not document:
        raise NotFoundError("Vault document is empty")
    try:
        return UserData.from_document(document)
    except ValidationError as e:
        raise StorageError(f"Vault document is corrupt: {e}") from e


def archive_file_name(date: str, mime_type: str) -> str:
    """File name for an archived statement, e.g. Statement_2025-06-01_k3x9.png."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    extension = guess_extension(mime_type or "") or ".png"
    return f"Statement_{date}_{suffix}{extension}"


def month_of(date: str, today: Optional[date_type] = None) -> str:
    """Year-month folder name for an ISO date; the current month if it has none."""
    key = (date or "")[:7]
    if MONTH_KEY_PATTERN.match(key):
        return key
    return (today or date_type.today()).strftime("%Y-%m")


def check_path_segment(name: str) -> str:
    """
    Validate one folder or file name of an archive path.

    Raises:
        ValueError: If the name is empty, a dot name, or contains a separator
    """
    if not name or name in (".", "..") or any(sep in name for sep in ("/", "\\", "\x00")):
        raise ValueError(f"Invalid archive path segment: {name!r}")
    return name
