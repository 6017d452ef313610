"""
Embedded Database Storage (guest mode)

The default mode: no account, no folder, everything in the local
key-value store. The vault lives under one fixed key; each archived
statement is its own record so the vault document stays small.
"""

from typing import Optional

import structlog

from finvault.config import get_settings
from finvault.models.finance import UserData
from finvault.services.storage.interface import (
    NotFoundError,
    StorageBackend,
    StorageError,
    StorageMode,
    archive_file_name,
    parse_vault_document,
)
from finvault.services.storage.kv_store import LocalKeyValueStore


logger = structlog.get_logger(__name__)

ATTACHMENT_SCHEME = "idb://"


class EmbeddedDbBackend(StorageBackend):
    """Vault persisted in the local key-value store."""

    mode = StorageMode.LOCAL_DB

    def __init__(
        self,
        store: Optional[LocalKeyValueStore] = None,
        vault_key: Optional[str] = None,
    ):
        super().__init__()
        self._store = store or LocalKeyValueStore()
        self._vault_key = vault_key or get_settings().local.vault_key

    @property
    def store(self) -> LocalKeyValueStore:
        return self._store

    async def login(self) -> None:
        """Guest mode needs no consent, only an openable database."""
        await self._store.initialize()

    async def find_vault(self) -> Optional[str]:
        if await self._store.get(self._vault_key) is None:
            return None
        return self._vault_key

    async def save_data(self, data: UserData) -> None:
        await self._store.save(self._vault_key, data.to_document())

    async def download_data(self, reference: Optional[str] = None) -> UserData:
        document = await self._store.get(reference or self._vault_key)
        if document is None:
            raise NotFoundError("Vault not found in local storage")
        return parse_vault_document(document)

    async def archive_attachment(
        self,
        base64_data: str,
        mime_type: str,
        account_name: str,
        date: str,
    ) -> Optional[str]:
        blob_key = f"blob_{archive_file_name(date, mime_type)}"
        try:
            await self._store.save(
                blob_key,
                {"base64": base64_data, "mimeType": mime_type, "date": date},
            )
        except StorageError as e:
            logger.error("attachment_archive_failed", mode=self.mode.value, error=str(e))
            return None
        return f"{ATTACHMENT_SCHEME}{blob_key}"

    async def load_attachment(self, reference: str) -> Optional[dict]:
        """Fetch an archived statement record by its idb:// reference."""
        if not reference.startswith(ATTACHMENT_SCHEME):
            return None
        return await self._store.get(reference.removeprefix(ATTACHMENT_SCHEME))
