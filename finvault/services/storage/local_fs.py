"""
Local Folder Storage

The user grants one directory; the vault JSON and the statement
archive live directly under it. No network calls.

Layout:
    <granted dir>/finvault_vault_v1.json
    <granted dir>/FinVault Archive/<YYYY-MM>/<account>/Statement_....png
"""

import asyncio
import base64
import binascii
import json
import os
from pathlib import Path
from typing import Optional

import structlog

from finvault.config import get_settings
from finvault.models.finance import UserData
from finvault.services.storage.interface import (
    NotFoundError,
    PermissionDeniedError,
    StorageBackend,
    StorageError,
    StorageMode,
    archive_file_name,
    check_path_segment,
    month_of,
    parse_vault_document,
)


logger = structlog.get_logger(__name__)

ATTACHMENT_SCHEME = "fs://"


class LocalFilesystemBackend(StorageBackend):
    """Vault persisted as files in a user-granted directory."""

    mode = StorageMode.LOCAL_FS

    def __init__(
        self,
        directory: Optional[Path] = None,
        vault_file_name: Optional[str] = None,
        archive_root_name: Optional[str] = None,
    ):
        super().__init__()
        settings = get_settings()
        self._requested_directory = directory or settings.local.fs_directory
        self._vault_file_name = vault_file_name or settings.google_drive.vault_file_name
        self._archive_root_name = archive_root_name or settings.google_drive.archive_root_name
        self._directory: Optional[Path] = None

    @property
    def directory(self) -> Path:
        if self._directory is None:
            raise PermissionDeniedError("Local folder access has not been granted")
        return self._directory

    def _grant(self) -> Path:
        if self._requested_directory is None:
            raise PermissionDeniedError("Local folder access is required for this mode")
        directory = Path(self._requested_directory).expanduser()
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PermissionDeniedError(f"Cannot use folder {directory}: {e}") from e
        if not os.access(directory, os.R_OK | os.W_OK):
            raise PermissionDeniedError(f"Read-write access denied for {directory}")
        return directory

    async def login(self) -> None:
        self._directory = await asyncio.to_thread(self._grant)
        logger.info("local_folder_granted", directory=str(self._directory))

    @property
    def _vault_path(self) -> Path:
        return self.directory / self._vault_file_name

    async def find_vault(self) -> Optional[str]:
        exists = await asyncio.to_thread(self._vault_path.is_file)
        return self._vault_file_name if exists else None

    async def save_data(self, data: UserData) -> None:
        try:
            await asyncio.to_thread(
                self._vault_path.write_text, data.to_json(), "utf-8"
            )
        except OSError as e:
            raise StorageError(f"Failed to write vault file: {e}") from e

    def _read_document(self, path: Path) -> dict:
        try:
            return json.loads(path.read_text("utf-8"))
        except FileNotFoundError as e:
            raise NotFoundError(f"No vault file at {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read vault file: {e}") from e

    async def download_data(self, reference: Optional[str] = None) -> UserData:
        path = self.directory / (reference or self._vault_file_name)
        document = await asyncio.to_thread(self._read_document, path)
        return parse_vault_document(document)

    def _write_attachment(self, folder: Path, file_name: str, content: bytes) -> None:
        # mkdir(exist_ok=True) is the folder lookup-or-create for this mode
        folder.mkdir(parents=True, exist_ok=True)
        (folder / file_name).write_bytes(content)

    async def archive_attachment(
        self,
        base64_data: str,
        mime_type: str,
        account_name: str,
        date: str,
    ) -> Optional[str]:
        file_name = archive_file_name(date, mime_type)
        month = month_of(date)
        try:
            for segment in (month, account_name, file_name):
                check_path_segment(segment)
            content = base64.b64decode(base64_data, validate=True)
            folder = self.directory / self._archive_root_name / month / account_name
            async with self._create_lock:
                await asyncio.to_thread(self._write_attachment, folder, file_name, content)
        except (OSError, StorageError, binascii.Error, ValueError) as e:
            logger.error("attachment_archive_failed", mode=self.mode.value, error=str(e))
            return None
        return f"{ATTACHMENT_SCHEME}{month}/{account_name}/{file_name}"

    def resolve_attachment(self, reference: str) -> Optional[Path]:
        """Filesystem path behind an fs:// reference."""
        if not reference.startswith(ATTACHMENT_SCHEME):
            return None
        segments = reference.removeprefix(ATTACHMENT_SCHEME).split("/")
        try:
            for segment in segments:
                check_path_segment(segment)
        except ValueError:
            return None
        return self.directory.joinpath(self._archive_root_name, *segments)
