"""
Google Drive Storage Implementation

DESIGN DECISION: Drive is the "mirror" mode because:
1. The vault sits in the user's own private Drive, not on our servers
2. Scanned statements are archived next to it in plain folders
3. A spreadsheet mirror lets the user audit entries without this app

TRADEOFFS:
- Lookups are by name, so duplicates are possible. When several files
  share a name the most recently modified one wins.
- Folder lookup-or-create is not atomic on Drive's side. We serialize it
  per backend, which covers concurrent archives within one session.
- No transactions: the vault document is replaced wholesale on each save.
"""

import asyncio
import base64
import binascii
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional
from uuid import uuid4

import gspread
import requests
import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2.credentials import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finvault.config import get_settings
from finvault.config.settings import GoogleDriveSettings
from finvault.models.finance import FinanceEntry, UserData
from finvault.services.storage.interface import (
    ConfigurationError,
    LoginTimeoutError,
    NotFoundError,
    PermissionDeniedError,
    StorageBackend,
    StorageError,
    StorageMode,
    archive_file_name,
    month_of,
    parse_vault_document,
)
from finvault.services.storage.mirror import build_mirror_csv


logger = structlog.get_logger(__name__)

FILES_URL = "https://www.googleapis.com/drive/v3/files"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
JSON_MIME_TYPE = "application/json"


class TransientDriveError(StorageError):
    """Network failure, rate limit or server error; safe to retry reads."""
    pass


class ConsentFlow(ABC):
    """
    The interactive OAuth consent step.

    The host application (browser popup, local redirect server, device
    code prompt...) implements this and hands back an access token.
    """

    @abstractmethod
    async def request_access_token(self, client_id: str, scopes: list[str]) -> str:
        """
        Ask the user to grant access.

        Raises:
            PermissionDeniedError: If the user declines
        """
        pass


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _multipart_related(
    metadata: dict[str, Any],
    content: bytes,
    content_type: str,
) -> tuple[bytes, str]:
    """Build a Drive multipart upload body: metadata part, then media part."""
    boundary = f"finvault-{uuid4().hex}"
    body = b"".join([
        f"--{boundary}\r\n".encode(),
        b"Content-Type: application/json; charset=UTF-8\r\n\r\n",
        json.dumps(metadata).encode("utf-8"),
        f"\r\n--{boundary}\r\n".encode(),
        f"Content-Type: {content_type}\r\n\r\n".encode(),
        content,
        f"\r\n--{boundary}--".encode(),
    ])
    return body, f"multipart/related; boundary={boundary}"


class DriveApiClient:
    """
    Low-level Drive v3 REST client.

    Blocking; the backend calls it from worker threads. Idempotent reads
    are retried, writes are not.
    """

    def __init__(self, credentials: Credentials, session: Optional[Any] = None):
        self._session = session or AuthorizedSession(credentials)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self._session.request(method, url, timeout=30, **kwargs)
        except requests.RequestException as e:
            raise TransientDriveError(f"Drive request failed: {e}") from e
        except GoogleAuthError as e:
            raise PermissionDeniedError(f"Drive credentials rejected: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Drive resource not found: {url}")
        if response.status_code in (401, 403):
            raise PermissionDeniedError(f"Drive access denied ({response.status_code})")
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientDriveError(f"Drive unavailable ({response.status_code})")
        if response.status_code >= 400:
            raise StorageError(
                f"Drive API error {response.status_code}: {response.text[:200]}"
            )
        return response

    @staticmethod
    def _file_id(response: requests.Response) -> str:
        try:
            file_id = response.json().get("id")
        except (ValueError, AttributeError) as e:
            raise StorageError(f"Unreadable Drive response: {e}") from e
        if not file_id:
            raise StorageError("Drive response carried no file id")
        return file_id

    @retry(
        retry=retry_if_exception_type(TransientDriveError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def list_files(
        self,
        name: str,
        parent_id: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> list[dict]:
        """Files with an exact name, most recently modified first."""
        query = f"name = '{_escape_query_value(name)}' and trashed = false"
        if parent_id:
            query += f" and '{_escape_query_value(parent_id)}' in parents"
        if mime_type:
            query += f" and mimeType = '{mime_type}'"

        response = self._request(
            "GET",
            FILES_URL,
            params={
                "q": query,
                "fields": "files(id, name, modifiedTime)",
                "orderBy": "modifiedTime desc",
                "spaces": "drive",
            },
        )
        return response.json().get("files", [])

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        metadata: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            metadata["parents"] = [parent_id]
        response = self._request("POST", FILES_URL, params={"fields": "id"}, json=metadata)
        return self._file_id(response)

    def upload(
        self,
        metadata: dict[str, Any],
        content: bytes,
        content_type: str,
        file_id: Optional[str] = None,
    ) -> str:
        """Create a file, or replace the content of file_id."""
        body, multipart_type = _multipart_related(metadata, content, content_type)
        response = self._request(
            "PATCH" if file_id else "POST",
            f"{UPLOAD_URL}/{file_id}" if file_id else UPLOAD_URL,
            params={"uploadType": "multipart", "fields": "id"},
            data=body,
            headers={"Content-Type": multipart_type},
        )
        return self._file_id(response)

    @retry(
        retry=retry_if_exception_type(TransientDriveError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def download_json(self, file_id: str) -> Any:
        response = self._request("GET", f"{FILES_URL}/{file_id}", params={"alt": "media"})
        try:
            return response.json()
        except ValueError as e:
            raise StorageError(f"Drive file {file_id} is not JSON: {e}") from e


class SpreadsheetMirrorWriter:
    """Writes the tabular mirror into a Google spreadsheet through gspread."""

    def __init__(self, credentials: Credentials):
        self._client = gspread.authorize(credentials)

    def write(self, csv_text: str, title: str, spreadsheet_id: Optional[str] = None) -> str:
        """
        Replace the spreadsheet content with csv_text.

        Creates the spreadsheet when no id is known, or when the known
        one has been deleted.
        """
        try:
            if spreadsheet_id:
                try:
                    self._client.import_csv(spreadsheet_id, csv_text.encode("utf-8"))
                    return spreadsheet_id
                except gspread.exceptions.APIError as e:
                    logger.warning(
                        "mirror_spreadsheet_unusable",
                        spreadsheet_id=spreadsheet_id,
                        error=str(e),
                    )
            spreadsheet = self._client.create(title)
            self._client.import_csv(spreadsheet.id, csv_text.encode("utf-8"))
            return spreadsheet.id
        except gspread.exceptions.GSpreadException as e:
            raise StorageError(f"Failed to write spreadsheet mirror: {e}") from e


class GoogleDriveBackend(StorageBackend):
    """
    Google Drive implementation of vault storage.

    The vault is one JSON file; statements are archived under
    <archive root>/<YYYY-MM>/<account>/.
    """

    mode = StorageMode.DRIVE

    def __init__(
        self,
        consent_flow: ConsentFlow,
        settings: Optional[GoogleDriveSettings] = None,
        api_factory: Callable[[Credentials], DriveApiClient] = DriveApiClient,
        mirror_factory: Callable[[Credentials], SpreadsheetMirrorWriter] = SpreadsheetMirrorWriter,
    ):
        super().__init__()
        self._consent_flow = consent_flow
        self._settings = settings or get_settings().google_drive
        self._api_factory = api_factory
        self._mirror_factory = mirror_factory
        self._api: Optional[DriveApiClient] = None
        self._mirror: Optional[SpreadsheetMirrorWriter] = None

    @property
    def is_authenticated(self) -> bool:
        return self._api is not None

    async def login(self) -> None:
        """
        Run the consent flow and open Drive/Sheets clients.

        The wait is abandoned after consent_timeout_seconds; the consent
        prompt itself is left to the host to tear down.
        """
        if not self._settings.is_configured:
            raise ConfigurationError("Google Drive integration not configured")

        try:
            token = await asyncio.wait_for(
                self._consent_flow.request_access_token(
                    self._settings.client_id,
                    self._settings.scopes,
                ),
                timeout=self._settings.consent_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise LoginTimeoutError("Login timed out") from e

        if not token:
            raise PermissionDeniedError("Consent flow returned no access token")

        credentials = Credentials(token=token, scopes=self._settings.scopes)
        self._api = self._api_factory(credentials)
        self._mirror = self._mirror_factory(credentials)
        logger.info("drive_login_succeeded")

    def _require_api(self) -> DriveApiClient:
        if self._api is None:
            raise PermissionDeniedError("Not logged in to Google Drive")
        return self._api

    async def _find_file(
        self,
        name: str,
        parent_id: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> Optional[str]:
        api = self._require_api()
        files = await asyncio.to_thread(api.list_files, name, parent_id, mime_type)
        return files[0]["id"] if files else None

    async def ensure_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        """Id of the named folder under parent_id, creating it if absent."""
        api = self._require_api()
        async with self._create_lock:
            existing = await self._find_file(name, parent_id, FOLDER_MIME_TYPE)
            if existing:
                return existing
            return await asyncio.to_thread(api.create_folder, name, parent_id)

    async def find_vault(self) -> Optional[str]:
        return await self._find_file(self._settings.vault_file_name)

    async def save_data(self, data: UserData) -> None:
        api = self._require_api()
        metadata = {"name": self._settings.vault_file_name, "mimeType": JSON_MIME_TYPE}
        content = data.to_json().encode("utf-8")
        async with self._create_lock:
            file_id = await self.find_vault()
            await asyncio.to_thread(api.upload, metadata, content, JSON_MIME_TYPE, file_id)

    async def download_data(self, reference: Optional[str] = None) -> UserData:
        api = self._require_api()
        file_id = reference or await self.find_vault()
        if file_id is None:
            raise NotFoundError("No vault document in Drive")
        document = await asyncio.to_thread(api.download_json, file_id)
        return parse_vault_document(document)

    async def archive_attachment(
        self,
        base64_data: str,
        mime_type: str,
        account_name: str,
        date: str,
    ) -> Optional[str]:
        file_name = archive_file_name(date, mime_type)
        try:
            api = self._require_api()
            content = base64.b64decode(base64_data, validate=True)
            root_id = await self.ensure_folder(self._settings.archive_root_name)
            month_id = await self.ensure_folder(month_of(date), root_id)
            account_id = await self.ensure_folder(account_name, month_id)
            return await asyncio.to_thread(
                api.upload,
                {"name": file_name, "parents": [account_id]},
                content,
                mime_type,
            )
        except (StorageError, binascii.Error, ValueError) as e:
            logger.error("attachment_archive_failed", mode=self.mode.value, error=str(e))
            return None

    async def export_tabular_mirror(
        self,
        entries: list[FinanceEntry],
        base_currency: str,
        mirror_id: Optional[str] = None,
    ) -> Optional[str]:
        if self._mirror is None:
            raise PermissionDeniedError("Not logged in to Google Drive")
        csv_text = build_mirror_csv(entries, base_currency)
        title = self._settings.mirror_sheet_name
        async with self._create_lock:
            sheet_id = mirror_id or await self._find_file(title, mime_type=SPREADSHEET_MIME_TYPE)
            return await asyncio.to_thread(self._mirror.write, csv_text, title, sheet_id)
