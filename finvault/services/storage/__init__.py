"""
Storage Services Package

One abstract vault backend with three modes: the embedded database
(guest mode, default), a user-granted local folder, and Google Drive.
The mode is chosen at login and does not change for the session.
"""

from finvault.services.storage.interface import (
    ConfigurationError,
    LoginTimeoutError,
    NotFoundError,
    PermissionDeniedError,
    StorageBackend,
    StorageError,
    StorageMode,
    StorageUnavailableError,
)
from finvault.services.storage.kv_store import LocalKeyValueStore
from finvault.services.storage.embedded_db import EmbeddedDbBackend
from finvault.services.storage.local_fs import LocalFilesystemBackend
from finvault.services.storage.google_drive import (
    ConsentFlow,
    DriveApiClient,
    GoogleDriveBackend,
    SpreadsheetMirrorWriter,
)
from finvault.services.storage.mirror import build_mirror_csv


def create_backend(mode: StorageMode, **kwargs) -> StorageBackend:
    """
    Build the backend for a storage mode.

    Keyword arguments go to the backend constructor; Drive mode requires
    consent_flow.
    """
    mode = StorageMode(mode)
    if mode is StorageMode.DRIVE:
        return GoogleDriveBackend(**kwargs)
    if mode is StorageMode.LOCAL_FS:
        return LocalFilesystemBackend(**kwargs)
    return EmbeddedDbBackend(**kwargs)


__all__ = [
    # Interface
    "StorageBackend",
    "StorageMode",
    "create_backend",
    # Exceptions
    "ConfigurationError",
    "LoginTimeoutError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageError",
    "StorageUnavailableError",
    # Implementations
    "ConsentFlow",
    "DriveApiClient",
    "EmbeddedDbBackend",
    "GoogleDriveBackend",
    "LocalFilesystemBackend",
    "LocalKeyValueStore",
    "SpreadsheetMirrorWriter",
    # Mirror
    "build_mirror_csv",
]
