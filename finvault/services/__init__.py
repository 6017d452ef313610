"""Services package."""

from finvault.services.currency import (
    CurrencyNormalizer,
    convert_to_base,
    distinct_currencies,
    normalize_rate_table,
)
from finvault.services.storage import (
    ConfigurationError,
    LoginTimeoutError,
    NotFoundError,
    PermissionDeniedError,
    StorageBackend,
    StorageError,
    StorageMode,
    StorageUnavailableError,
    create_backend,
)

__all__ = [
    # Currency
    "CurrencyNormalizer",
    "convert_to_base",
    "distinct_currencies",
    "normalize_rate_table",
    # Storage
    "ConfigurationError",
    "LoginTimeoutError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageBackend",
    "StorageError",
    "StorageMode",
    "StorageUnavailableError",
    "create_backend",
]
