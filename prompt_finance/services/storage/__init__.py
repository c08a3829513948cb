"""Storage backends for application state and the audit log."""

from prompt_finance.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsStateStorage,
)
from prompt_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StateStorageInterface,
    StorageError,
)
from prompt_finance.services.storage.local_json import LocalJsonStateStorage

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsStateStorage",
    "LocalJsonStateStorage",
    "NotFoundError",
    "StateStorageInterface",
    "StorageError",
]
