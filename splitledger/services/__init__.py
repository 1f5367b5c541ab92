"""Services package."""

from splitledger.services.identity import CallerIdentity, require_caller
from splitledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
    RelationshipStoreInterface,
    StorageError,
    StoreConnectionError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseLedgerStore,
)

__all__ = [
    # Identity
    "CallerIdentity",
    "require_caller",
    # Storage services
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "LedgerStoreInterface",
    "NotFoundError",
    "RelationshipStoreInterface",
    "StorageError",
    "StoreConnectionError",
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseLedgerStore",
]
