"""
Storage Services Package

Provides abstract store ports and concrete implementations.
The hosted backend is Supabase; the in-memory store backs tests and
local runs. Business logic depends only on the interfaces.
"""

from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    RelationshipStoreInterface,
    StorageError,
    StoreConnectionError,
)
from splitledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from splitledger.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    "RelationshipStoreInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # Supabase implementation
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseLedgerStore",
]
