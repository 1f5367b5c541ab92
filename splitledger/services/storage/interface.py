"""
Abstract Store Interfaces

DESIGN DECISION: The ledger talks to its data store only through these
ports. This allows us to:
1. Run against the hosted backend (Supabase) in production
2. Use in-memory storage for tests and local runs
3. Keep split logic decoupled from row shapes and RPC spelling

The interfaces are intentionally small: row CRUD for the tables the
ledger owns, plus the atomic procedures it cannot express as row CRUD.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from splitledger.models.splitting import (
    FinancialRelationship,
    Group,
    GroupBalance,
    GroupMember,
    IndividualContact,
    RelationshipFilter,
    RelationshipType,
    TransactionSplit,
    UnsettledSplit,
)
from splitledger.models.audit import AuditEvent


class LedgerStoreInterface(ABC):
    """
    Abstract interface for split ledger storage.

    Any store implementation (Supabase, in-memory, ...) must implement
    these methods. Implementations raise StorageError subclasses; they
    never return error objects.
    """

    # -- groups ---------------------------------------------------------------

    @abstractmethod
    async def insert_group(self, group: Group) -> Group:
        """Insert a group row and return it as stored."""
        pass

    @abstractmethod
    async def get_group(self, group_id: UUID) -> Optional[Group]:
        pass

    @abstractmethod
    async def list_groups(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[Group]:
        """
        List groups created by owner_id.

        Returns:
            Groups ordered by updated_at, newest first
        """
        pass

    @abstractmethod
    async def update_group(self, group_id: UUID, updates: dict[str, Any]) -> bool:
        """
        Apply a partial update to a group.

        Raises:
            NotFoundError: If the group doesn't exist
        """
        pass

    @abstractmethod
    async def delete_group(self, group_id: UUID) -> bool:
        """Hard-delete a group and its roster."""
        pass

    @abstractmethod
    async def list_member_groups(self, user_id: UUID) -> list[Group]:
        """
        Active groups user_id is an active member of.

        Returns:
            Groups ordered by updated_at, newest first
        """
        pass

    # -- members --------------------------------------------------------------

    @abstractmethod
    async def insert_member(self, member: GroupMember) -> GroupMember:
        pass

    @abstractmethod
    async def find_member(
        self,
        group_id: UUID,
        user_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> Optional[GroupMember]:
        """
        Find an active member of a group by identity or by email.

        Exactly one of user_id / email should be given. Email matching is
        case-insensitive.
        """
        pass

    @abstractmethod
    async def list_members(
        self,
        group_id: UUID,
        active_only: bool = True,
    ) -> list[GroupMember]:
        """
        List a group's roster.

        Returns:
            Members ordered by joined_at, oldest first
        """
        pass

    @abstractmethod
    async def update_member(
        self,
        group_id: UUID,
        member_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        pass

    @abstractmethod
    async def delete_member(self, group_id: UUID, member_id: UUID) -> bool:
        pass

    # -- contacts -------------------------------------------------------------

    @abstractmethod
    async def insert_contact(self, contact: IndividualContact) -> IndividualContact:
        """
        Insert an address-book entry.

        Raises:
            DuplicateError: If (owner_id, contact_email) already exists
        """
        pass

    @abstractmethod
    async def find_contact(
        self,
        owner_id: UUID,
        email: str,
    ) -> Optional[IndividualContact]:
        """Find a contact by (owner, email), including soft-deleted ones."""
        pass

    @abstractmethod
    async def list_contacts(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[IndividualContact]:
        """Contacts ordered by created_at, newest first."""
        pass

    @abstractmethod
    async def update_contact(
        self,
        owner_id: UUID,
        contact_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        """
        Apply a partial update to a contact owned by owner_id.

        Raises:
            DuplicateError: If the new email collides with another contact
        """
        pass

    # -- splits ---------------------------------------------------------------

    @abstractmethod
    async def get_split_relationship_id(self, split_id: UUID) -> Optional[UUID]:
        """
        The relationship a split is linked to, if any.

        Reads only that column so a split can be settled whatever
        state its other columns are in.
        """
        pass

    @abstractmethod
    async def list_group_splits(
        self,
        group_id: UUID,
        unpaid_only: bool = True,
    ) -> list[TransactionSplit]:
        pass

    @abstractmethod
    async def list_transaction_splits(
        self,
        transaction_id: UUID,
    ) -> list[TransactionSplit]:
        pass

    @abstractmethod
    async def create_transaction_with_splits(
        self,
        transaction_fields: dict[str, Any],
        split_rows: list[dict[str, Any]],
    ) -> UUID:
        """
        Create a transaction and all of its split rows atomically.

        Either the transaction and every split exist afterwards, or
        nothing was written.

        Args:
            transaction_fields: Serialized TransactionDraft
            split_rows: Serialized SplitRow dicts

        Returns:
            ID of the new transaction

        Raises:
            StorageError: If the unit could not be written
        """
        pass

    @abstractmethod
    async def settle_transaction_split(
        self,
        split_id: UUID,
        settlement_method: str,
        notes: Optional[str] = None,
    ) -> bool:
        """Atomically mark a split as settled."""
        pass

    @abstractmethod
    async def get_group_balances(self, group_id: UUID) -> list[GroupBalance]:
        """
        Net balance per member of a group.

        The netting algorithm belongs to the store; the ledger only reads it.
        """
        pass

    @abstractmethod
    async def get_unsettled_splits(self, user_id: UUID) -> list[UnsettledSplit]:
        """Splits owed by user_id that are not settled yet."""
        pass


class RelationshipStoreInterface(ABC):
    """
    Abstract interface for bilateral financial relationships.

    The ledger only consumes relationships: it links splits to them and
    asks the store to recompute their cached balance.
    """

    @abstractmethod
    async def get_relationship(
        self,
        relationship_id: UUID,
    ) -> Optional[FinancialRelationship]:
        pass

    @abstractmethod
    async def get_relationship_with_user(
        self,
        user_id: UUID,
        related_user_id: UUID,
    ) -> Optional[FinancialRelationship]:
        """Active relationship from user_id to related_user_id, if any."""
        pass

    @abstractmethod
    async def create_or_get_relationship(
        self,
        user_id: UUID,
        related_user_id: UUID,
        relationship_type: RelationshipType,
    ) -> FinancialRelationship:
        pass

    @abstractmethod
    async def update_relationship_balance(self, relationship_id: UUID) -> Decimal:
        """
        Recompute a relationship's cached balance from its split rows.

        Must be idempotent: calling it twice yields the same balance.

        Returns:
            The new balance
        """
        pass

    @abstractmethod
    async def list_relationships(
        self,
        user_id: UUID,
        balance_filter: RelationshipFilter = RelationshipFilter.ALL,
    ) -> list[FinancialRelationship]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one submission, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
