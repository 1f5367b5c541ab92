"""
Supabase Store Implementation

DESIGN DECISION: The hosted backend is Supabase (Postgres behind PostgREST).
Row CRUD goes through table queries; everything that must be atomic
(creating a transaction with its splits, settling a split, recomputing a
relationship balance, group netting) is a Postgres function called via RPC.

TRADEOFFS:
- Every call is one HTTP request; the backend enforces timeouts
- Transient transport errors are retried, API errors are not
- Authorization is row-level security on the backend; the client only
  needs a session for the caller

Table names, column names and RPC names follow the hosted schema.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel, ValidationError
from supabase import AsyncClient, acreate_client
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitledger.config import get_settings
from splitledger.errors import AuthenticationError
from splitledger.models.audit import AuditEvent
from splitledger.models.splitting import (
    FinancialRelationship,
    Group,
    GroupBalance,
    GroupMember,
    IndividualContact,
    MemberRole,
    RelationshipFilter,
    RelationshipType,
    TransactionSplit,
    UnsettledSplit,
)
from splitledger.services.identity import CallerIdentity
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    RelationshipStoreInterface,
    StorageError,
    StoreConnectionError,
)


UNIQUE_VIOLATION = "23505"
NO_ROWS = "PGRST116"


def _translate_api_error(error: APIError, operation: str) -> StorageError:
    """Map a PostgREST error onto the store error hierarchy."""
    message = f"{operation}: {error.message}"
    if error.code == UNIQUE_VIOLATION:
        return DuplicateError(message)
    if error.code == NO_ROWS:
        return NotFoundError(message)
    return StorageError(message)


# Roster columns that older rows leave null.
MEMBER_COLUMN_DEFAULTS = {
    "user_name": "Unknown",
    "user_email": "",
    "is_registered_user": False,
    "role": MemberRole.MEMBER.value,
}


def _parse(model: type[BaseModel], row: dict[str, Any], operation: str):
    """Validate a backend row; a row that doesn't fit is a store error."""
    try:
        return model.model_validate(row)
    except ValidationError as e:
        raise StorageError(
            f"{operation}: unexpected {model.__name__} row ({e.error_count()} invalid fields)"
        ) from e


def _member_from_row(row: dict[str, Any], operation: str) -> GroupMember:
    row = dict(row)
    for column, default in MEMBER_COLUMN_DEFAULTS.items():
        if row.get(column) is None:
            row[column] = default
    return _parse(GroupMember, row, operation)


def _split_from_row(row: dict[str, Any], operation: str) -> TransactionSplit:
    row = dict(row)
    if row.get("is_guest") is None:
        row["is_guest"] = row.get("user_id") is None
    if row.get("is_paid") is None:
        row["is_paid"] = False
    return _parse(TransactionSplit, row, operation)


def _contact_from_row(row: dict[str, Any], operation: str) -> IndividualContact:
    row = dict(row)
    row["owner_id"] = row.pop("user_id", None)
    return _parse(IndividualContact, row, operation)


def _contact_updates_to_row(updates: dict[str, Any]) -> dict[str, Any]:
    row = dict(updates)
    if "owner_id" in row:
        row["user_id"] = row.pop("owner_id")
    return row


def _jsonable(updates: dict[str, Any]) -> dict[str, Any]:
    """Stringify UUIDs, Decimals and enums for the JSON body."""
    out = {}
    for key, value in updates.items():
        if isinstance(value, (UUID, Decimal)):
            out[key] = str(value)
        elif hasattr(value, "value"):
            out[key] = value.value
        else:
            out[key] = value
    return out


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles connection and provides retry logic for API calls.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        retry_attempts: Optional[int] = None,
    ):
        self._client: Optional[AsyncClient] = None
        settings = get_settings()
        if url is None or key is None:
            supabase_settings = settings.supabase
            url = url or supabase_settings.url
            key = key or supabase_settings.key
        self._url = url
        self._key = key
        self._retry_attempts = retry_attempts or settings.ledger.store_retry_attempts

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def connect(self) -> AsyncClient:
        """Create the async client on first use."""
        if self._client is None:
            try:
                self._client = await acreate_client(self._url, self._key)
            except Exception as e:
                raise StoreConnectionError(f"Failed to connect to Supabase: {e}") from e
        return self._client

    async def execute(self, builder, operation: str):
        """
        Execute a query/RPC builder with retries on transport errors.

        API errors (constraint violations, RLS denials) are not retried.
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=0.35, min=0.35, max=5),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    return await builder.execute()
        except APIError as e:
            raise _translate_api_error(e, operation) from e
        except httpx.HTTPError as e:
            raise StoreConnectionError(f"{operation}: {e}") from e

    async def table(self, name: str):
        client = await self.connect()
        return client.table(name)

    async def rpc(self, name: str, params: dict[str, Any]):
        client = await self.connect()
        return client.rpc(name, params)

    async def get_caller_identity(self) -> CallerIdentity:
        """Resolve the caller from the client's current session."""
        client = await self.connect()
        try:
            response = await client.auth.get_user()
        except Exception as e:
            raise AuthenticationError() from e
        if response is None or response.user is None:
            raise AuthenticationError()
        return CallerIdentity(
            user_id=UUID(str(response.user.id)),
            email=response.user.email,
        )


class SupabaseLedgerStore(LedgerStoreInterface, RelationshipStoreInterface):
    """
    Supabase implementation of the ledger and relationship ports.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def _rows(self, builder, operation: str) -> list[dict[str, Any]]:
        response = await self._client.execute(builder, operation)
        return response.data or []

    async def _first(self, builder, operation: str) -> Optional[dict[str, Any]]:
        rows = await self._rows(builder.limit(1), operation)
        return rows[0] if rows else None

    # -- groups ---------------------------------------------------------------

    async def insert_group(self, group: Group) -> Group:
        table = await self._client.table("groups")
        rows = await self._rows(
            table.insert(group.model_dump(mode="json")),
            "insert group",
        )
        return _parse(Group, rows[0], "insert group") if rows else group

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        table = await self._client.table("groups")
        row = await self._first(
            table.select("*").eq("id", str(group_id)),
            "get group",
        )
        return _parse(Group, row, "get group") if row else None

    async def list_groups(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[Group]:
        table = await self._client.table("groups")
        query = table.select("*").eq("created_by", str(owner_id))
        if active_only:
            query = query.eq("is_active", True)
        rows = await self._rows(query.order("updated_at", desc=True), "list groups")
        return [_parse(Group, row, "list groups") for row in rows]

    async def update_group(self, group_id: UUID, updates: dict[str, Any]) -> bool:
        table = await self._client.table("groups")
        rows = await self._rows(
            table.update(_jsonable(updates)).eq("id", str(group_id)),
            "update group",
        )
        if not rows:
            raise NotFoundError(f"Group not found: {group_id}")
        return True

    async def delete_group(self, group_id: UUID) -> bool:
        table = await self._client.table("groups")
        rows = await self._rows(table.delete().eq("id", str(group_id)), "delete group")
        return bool(rows)

    async def list_member_groups(self, user_id: UUID) -> list[Group]:
        table = await self._client.table("group_members")
        rows = await self._rows(
            table.select("group_id, groups:group_id(*)")
            .eq("user_id", str(user_id))
            .eq("is_active", True),
            "list member groups",
        )
        groups: dict[UUID, Group] = {}
        for row in rows:
            embedded = row.get("groups")
            if not embedded or not embedded.get("is_active"):
                continue
            group = _parse(Group, embedded, "list member groups")
            groups[group.id] = group
        return sorted(groups.values(), key=lambda g: g.updated_at, reverse=True)

    # -- members --------------------------------------------------------------

    async def insert_member(self, member: GroupMember) -> GroupMember:
        table = await self._client.table("group_members")
        rows = await self._rows(
            table.insert(member.model_dump(mode="json")),
            "insert group member",
        )
        return _member_from_row(rows[0], "insert group member") if rows else member

    async def find_member(
        self,
        group_id: UUID,
        user_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> Optional[GroupMember]:
        table = await self._client.table("group_members")
        query = table.select("*").eq("group_id", str(group_id)).eq("is_active", True)
        if user_id is not None:
            query = query.eq("user_id", str(user_id))
        elif email is not None:
            query = query.eq("user_email", email.lower())
        else:
            return None
        row = await self._first(query, "find group member")
        return _member_from_row(row, "find group member") if row else None

    async def list_members(
        self,
        group_id: UUID,
        active_only: bool = True,
    ) -> list[GroupMember]:
        table = await self._client.table("group_members")
        query = table.select("*").eq("group_id", str(group_id))
        if active_only:
            query = query.eq("is_active", True)
        rows = await self._rows(query.order("joined_at"), "list group members")
        return [_member_from_row(row, "list group members") for row in rows]

    async def update_member(
        self,
        group_id: UUID,
        member_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        table = await self._client.table("group_members")
        rows = await self._rows(
            table.update(_jsonable(updates))
            .eq("id", str(member_id))
            .eq("group_id", str(group_id)),
            "update group member",
        )
        if not rows:
            raise NotFoundError(f"Member not found: {member_id}")
        return True

    async def delete_member(self, group_id: UUID, member_id: UUID) -> bool:
        table = await self._client.table("group_members")
        rows = await self._rows(
            table.delete().eq("id", str(member_id)).eq("group_id", str(group_id)),
            "delete group member",
        )
        return bool(rows)

    # -- contacts -------------------------------------------------------------

    async def insert_contact(self, contact: IndividualContact) -> IndividualContact:
        table = await self._client.table("individual_contacts")
        row = contact.model_dump(mode="json")
        row["user_id"] = row.pop("owner_id")
        rows = await self._rows(table.insert(row), "insert contact")
        return _contact_from_row(rows[0], "insert contact") if rows else contact

    async def find_contact(
        self,
        owner_id: UUID,
        email: str,
    ) -> Optional[IndividualContact]:
        table = await self._client.table("individual_contacts")
        row = await self._first(
            table.select("*")
            .eq("user_id", str(owner_id))
            .eq("contact_email", email.lower()),
            "find contact",
        )
        return _contact_from_row(row, "find contact") if row else None

    async def list_contacts(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[IndividualContact]:
        table = await self._client.table("individual_contacts")
        query = table.select("*").eq("user_id", str(owner_id))
        if active_only:
            query = query.eq("is_active", True)
        rows = await self._rows(query.order("created_at", desc=True), "list contacts")
        return [_contact_from_row(row, "list contacts") for row in rows]

    async def update_contact(
        self,
        owner_id: UUID,
        contact_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        table = await self._client.table("individual_contacts")
        rows = await self._rows(
            table.update(_jsonable(_contact_updates_to_row(updates)))
            .eq("id", str(contact_id))
            .eq("user_id", str(owner_id)),
            "update contact",
        )
        if not rows:
            raise NotFoundError(f"Contact not found: {contact_id}")
        return True

    # -- splits ---------------------------------------------------------------

    async def get_split_relationship_id(self, split_id: UUID) -> Optional[UUID]:
        table = await self._client.table("transaction_splits")
        row = await self._first(
            table.select("relationship_id").eq("id", str(split_id)),
            "get split relationship",
        )
        if row is None:
            raise NotFoundError(f"Split not found: {split_id}")
        relationship_id = row.get("relationship_id")
        return UUID(str(relationship_id)) if relationship_id else None

    async def list_group_splits(
        self,
        group_id: UUID,
        unpaid_only: bool = True,
    ) -> list[TransactionSplit]:
        table = await self._client.table("transaction_splits")
        query = table.select("*").eq("group_id", str(group_id))
        if unpaid_only:
            query = query.eq("is_paid", False)
        rows = await self._rows(query, "list group splits")
        return [_split_from_row(row, "list group splits") for row in rows]

    async def list_transaction_splits(
        self,
        transaction_id: UUID,
    ) -> list[TransactionSplit]:
        table = await self._client.table("transaction_splits")
        rows = await self._rows(
            table.select("*").eq("transaction_id", str(transaction_id)),
            "list transaction splits",
        )
        return [_split_from_row(row, "list transaction splits") for row in rows]

    async def create_transaction_with_splits(
        self,
        transaction_fields: dict[str, Any],
        split_rows: list[dict[str, Any]],
    ) -> UUID:
        builder = await self._client.rpc(
            "create_transaction_with_splits",
            {"p_transaction_data": transaction_fields, "p_splits": split_rows},
        )
        response = await self._client.execute(builder, "create transaction with splits")
        if not response.data:
            raise StorageError("create transaction with splits: no id returned")
        return UUID(str(response.data))

    async def settle_transaction_split(
        self,
        split_id: UUID,
        settlement_method: str,
        notes: Optional[str] = None,
    ) -> bool:
        builder = await self._client.rpc(
            "settle_transaction_split",
            {
                "p_split_id": str(split_id),
                "p_settlement_method": settlement_method,
                "p_notes": notes,
            },
        )
        response = await self._client.execute(builder, "settle transaction split")
        return bool(response.data)

    async def get_group_balances(self, group_id: UUID) -> list[GroupBalance]:
        builder = await self._client.rpc("get_group_balances", {"p_group_id": str(group_id)})
        response = await self._client.execute(builder, "get group balances")
        return [
            _parse(GroupBalance, row, "get group balances") for row in response.data or []
        ]

    async def get_unsettled_splits(self, user_id: UUID) -> list[UnsettledSplit]:
        builder = await self._client.rpc(
            "get_user_unsettled_splits",
            {"p_user_id": str(user_id)},
        )
        response = await self._client.execute(builder, "get unsettled splits")
        return [
            _parse(UnsettledSplit, row, "get unsettled splits") for row in response.data or []
        ]

    # -- relationships --------------------------------------------------------

    async def get_relationship(
        self,
        relationship_id: UUID,
    ) -> Optional[FinancialRelationship]:
        table = await self._client.table("financial_relationships")
        row = await self._first(
            table.select("*").eq("id", str(relationship_id)),
            "get relationship",
        )
        return _parse(FinancialRelationship, row, "get relationship") if row else None

    async def get_relationship_with_user(
        self,
        user_id: UUID,
        related_user_id: UUID,
    ) -> Optional[FinancialRelationship]:
        table = await self._client.table("financial_relationships")
        row = await self._first(
            table.select("*")
            .eq("user_id", str(user_id))
            .eq("related_user_id", str(related_user_id))
            .eq("is_active", True),
            "get relationship with user",
        )
        return _parse(FinancialRelationship, row, "get relationship with user") if row else None

    async def create_or_get_relationship(
        self,
        user_id: UUID,
        related_user_id: UUID,
        relationship_type: RelationshipType,
    ) -> FinancialRelationship:
        # The procedure takes the owning side from the session (auth.uid()),
        # which row-level security ties to user_id.
        builder = await self._client.rpc(
            "create_or_get_financial_relationship",
            {
                "p_related_user_id": str(related_user_id),
                "p_relationship_type": relationship_type.value,
            },
        )
        response = await self._client.execute(builder, "create or get relationship")
        relationship = await self.get_relationship(UUID(str(response.data)))
        if relationship is None:
            raise NotFoundError(f"Relationship vanished after creation: {response.data}")
        return relationship

    async def update_relationship_balance(self, relationship_id: UUID) -> Decimal:
        builder = await self._client.rpc(
            "update_financial_relationship_balance",
            {"p_relationship_id": str(relationship_id)},
        )
        response = await self._client.execute(builder, "update relationship balance")
        return Decimal(str(response.data if response.data is not None else 0))

    async def list_relationships(
        self,
        user_id: UUID,
        balance_filter: RelationshipFilter = RelationshipFilter.ALL,
    ) -> list[FinancialRelationship]:
        table = await self._client.table("financial_relationships")
        query = table.select("*").eq("user_id", str(user_id)).eq("is_active", True)
        if balance_filter == RelationshipFilter.POSITIVE:
            query = query.gt("total_amount", 0)
        elif balance_filter == RelationshipFilter.NEGATIVE:
            query = query.lt("total_amount", 0)
        rows = await self._rows(query.order("updated_at", desc=True), "list relationships")
        return [_parse(FinancialRelationship, row, "list relationships") for row in rows]


class SupabaseAuditStorage(AuditStorageInterface):
    """
    Supabase implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(
        self,
        client: Optional[SupabaseClient] = None,
        table_name: Optional[str] = None,
    ):
        self._client = client or SupabaseClient()
        self._table_name = table_name or get_settings().supabase.audit_table

    async def append_event(self, event: AuditEvent) -> bool:
        table = await self._client.table(self._table_name)
        await self._client.execute(table.insert(event.to_store_row()), "append audit event")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        table = await self._client.table(self._table_name)
        response = await self._client.execute(
            table.select("*")
            .eq("correlation_id", str(correlation_id))
            .order("timestamp"),
            "get audit events",
        )
        return [_parse(AuditEvent, row, "get audit events") for row in response.data or []]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        table = await self._client.table(self._table_name)
        response = await self._client.execute(
            table.select("*").order("timestamp", desc=True).limit(limit),
            "get recent audit events",
        )
        return [_parse(AuditEvent, row, "get recent audit events") for row in response.data or []]
