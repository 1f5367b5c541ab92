"""
In-Memory Store Implementation

Implements the ledger, relationship and audit ports in process memory.
Used by the test-suite and for local runs without a hosted backend.

It mirrors the hosted schema's guarantees that the ledger relies on:
- create_transaction_with_splits is all-or-nothing (rows are staged,
  checked, then committed in one step)
- (owner_id, contact_email) is unique across active and inactive contacts
- relationship balances are recomputed from split rows, never incremented
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import ValidationError

from splitledger.models.audit import AuditEvent
from splitledger.models.splitting import (
    FinancialRelationship,
    Group,
    GroupBalance,
    GroupMember,
    IndividualContact,
    RelationshipFilter,
    RelationshipType,
    SettlementMethod,
    TransactionSplit,
    UnsettledSplit,
    round_money,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    NotFoundError,
    RelationshipStoreInterface,
    StorageError,
)


def _apply(model, updates: dict[str, Any], touch: bool = True):
    """Return a validated copy of model with updates applied."""
    data = model.model_dump()
    data.update(updates)
    if touch and "updated_at" in data:
        data["updated_at"] = datetime.utcnow()
    return type(model).model_validate(data)


class InMemoryLedgerStore(LedgerStoreInterface, RelationshipStoreInterface):
    """
    Dictionary-backed ledger store.

    One instance holds one "database". It is not thread-safe; the ledger
    runs one logical flow per request.
    """

    def __init__(self, currency: str = "INR"):
        self._currency = currency
        self.groups: dict[UUID, Group] = {}
        self.members: dict[UUID, GroupMember] = {}
        self.contacts: dict[UUID, IndividualContact] = {}
        self.transactions: dict[UUID, dict[str, Any]] = {}
        self.splits: dict[UUID, TransactionSplit] = {}
        self.relationships: dict[UUID, FinancialRelationship] = {}

    # -- groups ---------------------------------------------------------------

    async def insert_group(self, group: Group) -> Group:
        if group.id in self.groups:
            raise DuplicateError(f"Group already exists: {group.id}")
        self.groups[group.id] = group
        return group

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        return self.groups.get(group_id)

    async def list_groups(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[Group]:
        groups = [
            g for g in self.groups.values()
            if g.created_by == owner_id and (g.is_active or not active_only)
        ]
        groups.sort(key=lambda g: g.updated_at, reverse=True)
        return groups

    async def update_group(self, group_id: UUID, updates: dict[str, Any]) -> bool:
        group = self.groups.get(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        try:
            self.groups[group_id] = _apply(group, updates)
        except ValidationError as e:
            raise StorageError(f"Invalid group update: {e}") from e
        return True

    async def delete_group(self, group_id: UUID) -> bool:
        if self.groups.pop(group_id, None) is None:
            return False
        for member_id in [m.id for m in self.members.values() if m.group_id == group_id]:
            del self.members[member_id]
        return True

    async def list_member_groups(self, user_id: UUID) -> list[Group]:
        group_ids = {
            m.group_id for m in self.members.values()
            if m.user_id == user_id and m.is_active
        }
        groups = [
            self.groups[group_id] for group_id in group_ids
            if group_id in self.groups and self.groups[group_id].is_active
        ]
        groups.sort(key=lambda g: g.updated_at, reverse=True)
        return groups

    # -- members --------------------------------------------------------------

    async def insert_member(self, member: GroupMember) -> GroupMember:
        if member.group_id not in self.groups:
            raise StorageError(f"Unknown group: {member.group_id}")
        for existing in self.members.values():
            if (
                existing.group_id == member.group_id
                and existing.user_id == member.user_id
            ):
                raise DuplicateError(
                    f"duplicate key value violates unique constraint "
                    f"(group_id, user_id)=({member.group_id}, {member.user_id})"
                )
        self.members[member.id] = member
        return member

    async def find_member(
        self,
        group_id: UUID,
        user_id: Optional[UUID] = None,
        email: Optional[str] = None,
    ) -> Optional[GroupMember]:
        for member in self.members.values():
            if member.group_id != group_id or not member.is_active:
                continue
            if user_id is not None and member.user_id == user_id:
                return member
            if email is not None and member.user_email == email.lower():
                return member
        return None

    async def list_members(
        self,
        group_id: UUID,
        active_only: bool = True,
    ) -> list[GroupMember]:
        members = [
            m for m in self.members.values()
            if m.group_id == group_id and (m.is_active or not active_only)
        ]
        members.sort(key=lambda m: m.joined_at)
        return members

    async def update_member(
        self,
        group_id: UUID,
        member_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        member = self.members.get(member_id)
        if member is None or member.group_id != group_id:
            raise NotFoundError(f"Member not found: {member_id}")
        try:
            self.members[member_id] = _apply(member, updates, touch=False)
        except ValidationError as e:
            raise StorageError(f"Invalid member update: {e}") from e
        return True

    async def delete_member(self, group_id: UUID, member_id: UUID) -> bool:
        member = self.members.get(member_id)
        if member is None or member.group_id != group_id:
            return False
        del self.members[member_id]
        return True

    # -- contacts -------------------------------------------------------------

    def _email_taken(
        self,
        owner_id: UUID,
        email: str,
        exclude: Optional[UUID] = None,
    ) -> bool:
        return any(
            c.owner_id == owner_id
            and c.contact_email == email.lower()
            and c.id != exclude
            for c in self.contacts.values()
        )

    async def insert_contact(self, contact: IndividualContact) -> IndividualContact:
        if self._email_taken(contact.owner_id, contact.contact_email):
            raise DuplicateError(
                "duplicate key value violates unique constraint "
                "individual_contacts_user_id_contact_email_key"
            )
        self.contacts[contact.id] = contact
        return contact

    async def find_contact(
        self,
        owner_id: UUID,
        email: str,
    ) -> Optional[IndividualContact]:
        for contact in self.contacts.values():
            if contact.owner_id == owner_id and contact.contact_email == email.lower():
                return contact
        return None

    async def list_contacts(
        self,
        owner_id: UUID,
        active_only: bool = True,
    ) -> list[IndividualContact]:
        contacts = [
            c for c in self.contacts.values()
            if c.owner_id == owner_id and (c.is_active or not active_only)
        ]
        contacts.sort(key=lambda c: c.created_at, reverse=True)
        return contacts

    async def update_contact(
        self,
        owner_id: UUID,
        contact_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        contact = self.contacts.get(contact_id)
        if contact is None or contact.owner_id != owner_id:
            raise NotFoundError(f"Contact not found: {contact_id}")
        new_email = updates.get("contact_email")
        if new_email and self._email_taken(owner_id, new_email, exclude=contact_id):
            raise DuplicateError(
                "duplicate key value violates unique constraint "
                "individual_contacts_user_id_contact_email_key"
            )
        try:
            self.contacts[contact_id] = _apply(contact, updates)
        except ValidationError as e:
            raise StorageError(f"Invalid contact update: {e}") from e
        return True

    # -- splits ---------------------------------------------------------------

    async def get_split_relationship_id(self, split_id: UUID) -> Optional[UUID]:
        split = self.splits.get(split_id)
        if split is None:
            raise NotFoundError(f"Split not found: {split_id}")
        return split.relationship_id

    async def list_group_splits(
        self,
        group_id: UUID,
        unpaid_only: bool = True,
    ) -> list[TransactionSplit]:
        return [
            s for s in self.splits.values()
            if s.group_id == group_id and not (unpaid_only and s.is_paid)
        ]

    async def list_transaction_splits(
        self,
        transaction_id: UUID,
    ) -> list[TransactionSplit]:
        return [s for s in self.splits.values() if s.transaction_id == transaction_id]

    async def create_transaction_with_splits(
        self,
        transaction_fields: dict[str, Any],
        split_rows: list[dict[str, Any]],
    ) -> UUID:
        transaction_id = uuid4()

        # Stage everything first; nothing is visible until all rows pass.
        staged: list[TransactionSplit] = []
        for row in split_rows:
            group_id = row.get("group_id")
            if group_id is not None and UUID(str(group_id)) not in self.groups:
                raise StorageError(f"Unknown group: {group_id}")
            relationship_id = row.get("relationship_id")
            if (
                relationship_id is not None
                and UUID(str(relationship_id)) not in self.relationships
            ):
                raise StorageError(f"Unknown relationship: {relationship_id}")
            try:
                staged.append(TransactionSplit(
                    id=uuid4(),
                    transaction_id=transaction_id,
                    **row,
                ))
            except ValidationError as e:
                raise StorageError(f"Invalid split row: {e}") from e

        self.transactions[transaction_id] = {
            **transaction_fields,
            "id": str(transaction_id),
            "created_at": datetime.utcnow().isoformat(),
        }
        for split in staged:
            self.splits[split.id] = split
        return transaction_id

    async def settle_transaction_split(
        self,
        split_id: UUID,
        settlement_method: str,
        notes: Optional[str] = None,
    ) -> bool:
        split = self.splits.get(split_id)
        if split is None:
            raise NotFoundError(f"Split not found: {split_id}")
        if split.is_paid:
            return False
        updates = {
            "is_paid": True,
            "settled_at": datetime.utcnow(),
            "settlement_method": SettlementMethod(settlement_method),
        }
        if notes is not None:
            updates["notes"] = notes
        self.splits[split_id] = split.model_copy(update=updates)
        return True

    async def get_group_balances(self, group_id: UUID) -> list[GroupBalance]:
        paid: dict[UUID, Decimal] = defaultdict(Decimal)
        owed: dict[UUID, Decimal] = defaultdict(Decimal)
        roster = await self.list_members(group_id)
        by_email = {m.user_email: m.user_id for m in roster if m.user_email}

        def owner_key(split: TransactionSplit) -> Optional[UUID]:
            if split.is_guest:
                return by_email.get((split.guest_email or "").lower())
            return split.user_id

        def payer_key(split: TransactionSplit) -> Optional[UUID]:
            if split.paid_by is not None:
                return split.paid_by
            return by_email.get((split.paid_by_guest_email or "").lower())

        for split in self.splits.values():
            if split.group_id != group_id or split.is_paid:
                continue
            owner, payer = owner_key(split), payer_key(split)
            if owner is None or owner == payer:
                continue
            owed[owner] += split.share_amount
            if payer is not None:
                paid[payer] += split.share_amount

        return [
            GroupBalance(
                user_id=m.user_id,
                user_name=m.user_name,
                user_email=m.user_email or None,
                total_paid=round_money(paid[m.user_id]),
                total_owed=round_money(owed[m.user_id]),
                net_balance=round_money(paid[m.user_id] - owed[m.user_id]),
            )
            for m in roster
        ]

    async def get_unsettled_splits(self, user_id: UUID) -> list[UnsettledSplit]:
        results = []
        for split in self.splits.values():
            if split.user_id != user_id or split.is_paid or split.paid_by == user_id:
                continue
            transaction = self.transactions.get(split.transaction_id, {})
            group = self.groups.get(split.group_id) if split.group_id else None
            results.append(UnsettledSplit(
                split_id=split.id,
                transaction_id=split.transaction_id,
                transaction_name=transaction.get("name", "Transaction"),
                transaction_date=transaction.get("transaction_date"),
                share_amount=split.share_amount,
                group_name=group.name if group else None,
                paid_by_name=self._payer_name(split),
            ))
        return results

    def _payer_name(self, split: TransactionSplit) -> Optional[str]:
        if split.paid_by is None:
            return split.paid_by_guest_name
        for member in self.members.values():
            if member.user_id == split.paid_by:
                return member.user_name
        return None

    # -- relationships --------------------------------------------------------

    async def get_relationship(
        self,
        relationship_id: UUID,
    ) -> Optional[FinancialRelationship]:
        return self.relationships.get(relationship_id)

    async def get_relationship_with_user(
        self,
        user_id: UUID,
        related_user_id: UUID,
    ) -> Optional[FinancialRelationship]:
        for rel in self.relationships.values():
            if (
                rel.user_id == user_id
                and rel.related_user_id == related_user_id
                and rel.is_active
            ):
                return rel
        return None

    async def create_or_get_relationship(
        self,
        user_id: UUID,
        related_user_id: UUID,
        relationship_type: RelationshipType,
    ) -> FinancialRelationship:
        existing = await self.get_relationship_with_user(user_id, related_user_id)
        if existing is not None:
            return existing
        rel = FinancialRelationship(
            user_id=user_id,
            related_user_id=related_user_id,
            relationship_type=relationship_type,
            currency=self._currency,
        )
        self.relationships[rel.id] = rel
        return rel

    async def update_relationship_balance(self, relationship_id: UUID) -> Decimal:
        rel = self.relationships.get(relationship_id)
        if rel is None:
            raise NotFoundError(f"Relationship not found: {relationship_id}")

        balance = Decimal("0")
        for split in self.splits.values():
            if split.relationship_id != relationship_id or split.is_paid:
                continue
            if split.user_id == rel.related_user_id and split.paid_by == rel.user_id:
                balance += split.share_amount
            elif split.user_id == rel.user_id and split.paid_by == rel.related_user_id:
                balance -= split.share_amount

        balance = round_money(balance)
        self.relationships[relationship_id] = rel.model_copy(
            update={"total_amount": balance, "updated_at": datetime.utcnow()}
        )
        return balance

    async def list_relationships(
        self,
        user_id: UUID,
        balance_filter: RelationshipFilter = RelationshipFilter.ALL,
    ) -> list[FinancialRelationship]:
        rels = [
            r for r in self.relationships.values()
            if r.user_id == user_id and r.is_active
        ]
        if balance_filter == RelationshipFilter.POSITIVE:
            rels = [r for r in rels if r.total_amount > 0]
        elif balance_filter == RelationshipFilter.NEGATIVE:
            rels = [r for r in rels if r.total_amount < 0]
        rels.sort(key=lambda r: r.updated_at, reverse=True)
        return rels


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
