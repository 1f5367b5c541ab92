"""
Flow tests for split submission and settlement.

Everything runs against the in-memory store. Store failures are injected
with small subclasses.
"""

import asyncio
import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.calculation import compute_custom_splits, compute_equal_splits
from splitledger.errors import (
    AuthenticationError,
    OperationFailedError,
    SplitValidationError,
)
from splitledger.models.audit import AuditEventType
from splitledger.models.splitting import (
    GuestParticipant,
    RegisteredParticipant,
    SettlementMethod,
    TransactionDraft,
)
from splitledger.orchestrator import SplitSubmissionFlow, create_app_components
from splitledger.registry import GroupRegistry
from splitledger.services.identity import CallerIdentity
from splitledger.services.storage import (
    InMemoryLedgerStore,
    StorageError,
    StoreConnectionError,
)


class LinkFailingStore(InMemoryLedgerStore):
    """Cannot create a relationship with one particular user."""

    def __init__(self, failing_user_id):
        super().__init__()
        self.failing_user_id = failing_user_id

    async def create_or_get_relationship(self, user_id, related_user_id, relationship_type):
        if related_user_id == self.failing_user_id:
            raise StorageError("relationship insert rejected")
        return await super().create_or_get_relationship(
            user_id, related_user_id, relationship_type,
        )


class RefreshFailingStore(InMemoryLedgerStore):
    """Balance refresh times out for one particular counterparty."""

    def __init__(self, failing_user_id):
        super().__init__()
        self.failing_user_id = failing_user_id

    async def update_relationship_balance(self, relationship_id):
        if self.relationships[relationship_id].related_user_id == self.failing_user_id:
            raise StoreConnectionError("balance refresh timed out")
        return await super().update_relationship_balance(relationship_id)


class CreateFailingStore(InMemoryLedgerStore):

    async def create_transaction_with_splits(self, transaction_fields, split_rows):
        raise StorageError("insert or update on table violates foreign key constraint")


def flow_for(store, caller, audit_logger=None):
    return SplitSubmissionFlow(
        store=store,
        caller=caller,
        relationship_store=store,
        audit_logger=audit_logger,
    )


def me(caller):
    return RegisteredParticipant(user_id=caller.user_id, email=caller.email)


class TestSubmit:

    def test_equal_split_persists_every_row(self, store, caller):
        friend = RegisteredParticipant(user_id=uuid4(), name="Meera")
        guest = GuestParticipant(name="Ravi")
        splits = compute_equal_splits(Decimal("90.00"), [me(caller), friend, guest])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("90.00"), name="Dinner"),
            splits,
        ))

        persisted = asyncio.run(store.list_transaction_splits(result.transaction_id))
        assert len(persisted) == 3
        assert all(s.paid_by == caller.user_id for s in persisted)
        assert sum(s.share_amount for s in persisted) == Decimal("90.00")

        transaction = store.transactions[result.transaction_id]
        assert transaction["metadata"] == {
            "split_count": 3, "split_type": "equal", "has_splits": True,
        }
        assert transaction["currency"] == "INR"

    def test_submit_returns_transaction_id(self, store, caller):
        splits = compute_equal_splits(Decimal("10"), [me(caller)])
        transaction_id = asyncio.run(flow_for(store, caller).submit(
            TransactionDraft(amount=Decimal("10"), name="Coffee"), splits,
        ))
        assert transaction_id in store.transactions

    def test_relationship_linked_and_refreshed(self, store, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        splits = compute_equal_splits(Decimal("90"), [me(caller), friend, GuestParticipant(name="Ravi")])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("90"), name="Dinner"), splits,
        ))

        friend_row = next(r for r in result.split_rows if r.user_id == friend.user_id)
        assert friend_row.relationship_id is not None
        relationship = store.relationships[friend_row.relationship_id]
        assert relationship.related_user_id == friend.user_id
        assert relationship.total_amount == Decimal("30.00")
        assert [o.succeeded for o in result.refresh_outcomes] == [True]

        # Caller's own row and the guest row are never linked.
        others = [r for r in result.split_rows if r.user_id != friend.user_id]
        assert all(r.relationship_id is None for r in others)

    def test_guest_payer_on_every_row(self, store, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        guest = GuestParticipant(name="Ravi", email="ravi@example.com", phone="98450")
        splits = compute_equal_splits(Decimal("60"), [me(caller), friend, guest])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("60"), name="Cab"),
            splits,
            paid_by_id=guest.local_id,
        ))

        persisted = asyncio.run(store.list_transaction_splits(result.transaction_id))
        assert len(persisted) == 3
        for split in persisted:
            assert split.paid_by is None
            assert split.paid_by_guest_name == "Ravi"
            assert split.paid_by_guest_email == "ravi@example.com"
            assert split.paid_by_guest_mobile == "98450"

    def test_registered_payer_other_than_caller(self, store, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        splits = compute_equal_splits(Decimal("40"), [me(caller), friend])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("40"), name="Movie"),
            splits,
            paid_by_id=friend.user_id,
        ))

        assert all(r.paid_by == friend.user_id for r in result.split_rows)

    def test_group_id_on_every_row(self, store, caller):
        registry = GroupRegistry(store, caller)
        group = asyncio.run(registry.create_group("Flat 4B"))
        splits = compute_equal_splits(Decimal("30"), [me(caller), GuestParticipant(name="Ravi")])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("30"), name="Groceries"),
            splits,
            group_id=group.id,
        ))

        assert all(r.group_id == group.id for r in result.split_rows)

    def test_invalid_splits_rejected_before_any_write(self, store, caller, audit_logger, audit_storage):
        friend = RegisteredParticipant(user_id=uuid4())
        splits = compute_custom_splits([(me(caller), Decimal("50")), (friend, Decimal("40"))])

        with pytest.raises(SplitValidationError) as exc_info:
            asyncio.run(flow_for(store, caller, audit_logger).submit(
                TransactionDraft(amount=Decimal("100"), name="Dinner"), splits,
            ))

        assert exc_info.value.errors == [
            "Split total (90) doesn't match transaction amount (100)"
        ]
        assert store.transactions == {}
        assert store.relationships == {}
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.SPLIT_VALIDATION_FAILED
        ]

    def test_requires_caller(self, store):
        splits = compute_equal_splits(Decimal("10"), [GuestParticipant(name="Ravi")])
        with pytest.raises(AuthenticationError):
            asyncio.run(flow_for(store, None).submit(
                TransactionDraft(amount=Decimal("10"), name="Tea"), splits,
            ))


class TestPartialFailure:

    def test_link_failure_leaves_split_unlinked(self, caller, audit_logger, audit_storage):
        a, b, c = (RegisteredParticipant(user_id=uuid4()) for _ in range(3))
        store = LinkFailingStore(failing_user_id=b.user_id)
        splits = compute_equal_splits(Decimal("90"), [a, b, c])

        result = asyncio.run(flow_for(store, caller, audit_logger).submit_detailed(
            TransactionDraft(amount=Decimal("90"), name="Dinner"), splits,
        ))

        links = {r.user_id: r.relationship_id for r in result.split_rows}
        assert links[a.user_id] is not None
        assert links[b.user_id] is None
        assert links[c.user_id] is not None
        assert len(asyncio.run(store.list_transaction_splits(result.transaction_id))) == 3

        event_types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.RELATIONSHIP_LINK_FAILED in event_types
        assert event_types[-1] == AuditEventType.TRANSACTION_CREATED

    def test_refresh_failure_does_not_fail_submission(self, caller):
        a, b = RegisteredParticipant(user_id=uuid4()), RegisteredParticipant(user_id=uuid4())
        store = RefreshFailingStore(failing_user_id=a.user_id)
        splits = compute_equal_splits(Decimal("50"), [me(caller), a, b])

        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("50"), name="Lunch"), splits,
        ))

        assert result.transaction_id in store.transactions
        assert len(result.refresh_outcomes) == 2
        failed = result.failed_refreshes
        assert len(failed) == 1
        assert "timed out" in failed[0].error

        b_link = next(r.relationship_id for r in result.split_rows if r.user_id == b.user_id)
        assert store.relationships[b_link].total_amount == Decimal("16.67")

    def test_store_failure_is_generic_and_writes_nothing(self, caller, audit_logger, audit_storage):
        store = CreateFailingStore()
        splits = compute_equal_splits(Decimal("20"), [me(caller), GuestParticipant(name="Ravi")])

        with pytest.raises(OperationFailedError, match="Failed to create split transaction") as exc_info:
            asyncio.run(flow_for(store, caller, audit_logger).submit(
                TransactionDraft(amount=Decimal("20"), name="Snacks"), splits,
            ))

        assert isinstance(exc_info.value.__cause__, StorageError)
        assert store.splits == {}
        assert audit_storage.events[-1].event_type == AuditEventType.STORE_ERROR

    def test_unknown_group_rolls_back_whole_batch(self, store, caller):
        splits = compute_equal_splits(Decimal("20"), [me(caller), GuestParticipant(name="Ravi")])

        with pytest.raises(OperationFailedError):
            asyncio.run(flow_for(store, caller).submit(
                TransactionDraft(amount=Decimal("20"), name="Snacks"),
                splits,
                group_id=uuid4(),
            ))

        assert store.transactions == {}
        assert store.splits == {}


class TestSettlement:

    def _submit_with_friend(self, store, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        splits = compute_equal_splits(Decimal("100"), [me(caller), friend])
        result = asyncio.run(flow_for(store, caller).submit_detailed(
            TransactionDraft(amount=Decimal("100"), name="Dinner"), splits,
        ))
        row = next(
            s for s in asyncio.run(store.list_transaction_splits(result.transaction_id))
            if s.user_id == friend.user_id
        )
        return friend, row

    def test_settle_refreshes_relationship(self, store, caller, audit_logger, audit_storage):
        _, row = self._submit_with_friend(store, caller)
        assert store.relationships[row.relationship_id].total_amount == Decimal("50.00")

        flow = flow_for(store, caller, audit_logger)
        assert asyncio.run(flow.settle_split(row.id, SettlementMethod.UPI)) is True

        settled = store.splits[row.id]
        assert settled.is_paid is True
        assert settled.settlement_method == SettlementMethod.UPI
        assert settled.settled_at is not None
        assert store.relationships[row.relationship_id].total_amount == Decimal("0.00")
        assert audit_storage.events[-1].event_type == AuditEventType.SPLIT_SETTLED

    def test_settle_twice_returns_false(self, store, caller):
        _, row = self._submit_with_friend(store, caller)
        flow = flow_for(store, caller)
        asyncio.run(flow.settle_split(row.id))
        assert asyncio.run(flow.settle_split(row.id)) is False

    def test_default_method_is_other(self, store, caller):
        _, row = self._submit_with_friend(store, caller)
        asyncio.run(flow_for(store, caller).settle_split(row.id))
        assert store.splits[row.id].settlement_method == SettlementMethod.OTHER

    def test_unknown_split(self, store, caller):
        with pytest.raises(OperationFailedError, match="Failed to settle split"):
            asyncio.run(flow_for(store, caller).settle_split(uuid4()))


class TestReadSide:

    def test_unsettled_splits_for_debtor(self, store, caller):
        friend = CallerIdentity(user_id=uuid4(), email="meera@example.com")
        splits = compute_equal_splits(
            Decimal("100"),
            [me(caller), RegisteredParticipant(user_id=friend.user_id)],
        )
        asyncio.run(flow_for(store, caller).submit(
            TransactionDraft(amount=Decimal("100"), name="Dinner"), splits,
        ))

        friend_flow = flow_for(store, friend)
        unsettled = asyncio.run(friend_flow.get_unsettled_splits())
        assert len(unsettled) == 1
        assert unsettled[0].transaction_name == "Dinner"
        assert asyncio.run(friend_flow.get_total_owed()) == Decimal("50.00")

        # The payer owes nothing.
        assert asyncio.run(flow_for(store, caller).get_unsettled_splits()) == []

    def test_group_balances(self, store, caller):
        registry = GroupRegistry(store, caller)
        group = asyncio.run(registry.create_group("Flat 4B", member_emails=["ravi@example.com"]))
        members = asyncio.run(registry.list_members(group.id))
        participants = [m.to_participant() for m in members]

        splits = compute_equal_splits(Decimal("100"), participants)
        asyncio.run(flow_for(store, caller).submit(
            TransactionDraft(amount=Decimal("100"), name="Internet"),
            splits,
            group_id=group.id,
        ))

        balances = {
            b.user_email: b
            for b in asyncio.run(flow_for(store, caller).get_group_balances(group.id))
        }
        assert balances["asha@example.com"].net_balance == Decimal("50.00")
        assert balances["ravi@example.com"].net_balance == Decimal("-50.00")


class TestAppComponents:

    def test_in_memory_components(self, caller):
        flow, registry, contacts, client = create_app_components(caller, use_remote_store=False)
        assert client is None

        group = asyncio.run(registry.create_group("Trip"))
        assert asyncio.run(registry.list_groups())[0].id == group.id

        splits = compute_equal_splits(Decimal("10"), [me(caller)])
        transaction_id = asyncio.run(flow.submit(
            TransactionDraft(amount=Decimal("10"), name="Tea"), splits,
        ))
        assert asyncio.run(flow.get_transaction_splits(transaction_id))

    def test_falls_back_without_remote_config(self, caller, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        _, _, _, client = create_app_components(caller)
        assert client is None
