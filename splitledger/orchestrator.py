"""
Main Orchestrator for the split ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Split submission (validate → resolve payer → link → persist → refresh)
2. Settlement (mark one split paid → refresh its relationship)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No split set is persisted unless it sums to the transaction amount
- The transaction and its split rows are written in ONE atomic store call
- Relationship linking and balance refresh are best-effort and never
  undo or fail a committed transaction
- Every step is audited under one correlation id
"""

import logging
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from splitledger.audit import AuditLogger, create_correlation_id, get_logger
from splitledger.config import get_settings
from splitledger.errors import OperationFailedError, SplitValidationError
from splitledger.models.splitting import (
    GroupBalance,
    SettlementMethod,
    SplitCalculation,
    SplitType,
    SubmissionResult,
    TransactionDraft,
    TransactionSplit,
    UnsettledSplit,
)
from splitledger.registry import ContactBook, GroupRegistry
from splitledger.resolution import ParticipantResolver
from splitledger.services.identity import CallerIdentity, require_caller
from splitledger.services.relationships import RelationshipLinker
from splitledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    RelationshipStoreInterface,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseLedgerStore,
)
from splitledger.validation import SplitValidator


logger = get_logger(__name__)


class SplitSubmissionFlow:
    """
    Orchestrates split submission and settlement.

    Flow:
    1. Validate → shares must sum to the amount (tolerance 0.01)
    2. Resolve payer → registered user or a guest from this request
    3. Link → find or create a relationship per registered counterparty
    4. Persist → transaction + split rows, atomically
    5. Refresh → recompute each linked relationship's balance

    Steps 3 and 5 can partially fail without failing the submission.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        caller: CallerIdentity,
        relationship_store: Optional[RelationshipStoreInterface] = None,
        linker: Optional[RelationshipLinker] = None,
        validator: Optional[SplitValidator] = None,
        resolver: Optional[ParticipantResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._caller = caller
        if linker is None and relationship_store is not None:
            linker = RelationshipLinker(relationship_store, caller, audit_logger=audit_logger)
        self._linker = linker
        self._validator = validator or SplitValidator()
        self._resolver = resolver or ParticipantResolver()
        self._audit_logger = audit_logger

    async def submit(
        self,
        transaction: TransactionDraft,
        splits: Sequence[SplitCalculation],
        group_id: Optional[UUID] = None,
        split_type: SplitType = SplitType.EQUAL,
        paid_by_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """Submit a split transaction and return its id."""
        result = await self.submit_detailed(
            transaction,
            splits,
            group_id=group_id,
            split_type=split_type,
            paid_by_id=paid_by_id,
            notes=notes,
            correlation_id=correlation_id,
        )
        return result.transaction_id

    async def submit_detailed(
        self,
        transaction: TransactionDraft,
        splits: Sequence[SplitCalculation],
        group_id: Optional[UUID] = None,
        split_type: SplitType = SplitType.EQUAL,
        paid_by_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SubmissionResult:
        """
        Submit a split transaction.

        Returns:
            SubmissionResult with the persisted rows and per-relationship
            refresh outcomes

        Raises:
            AuthenticationError: No caller
            SplitValidationError: Shares don't add up or are negative
            OperationFailedError: The atomic create failed; nothing was written
        """
        caller = require_caller(self._caller)
        correlation_id = correlation_id or create_correlation_id()
        split_type = SplitType(split_type)

        # Step 1: Validate
        validation = self._validator.validate(transaction.amount, splits)
        if not validation.is_valid:
            logger.info("split_validation_failed", errors=validation.errors)
            if self._audit_logger:
                await self._audit_logger.log_split_validation_failed(
                    amount=str(transaction.amount),
                    errors=validation.errors,
                    actor_id=caller.user_id,
                    correlation_id=correlation_id,
                )
            raise SplitValidationError(validation.errors, validation.warnings)

        # Step 2: Resolve payer
        payer = self._resolver.resolve_payer(splits, paid_by_id, caller)

        # Step 3: Link counterparties
        links: dict[UUID, Optional[UUID]] = {}
        counterparties = self._resolver.registered_counterparties(splits, caller)
        if self._linker and counterparties:
            links = await self._linker.link_all(counterparties, correlation_id)

        rows = self._resolver.to_split_rows(
            splits,
            payer,
            split_type,
            group_id=group_id,
            relationship_links=links,
            notes=notes,
        )

        metadata = {
            **transaction.metadata,
            "split_count": len(rows),
            "split_type": split_type.value,
            "has_splits": True,
        }
        fields = transaction.model_copy(update={"metadata": metadata}).to_store_fields()
        fields.setdefault("currency", get_settings().ledger.default_currency)

        # Step 4: Persist atomically
        try:
            transaction_id = await self._store.create_transaction_with_splits(
                fields,
                [row.to_store_fields() for row in rows],
            )
        except StorageError as e:
            logger.error("transaction_create_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_store_error(
                    operation="create_transaction_with_splits",
                    error_message=str(e),
                    actor_id=caller.user_id,
                    correlation_id=correlation_id,
                )
            raise OperationFailedError("Failed to create split transaction") from e

        # Step 5: Refresh balances
        outcomes = []
        if self._linker:
            outcomes = await self._linker.refresh_balances(links.values(), correlation_id)

        logger.info(
            "split_transaction_created",
            transaction_id=str(transaction_id),
            split_count=len(rows),
            failed_refreshes=sum(1 for o in outcomes if not o.succeeded),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction_id,
                amount=str(transaction.amount),
                split_count=len(rows),
                split_type=split_type.value,
                guest_payer=payer.is_guest_payer,
                actor_id=caller.user_id,
                correlation_id=correlation_id,
            )

        return SubmissionResult(
            transaction_id=transaction_id,
            split_rows=rows,
            refresh_outcomes=outcomes,
        )

    async def settle_split(
        self,
        split_id: UUID,
        method: Optional[SettlementMethod] = None,
        notes: Optional[str] = None,
    ) -> bool:
        """
        Mark one split as settled.

        Returns:
            False if the split was already settled
        """
        caller = require_caller(self._caller)
        method = SettlementMethod(method or get_settings().ledger.default_settlement_method)

        try:
            relationship_id = await self._store.get_split_relationship_id(split_id)
            settled = await self._store.settle_transaction_split(
                split_id, method.value, notes,
            )
        except StorageError as e:
            logger.error("settle_failed", split_id=str(split_id), error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_store_error(
                    operation="settle_transaction_split",
                    error_message=str(e),
                    actor_id=caller.user_id,
                )
            raise OperationFailedError("Failed to settle split") from e

        if not settled:
            return False

        if self._audit_logger:
            await self._audit_logger.log_split_settled(split_id, method.value, caller.user_id)

        if self._linker and relationship_id:
            await self._linker.refresh_balances([relationship_id])
        return True

    async def get_transaction_splits(self, transaction_id: UUID) -> list[TransactionSplit]:
        require_caller(self._caller)
        try:
            return await self._store.list_transaction_splits(transaction_id)
        except StorageError as e:
            raise OperationFailedError("Failed to load splits") from e

    async def get_group_balances(self, group_id: UUID) -> list[GroupBalance]:
        require_caller(self._caller)
        try:
            return await self._store.get_group_balances(group_id)
        except StorageError as e:
            raise OperationFailedError("Failed to load group balances") from e

    async def get_unsettled_splits(self) -> list[UnsettledSplit]:
        caller = require_caller(self._caller)
        try:
            return await self._store.get_unsettled_splits(caller.user_id)
        except StorageError as e:
            raise OperationFailedError("Failed to load unsettled splits") from e

    async def get_total_owed(self) -> Decimal:
        """What the caller still owes across all unsettled splits."""
        unsettled = await self.get_unsettled_splits()
        return sum((s.share_amount for s in unsettled), Decimal("0.00"))


def create_app_components(
    caller: CallerIdentity,
    use_remote_store: bool = True,
) -> tuple[SplitSubmissionFlow, GroupRegistry, ContactBook, Optional[SupabaseClient]]:
    """
    Factory function to create all application components.

    Args:
        caller: The authenticated user the components act for.
        use_remote_store: Whether to connect the Supabase store.
                    Set to False to run against the in-memory store.

    Returns:
        (submission_flow, group_registry, contact_book, supabase_client)
    """
    settings = get_settings()
    logging.basicConfig(level=settings.app.log_level)

    client = None
    store = None
    audit_storage = None

    if use_remote_store:
        try:
            client = SupabaseClient()
            store = SupabaseLedgerStore(client)
            audit_storage = SupabaseAuditStorage(client)
        except Exception as e:
            # Store not configured - continue in memory
            logger.warning("remote_store_not_configured", error=str(e))
            client = None
            store = None
            audit_storage = None

    if store is None:
        store = InMemoryLedgerStore(currency=settings.ledger.default_currency)
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)

    submission_flow = SplitSubmissionFlow(
        store=store,
        caller=caller,
        relationship_store=store,
        audit_logger=audit_logger,
    )
    group_registry = GroupRegistry(store, caller, audit_logger)
    contact_book = ContactBook(store, caller, audit_logger)

    return submission_flow, group_registry, contact_book, client
