"""
Relationship Linker

Keeps the bilateral relationship ledger in step with split activity:
- before a submission, finds or creates a relationship for every
  registered participant other than the caller
- after a submission or settlement, asks the store to recompute the
  cached balance of every touched relationship

DESIGN DECISION: Both steps are best-effort. A failed link leaves the split
unlinked; a failed refresh leaves the balance stale. Neither ever fails
the transaction. Refreshes run as independent tasks and each task reports
its own outcome, so partial failure is visible to the caller.
"""

import asyncio
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from splitledger.audit import AuditLogger, get_logger
from splitledger.config import get_settings
from splitledger.models.splitting import (
    BalanceRefreshOutcome,
    FinancialRelationship,
    RelationshipFilter,
    RelationshipType,
)
from splitledger.services.identity import CallerIdentity, require_caller
from splitledger.services.storage import RelationshipStoreInterface


logger = get_logger(__name__)


class RelationshipLinker:
    """Finds, creates and refreshes relationships for one caller."""

    def __init__(
        self,
        store: RelationshipStoreInterface,
        caller: CallerIdentity,
        relationship_type: Optional[RelationshipType] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._caller = caller
        self._relationship_type = relationship_type or RelationshipType(
            get_settings().ledger.default_relationship_type
        )
        self._audit_logger = audit_logger

    async def link(
        self,
        related_user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[UUID]:
        """
        Find or create the caller's relationship with related_user_id.

        Returns:
            The relationship id, or None if linking failed
        """
        caller = require_caller(self._caller)
        if related_user_id == caller.user_id:
            return None

        try:
            relationship = await self._store.get_relationship_with_user(
                caller.user_id, related_user_id,
            )
            if relationship is None:
                relationship = await self._store.create_or_get_relationship(
                    caller.user_id, related_user_id, self._relationship_type,
                )
            return relationship.id
        except Exception as e:
            logger.warning(
                "relationship_link_failed",
                related_user_id=str(related_user_id),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_relationship_link_failed(
                    related_user_id=related_user_id,
                    error_message=str(e),
                    actor_id=caller.user_id,
                    correlation_id=correlation_id,
                )
            return None

    async def link_all(
        self,
        related_user_ids: Iterable[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> dict[UUID, Optional[UUID]]:
        """Link every user; failures map to None."""
        user_ids = list(dict.fromkeys(related_user_ids))
        links = await asyncio.gather(
            *(self.link(user_id, correlation_id) for user_id in user_ids)
        )
        return dict(zip(user_ids, links))

    async def refresh_balance(self, relationship_id: UUID) -> Decimal:
        """Recompute one relationship's balance. Raises on failure."""
        require_caller(self._caller)
        return await self._store.update_relationship_balance(relationship_id)

    async def _refresh_one(
        self,
        relationship_id: UUID,
        correlation_id: Optional[UUID],
    ) -> BalanceRefreshOutcome:
        try:
            balance = await self.refresh_balance(relationship_id)
        except Exception as e:
            logger.warning(
                "balance_refresh_failed",
                relationship_id=str(relationship_id),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_balance_refresh_failed(
                    relationship_id=relationship_id,
                    error_message=str(e),
                    actor_id=self._caller.user_id,
                    correlation_id=correlation_id,
                )
            return BalanceRefreshOutcome(
                relationship_id=relationship_id,
                succeeded=False,
                error=str(e),
            )
        return BalanceRefreshOutcome(
            relationship_id=relationship_id,
            succeeded=True,
            balance=balance,
        )

    async def refresh_balances(
        self,
        relationship_ids: Iterable[Optional[UUID]],
        correlation_id: Optional[UUID] = None,
    ) -> list[BalanceRefreshOutcome]:
        """
        Refresh several relationships independently.

        None ids are skipped and duplicates are refreshed once. One failure
        never stops the others.
        """
        ids = list(dict.fromkeys(rid for rid in relationship_ids if rid is not None))
        if not ids:
            return []
        return list(await asyncio.gather(
            *(self._refresh_one(rid, correlation_id) for rid in ids)
        ))

    async def list_relationships(
        self,
        balance_filter: RelationshipFilter = RelationshipFilter.ALL,
    ) -> list[FinancialRelationship]:
        caller = require_caller(self._caller)
        return await self._store.list_relationships(caller.user_id, balance_filter)
