"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of splits, settlements and roster edits
2. A record of relationship links and balance refreshes that were skipped
3. Debugging capability for partially failed submissions

The audit logger:
- Is async so it fits the store-facing flows
- Gracefully handles failures (a failed audit write never fails the ledger)
- Supports correlation IDs to trace the events of one submission
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from splitledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Structured logger for ledger modules."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_group_created(
        self,
        group_id: UUID,
        name: str,
        actor_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.group_created(group_id, name, actor_id))

    async def log_group_changed(
        self,
        event_type: AuditEventType,
        group_id: UUID,
        actor_id: UUID,
        changes: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_changed(event_type, group_id, actor_id, changes))

    async def log_member_changed(
        self,
        event_type: AuditEventType,
        group_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_changed(
            event_type, group_id, member_id, actor_id, details,
        ))

    async def log_contact_changed(
        self,
        event_type: AuditEventType,
        contact_id: UUID,
        actor_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.contact_changed(event_type, contact_id, actor_id, details))

    async def log_split_validation_failed(
        self,
        amount: str,
        errors: list[str],
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.split_validation_failed(
            amount=amount,
            errors=errors,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        amount: str,
        split_count: int,
        split_type: str,
        guest_payer: bool,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> None:
        """Log successful creation of a split transaction."""
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            amount=amount,
            split_count=split_count,
            split_type=split_type,
            guest_payer=guest_payer,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_split_settled(
        self,
        split_id: UUID,
        method: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_settled(split_id, method, actor_id, correlation_id))

    async def log_relationship_link_failed(
        self,
        related_user_id: UUID,
        error_message: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.relationship_link_failed(
            related_user_id, error_message, actor_id, correlation_id,
        ))

    async def log_balance_refresh_failed(
        self,
        relationship_id: UUID,
        error_message: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_refresh_failed(
            relationship_id, error_message, actor_id, correlation_id,
        ))

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store failure that is being surfaced generically."""
        await self.log(AuditEventBuilder.store_error(
            operation, error_message, actor_id, correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one split submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
