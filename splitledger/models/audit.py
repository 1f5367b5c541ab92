"""
Audit Models for Split Ledger

Every ledger mutation is logged for audit purposes.
This provides:
1. Traceability of who split, settled or edited what
2. Debugging information when a submission partially fails
3. A record of relationship-balance refreshes that were skipped

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups and rosters
    GROUP_CREATED = "group_created"
    GROUP_UPDATED = "group_updated"
    GROUP_DELETED = "group_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_UPDATED = "member_updated"
    MEMBER_REMOVED = "member_removed"

    # Address book
    CONTACT_ADDED = "contact_added"
    CONTACT_UPDATED = "contact_updated"
    CONTACT_DELETED = "contact_deleted"

    # Splits
    SPLIT_VALIDATION_FAILED = "split_validation_failed"
    TRANSACTION_CREATED = "transaction_created"
    SPLIT_SETTLED = "split_settled"

    # Relationship side-effects (never fatal)
    RELATIONSHIP_LINK_FAILED = "relationship_link_failed"
    BALANCE_REFRESH_FAILED = "balance_refresh_failed"

    # System events
    STORE_ERROR = "store_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who did it
    actor_id: Optional[UUID] = Field(
        default=None,
        description="Caller identity that triggered the event"
    )

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'transaction', 'relationship')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one split submission)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_store_row(self) -> dict:
        """Row for the audit table; details stay a JSON object."""
        row = self.to_log_dict()
        row["details"] = self.details or {}
        return row


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.group_created(group_id, name, actor_id)
        event = AuditEventBuilder.transaction_created(tx_id, ..., correlation_id)
    """

    @staticmethod
    def group_created(
        group_id: UUID,
        name: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            description=f"Group created: {name}",
            details={"name": name},
        )

    @staticmethod
    def group_changed(
        event_type: AuditEventType,
        group_id: UUID,
        actor_id: UUID,
        changes: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            entity_type="group",
            entity_id=group_id,
            description=f"Group {event_type.value.split('_')[-1]}",
            details=changes or {},
        )

    @staticmethod
    def member_changed(
        event_type: AuditEventType,
        group_id: UUID,
        member_id: UUID,
        actor_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            entity_type="group_member",
            entity_id=member_id,
            description=f"Member {event_type.value.split('_')[-1]} in group {group_id}",
            details={"group_id": str(group_id), **(details or {})},
        )

    @staticmethod
    def contact_changed(
        event_type: AuditEventType,
        contact_id: UUID,
        actor_id: UUID,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            actor_id=actor_id,
            entity_type="contact",
            entity_id=contact_id,
            description=f"Contact {event_type.value.split('_')[-1]}",
            details=details or {},
        )

    @staticmethod
    def split_validation_failed(
        amount: str,
        errors: list[str],
        actor_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Split validation failed with {len(errors)} errors",
            details={"amount": amount, "errors": errors},
        )

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        amount: str,
        split_count: int,
        split_type: str,
        guest_payer: bool,
        actor_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            actor_id=actor_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Split transaction created: {amount} across {split_count} participants",
            details={
                "amount": amount,
                "split_count": split_count,
                "split_type": split_type,
                "guest_payer": guest_payer,
            },
        )

    @staticmethod
    def split_settled(
        split_id: UUID,
        method: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_SETTLED,
            actor_id=actor_id,
            entity_type="transaction_split",
            entity_id=split_id,
            correlation_id=correlation_id,
            description=f"Split settled via {method}",
            details={"settlement_method": method},
        )

    @staticmethod
    def relationship_link_failed(
        related_user_id: UUID,
        error_message: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RELATIONSHIP_LINK_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type="user",
            entity_id=related_user_id,
            correlation_id=correlation_id,
            description="Could not link financial relationship; split kept without link",
            error_message=error_message,
        )

    @staticmethod
    def balance_refresh_failed(
        relationship_id: UUID,
        error_message: str,
        actor_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_REFRESH_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            entity_type="relationship",
            entity_id=relationship_id,
            correlation_id=correlation_id,
            description="Relationship balance refresh failed; cached balance may be stale",
            error_message=error_message,
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Store operation failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
