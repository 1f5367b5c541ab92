"""
Data Models Package

This package contains all Pydantic models used by the split ledger.
All data flowing through the ledger must conform to these schemas.
"""

from splitledger.models.splitting import (
    BalanceRefreshOutcome,
    FinancialRelationship,
    Group,
    GroupBalance,
    GroupFinancialSummary,
    GroupMember,
    GroupMemberSummary,
    GroupWithFinancials,
    GuestParticipant,
    IndividualContact,
    MemberRole,
    Participant,
    ParticipantInput,
    PayerResolution,
    RegisteredParticipant,
    RelationshipFilter,
    RelationshipType,
    SettlementMethod,
    SplitCalculation,
    SplitRow,
    SplitType,
    SplitValidation,
    SubmissionResult,
    TransactionDraft,
    TransactionSplit,
    UnsettledSplit,
    ValidationIssue,
    round_money,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Split ledger models
    "BalanceRefreshOutcome",
    "FinancialRelationship",
    "Group",
    "GroupBalance",
    "GroupFinancialSummary",
    "GroupMember",
    "GroupMemberSummary",
    "GroupWithFinancials",
    "GuestParticipant",
    "IndividualContact",
    "MemberRole",
    "Participant",
    "ParticipantInput",
    "PayerResolution",
    "RegisteredParticipant",
    "RelationshipFilter",
    "RelationshipType",
    "SettlementMethod",
    "SplitCalculation",
    "SplitRow",
    "SplitType",
    "SplitValidation",
    "SubmissionResult",
    "TransactionDraft",
    "TransactionSplit",
    "UnsettledSplit",
    "ValidationIssue",
    "round_money",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
