"""
Core Data Models for Split Ledger

These models define the strict schemas for all data flowing through
the split ledger. They are designed to:
1. Enforce the ledger invariants at construction time
2. Provide clear validation error messages
3. Be serializable for the store and for logging

DESIGN DECISION: Participants are a tagged union (registered | guest)
instead of one record with a boolean flag and nullable fields. Code that
needs to know "who is this" matches on the type, never on flag+field
combinations.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")


def round_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round a monetary value half-up to 2 decimal places."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _utcnow() -> datetime:
    return datetime.utcnow()


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class SplitType(str, Enum):
    """How a transaction amount is divided between participants."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"


class MemberRole(str, Enum):
    """
    Role of a group member.

    The creator of a group is its admin. Admin rows are protected from
    removal by the UI, not by the registry.
    """
    MEMBER = "member"
    ADMIN = "admin"


class SettlementMethod(str, Enum):
    """How a split was settled."""
    CASH = "cash"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class RelationshipType(str, Enum):
    """Kind of bilateral financial relationship."""
    LENDER = "lender"
    BORROWER = "borrower"
    SPLIT_EXPENSE = "split_expense"


class RelationshipFilter(str, Enum):
    """Balance sign filter for relationship listings."""
    ALL = "all"
    POSITIVE = "positive"
    NEGATIVE = "negative"


# =============================================================================
# PARTICIPANTS
# =============================================================================

class RegisteredParticipant(BaseModel):
    """A participant backed by a real account."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    kind: Literal["registered"] = "registered"
    user_id: UUID
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def participant_id(self) -> UUID:
        return self.user_id

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@")[0]
        return str(self.user_id)


class GuestParticipant(BaseModel):
    """
    A participant with no account, known only by contact details.

    CRITICAL: local_id is only meaningful inside one request. It lets the
    caller point at "this guest paid" but never resolves to an account.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    kind: Literal["guest"] = "guest"
    local_id: UUID = Field(default_factory=uuid4)
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=32)

    @model_validator(mode='after')
    def require_contact_detail(self) -> 'GuestParticipant':
        if not self.name and not self.email:
            raise ValueError("A guest participant needs a name or an email")
        return self

    @property
    def participant_id(self) -> UUID:
        return self.local_id

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return self.email.split("@")[0]


Participant = Annotated[
    Union[RegisteredParticipant, GuestParticipant],
    Field(discriminator="kind"),
]


class ParticipantInput(BaseModel):
    """
    A raw participant row as submitted by the UI.

    This is untagged on purpose: the resolver decides whether it is a
    registered user or a guest.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[UUID] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_guest: bool = False
    percentage: Optional[Decimal] = None
    share_amount: Optional[Decimal] = None


# =============================================================================
# TRANSIENT SPLIT DTOs (never persisted)
# =============================================================================

class SplitCalculation(BaseModel):
    """One participant's computed share. Transient."""

    participant: Participant
    share_amount: Decimal
    share_percentage: Optional[Decimal] = None
    is_paid: bool = False

    @property
    def is_guest(self) -> bool:
        return isinstance(self.participant, GuestParticipant)

    @property
    def display_name(self) -> str:
        return self.participant.display_name


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'sum_mismatch', 'negative_amount')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class SplitValidation(BaseModel):
    """
    Result of validating a split set against its transaction total.

    errors and warnings are independent channels: only errors affect
    is_valid.
    """

    is_valid: bool
    total_shares: Decimal
    expected_total: Decimal
    difference: Decimal
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


class PayerResolution(BaseModel):
    """
    Who paid the transaction.

    Exactly one of paid_by / guest_payer is set.
    """

    paid_by: Optional[UUID] = None
    guest_payer: Optional[GuestParticipant] = None

    @model_validator(mode='after')
    def exactly_one_payer(self) -> 'PayerResolution':
        if (self.paid_by is None) == (self.guest_payer is None):
            raise ValueError("Exactly one of paid_by or guest_payer must be set")
        return self

    @property
    def is_guest_payer(self) -> bool:
        return self.guest_payer is not None


# =============================================================================
# TRANSACTION + SPLIT ROWS
# =============================================================================

class TransactionDraft(BaseModel):
    """The expense being split, before it exists in the store."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Total amount of the expense")
    ]
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short label, e.g. merchant or purpose"
    )
    description: Optional[str] = Field(default=None, max_length=1000)
    transaction_date: date = Field(default_factory=date.today)
    category: Optional[str] = None
    account_id: Optional[UUID] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_store_fields(self) -> dict[str, Any]:
        """Serialize for the atomic create operation."""
        return self.model_dump(mode="json", exclude_none=True)


class SplitRow(BaseModel):
    """
    One split row as handed to create_transaction_with_splits.

    Payer fields (paid_by / paid_by_guest_*) are transaction-level
    metadata and are identical on every row of a batch.
    """

    is_guest: bool
    user_id: Optional[UUID] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_mobile: Optional[str] = None
    group_id: Optional[UUID] = None
    share_amount: Decimal = Field(ge=0)
    share_percentage: Optional[Decimal] = None
    split_type: SplitType = SplitType.EQUAL
    paid_by: Optional[UUID] = None
    paid_by_guest_name: Optional[str] = None
    paid_by_guest_email: Optional[str] = None
    paid_by_guest_mobile: Optional[str] = None
    relationship_id: Optional[UUID] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_identity(self) -> 'SplitRow':
        """A row is owned by either a registered user or a guest, never both."""
        if self.is_guest:
            if self.user_id is not None:
                raise ValueError("Guest split rows cannot carry a user_id")
            if not self.guest_name and not self.guest_email:
                raise ValueError("Guest split rows need a guest name or email")
        else:
            if self.user_id is None:
                raise ValueError("Registered split rows need a user_id")
            if self.guest_name or self.guest_email or self.guest_mobile:
                raise ValueError("Registered split rows cannot carry guest identity")
        if self.paid_by is not None and (
            self.paid_by_guest_name or self.paid_by_guest_email
        ):
            raise ValueError("A split row cannot name both a registered and a guest payer")
        return self

    def to_store_fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class TransactionSplit(SplitRow):
    """A split row as read back from the store."""

    id: UUID
    transaction_id: UUID
    is_paid: bool = False
    settled_at: Optional[datetime] = None
    settlement_method: Optional[SettlementMethod] = None
    created_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# GROUPS, MEMBERS, CONTACTS
# =============================================================================

class Group(BaseModel):
    """An expense-sharing group owned by its creator."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    created_by: UUID
    is_active: bool = True
    group_image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class GroupMember(BaseModel):
    """
    A member row in a group roster.

    Display fields are denormalized because guests have no account to
    look them up from.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    user_id: UUID
    role: MemberRole = MemberRole.MEMBER
    user_name: str = "Unknown"
    user_email: str = ""
    phone: Optional[str] = None
    relationship_label: Optional[str] = None
    is_registered_user: bool = False
    is_active: bool = True
    joined_at: datetime = Field(default_factory=_utcnow)

    @field_validator('user_email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()

    @property
    def is_guest(self) -> bool:
        return not self.is_registered_user

    def to_participant(self) -> Union[RegisteredParticipant, GuestParticipant]:
        """Turn a roster row into a split participant."""
        if self.is_registered_user:
            return RegisteredParticipant(
                user_id=self.user_id,
                name=self.user_name,
                email=self.user_email or None,
            )
        return GuestParticipant(
            local_id=self.user_id,
            name=self.user_name,
            email=self.user_email or None,
            phone=self.phone,
        )


class IndividualContact(BaseModel):
    """Address-book entry owned by a user, unique on (owner_id, email)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    contact_name: Optional[str] = None
    contact_email: str = Field(..., min_length=3, max_length=320)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator('contact_email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError(f"Not an email address: {v}")
        return v.lower()

    @property
    def display_name(self) -> str:
        return self.contact_name or self.contact_email.split("@")[0]


# =============================================================================
# RELATIONSHIPS AND READ MODELS
# =============================================================================

class FinancialRelationship(BaseModel):
    """
    Bilateral balance ledger between two registered users.

    total_amount > 0 means related_user owes user.
    """

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    related_user_id: UUID
    relationship_type: RelationshipType = RelationshipType.SPLIT_EXPENSE
    total_amount: Decimal = Decimal("0.00")
    currency: str = "INR"
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class BalanceRefreshOutcome(BaseModel):
    """Result of refreshing one relationship's cached balance."""

    relationship_id: UUID
    succeeded: bool
    balance: Optional[Decimal] = None
    error: Optional[str] = None


class GroupBalance(BaseModel):
    """Net position of one member inside a group."""

    user_id: UUID
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    total_paid: Decimal = Decimal("0.00")
    total_owed: Decimal = Decimal("0.00")
    net_balance: Decimal = Decimal("0.00")


class UnsettledSplit(BaseModel):
    """A split the caller still owes."""

    split_id: UUID
    transaction_id: UUID
    transaction_name: str
    transaction_date: Optional[date] = None
    share_amount: Decimal
    group_name: Optional[str] = None
    paid_by_name: Optional[str] = None


class GroupMemberSummary(BaseModel):
    """Roster entry as shown next to a group's financials."""

    user_id: UUID
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    role: Optional[MemberRole] = None


class GroupFinancialSummary(BaseModel):
    """
    The caller's position in one group, from its unpaid splits.

    net_balance > 0 means the group owes the caller.
    """

    total_splits: int = 0
    total_owed_to_you: Decimal = Decimal("0.00")
    total_you_owe: Decimal = Decimal("0.00")
    net_balance: Decimal = Decimal("0.00")
    has_active_splits: bool = False
    last_transaction_date: Optional[datetime] = None


class GroupWithFinancials(BaseModel):
    """A group with its roster and the caller's financial summary."""

    group: Group
    members: list[GroupMemberSummary] = Field(default_factory=list)
    financial_summary: GroupFinancialSummary = Field(default_factory=GroupFinancialSummary)

    @property
    def member_count(self) -> int:
        return len(self.members)


class SubmissionResult(BaseModel):
    """What a split submission produced."""

    transaction_id: UUID
    split_rows: list[SplitRow] = Field(default_factory=list)
    refresh_outcomes: list[BalanceRefreshOutcome] = Field(default_factory=list)

    @property
    def failed_refreshes(self) -> list[BalanceRefreshOutcome]:
        return [o for o in self.refresh_outcomes if not o.succeeded]
