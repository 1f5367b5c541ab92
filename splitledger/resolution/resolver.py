"""
Participant Resolution

Decides, for one submission:
1. Which raw participant rows are registered users and which are guests
2. Who paid (a registered user, or a guest from this same request)
3. What each persisted split row looks like

CRITICAL: "Who paid" is transaction-level metadata. The payer fields are
copied onto EVERY split row of the batch, not only onto the payer's own row.
"""

from decimal import Decimal
from typing import Mapping, Optional, Sequence, Union
from uuid import UUID, uuid4

from pydantic import ValidationError

from splitledger.calculation import compute_splits
from splitledger.errors import SplitValidationError
from splitledger.models.splitting import (
    GuestParticipant,
    ParticipantInput,
    PayerResolution,
    RegisteredParticipant,
    SplitCalculation,
    SplitRow,
    SplitType,
)
from splitledger.services.identity import CallerIdentity, require_caller


AnyParticipant = Union[RegisteredParticipant, GuestParticipant]


class ParticipantResolver:
    """
    Classifies participants and resolves the payer of a submission.

    Stateless; one instance can serve any number of requests.
    """

    def classify(self, entry: ParticipantInput) -> AnyParticipant:
        """
        Turn a raw row into a registered or guest participant.

        A row is a guest if it says so, or if it has a name/email but no id.
        """
        looks_like_guest = entry.id is None and bool(entry.name or entry.email)
        if entry.is_guest or looks_like_guest:
            try:
                return GuestParticipant(
                    local_id=entry.id or uuid4(),
                    name=entry.name,
                    email=entry.email,
                    phone=entry.phone,
                )
            except ValidationError as e:
                raise SplitValidationError(
                    [f"Guest participant is missing a name or email: {e.errors()[0]['msg']}"]
                ) from e

        if entry.id is None:
            raise SplitValidationError(
                ["Participant has no identity: provide an id, a name or an email"]
            )

        return RegisteredParticipant(
            user_id=entry.id,
            name=entry.name,
            email=entry.email,
        )

    def classify_all(self, entries: Sequence[ParticipantInput]) -> list[AnyParticipant]:
        return [self.classify(entry) for entry in entries]

    def build_splits(
        self,
        total: Decimal,
        split_type: SplitType,
        entries: Sequence[ParticipantInput],
    ) -> list[SplitCalculation]:
        """Classify raw rows and compute their shares in one go."""
        participants = self.classify_all(entries)
        split_type = SplitType(split_type)
        values = None
        if split_type == SplitType.PERCENTAGE:
            values = [entry.percentage for entry in entries]
        elif split_type == SplitType.CUSTOM:
            values = [entry.share_amount for entry in entries]
        try:
            return compute_splits(total, split_type, participants, values)
        except ValueError as e:
            raise SplitValidationError([str(e)]) from e

    def resolve_payer(
        self,
        splits: Sequence[SplitCalculation],
        paid_by_id: Optional[UUID],
        caller: CallerIdentity,
    ) -> PayerResolution:
        """
        Resolve who paid.

        If paid_by_id points at a guest split of THIS request, the payer is
        that guest. Otherwise paid_by_id (or the caller) is the registered
        payer. Guest local ids mean nothing outside the request they came in.
        """
        caller = require_caller(caller)

        if paid_by_id is not None:
            for split in splits:
                participant = split.participant
                if (
                    isinstance(participant, GuestParticipant)
                    and participant.local_id == paid_by_id
                ):
                    return PayerResolution(guest_payer=participant)

        return PayerResolution(paid_by=paid_by_id or caller.user_id)

    @staticmethod
    def registered_counterparties(
        splits: Sequence[SplitCalculation],
        caller: CallerIdentity,
    ) -> list[UUID]:
        """Registered participants other than the caller, first-seen order."""
        seen: list[UUID] = []
        for split in splits:
            participant = split.participant
            if (
                isinstance(participant, RegisteredParticipant)
                and participant.user_id != caller.user_id
                and participant.user_id not in seen
            ):
                seen.append(participant.user_id)
        return seen

    def to_split_rows(
        self,
        splits: Sequence[SplitCalculation],
        payer: PayerResolution,
        split_type: SplitType,
        group_id: Optional[UUID] = None,
        relationship_links: Optional[Mapping[UUID, Optional[UUID]]] = None,
        notes: Optional[str] = None,
    ) -> list[SplitRow]:
        """Build the store rows, stamping the payer onto every row."""
        links = relationship_links or {}
        guest_payer = payer.guest_payer
        payer_fields = {
            "paid_by": payer.paid_by,
            "paid_by_guest_name": guest_payer.display_name if guest_payer else None,
            "paid_by_guest_email": guest_payer.email if guest_payer else None,
            "paid_by_guest_mobile": guest_payer.phone if guest_payer else None,
        }

        rows = []
        for split in splits:
            participant = split.participant
            if isinstance(participant, GuestParticipant):
                identity = {
                    "is_guest": True,
                    "user_id": None,
                    "guest_name": participant.display_name,
                    "guest_email": participant.email,
                    "guest_mobile": participant.phone,
                    "relationship_id": None,
                }
            else:
                identity = {
                    "is_guest": False,
                    "user_id": participant.user_id,
                    "relationship_id": links.get(participant.user_id),
                }
            rows.append(SplitRow(
                **identity,
                **payer_fields,
                group_id=group_id,
                share_amount=split.share_amount,
                share_percentage=split.share_percentage,
                split_type=split_type,
                notes=notes,
            ))
        return rows
