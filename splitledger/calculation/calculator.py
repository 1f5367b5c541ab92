"""
Split Calculator

Pure functions that turn (total, participants, strategy) into
per-participant shares. No I/O, no settings, no side effects.

DESIGN DECISION: Equal splits round every share to 2 decimals and put the
whole rounding remainder on the FIRST participant. The remainder is not
spread around; the first participant always absorbs it, so the same input
always gives the same output and the shares always sum to the total.
"""

from decimal import Decimal
from typing import Optional, Sequence, Union

from splitledger.models.splitting import (
    GuestParticipant,
    RegisteredParticipant,
    SplitCalculation,
    SplitType,
    round_money,
)


AnyParticipant = Union[RegisteredParticipant, GuestParticipant]
HUNDRED = Decimal("100")


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def compute_equal_splits(
    total: Decimal,
    participants: Sequence[AnyParticipant],
) -> list[SplitCalculation]:
    """
    Split total equally.

    100.00 across three participants gives 33.34, 33.33, 33.33.

    When the rounded share overshoots, the remainder is negative and can
    push the first share below zero: 0.10 across fifteen participants
    gives -0.04 followed by fourteen shares of 0.01. The shares still sum
    to the total; the validator rejects the negative share.
    """
    if not participants:
        raise ValueError("At least one participant is required")

    total = _as_decimal(total)
    count = len(participants)
    share = round_money(total / count)
    remainder = round_money(total - share * count)
    percentage = round_money(HUNDRED / count)

    return [
        SplitCalculation(
            participant=participant,
            share_amount=share + remainder if index == 0 else share,
            share_percentage=percentage,
        )
        for index, participant in enumerate(participants)
    ]


def compute_percentage_splits(
    total: Decimal,
    participants: Sequence[tuple[AnyParticipant, Decimal]],
) -> list[SplitCalculation]:
    """
    Split total by percentage.

    Percentages are used as given; they are NOT normalized to 100.
    The validator catches sets that don't add up.
    """
    total = _as_decimal(total)
    return [
        SplitCalculation(
            participant=participant,
            share_amount=round_money(total * _as_decimal(pct) / HUNDRED),
            share_percentage=_as_decimal(pct),
        )
        for participant, pct in participants
    ]


def compute_custom_splits(
    participants: Sequence[tuple[AnyParticipant, Decimal]],
    total: Optional[Decimal] = None,
) -> list[SplitCalculation]:
    """
    Pass caller-supplied amounts through unchanged.

    If total is given, each row's percentage is filled in for display.
    """
    splits = []
    for participant, amount in participants:
        amount = _as_decimal(amount)
        percentage = None
        if total:
            percentage = round_money(amount * HUNDRED / _as_decimal(total))
        splits.append(SplitCalculation(
            participant=participant,
            share_amount=amount,
            share_percentage=percentage,
        ))
    return splits


def compute_splits(
    total: Decimal,
    split_type: SplitType,
    participants: Sequence[AnyParticipant],
    values: Optional[Sequence[Optional[Decimal]]] = None,
) -> list[SplitCalculation]:
    """
    Dispatch on split_type.

    values holds the per-participant percentage (PERCENTAGE) or amount
    (CUSTOM) and is ignored for EQUAL.
    """
    split_type = SplitType(split_type)
    if split_type == SplitType.EQUAL:
        return compute_equal_splits(total, participants)

    if values is None or len(values) != len(participants):
        raise ValueError(f"{split_type.value} splits need one value per participant")
    if any(v is None for v in values):
        raise ValueError(f"{split_type.value} splits need a value for every participant")

    pairs = list(zip(participants, values))
    if split_type == SplitType.PERCENTAGE:
        return compute_percentage_splits(total, pairs)
    return compute_custom_splits(pairs, total=total)
