"""Tests for the split calculator."""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.calculation import (
    compute_custom_splits,
    compute_equal_splits,
    compute_percentage_splits,
    compute_splits,
)
from splitledger.models.splitting import (
    GuestParticipant,
    RegisteredParticipant,
    SplitType,
)
from splitledger.validation import SplitValidator


def registered(name: str) -> RegisteredParticipant:
    return RegisteredParticipant(user_id=uuid4(), name=name)


class TestEqualSplits:

    def test_remainder_goes_to_first_participant(self):
        """100.00 over three is 33.34 / 33.33 / 33.33."""
        people = [registered("A"), registered("B"), registered("C")]
        splits = compute_equal_splits(Decimal("100.00"), people)

        assert [s.share_amount for s in splits] == [
            Decimal("33.34"), Decimal("33.33"), Decimal("33.33"),
        ]
        assert sum(s.share_amount for s in splits) == Decimal("100.00")
        assert all(s.share_percentage == Decimal("33.33") for s in splits)

    def test_even_split_has_no_remainder(self):
        splits = compute_equal_splits(Decimal("90"), [registered("A"), registered("B")])
        assert [s.share_amount for s in splits] == [Decimal("45.00"), Decimal("45.00")]

    def test_negative_remainder_also_on_first(self):
        """2.00 over three rounds to 0.67 each, first absorbs -0.01."""
        people = [registered("A"), registered("B"), registered("C")]
        splits = compute_equal_splits(Decimal("2.00"), people)

        assert splits[0].share_amount == Decimal("0.66")
        assert sum(s.share_amount for s in splits) == Decimal("2.00")

    def test_sum_always_matches_total(self):
        for total in ("0.01", "1.00", "10.01", "999.99", "1234.57"):
            for count in range(1, 8):
                people = [registered(str(i)) for i in range(count)]
                splits = compute_equal_splits(Decimal(total), people)
                assert sum(s.share_amount for s in splits) == Decimal(total)

    def test_deterministic(self):
        people = [registered("A"), registered("B"), registered("C")]
        first = compute_equal_splits(Decimal("100"), people)
        second = compute_equal_splits(Decimal("100"), people)
        assert [s.share_amount for s in first] == [s.share_amount for s in second]

    def test_tiny_total_can_make_first_share_negative(self):
        """0.10 over fifteen: shares round up to 0.01, first absorbs -0.05."""
        people = [registered(str(i)) for i in range(15)]
        splits = compute_equal_splits(Decimal("0.10"), people)

        assert splits[0].share_amount == Decimal("-0.04")
        assert all(s.share_amount == Decimal("0.01") for s in splits[1:])
        assert sum(s.share_amount for s in splits) == Decimal("0.10")

        result = SplitValidator().validate(Decimal("0.10"), splits)
        assert result.is_valid is False
        assert result.errors == ["Split amounts cannot be negative"]

    def test_mixes_guests_and_registered(self):
        people = [registered("A"), GuestParticipant(name="Ravi")]
        splits = compute_equal_splits(Decimal("50"), people)
        assert splits[1].is_guest is True
        assert splits[1].display_name == "Ravi"

    def test_no_participants(self):
        with pytest.raises(ValueError, match="At least one participant"):
            compute_equal_splits(Decimal("100"), [])


class TestPercentageSplits:

    def test_shares_rounded_per_row(self):
        a, b = registered("A"), registered("B")
        splits = compute_percentage_splits(
            Decimal("99.99"),
            [(a, Decimal("50")), (b, Decimal("50"))],
        )
        assert [s.share_amount for s in splits] == [Decimal("50.00"), Decimal("50.00")]

    def test_percentages_not_normalized(self):
        """60 + 60 yields 120% of the total; the validator rejects it later."""
        a, b = registered("A"), registered("B")
        splits = compute_percentage_splits(
            Decimal("100"),
            [(a, Decimal("60")), (b, Decimal("60"))],
        )
        assert sum(s.share_amount for s in splits) == Decimal("120.00")


class TestCustomSplits:

    def test_amounts_pass_through(self):
        a, b = registered("A"), registered("B")
        splits = compute_custom_splits([(a, Decimal("70")), (b, Decimal("30"))])
        assert [s.share_amount for s in splits] == [Decimal("70"), Decimal("30")]
        assert splits[0].share_percentage is None

    def test_percentage_derived_when_total_given(self):
        a = registered("A")
        splits = compute_custom_splits([(a, Decimal("25"))], total=Decimal("100"))
        assert splits[0].share_percentage == Decimal("25.00")


class TestDispatch:

    def test_equal_ignores_values(self):
        splits = compute_splits(Decimal("10"), SplitType.EQUAL, [registered("A")])
        assert splits[0].share_amount == Decimal("10.00")

    def test_percentage_needs_values(self):
        with pytest.raises(ValueError, match="one value per participant"):
            compute_splits(Decimal("10"), SplitType.PERCENTAGE, [registered("A")])

    def test_custom_needs_every_value(self):
        with pytest.raises(ValueError, match="every participant"):
            compute_splits(
                Decimal("10"),
                "custom",
                [registered("A"), registered("B")],
                [Decimal("10"), None],
            )
