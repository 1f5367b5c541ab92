"""Tests for participant classification and payer resolution."""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.errors import AuthenticationError, SplitValidationError
from splitledger.models.splitting import (
    GuestParticipant,
    ParticipantInput,
    RegisteredParticipant,
    SplitCalculation,
    SplitType,
)
from splitledger.resolution import ParticipantResolver


@pytest.fixture
def resolver():
    return ParticipantResolver()


class TestClassify:

    def test_id_only_is_registered(self, resolver):
        user_id = uuid4()
        participant = resolver.classify(ParticipantInput(id=user_id))
        assert isinstance(participant, RegisteredParticipant)
        assert participant.user_id == user_id

    def test_name_without_id_is_guest(self, resolver):
        participant = resolver.classify(ParticipantInput(name="Ravi"))
        assert isinstance(participant, GuestParticipant)

    def test_is_guest_flag_keeps_local_id(self, resolver):
        local_id = uuid4()
        participant = resolver.classify(
            ParticipantInput(id=local_id, name="Ravi", is_guest=True)
        )
        assert isinstance(participant, GuestParticipant)
        assert participant.local_id == local_id

    def test_no_identity_rejected(self, resolver):
        with pytest.raises(SplitValidationError, match="no identity"):
            resolver.classify(ParticipantInput(phone="12345"))

    def test_flagged_guest_without_name_or_email_rejected(self, resolver):
        with pytest.raises(SplitValidationError, match="missing a name or email"):
            resolver.classify(ParticipantInput(id=uuid4(), is_guest=True))


class TestBuildSplits:

    def test_equal(self, resolver):
        entries = [
            ParticipantInput(id=uuid4()),
            ParticipantInput(name="Ravi"),
            ParticipantInput(email="meera@example.com"),
        ]
        splits = resolver.build_splits(Decimal("100"), SplitType.EQUAL, entries)
        assert [s.share_amount for s in splits] == [
            Decimal("33.34"), Decimal("33.33"), Decimal("33.33"),
        ]
        assert [s.is_guest for s in splits] == [False, True, True]

    def test_percentage_reads_percentages(self, resolver):
        entries = [
            ParticipantInput(id=uuid4(), percentage=Decimal("75")),
            ParticipantInput(name="Ravi", percentage=Decimal("25")),
        ]
        splits = resolver.build_splits(Decimal("200"), SplitType.PERCENTAGE, entries)
        assert [s.share_amount for s in splits] == [Decimal("150.00"), Decimal("50.00")]

    def test_missing_custom_amount_is_validation_error(self, resolver):
        entries = [ParticipantInput(id=uuid4(), share_amount=Decimal("5")), ParticipantInput(id=uuid4())]
        with pytest.raises(SplitValidationError):
            resolver.build_splits(Decimal("10"), SplitType.CUSTOM, entries)


class TestResolvePayer:

    def _splits(self, *participants):
        return [
            SplitCalculation(participant=p, share_amount=Decimal("10"))
            for p in participants
        ]

    def test_defaults_to_caller(self, resolver, caller):
        splits = self._splits(RegisteredParticipant(user_id=caller.user_id))
        payer = resolver.resolve_payer(splits, None, caller)
        assert payer.paid_by == caller.user_id
        assert payer.guest_payer is None

    def test_registered_payer(self, resolver, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        payer = resolver.resolve_payer(self._splits(friend), friend.user_id, caller)
        assert payer.paid_by == friend.user_id

    def test_guest_payer_matched_by_local_id(self, resolver, caller):
        guest = GuestParticipant(name="Ravi", email="ravi@example.com", phone="999")
        payer = resolver.resolve_payer(
            self._splits(RegisteredParticipant(user_id=caller.user_id), guest),
            guest.local_id,
            caller,
        )
        assert payer.paid_by is None
        assert payer.guest_payer == guest

    def test_unknown_id_is_treated_as_registered(self, resolver, caller):
        other = uuid4()
        payer = resolver.resolve_payer(
            self._splits(GuestParticipant(name="Ravi")), other, caller,
        )
        assert payer.paid_by == other

    def test_requires_caller(self, resolver):
        with pytest.raises(AuthenticationError, match="User not authenticated"):
            resolver.resolve_payer([], None, None)


class TestSplitRows:

    def test_guest_payer_stamped_on_every_row(self, resolver, caller):
        guest = GuestParticipant(name="Ravi", email="ravi@example.com", phone="999")
        friend = RegisteredParticipant(user_id=uuid4())
        splits = [
            SplitCalculation(participant=RegisteredParticipant(user_id=caller.user_id), share_amount=Decimal("10")),
            SplitCalculation(participant=friend, share_amount=Decimal("10")),
            SplitCalculation(participant=guest, share_amount=Decimal("10")),
        ]
        payer = resolver.resolve_payer(splits, guest.local_id, caller)
        rows = resolver.to_split_rows(splits, payer, SplitType.EQUAL)

        assert len(rows) == 3
        for row in rows:
            assert row.paid_by is None
            assert row.paid_by_guest_name == "Ravi"
            assert row.paid_by_guest_email == "ravi@example.com"
            assert row.paid_by_guest_mobile == "999"

    def test_guest_rows_have_no_user_or_relationship(self, resolver, caller):
        guest = GuestParticipant(name="Ravi")
        splits = [SplitCalculation(participant=guest, share_amount=Decimal("10"))]
        payer = resolver.resolve_payer(splits, None, caller)
        rows = resolver.to_split_rows(
            splits, payer, SplitType.EQUAL, relationship_links={guest.local_id: uuid4()},
        )
        assert rows[0].is_guest is True
        assert rows[0].user_id is None
        assert rows[0].relationship_id is None
        assert rows[0].paid_by == caller.user_id

    def test_links_applied_to_registered_rows(self, resolver, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        link = uuid4()
        splits = [SplitCalculation(participant=friend, share_amount=Decimal("10"))]
        payer = resolver.resolve_payer(splits, None, caller)
        rows = resolver.to_split_rows(
            splits, payer, SplitType.CUSTOM, relationship_links={friend.user_id: link},
        )
        assert rows[0].relationship_id == link
        assert rows[0].split_type == SplitType.CUSTOM

    def test_counterparties_exclude_caller_and_guests(self, resolver, caller):
        friend = RegisteredParticipant(user_id=uuid4())
        splits = [
            SplitCalculation(participant=RegisteredParticipant(user_id=caller.user_id), share_amount=Decimal("1")),
            SplitCalculation(participant=friend, share_amount=Decimal("1")),
            SplitCalculation(participant=friend, share_amount=Decimal("1")),
            SplitCalculation(participant=GuestParticipant(name="Ravi"), share_amount=Decimal("1")),
        ]
        assert resolver.registered_counterparties(splits, caller) == [friend.user_id]
