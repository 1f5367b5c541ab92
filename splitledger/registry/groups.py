"""
Group and member registry.

Every member added here is provisioned as a guest: a fresh random user id
and is_registered_user=False. Nothing in this module resolves an email to
a real account. The only registered member a group gets is its creator,
who is added as admin.
"""

import asyncio
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from splitledger.audit import AuditLogger, get_logger
from splitledger.errors import ConflictError, OperationFailedError
from splitledger.models.audit import AuditEventType
from splitledger.models.splitting import (
    Group,
    GroupFinancialSummary,
    GroupMember,
    GroupMemberSummary,
    GroupWithFinancials,
    MemberRole,
    RegisteredParticipant,
    TransactionSplit,
    round_money,
)
from splitledger.services.identity import CallerIdentity, require_caller
from splitledger.services.storage import (
    DuplicateError,
    LedgerStoreInterface,
    StorageError,
)


logger = get_logger(__name__)

DUPLICATE_MEMBER_MESSAGE = "This person is already a member of this group"

EDITABLE_MEMBER_FIELDS = frozenset({
    "user_name", "user_email", "phone", "relationship_label", "role",
})


def summarize_group_splits(
    splits: Sequence[TransactionSplit],
    user_id: UUID,
) -> GroupFinancialSummary:
    """
    The user's position in a group, from the group's unpaid splits.

    The user's own split counts as owed when anyone else paid, a guest
    included. Anyone else's split counts as owed to the user when the user
    paid. Splits between two other people only count towards total_splits.
    """
    unpaid = [s for s in splits if not s.is_paid]
    owed_to_you = Decimal("0")
    you_owe = Decimal("0")
    last_transaction_date = None

    for split in unpaid:
        if split.user_id == user_id:
            if split.paid_by != user_id:
                you_owe += split.share_amount
        elif split.paid_by == user_id:
            owed_to_you += split.share_amount
        if last_transaction_date is None or split.created_at > last_transaction_date:
            last_transaction_date = split.created_at

    return GroupFinancialSummary(
        total_splits=len(unpaid),
        total_owed_to_you=round_money(owed_to_you),
        total_you_owe=round_money(you_owe),
        net_balance=round_money(owed_to_you - you_owe),
        has_active_splits=bool(unpaid),
        last_transaction_date=last_transaction_date,
    )


class GroupRegistry:
    """CRUD for groups and their rosters, scoped to one caller."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        caller: CallerIdentity,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._caller = caller
        self._audit_logger = audit_logger

    async def _fail(self, operation: str, error: StorageError) -> OperationFailedError:
        logger.error("store_operation_failed", operation=operation, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_store_error(
                operation=operation,
                error_message=str(error),
                actor_id=self._caller.user_id if self._caller else None,
            )
        return OperationFailedError(f"Failed to {operation}")

    def get_current_person(self) -> RegisteredParticipant:
        """The caller, as a participant they can add to their own splits."""
        caller = require_caller(self._caller)
        return RegisteredParticipant(
            user_id=caller.user_id,
            name=caller.display_name,
            email=caller.email,
        )

    # -- groups ---------------------------------------------------------------

    async def create_group(
        self,
        name: str,
        description: Optional[str] = None,
        member_emails: Optional[list[str]] = None,
    ) -> Group:
        """
        Create a group owned by the caller.

        The caller is added as admin. Initial member emails are added one
        by one; a failed admin or member insert is logged and skipped, the
        group itself is still returned.
        """
        caller = require_caller(self._caller)
        group = Group(name=name, description=description, created_by=caller.user_id)

        try:
            group = await self._store.insert_group(group)
        except StorageError as e:
            raise await self._fail("create group", e) from e

        admin = GroupMember(
            group_id=group.id,
            user_id=caller.user_id,
            role=MemberRole.ADMIN,
            user_name=caller.display_name,
            user_email=caller.email or "",
            is_registered_user=True,
        )
        try:
            await self._store.insert_member(admin)
        except StorageError as e:
            logger.warning("admin_member_insert_failed", group_id=str(group.id), error=str(e))

        for email in member_emails or []:
            if not email or not email.strip():
                continue
            try:
                await self.add_member(group.id, email.strip())
            except (ConflictError, OperationFailedError) as e:
                logger.warning(
                    "initial_member_skipped",
                    group_id=str(group.id),
                    email=email,
                    error=str(e),
                )

        logger.info("group_created", group_id=str(group.id), name=group.name)
        if self._audit_logger:
            await self._audit_logger.log_group_created(group.id, group.name, caller.user_id)
        return group

    async def list_groups(self, active_only: bool = True) -> list[Group]:
        caller = require_caller(self._caller)
        try:
            return await self._store.list_groups(caller.user_id, active_only)
        except StorageError as e:
            raise await self._fail("load groups", e) from e

    async def update_group(
        self,
        group_id: UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> bool:
        caller = require_caller(self._caller)
        updates: dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if description is not None:
            updates["description"] = description or None
        if not updates:
            return True

        try:
            await self._store.update_group(group_id, updates)
        except StorageError as e:
            raise await self._fail("update group", e) from e

        if self._audit_logger:
            await self._audit_logger.log_group_changed(
                AuditEventType.GROUP_UPDATED, group_id, caller.user_id, updates,
            )
        return True

    async def deactivate_group(self, group_id: UUID) -> bool:
        """Soft delete: the group stays in the store but drops out of lists."""
        caller = require_caller(self._caller)
        try:
            await self._store.update_group(group_id, {"is_active": False})
        except StorageError as e:
            raise await self._fail("deactivate group", e) from e

        if self._audit_logger:
            await self._audit_logger.log_group_changed(
                AuditEventType.GROUP_UPDATED, group_id, caller.user_id, {"is_active": False},
            )
        return True

    async def delete_group(self, group_id: UUID) -> bool:
        caller = require_caller(self._caller)
        try:
            deleted = await self._store.delete_group(group_id)
        except StorageError as e:
            raise await self._fail("delete group", e) from e

        if deleted and self._audit_logger:
            await self._audit_logger.log_group_changed(
                AuditEventType.GROUP_DELETED, group_id, caller.user_id,
            )
        return deleted

    # -- financials -----------------------------------------------------------

    async def list_groups_with_financials(self) -> list[GroupWithFinancials]:
        """
        Every active group the caller belongs to, with its roster and the
        caller's position in it.

        A group whose roster or splits can't be loaded is still listed,
        with an empty roster or an empty summary.
        """
        caller = require_caller(self._caller)
        try:
            groups = await self._store.list_member_groups(caller.user_id)
        except StorageError as e:
            raise await self._fail("load groups", e) from e

        return list(await asyncio.gather(
            *(self._with_financials(group, caller.user_id) for group in groups)
        ))

    async def get_group_with_financials(self, group_id: UUID) -> GroupWithFinancials:
        caller = require_caller(self._caller)
        try:
            group = await self._store.get_group(group_id)
        except StorageError as e:
            raise await self._fail("load group", e) from e
        if group is None:
            raise OperationFailedError("Group not found")
        return await self._with_financials(group, caller.user_id)

    async def _with_financials(self, group: Group, user_id: UUID) -> GroupWithFinancials:
        members: list[GroupMemberSummary] = []
        try:
            members = [
                GroupMemberSummary(
                    user_id=m.user_id,
                    user_name=m.user_name,
                    user_email=m.user_email or None,
                    role=m.role,
                )
                for m in await self._store.list_members(group.id)
            ]
        except StorageError as e:
            logger.warning("group_members_unavailable", group_id=str(group.id), error=str(e))

        try:
            splits = await self._store.list_group_splits(group.id)
            summary = summarize_group_splits(splits, user_id)
        except StorageError as e:
            logger.warning("group_splits_unavailable", group_id=str(group.id), error=str(e))
            summary = GroupFinancialSummary()

        return GroupWithFinancials(group=group, members=members, financial_summary=summary)

    # -- members --------------------------------------------------------------

    async def list_members(self, group_id: UUID) -> list[GroupMember]:
        require_caller(self._caller)
        try:
            return await self._store.list_members(group_id)
        except StorageError as e:
            raise await self._fail("load group members", e) from e

    async def add_member(
        self,
        group_id: UUID,
        email: str,
        name: Optional[str] = None,
        role: MemberRole = MemberRole.MEMBER,
        phone: Optional[str] = None,
        relationship_label: Optional[str] = None,
    ) -> GroupMember:
        """
        Add a guest member with a freshly generated identity.

        Raises:
            ValueError: The email is blank
            ConflictError: An active member of the group already has this email
            OperationFailedError: The store rejected the insert
        """
        caller = require_caller(self._caller)
        email = (email or "").strip().lower()
        if not email:
            raise ValueError("A member email is required")

        try:
            existing = await self._store.find_member(group_id, email=email)
        except StorageError as e:
            raise await self._fail("add member", e) from e
        if existing is not None:
            raise ConflictError(DUPLICATE_MEMBER_MESSAGE)

        member = GroupMember(
            group_id=group_id,
            user_id=uuid4(),
            role=role,
            user_name=name or email.split("@")[0],
            user_email=email,
            phone=phone,
            relationship_label=relationship_label,
            is_registered_user=False,
        )
        try:
            member = await self._store.insert_member(member)
        except DuplicateError as e:
            raise ConflictError(DUPLICATE_MEMBER_MESSAGE) from e
        except StorageError as e:
            raise await self._fail("add member", e) from e

        logger.info("member_added", group_id=str(group_id), member_id=str(member.id))
        if self._audit_logger:
            await self._audit_logger.log_member_changed(
                AuditEventType.MEMBER_ADDED, group_id, member.id, caller.user_id,
                {"role": member.role.value, "is_registered_user": False},
            )
        return member

    async def edit_member(
        self,
        group_id: UUID,
        member_id: UUID,
        updates: dict[str, Any],
    ) -> bool:
        """Update display fields or role of a roster row."""
        caller = require_caller(self._caller)
        unknown = set(updates) - EDITABLE_MEMBER_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit member fields: {', '.join(sorted(unknown))}")

        try:
            await self._store.update_member(group_id, member_id, updates)
        except StorageError as e:
            raise await self._fail("update member", e) from e

        if self._audit_logger:
            await self._audit_logger.log_member_changed(
                AuditEventType.MEMBER_UPDATED, group_id, member_id, caller.user_id,
                {key: str(value) for key, value in updates.items()},
            )
        return True

    async def remove_member(self, group_id: UUID, member_id: UUID) -> bool:
        # Admin rows are protected by the UI, not here.
        caller = require_caller(self._caller)
        try:
            removed = await self._store.delete_member(group_id, member_id)
        except StorageError as e:
            raise await self._fail("remove member", e) from e

        if removed and self._audit_logger:
            await self._audit_logger.log_member_changed(
                AuditEventType.MEMBER_REMOVED, group_id, member_id, caller.user_id,
            )
        return removed
