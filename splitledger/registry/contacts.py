"""Personal contact book: people the caller splits with outside groups."""

from typing import Any, Optional
from uuid import UUID

from splitledger.audit import AuditLogger, get_logger
from splitledger.errors import ConflictError, OperationFailedError
from splitledger.models.audit import AuditEventType
from splitledger.models.splitting import IndividualContact
from splitledger.services.identity import CallerIdentity, require_caller
from splitledger.services.storage import (
    DuplicateError,
    LedgerStoreInterface,
    StorageError,
)


logger = get_logger(__name__)

DUPLICATE_CONTACT_MESSAGE = "A contact with this email already exists"


class ContactBook:
    """
    Add, edit and soft-delete the caller's contacts.

    Adding an email that is already in the book returns the existing
    contact. A soft-deleted contact comes back active.
    """

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

    async def list_contacts(self) -> list[IndividualContact]:
        caller = require_caller(self._caller)
        try:
            return await self._store.list_contacts(caller.user_id)
        except StorageError as e:
            raise await self._fail("load contacts", e) from e

    async def _existing(self, owner_id: UUID, email: str) -> Optional[IndividualContact]:
        existing = await self._store.find_contact(owner_id, email)
        if existing is not None and not existing.is_active:
            await self._store.update_contact(owner_id, existing.id, {"is_active": True})
            existing = existing.model_copy(update={"is_active": True})
        return existing

    async def add_contact(
        self,
        email: str,
        name: Optional[str] = None,
    ) -> IndividualContact:
        caller = require_caller(self._caller)
        email = email.strip().lower()

        try:
            existing = await self._existing(caller.user_id, email)
            if existing is not None:
                logger.info("contact_already_exists", contact_id=str(existing.id))
                return existing

            contact = IndividualContact(
                owner_id=caller.user_id,
                contact_name=name or None,
                contact_email=email,
            )
            try:
                contact = await self._store.insert_contact(contact)
            except DuplicateError:
                # Lost a race with another insert of the same email.
                existing = await self._existing(caller.user_id, email)
                if existing is None:
                    raise
                return existing
        except StorageError as e:
            raise await self._fail("add contact", e) from e

        if self._audit_logger:
            await self._audit_logger.log_contact_changed(
                AuditEventType.CONTACT_ADDED, contact.id, caller.user_id,
            )
        return contact

    async def update_contact(
        self,
        contact_id: UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> bool:
        """
        Update name and/or email. An empty name clears it.

        Raises:
            ConflictError: Another contact of the caller already has the email
        """
        caller = require_caller(self._caller)
        updates: dict[str, Any] = {}
        if name is not None:
            updates["contact_name"] = name.strip() or None
        if email is not None:
            updates["contact_email"] = email.strip().lower()
        if not updates:
            return True

        try:
            await self._store.update_contact(caller.user_id, contact_id, updates)
        except DuplicateError as e:
            raise ConflictError(DUPLICATE_CONTACT_MESSAGE) from e
        except StorageError as e:
            raise await self._fail("update contact", e) from e

        if self._audit_logger:
            await self._audit_logger.log_contact_changed(
                AuditEventType.CONTACT_UPDATED, contact_id, caller.user_id,
                {key: str(value) for key, value in updates.items()},
            )
        return True

    async def delete_contact(self, contact_id: UUID) -> bool:
        """Soft delete."""
        caller = require_caller(self._caller)
        try:
            await self._store.update_contact(caller.user_id, contact_id, {"is_active": False})
        except StorageError as e:
            raise await self._fail("delete contact", e) from e

        if self._audit_logger:
            await self._audit_logger.log_contact_changed(
                AuditEventType.CONTACT_DELETED, contact_id, caller.user_id,
            )
        return True
