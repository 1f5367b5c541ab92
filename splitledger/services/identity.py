"""
Caller identity.

Every ledger service receives the caller explicitly instead of asking an
ambient session. Services call require_caller() before touching the store.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from splitledger.errors import AuthenticationError


class CallerIdentity(BaseModel):
    """The authenticated user on whose behalf an operation runs."""
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.email:
            return self.email.split("@")[0]
        return "You"


def require_caller(caller: Optional[CallerIdentity]) -> CallerIdentity:
    """Return the caller or raise AuthenticationError."""
    if caller is None or caller.user_id is None:
        raise AuthenticationError()
    return caller
