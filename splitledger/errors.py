"""
Ledger-level exceptions.

These are what callers (the UI layer) are expected to catch:
- AuthenticationError and SplitValidationError carry user-actionable detail
- ConflictError carries a specific user-facing message
- OperationFailedError is deliberately generic; the store error that caused
  it is chained as __cause__ and logged, never shown

Store-level errors live in splitledger.services.storage.interface.
"""

from typing import Optional


class LedgerError(Exception):
    """Base exception for split ledger operations."""
    pass


class AuthenticationError(LedgerError):
    """No resolvable caller identity."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class SplitValidationError(LedgerError):
    """
    Split set rejected by the validator.

    errors is the validator's error list, verbatim.
    """

    def __init__(
        self,
        errors: list[str],
        warnings: Optional[list[str]] = None,
    ):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(f"Invalid splits: {', '.join(self.errors)}")


class ConflictError(LedgerError):
    """Duplicate member or contact."""
    pass


class OperationFailedError(LedgerError):
    """A store failure surfaced with a generic message."""
    pass
