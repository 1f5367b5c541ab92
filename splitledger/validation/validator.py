"""
Split Validation

Checks a computed split set against the transaction total.

Two independent channels:
- ERRORS invalidate the set (sum mismatch beyond tolerance, negative shares)
- WARNINGS are informational only (zero-amount shares)

Callers must check is_valid before submitting; warnings never block.

IMPORTANT: Validation NEVER silently fixes splits.
It reports problems for the caller to render.
"""

from decimal import Decimal
from typing import Optional, Sequence

from splitledger.config import get_settings
from splitledger.errors import SplitValidationError
from splitledger.models.splitting import (
    SplitCalculation,
    SplitValidation,
    ValidationIssue,
    round_money,
)


class SplitValidator:
    """
    Validates a split set against the amount it is supposed to cover.
    """

    def __init__(self, tolerance: Optional[Decimal] = None):
        """
        Args:
            tolerance: Largest allowed |sum(shares) - total|.
                       Defaults to LedgerSettings.rounding_tolerance (0.01).
        """
        if tolerance is None:
            tolerance = get_settings().ledger.rounding_tolerance
        self._tolerance = Decimal(str(tolerance))

    def _check_total(
        self,
        total: Decimal,
        total_shares: Decimal,
        difference: Decimal,
    ) -> list[ValidationIssue]:
        if abs(difference) <= self._tolerance:
            return []
        return [ValidationIssue(
            field="share_amount",
            issue_type="sum_mismatch",
            message=(
                f"Split total ({total_shares}) doesn't match "
                f"transaction amount ({total})"
            ),
            severity="error",
        )]

    def _check_amounts(
        self,
        splits: Sequence[SplitCalculation],
    ) -> list[ValidationIssue]:
        issues = []

        if any(split.share_amount < 0 for split in splits):
            issues.append(ValidationIssue(
                field="share_amount",
                issue_type="negative_amount",
                message="Split amounts cannot be negative",
                severity="error",
            ))

        zero_count = sum(1 for split in splits if split.share_amount == 0)
        if zero_count:
            issues.append(ValidationIssue(
                field="share_amount",
                issue_type="zero_amount",
                message=f"{zero_count} participants have zero amount",
                severity="warning",
            ))

        return issues

    def validate(
        self,
        total: Decimal,
        splits: Sequence[SplitCalculation],
    ) -> SplitValidation:
        """
        Validate splits against total.

        Returns:
            SplitValidation; is_valid depends on errors only
        """
        total = Decimal(str(total))
        total_shares = sum((split.share_amount for split in splits), Decimal("0"))
        difference = round_money(total_shares - total)

        issues = self._check_total(total, total_shares, difference)
        issues.extend(self._check_amounts(splits))

        errors = [i.message for i in issues if i.severity == "error"]
        warnings = [i.message for i in issues if i.severity == "warning"]

        return SplitValidation(
            is_valid=not errors,
            total_shares=total_shares,
            expected_total=total,
            difference=difference,
            errors=errors,
            warnings=warnings,
            issues=issues,
        )

    def ensure_valid(
        self,
        total: Decimal,
        splits: Sequence[SplitCalculation],
    ) -> SplitValidation:
        """Validate and raise SplitValidationError if the set is invalid."""
        result = self.validate(total, splits)
        if not result.is_valid:
            raise SplitValidationError(result.errors, result.warnings)
        return result

    def get_user_friendly_summary(
        self,
        result: SplitValidation,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if result.is_valid and not result.warnings:
            return "✅ Splits add up. Ready to save."

        lines = []

        if result.errors:
            lines.append("❌ These splits can't be saved yet:")
            for error in result.errors:
                lines.append(f"   • {error}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
