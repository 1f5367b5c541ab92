"""Split calculation package."""

from splitledger.calculation.calculator import (
    compute_custom_splits,
    compute_equal_splits,
    compute_percentage_splits,
    compute_splits,
)

__all__ = [
    "compute_custom_splits",
    "compute_equal_splits",
    "compute_percentage_splits",
    "compute_splits",
]
