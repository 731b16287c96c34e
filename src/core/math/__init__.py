"""
Core math modules для crowdfund ledger

Целочисленные примитивы с гарантией отсутствия wrap-around.
"""

from src.core.math.numerical_safeguards import (
    # Диапазоны
    SECONDS_PER_DAY,
    UINT32_MAX,
    UINT256_MAX,
    # Exceptions
    ArithmeticOverflow,
    ArithmeticUnderflow,
    # Проверки
    is_uint,
    is_uint32,
    validate_uint,
    # Checked арифметика
    checked_add,
    checked_sub,
    days_to_seconds,
)

__all__ = [
    "SECONDS_PER_DAY",
    "UINT32_MAX",
    "UINT256_MAX",
    "ArithmeticOverflow",
    "ArithmeticUnderflow",
    "is_uint",
    "is_uint32",
    "validate_uint",
    "checked_add",
    "checked_sub",
    "days_to_seconds",
]
