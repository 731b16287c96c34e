"""
Numerical Safeguards — Checked Unsigned Integer Arithmetic

Модуль обеспечивает целочисленную безопасность всех денежных и временных величин:
- Суммы (goal, pledge, pledged) — unsigned 256-bit (0 … 2**256 - 1)
- Timestamps (start_at, end_at, now) — unsigned 32-bit (0 … 2**32 - 1)
- Checked add/sub без переполнения (никакого wrap-around)

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Результат арифметики всегда в диапазоне [0, max_value]
2. Underflow (a - b < 0) → ArithmeticUnderflow, никогда не wrap
3. Overflow (a + b > max_value) → ArithmeticOverflow, никогда не wrap
4. bool не считается целым числом (True/False отклоняются)
"""

from typing import Final

# =============================================================================
# ДИАПАЗОНЫ
# =============================================================================

# Максимальная сумма (токены, минимальные единицы)
UINT256_MAX: Final[int] = 2**256 - 1

# Максимальный timestamp (секунды с эпохи)
UINT32_MAX: Final[int] = 2**32 - 1

# Секунд в сутках
SECONDS_PER_DAY: Final[int] = 86_400


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ArithmeticUnderflow(ArithmeticError):
    """
    Вычитание дало бы отрицательный результат.

    Ledger переводит в InsufficientPledge.
    """
    pass


class ArithmeticOverflow(ArithmeticError):
    """
    Сложение вышло бы за max_value.

    Ledger переводит в InvalidAmount.
    """
    pass


# =============================================================================
# ПРОВЕРКИ
# =============================================================================


def is_uint(value: object, max_value: int = UINT256_MAX) -> bool:
    """
    Проверка, является ли value целым в диапазоне [0, max_value].

    Args:
        value: Проверяемое значение (любой тип)
        max_value: Верхняя граница (default: UINT256_MAX)

    Returns:
        True если value — int (не bool) и 0 <= value <= max_value

    Examples:
        >>> is_uint(0)
        True
        >>> is_uint(-1)
        False
        >>> is_uint(True)
        False
        >>> is_uint(2**32, max_value=UINT32_MAX)
        False
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return 0 <= value <= max_value


def is_uint32(value: object) -> bool:
    """Проверка timestamp-диапазона (uint32)."""
    return is_uint(value, max_value=UINT32_MAX)


def validate_uint(value: object, name: str, max_value: int = UINT256_MAX) -> int:
    """
    Валидация беззнакового целого.

    Args:
        value: Проверяемое значение
        name: Имя параметра (для сообщения об ошибке)
        max_value: Верхняя граница (default: UINT256_MAX)

    Returns:
        value (как int)

    Raises:
        ValueError: Если value не int, bool, отрицательное или > max_value
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")

    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")

    if value > max_value:
        raise ValueError(f"{name} must be <= {max_value}, got {value}")

    return value


# =============================================================================
# CHECKED АРИФМЕТИКА
# =============================================================================


def checked_add(a: int, b: int, max_value: int = UINT256_MAX) -> int:
    """
    Сложение с проверкой переполнения.

    Args:
        a: Первое слагаемое (uint)
        b: Второе слагаемое (uint)
        max_value: Верхняя граница результата

    Returns:
        a + b

    Raises:
        ArithmeticOverflow: Если a + b > max_value

    Examples:
        >>> checked_add(40, 60)
        100
        >>> checked_add(UINT32_MAX, 1, max_value=UINT32_MAX)  # doctest: +SKIP
        Traceback (most recent call last):
            ...
        ArithmeticOverflow: ...
    """
    result = a + b
    if result > max_value:
        raise ArithmeticOverflow(f"{a} + {b} exceeds {max_value}")
    return result


def checked_sub(a: int, b: int) -> int:
    """
    Вычитание с проверкой underflow.

    Args:
        a: Уменьшаемое (uint)
        b: Вычитаемое (uint)

    Returns:
        a - b (>= 0)

    Raises:
        ArithmeticUnderflow: Если b > a
    """
    if b > a:
        raise ArithmeticUnderflow(f"{a} - {b} is negative")
    return a - b


def days_to_seconds(days: int) -> int:
    """Конверсия суток в секунды."""
    return days * SECONDS_PER_DAY
