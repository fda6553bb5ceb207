"""
Numerical Safeguards — Safe Math Primitives

Модуль обеспечивает численную устойчивость итераций price discovery:
- Безопасное деление с защитой от деления на ноль
- NaN/Inf санитизация для предотвращения распространения невалидных значений
- Проекции (clamp, неотрицательный ортант) для ограничений задачи

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Деление на ноль никогда не происходит (возвращается fallback)
2. NaN/Inf никогда не пропагируют в снапшот рынка
3. Все операции детерминированы и воспроизводимы
"""

import math
from typing import Final

# =============================================================================
# EPSILON-ПАРАМЕТРЫ
# =============================================================================

# Epsilon для общих вычислений
EPS_CALC: Final[float] = 1e-12

# Epsilon для количеств энергии (MW)
EPS_QTY: Final[float] = 1e-9

# Нижняя граница знаменателя при масштабировании спроса
# (DemandMin / max(TotalDemand, EPS_DEMAND_SCALE))
EPS_DEMAND_SCALE: Final[float] = 1e-4


# =============================================================================
# NaN/Inf САНИТИЗАЦИЯ
# =============================================================================


def is_valid_float(value: float) -> bool:
    """Проверка, что значение конечно (не NaN, не Inf)."""
    return not (math.isnan(value) or math.isinf(value))


def sanitize_float(value: float, fallback: float = 0.0) -> float:
    """
    Замена NaN/Inf на fallback.

    Args:
        value: Исходное значение
        fallback: Значение-заменитель

    Returns:
        value если оно конечно, иначе fallback
    """
    if is_valid_float(value):
        return value
    return fallback


# =============================================================================
# БЕЗОПАСНОЕ ДЕЛЕНИЕ
# =============================================================================


def denom_safe_unsigned(value: float, eps: float = EPS_CALC) -> float:
    """
    Безопасный беззнаковый делитель: max(abs(value), eps).

    Examples:
        >>> denom_safe_unsigned(10.0, 1e-6)
        10.0
        >>> denom_safe_unsigned(0.0, 1e-4)
        0.0001
    """
    if eps <= 0:
        raise ValueError(f"eps must be positive, got {eps}")
    return max(abs(value), eps)


def safe_divide(
    numerator: float,
    denominator: float,
    eps: float = EPS_CALC,
    fallback: float = 0.0,
) -> float:
    """
    Безопасное деление с защитой от деления на ноль и NaN/Inf.

    Точный ноль в знаменателе даёт fallback; малые ненулевые знаменатели
    ограничиваются по модулю снизу значением eps с сохранением знака.

    Args:
        numerator: Числитель
        denominator: Знаменатель
        eps: Минимальный абсолютный порог для знаменателя
        fallback: Результат при делении на ноль

    Returns:
        Результат деления или fallback
    """
    num_clean = sanitize_float(numerator, fallback=0.0)
    denom_raw = sanitize_float(denominator, fallback=0.0)

    if denom_raw == 0.0:
        return fallback

    denom_safe = math.copysign(denom_safe_unsigned(denom_raw, eps), denom_raw)
    return sanitize_float(num_clean / denom_safe, fallback=fallback)


# =============================================================================
# ПРОЕКЦИИ
# =============================================================================


def clamp(
    value: float,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    """
    Ограничение значения диапазоном [min_value, max_value].

    Examples:
        >>> clamp(-1.0, 0.0, 10.0)
        0.0
        >>> clamp(15.0, 0.0, 10.0)
        10.0
    """
    result = value

    if min_value is not None:
        result = max(result, min_value)

    if max_value is not None:
        result = min(result, max_value)

    return result


def project_nonnegative(value: float) -> float:
    """
    Проекция на неотрицательный ортант: max(0, value).

    NaN/Inf проецируются в 0.
    """
    return max(0.0, sanitize_float(value, fallback=0.0))


def diminishing_step_size(base: float, iteration: int) -> float:
    """
    Убывающий шаг субградиентного метода: base / sqrt(iteration + 1).

    Args:
        base: Начальный шаг (iteration = 0)
        iteration: Номер итерации (>= 0)

    Raises:
        ValueError: Если base <= 0 или iteration < 0
    """
    if base <= 0:
        raise ValueError(f"base step size must be positive, got {base}")
    if iteration < 0:
        raise ValueError(f"iteration must be non-negative, got {iteration}")
    return base / math.sqrt(iteration + 1)


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================


def validate_positive(value: float, name: str) -> None:
    """
    Валидация, что значение конечно и строго положительно.

    Raises:
        ValueError: Если value <= 0 или NaN/Inf
    """
    if not is_valid_float(value):
        raise ValueError(f"{name} must be a valid float (not NaN/Inf), got {value}")

    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def validate_non_negative(value: float, name: str) -> None:
    """
    Валидация, что значение конечно и неотрицательно.

    Raises:
        ValueError: Если value < 0 или NaN/Inf
    """
    if not is_valid_float(value):
        raise ValueError(f"{name} must be a valid float (not NaN/Inf), got {value}")

    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def validate_bounds(lower: float, upper: float, name: str) -> None:
    """
    Валидация границ диапазона: 0 <= lower <= upper.

    Raises:
        ValueError: Если границы невалидны
    """
    validate_non_negative(lower, f"{name} lower bound")
    validate_non_negative(upper, f"{name} upper bound")

    if lower > upper:
        raise ValueError(f"{name} lower bound {lower} exceeds upper bound {upper}")
