"""
Quadratic Curves — функции стоимости и полезности рынка

Производители:
    cost(q)    = a·q² + b·q          (выпуклая, a >= 0, b >= 0)
    λ(q)       = dcost/dq = 2a·q + b (маржинальная стоимость = ценовой сигнал)
    q(λ)       = (λ - b) / (2a)      (обращение маржинальной стоимости)

Потребители:
    utility(d) = β·d - ½·θ·d²        (вогнутая, θ > 0)
    d(λ)       = (β + u_min - u_max - λ) / θ  (условие первого порядка)

Все функции чистые: без состояния и побочных эффектов.
"""

from typing import Final

from src.core.math.numerical_safeguards import (
    EPS_CALC,
    clamp,
    project_nonnegative,
    safe_divide,
)

# Порог, ниже которого коэффициент a считается нулевым (линейная стоимость)
LINEAR_COST_EPS: Final[float] = 1e-12


# =============================================================================
# ПРОИЗВОДИТЕЛИ
# =============================================================================


def production_cost(a: float, b: float, production: float) -> float:
    """Полная стоимость производства: a·q² + b·q."""
    return a * production**2 + b * production


def marginal_cost(a: float, b: float, production: float) -> float:
    """Маржинальная стоимость: 2a·q + b."""
    return 2 * a * production + b


def production_for_price(
    a: float,
    b: float,
    price: float,
    current_production: float,
    production_min: float,
    production_max: float,
) -> float:
    """
    Объём производства, при котором маржинальная стоимость равна цене.

    Обращает 2a·q + b = λ и проецирует результат на [production_min, production_max].
    Для линейной стоимости (a ≈ 0) обращение вырождено: производитель
    выходит на максимум при λ > b, на минимум при λ < b и сохраняет
    текущий объём при λ == b.

    Args:
        a: Квадратичный коэффициент стоимости
        b: Линейный коэффициент стоимости
        price: Цена λ
        current_production: Текущий объём (для вырожденного случая λ == b)
        production_min: Нижняя граница производства
        production_max: Верхняя граница производства

    Returns:
        Объём производства в [production_min, production_max]
    """
    if a <= LINEAR_COST_EPS:
        if price > b:
            raw = production_max
        elif price < b:
            raw = production_min
        else:
            raw = current_production
    else:
        raw = safe_divide(price - b, 2 * a, eps=EPS_CALC, fallback=production_min)

    return clamp(raw, production_min, production_max)


# =============================================================================
# ПОТРЕБИТЕЛИ
# =============================================================================


def consumer_utility(beta: float, theta: float, demand: float) -> float:
    """Полезность потребления: β·d - ½·θ·d²."""
    return beta * demand - 0.5 * theta * demand**2


def optimal_demand(
    beta: float,
    theta: float,
    price: float,
    u_min: float = 0.0,
    u_max: float = 0.0,
) -> float:
    """
    Спрос из условия первого порядка лагранжиана, спроецированный на d >= 0.

    d = max(0, (β + u_min - u_max - λ) / θ)

    Args:
        beta: Параметр полезности β
        theta: Параметр полезности θ (> 0)
        price: Цена λ производителя
        u_min: Множитель нижней границы спроса
        u_max: Множитель верхней границы спроса

    Returns:
        Неотрицательный спрос
    """
    return project_nonnegative(
        safe_divide(beta + u_min - u_max - price, theta, eps=EPS_CALC, fallback=0.0)
    )
