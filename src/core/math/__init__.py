"""
Core math modules для энергетического рынка

Математические примитивы и кривые стоимости/полезности с гарантией стабильности.
"""

# Numerical Safeguards
from src.core.math.numerical_safeguards import (
    # Epsilon constants
    EPS_CALC,
    EPS_DEMAND_SCALE,
    EPS_QTY,
    # Safe division
    denom_safe_unsigned,
    safe_divide,
    # NaN/Inf sanitization
    is_valid_float,
    sanitize_float,
    # Projections
    clamp,
    diminishing_step_size,
    project_nonnegative,
    # Validation
    validate_bounds,
    validate_non_negative,
    validate_positive,
)

# Quadratic curves
from src.core.math.quadratic_curves import (
    LINEAR_COST_EPS,
    consumer_utility,
    marginal_cost,
    optimal_demand,
    production_cost,
    production_for_price,
)

__all__ = [
    # Numerical Safeguards — Epsilon constants
    "EPS_CALC",
    "EPS_DEMAND_SCALE",
    "EPS_QTY",
    # Numerical Safeguards — Safe division
    "denom_safe_unsigned",
    "safe_divide",
    # Numerical Safeguards — NaN/Inf sanitization
    "is_valid_float",
    "sanitize_float",
    # Numerical Safeguards — Projections
    "clamp",
    "diminishing_step_size",
    "project_nonnegative",
    # Numerical Safeguards — Validation
    "validate_bounds",
    "validate_non_negative",
    "validate_positive",
    # Quadratic curves
    "LINEAR_COST_EPS",
    "consumer_utility",
    "marginal_cost",
    "optimal_demand",
    "production_cost",
    "production_for_price",
]
