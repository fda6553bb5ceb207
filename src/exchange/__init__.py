"""Exchange — continuous double auction order book."""

from .order_matching import (
    MatchingConfig,
    MatchResult,
    OrderMatchingEngine,
    parse_side,
)

__all__ = [
    "OrderMatchingEngine",
    "MatchingConfig",
    "MatchResult",
    "parse_side",
]
