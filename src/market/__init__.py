"""Market — сервис операций рынка и эталонная конфигурация."""

from .bootstrap import (
    REFERENCE_CONSUMERS,
    REFERENCE_INITIAL_BALANCE,
    REFERENCE_PRODUCERS,
    build_reference_snapshot,
    new_consumer,
    new_producer,
)
from .service import (
    DEFAULT_RECENT_TRADES_LIMIT,
    ConvergenceReport,
    EnergyMarketService,
    PlacementResult,
)

__all__ = [
    "EnergyMarketService",
    "ConvergenceReport",
    "PlacementResult",
    "DEFAULT_RECENT_TRADES_LIMIT",
    "REFERENCE_PRODUCERS",
    "REFERENCE_CONSUMERS",
    "REFERENCE_INITIAL_BALANCE",
    "build_reference_snapshot",
    "new_producer",
    "new_consumer",
]
