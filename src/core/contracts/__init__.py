"""
Record Contract Validation Module

Модуль для валидации JSON записей хранилища энергетического рынка.
"""

from .validators import (
    MarketSnapshotValidator,
    OrderValidator,
    RecordValidator,
    SchemaLoader,
    TradeValidator,
)

__all__ = [
    # Classes
    "SchemaLoader",
    "RecordValidator",
    "MarketSnapshotValidator",
    "OrderValidator",
    "TradeValidator",
]
