"""
Domain models and value objects.

Contains the energy market entities: Producer, Consumer, Order, Trade,
MarketSnapshot and the TransactionContext supplied by the execution environment.
"""

from src.core.domain.context import DAY_MS, TransactionContext
from src.core.domain.market_snapshot import MarketSnapshot, TradeStatistics
from src.core.domain.order import Order, OrderSide, format_order_id
from src.core.domain.participants import Consumer, Producer
from src.core.domain.trade import (
    CLEARING_POOL_ID,
    Trade,
    TradeSource,
    format_trade_id,
)

__all__ = [
    # Context
    "DAY_MS",
    "TransactionContext",
    # Participants
    "Producer",
    "Consumer",
    # Snapshot
    "MarketSnapshot",
    "TradeStatistics",
    # Order model
    "Order",
    "OrderSide",
    "format_order_id",
    # Trade model
    "CLEARING_POOL_ID",
    "Trade",
    "TradeSource",
    "format_trade_id",
]
