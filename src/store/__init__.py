"""Store — интерфейс хранилища ключ-значение, кодек записей и unit of work."""

from .codec import decode_order, decode_snapshot, decode_trade, encode_record
from .kv_store import InMemoryKeyValueStore, KeyValueStore, WriteBatch
from .repository import (
    ORDER_PREFIX,
    SNAPSHOT_KEY,
    TRADE_PREFIX,
    MarketRepository,
    MarketUnitOfWork,
    order_key,
    trade_key,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "WriteBatch",
    "encode_record",
    "decode_snapshot",
    "decode_order",
    "decode_trade",
    "SNAPSHOT_KEY",
    "ORDER_PREFIX",
    "TRADE_PREFIX",
    "order_key",
    "trade_key",
    "MarketRepository",
    "MarketUnitOfWork",
]
