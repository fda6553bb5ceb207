"""
Record Codec — (де)сериализация записей хранилища

Записи хранятся как JSON. При чтении запись проходит два уровня проверки:
1. JSON Schema контракт (src/core/contracts/schema)
2. Pydantic модель (инварианты домена)

Любой отказ декодирования оборачивается в StateCorruptionError и
поднимается как есть, без попыток восстановления.
"""

import json
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from src.core.contracts import (
    MarketSnapshotValidator,
    OrderValidator,
    RecordValidator,
    TradeValidator,
)
from src.core.domain import MarketSnapshot, Order, Trade
from src.core.errors import StateCorruptionError

ModelT = TypeVar("ModelT", bound=BaseModel)

_SNAPSHOT_VALIDATOR = MarketSnapshotValidator()
_ORDER_VALIDATOR = OrderValidator()
_TRADE_VALIDATOR = TradeValidator()


def encode_record(record: BaseModel) -> str:
    """Сериализация модели в JSON (enum как значения)."""
    return record.model_dump_json()


def _decode(key: str, raw: str, validator: RecordValidator, model: type[ModelT]) -> ModelT:
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise StateCorruptionError(key, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StateCorruptionError(key, f"expected JSON object, got {type(data).__name__}")

    if not validator.is_valid(data):
        raise StateCorruptionError(
            key, f"{validator.schema_name} contract violation: {validator.error_summary(data)}"
        )

    try:
        return model.model_validate(data)
    except ModelValidationError as e:
        raise StateCorruptionError(key, f"{model.__name__} invariant violation: {e}") from e


def decode_snapshot(key: str, raw: str) -> MarketSnapshot:
    """Декодирование снапшота рынка."""
    return _decode(key, raw, _SNAPSHOT_VALIDATOR, MarketSnapshot)


def decode_order(key: str, raw: str) -> Order:
    """Декодирование заявки."""
    return _decode(key, raw, _ORDER_VALIDATOR, Order)


def decode_trade(key: str, raw: str) -> Trade:
    """Декодирование сделки."""
    return _decode(key, raw, _TRADE_VALIDATOR, Trade)
