"""
Trade — модель исполненной сделки

Immutable Pydantic модель. Сделки только добавляются в реестр и никогда
не изменяются. Идентификатор строго возрастает и совпадает с порядком
записи, поэтому лексикографическая сортировка ключей хронологична.
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator

# Контрагент сделок clearing-алгоритма без явной встречной заявки
CLEARING_POOL_ID = "MARKET"

# Допуск сравнения total_value с price * quantity
TOTAL_VALUE_TOLERANCE = 1e-6


class TradeSource(str, Enum):
    """Путь, породивший сделку"""

    CLEARING = "clearing"  # Сходимость price discovery
    ORDER_BOOK = "order_book"  # Матчинг заявок


def format_trade_id(sequence: int) -> str:
    """Идентификатор сделки из порядкового номера (12 знаков, с ведущими нулями)."""
    return f"{sequence:012d}"


class Trade(BaseModel):
    """
    Исполненная сделка между покупателем и продавцом.

    seller_id равен CLEARING_POOL_ID для сделок против анонимного пула.
    """

    trade_id: str = Field(..., min_length=1, description="Уникальный возрастающий идентификатор")
    buyer_id: str = Field(..., min_length=1, description="Покупатель")
    seller_id: str = Field(..., min_length=1, description="Продавец или CLEARING_POOL_ID")
    producer_id: str = Field(..., min_length=1, description="Производитель, чья энергия продана")
    price: float = Field(..., ge=0, description="Цена за единицу (USD/MW)")
    quantity: float = Field(..., gt=0, description="Количество (MW)")
    total_value: float = Field(..., ge=0, description="Стоимость сделки (price * quantity)")
    ts_utc_ms: int = Field(..., ge=0, description="Время сделки (UTC, миллисекунды)")
    block_height: int = Field(0, ge=0, description="Высота блока")
    tx_id: str = Field(..., min_length=1, description="Транзакция, записавшая сделку")
    source: TradeSource = Field(..., description="Путь, породивший сделку")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_total_value(self) -> "Trade":
        """Проверка total_value == price * quantity"""
        expected = self.price * self.quantity
        if abs(self.total_value - expected) > TOTAL_VALUE_TOLERANCE * max(1.0, expected):
            raise ValueError(
                f"total_value {self.total_value} must equal price * quantity {expected}"
            )
        return self

    def is_against_pool(self) -> bool:
        """Сделка против clearing pool (без кредитуемого продавца)."""
        return self.seller_id == CLEARING_POOL_ID

    def involves(self, consumer_id: str) -> bool:
        """Участвует ли потребитель в сделке как покупатель или продавец."""
        return self.buyer_id == consumer_id or self.seller_id == consumer_id
