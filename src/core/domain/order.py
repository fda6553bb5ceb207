"""
Order — заявка continuous double auction

Immutable Pydantic модель. Частичное исполнение порождает новую
заявку с уменьшенным quantity (model_copy), а полностью исполненная
заявка удаляется из книги. Путь price discovery заявки не изменяет.
"""

from enum import Enum

from pydantic import BaseModel, Field, model_validator


def format_order_id(sequence: int) -> str:
    """Идентификатор заявки из порядкового номера (12 знаков, с ведущими нулями)."""
    return f"{sequence:012d}"


class OrderSide(str, Enum):
    """Сторона заявки"""

    BUY = "buy"
    SELL = "sell"


class Order(BaseModel):
    """
    Лимитная заявка на покупку или продажу энергии.

    Для sell-заявки обязателен producer_id: продаётся выработка
    конкретного производителя, которым владеет owner_id.
    """

    order_id: str = Field(..., min_length=1, description="Детерминированный идентификатор заявки")
    owner_id: str = Field(..., min_length=1, description="Потребитель, разместивший заявку")
    side: OrderSide = Field(..., description="Сторона (buy/sell)")
    price: float = Field(..., gt=0, description="Цена за единицу (USD/MW)")
    quantity: float = Field(..., gt=0, description="Оставшееся количество (MW)")
    producer_id: str | None = Field(None, description="Производитель (обязателен для sell)")
    ts_utc_ms: int = Field(..., ge=0, description="Время размещения (UTC, миллисекунды)")
    sequence: int = Field(..., ge=1, description="Порядковый номер размещения (time priority)")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_sell_has_producer(self) -> "Order":
        """Sell-заявка должна ссылаться на производителя"""
        if self.side == OrderSide.SELL and not self.producer_id:
            raise ValueError("producer_id is required for sell orders")
        return self

    def notional(self) -> float:
        """Стоимость оставшегося количества по цене заявки."""
        return self.price * self.quantity

    def with_quantity(self, quantity: float) -> "Order":
        """Копия заявки с новым оставшимся количеством."""
        return self.model_copy(update={"quantity": quantity})
