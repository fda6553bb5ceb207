"""
MarketSnapshot — агрегат состояния энергетического рынка

Единственная единица оптимистичной согласованности: снапшот читается
один раз за операцию, полностью мутируется в памяти и записывается
обратно одной записью. Частичная запись посреди вычисления запрещена.

ИНВАРИАНТЫ (проверяются при создании и десериализации):
1. len(consumer.demands) == len(producers) для каждого потребителя
2. Идентификаторы производителей и потребителей уникальны
3. producer.owner_id ссылается на существующего потребителя, и
   producer_id присутствует в его producer_ids ровно один раз
4. version, счётчики последовательностей и iteration_count монотонны
"""

from pydantic import BaseModel, Field, model_validator

from .participants import Consumer, Producer


# =============================================================================
# NESTED MODELS
# =============================================================================


class TradeStatistics(BaseModel):
    """Накопленная статистика сделок рынка."""

    trade_count: int = Field(0, ge=0, description="Количество сделок")
    traded_volume: float = Field(0.0, ge=0, description="Суммарный объём сделок (MW)")
    traded_value: float = Field(0.0, ge=0, description="Суммарная стоимость сделок (USD)")


# =============================================================================
# MARKET SNAPSHOT
# =============================================================================


class MarketSnapshot(BaseModel):
    """
    Снапшот рынка: участники, агрегаты итерации, флаг сходимости и статистика.

    version увеличивается при каждой зафиксированной записи и служит
    маркером оптимистичной конкуренции.
    """

    version: int = Field(0, ge=0, description="Версия снапшота")

    producers: list[Producer] = Field(default_factory=list, description="Производители")
    consumers: list[Consumer] = Field(default_factory=list, description="Потребители")

    total_generation: float = Field(0.0, description="Суммарная генерация (MW)")
    total_demand: float = Field(0.0, description="Суммарный спрос (MW)")
    social_welfare: float = Field(0.0, description="Суммарная полезность минус стоимость (USD)")

    iteration_count: int = Field(0, ge=0, description="Количество выполненных итераций")
    converged: bool = Field(False, description="Флаг сходимости price discovery")
    settled_at_iteration: int | None = Field(
        None, ge=0, description="Итерация последней записи clearing-сделок"
    )

    statistics: TradeStatistics = Field(default_factory=TradeStatistics)

    next_trade_seq: int = Field(1, ge=1, description="Следующий номер сделки")
    next_order_seq: int = Field(1, ge=1, description="Следующий номер заявки")

    @model_validator(mode="after")
    def validate_consistency(self) -> "MarketSnapshot":
        """Проверка ссылочной целостности и длины векторов спроса"""
        producer_ids = [p.producer_id for p in self.producers]
        if len(set(producer_ids)) != len(producer_ids):
            raise ValueError(f"duplicate producer ids: {producer_ids}")

        consumer_ids = [c.consumer_id for c in self.consumers]
        if len(set(consumer_ids)) != len(consumer_ids):
            raise ValueError(f"duplicate consumer ids: {consumer_ids}")

        n_producers = len(self.producers)
        for consumer in self.consumers:
            if len(consumer.demands) != n_producers:
                raise ValueError(
                    f"consumer {consumer.consumer_id} has {len(consumer.demands)} demand slots, "
                    f"expected {n_producers}"
                )

        owned = {c.consumer_id: set(c.producer_ids) for c in self.consumers}
        for producer in self.producers:
            if producer.owner_id is None:
                continue
            if producer.owner_id not in owned:
                raise ValueError(
                    f"producer {producer.producer_id} owner {producer.owner_id} is not a consumer"
                )
            if producer.producer_id not in owned[producer.owner_id]:
                raise ValueError(
                    f"producer {producer.producer_id} missing from owner "
                    f"{producer.owner_id} producer_ids"
                )

        return self

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_producer(self, producer_id: str) -> Producer | None:
        """Производитель по идентификатору или None."""
        for producer in self.producers:
            if producer.producer_id == producer_id:
                return producer
        return None

    def find_consumer(self, consumer_id: str) -> Consumer | None:
        """Потребитель по идентификатору или None."""
        for consumer in self.consumers:
            if consumer.consumer_id == consumer_id:
                return consumer
        return None

    def producer_index(self, producer_id: str) -> int | None:
        """Позиция производителя в списке (индекс векторов спроса)."""
        for i, producer in enumerate(self.producers):
            if producer.producer_id == producer_id:
                return i
        return None

    def supply_demand_gap(self) -> float:
        """|total_generation - total_demand|."""
        return abs(self.total_generation - self.total_demand)
