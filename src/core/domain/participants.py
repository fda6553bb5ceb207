"""
Participants — Producer и Consumer энергетического рынка

Изменяемые Pydantic модели: снапшот рынка читается целиком, мутируется
в памяти движками и записывается обратно одной операцией. Валидация
выполняется при создании и при десериализации из хранилища.

ИНВАРИАНТЫ:
1. production_min <= production_max, demand_min <= demand_max
2. len(demands) == len(utilities) для каждого потребителя
3. producer_ids потребителя не содержит дубликатов
"""

from pydantic import BaseModel, Field, field_validator, model_validator


# =============================================================================
# PRODUCER
# =============================================================================


class Producer(BaseModel):
    """
    Производитель (генератор) с выпуклой квадратичной стоимостью.

    cost(q) = a·q² + b·q, λ = 2a·q + b.
    """

    producer_id: str = Field(..., min_length=1, description="Идентификатор производителя")
    a: float = Field(..., ge=0, description="Квадратичный коэффициент стоимости")
    b: float = Field(..., ge=0, description="Линейный коэффициент стоимости")
    production_min: float = Field(..., ge=0, description="Минимальный объём производства (MW)")
    production_max: float = Field(..., ge=0, description="Максимальный объём производства (MW)")

    production: float = Field(0.0, ge=0, description="Текущий объём производства (MW)")
    lambda_: float = Field(0.0, ge=0, description="Маржинальная стоимость / цена (USD/MW)")
    cost: float = Field(0.0, description="Полная стоимость текущего производства (USD)")

    owner_id: str | None = Field(
        None, description="Потребитель-владелец (None — выработка продаётся clearing pool)"
    )
    traded_volume: float = Field(0.0, ge=0, description="Накопленный проторгованный объём (MW)")

    @model_validator(mode="after")
    def validate_production_bounds(self) -> "Producer":
        """Проверка границ производства"""
        if self.production_min > self.production_max:
            raise ValueError(
                f"production_min {self.production_min} exceeds production_max {self.production_max}"
            )
        return self


# =============================================================================
# CONSUMER
# =============================================================================


class Consumer(BaseModel):
    """
    Потребитель с вогнутой квадратичной полезностью.

    utility(d) = β·d - ½·θ·d². Векторы demands/utilities индексированы
    так же, как список производителей снапшота.
    """

    consumer_id: str = Field(..., min_length=1, description="Идентификатор потребителя")
    beta: float = Field(..., description="Параметр полезности β")
    theta: float = Field(..., gt=0, description="Параметр полезности θ")
    demand_min: float = Field(..., ge=0, description="Минимальный суммарный спрос (MW)")
    demand_max: float = Field(..., ge=0, description="Максимальный суммарный спрос (MW)")

    # Множители Лагранжа для границ спроса
    u_min: float = Field(0.0, ge=0, description="Множитель нижней границы спроса")
    u_max: float = Field(0.0, ge=0, description="Множитель верхней границы спроса")

    demands: list[float] = Field(default_factory=list, description="Спрос по производителям")
    utilities: list[float] = Field(default_factory=list, description="Полезность по производителям")
    total_demand: float = Field(0.0, ge=0, description="Суммарный спрос (MW)")

    balance: float = Field(0.0, description="Баланс (USD, может быть отрицательным)")
    producer_ids: list[str] = Field(default_factory=list, description="Производители во владении")

    @field_validator("producer_ids")
    @classmethod
    def validate_unique_producer_ids(cls, v: list[str]) -> list[str]:
        """Проверка отсутствия дубликатов во владении"""
        if len(set(v)) != len(v):
            raise ValueError(f"producer_ids must be unique, got {v}")
        return v

    @model_validator(mode="after")
    def validate_vectors_and_bounds(self) -> "Consumer":
        """Проверка согласованности векторов и границ спроса"""
        if self.demand_min > self.demand_max:
            raise ValueError(
                f"demand_min {self.demand_min} exceeds demand_max {self.demand_max}"
            )
        if len(self.demands) != len(self.utilities):
            raise ValueError(
                f"demands ({len(self.demands)}) and utilities ({len(self.utilities)}) "
                "must have the same length"
            )
        return self

    def owns(self, producer_id: str) -> bool:
        """Владеет ли потребитель производителем."""
        return producer_id in self.producer_ids
