"""Bootstrap — фабрики участников и эталонная конфигурация рынка.

Новый производитель стартует с production = production_min и
λ = 2a·production_min + b; новый потребитель — с нулевыми векторами
спроса и полезности длины, равной числу производителей.
"""

from src.core.domain import Consumer, MarketSnapshot, Producer
from src.core.math import marginal_cost, production_cost

# Начальный баланс потребителей эталонного рынка (USD)
REFERENCE_INITIAL_BALANCE = 10000.0

# (producer_id, a, b, production_min, production_max, owner_id)
REFERENCE_PRODUCERS: tuple[tuple[str, float, float, float, float, str], ...] = (
    ("producer1", 0.0080, 2.25, 10.0, 350.0, "consumer1"),
    ("producer2", 0.0062, 4.20, 20.0, 290.0, "consumer2"),
    ("producer3", 0.0075, 3.25, 15.0, 400.0, "consumer3"),
)

# (consumer_id, beta, theta, demand_min, demand_max)
REFERENCE_CONSUMERS: tuple[tuple[str, float, float, float, float], ...] = (
    ("consumer1", 8.25, 0.0720, 60.0, 150.0),
    ("consumer2", 7.90, 0.0660, 50.0, 100.0),
    ("consumer3", 7.55, 0.0700, 90.0, 145.0),
    ("consumer4", 8.00, 0.0550, 60.0, 140.0),
    ("consumer5", 7.75, 0.0750, 50.0, 150.0),
    ("consumer6", 8.05, 0.0450, 70.0, 170.0),
)


def new_producer(
    producer_id: str,
    a: float,
    b: float,
    production_min: float,
    production_max: float,
    owner_id: str | None,
) -> Producer:
    """Производитель на нижней границе производства с согласованной λ."""
    return Producer(
        producer_id=producer_id,
        a=a,
        b=b,
        production_min=production_min,
        production_max=production_max,
        production=production_min,
        lambda_=marginal_cost(a, b, production_min),
        cost=production_cost(a, b, production_min),
        owner_id=owner_id,
    )


def new_consumer(
    consumer_id: str,
    beta: float,
    theta: float,
    demand_min: float,
    demand_max: float,
    n_producers: int,
    balance: float = 0.0,
    producer_ids: list[str] | None = None,
) -> Consumer:
    """Потребитель с нулевыми векторами спроса и полезности."""
    return Consumer(
        consumer_id=consumer_id,
        beta=beta,
        theta=theta,
        demand_min=demand_min,
        demand_max=demand_max,
        demands=[0.0] * n_producers,
        utilities=[0.0] * n_producers,
        balance=balance,
        producer_ids=list(producer_ids or []),
    )


def build_reference_snapshot() -> MarketSnapshot:
    """Эталонный рынок: 3 производителя, 6 потребителей, нулевая статистика."""
    producers = [new_producer(*params) for params in REFERENCE_PRODUCERS]

    owned: dict[str, list[str]] = {}
    for producer in producers:
        owned.setdefault(producer.owner_id, []).append(producer.producer_id)

    consumers = [
        new_consumer(
            consumer_id,
            beta,
            theta,
            demand_min,
            demand_max,
            n_producers=len(producers),
            balance=REFERENCE_INITIAL_BALANCE,
            producer_ids=owned.get(consumer_id, []),
        )
        for consumer_id, beta, theta, demand_min, demand_max in REFERENCE_CONSUMERS
    ]

    return MarketSnapshot(producers=producers, consumers=consumers)
