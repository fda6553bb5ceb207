"""Market Queries — read-only агрегаты рынка.

Отчёты — статически объявленные frozen dataclass структуры вместо
словарей произвольной формы. Окно 24h отсчитывается от времени
транзакционного контекста, а не от wall-clock.
"""

from dataclasses import dataclass, field

from src.core.domain import DAY_MS, MarketSnapshot, Order, OrderSide, Trade
from src.core.math import safe_divide


# =============================================================================
# RESULT STRUCTURES
# =============================================================================


@dataclass(frozen=True)
class OrderBookView:
    """Книга заявок: buy по убыванию цены, sell по возрастанию."""

    buys: list[Order] = field(default_factory=list)
    sells: list[Order] = field(default_factory=list)

    def best_bid(self) -> float | None:
        return self.buys[0].price if self.buys else None

    def best_ask(self) -> float | None:
        return self.sells[0].price if self.sells else None

    def buy_volume(self) -> float:
        return sum(o.quantity for o in self.buys)

    def sell_volume(self) -> float:
        return sum(o.quantity for o in self.sells)

    def is_crossed(self) -> bool:
        """Лучший buy >= лучший sell при непустых сторонах."""
        if not self.buys or not self.sells:
            return False
        return self.buys[0].price >= self.sells[0].price


@dataclass(frozen=True)
class PriceQuote:
    """Текущая цена (последняя сделка) и изменение за 24h в процентах."""

    current_price: float | None
    price_change_pct: float
    reference_price: float | None  # Последняя сделка старше 24h
    message: str = ""


@dataclass(frozen=True)
class MarketStatisticsReport:
    """Сводная статистика рынка."""

    # Price discovery
    total_generation: float
    total_demand: float
    social_welfare: float
    iteration_count: int
    converged: bool

    # Сделки за 24h
    volume_24h: float  # Суммарная стоимость (USD)
    trade_count_24h: int
    average_price_24h: float

    # Цена
    current_price: float | None
    price_change_24h: float

    # Ликвидность книги
    total_buy_volume: float
    total_sell_volume: float

    # Участники и накопленная статистика
    producer_count: int
    consumer_count: int
    trade_count: int
    traded_value: float


# =============================================================================
# QUERIES
# =============================================================================


def build_order_book(orders: list[Order]) -> OrderBookView:
    """Книга заявок из открытых заявок (при равной цене — по порядку размещения)."""
    return OrderBookView(
        buys=sorted(
            (o for o in orders if o.side == OrderSide.BUY),
            key=lambda o: (-o.price, o.sequence),
        ),
        sells=sorted(
            (o for o in orders if o.side == OrderSide.SELL),
            key=lambda o: (o.price, o.sequence),
        ),
    )


def newest_first(trades: list[Trade]) -> list[Trade]:
    """Сделки от новых к старым (идентификатор строго возрастает с записью)."""
    return sorted(trades, key=lambda t: t.trade_id, reverse=True)


def trades_for_user(trades: list[Trade], consumer_id: str) -> list[Trade]:
    """Сделки, где потребитель — покупатель или продавец, от новых к старым."""
    return newest_first([t for t in trades if t.involves(consumer_id)])


def quote_current_price(trades: list[Trade], now_ts_utc_ms: int) -> PriceQuote:
    """Текущая цена и изменение к последней сделке старше 24h.

    Args:
        trades: сделки в любом порядке
        now_ts_utc_ms: время транзакционного контекста

    Returns:
        PriceQuote; без сделок current_price = None
    """
    ordered = newest_first(trades)
    if not ordered:
        return PriceQuote(
            current_price=None,
            price_change_pct=0.0,
            reference_price=None,
            message="No trades available",
        )

    current_price = ordered[0].price
    cutoff = now_ts_utc_ms - DAY_MS

    reference_price = next((t.price for t in ordered if t.ts_utc_ms < cutoff), None)

    price_change = 0.0
    if reference_price:
        price_change = safe_divide(current_price - reference_price, reference_price) * 100

    return PriceQuote(
        current_price=current_price,
        price_change_pct=price_change,
        reference_price=reference_price,
    )


def build_market_statistics(
    snapshot: MarketSnapshot,
    trades: list[Trade],
    book: OrderBookView,
    now_ts_utc_ms: int,
) -> MarketStatisticsReport:
    """Сводная статистика: агрегаты снапшота, сделки 24h, цена, ликвидность книги."""
    cutoff = now_ts_utc_ms - DAY_MS
    recent = [t for t in trades if t.ts_utc_ms > cutoff]

    volume_24h = sum(t.total_value for t in recent)
    average_price_24h = safe_divide(sum(t.price for t in recent), len(recent), fallback=0.0)

    quote = quote_current_price(trades, now_ts_utc_ms)

    return MarketStatisticsReport(
        total_generation=snapshot.total_generation,
        total_demand=snapshot.total_demand,
        social_welfare=snapshot.social_welfare,
        iteration_count=snapshot.iteration_count,
        converged=snapshot.converged,
        volume_24h=volume_24h,
        trade_count_24h=len(recent),
        average_price_24h=average_price_24h,
        current_price=quote.current_price,
        price_change_24h=quote.price_change_pct,
        total_buy_volume=book.buy_volume(),
        total_sell_volume=book.sell_volume(),
        producer_count=len(snapshot.producers),
        consumer_count=len(snapshot.consumers),
        trade_count=snapshot.statistics.trade_count,
        traded_value=snapshot.statistics.traded_value,
    )
