"""Order Matching Engine — continuous double auction.

Валидация размещения:
- side ∈ {buy, sell}, price > 0, quantity > 0
- owner — существующий потребитель
- sell: производитель существует, принадлежит owner, цена в полосе
  ±price_band_fraction от текущей λ производителя

Матчинг (приближение price-time priority):
- buy по убыванию цены, sell по возрастанию; при равной цене — по порядку размещения
- пока лучший buy >= лучший sell: объём min(остатков), цена — midpoint
- каждая пара исполняется одним вызовом SettlementLedger.record_trade
- исполненные заявки удаляются, частично исполненные сохраняются с остатком

Self-trade prevention: пересечение заявок одного владельца не порождает
сделку; обе заявки уменьшаются на пересекающийся объём (decrement both).
Книга после матчинга никогда не остаётся пересечённой.
"""

from dataclasses import dataclass, field

from src.core.domain import (
    MarketSnapshot,
    Order,
    OrderSide,
    Trade,
    TradeSource,
    TransactionContext,
    format_order_id,
)
from src.core.errors import InvalidArgumentError, NotFoundError
from src.core.logger import get_logger
from src.core.math import EPS_QTY, is_valid_float
from src.ledger.settlement import SettlementLedger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchingConfig:
    """Конфигурация order book.

    price_band_fraction: допустимое отклонение цены sell-заявки от λ производителя.
    """
    price_band_fraction: float = 0.10


@dataclass(frozen=True)
class MatchResult:
    """Результат прохода матчинга."""

    trades: list[Trade] = field(default_factory=list)
    updated_orders: list[Order] = field(default_factory=list)  # Частично исполненные
    filled_order_ids: list[str] = field(default_factory=list)  # Удаляются из книги
    self_trades_prevented: int = 0


def parse_side(side: OrderSide | str) -> OrderSide:
    """Сторона заявки из строки ('buy'/'sell', без учёта регистра)."""
    if isinstance(side, OrderSide):
        return side
    try:
        return OrderSide(str(side).lower())
    except ValueError:
        raise InvalidArgumentError(f"order side must be either 'buy' or 'sell', got {side!r}")


class OrderMatchingEngine:
    """Размещение и матчинг заявок над рабочей копией снапшота."""

    def __init__(
        self,
        config: MatchingConfig | None = None,
        ledger: SettlementLedger | None = None,
    ):
        self.config = config or MatchingConfig()
        self.ledger = ledger or SettlementLedger()

    # -------------------------------------------------------------------------
    # Placement
    # -------------------------------------------------------------------------

    def create_order(
        self,
        snapshot: MarketSnapshot,
        side: OrderSide | str,
        price: float,
        quantity: float,
        owner_id: str,
        producer_id: str | None,
        ctx: TransactionContext,
    ) -> Order:
        """Валидация и создание заявки; резервирует порядковый номер в снапшоте.

        Raises:
            InvalidArgumentError: невалидные сторона/цена/количество, цена вне
                полосы или owner не владеет производителем
            NotFoundError: неизвестный owner или производитель
        """
        order_side = parse_side(side)
        self._validate(snapshot, order_side, price, quantity, owner_id, producer_id)

        sequence = snapshot.next_order_seq
        order = Order(
            order_id=format_order_id(sequence),
            owner_id=owner_id,
            side=order_side,
            price=price,
            quantity=quantity,
            producer_id=producer_id or None,
            ts_utc_ms=ctx.ts_utc_ms,
            sequence=sequence,
        )
        snapshot.next_order_seq = sequence + 1
        return order

    def _validate(
        self,
        snapshot: MarketSnapshot,
        side: OrderSide,
        price: float,
        quantity: float,
        owner_id: str,
        producer_id: str | None,
    ) -> None:
        if not is_valid_float(price) or price <= 0:
            raise InvalidArgumentError(f"price must be positive, got {price}")
        if not is_valid_float(quantity) or quantity <= 0:
            raise InvalidArgumentError(f"quantity must be positive, got {quantity}")

        if snapshot.find_consumer(owner_id) is None:
            raise NotFoundError(f"user {owner_id} does not exist")

        if side != OrderSide.SELL:
            return

        if not producer_id:
            raise InvalidArgumentError("producer ID is required for sell orders")

        producer = snapshot.find_producer(producer_id)
        if producer is None:
            raise NotFoundError(f"producer {producer_id} does not exist")

        if producer.owner_id != owner_id:
            raise InvalidArgumentError(f"user {owner_id} does not own producer {producer_id}")

        band = self.config.price_band_fraction * producer.lambda_
        if abs(price - producer.lambda_) > band:
            raise InvalidArgumentError(
                f"order price {price:.2f} deviates significantly from producer's "
                f"market price {producer.lambda_:.2f}"
            )

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def match(
        self,
        snapshot: MarketSnapshot,
        orders: list[Order],
        ctx: TransactionContext,
    ) -> MatchResult:
        """Матчинг открытых заявок до исчерпания пересекающихся пар.

        Args:
            snapshot: рабочая копия снапшота (мутируется через ledger)
            orders: все открытые заявки
            ctx: контекст транзакции

        Returns:
            MatchResult: сделки и изменения книги для фиксации
        """
        buys = sorted(
            (o for o in orders if o.side == OrderSide.BUY),
            key=lambda o: (-o.price, o.sequence),
        )
        sells = sorted(
            (o for o in orders if o.side == OrderSide.SELL),
            key=lambda o: (o.price, o.sequence),
        )

        trades: list[Trade] = []
        updated: dict[str, Order] = {}
        filled: list[str] = []
        prevented = 0

        while buys and sells:
            buy, sell = buys[0], sells[0]
            if buy.price < sell.price:
                break

            quantity = min(buy.quantity, sell.quantity)

            if buy.owner_id == sell.owner_id:
                prevented += 1
                logger.debug(
                    "self_trade_prevented",
                    owner_id=buy.owner_id,
                    buy_order_id=buy.order_id,
                    sell_order_id=sell.order_id,
                    quantity=quantity,
                )
            else:
                trades.append(
                    self.ledger.record_trade(
                        snapshot,
                        buyer_id=buy.owner_id,
                        seller_id=sell.owner_id,
                        producer_id=sell.producer_id,
                        price=(buy.price + sell.price) / 2,
                        quantity=quantity,
                        ctx=ctx,
                        source=TradeSource.ORDER_BOOK,
                    )
                )

            for book in (buys, sells):
                order = book[0]
                remaining = order.quantity - quantity
                if remaining <= EPS_QTY:
                    filled.append(order.order_id)
                    updated.pop(order.order_id, None)
                    book.pop(0)
                else:
                    book[0] = order.with_quantity(remaining)
                    updated[order.order_id] = book[0]

        if trades or prevented:
            logger.debug(
                "orders_matched",
                trades=len(trades),
                filled=len(filled),
                partially_filled=len(updated),
                self_trades_prevented=prevented,
            )

        return MatchResult(
            trades=trades,
            updated_orders=list(updated.values()),
            filled_order_ids=filled,
            self_trades_prevented=prevented,
        )
