"""Energy Market Service — операции рынка поверх хранилища.

Каждая операция исполняется как одна неделимая транзакция:
1. открыть unit of work и прочитать снапшот
2. мутировать рабочую копию в памяти (движки, ledger)
3. поставить записи заявок/сделок и снапшот
4. один атомарный commit

Исключение на любом шаге означает, что ничего не записано.
Повторы при ConcurrentModificationError — ответственность вызывающего.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field

from src.clearing import AdvanceResult, ClearingConfig, PriceDiscoveryEngine
from src.core.domain import (
    Consumer,
    MarketSnapshot,
    Order,
    OrderSide,
    Producer,
    Trade,
    TransactionContext,
)
from src.core.errors import (
    ConvergenceFailureError,
    InvalidArgumentError,
    MarketError,
    NotFoundError,
)
from src.core.logger import get_logger
from src.core.math import (
    is_valid_float,
    validate_bounds,
    validate_non_negative,
    validate_positive,
)
from src.exchange import MatchingConfig, MatchResult, OrderMatchingEngine
from src.ledger import SettlementLedger
from src.market.bootstrap import build_reference_snapshot, new_consumer, new_producer
from src.reporting import (
    MarketStatisticsReport,
    OrderBookView,
    PriceQuote,
    build_market_statistics,
    build_order_book,
    newest_first,
    quote_current_price,
    trades_for_user,
)
from src.store import KeyValueStore, MarketRepository, MarketUnitOfWork

logger = get_logger(__name__)

# Лимит по умолчанию для get_recent_trades
DEFAULT_RECENT_TRADES_LIMIT = 10


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class PlacementResult:
    """Результат размещения заявки и последующего матчинга."""

    order: Order
    match: MatchResult

    def is_resting(self) -> bool:
        """Остаток заявки остался в книге."""
        return self.order.order_id not in self.match.filled_order_ids


@dataclass(frozen=True)
class ConvergenceReport:
    """Результат run_until_converged."""

    snapshot: MarketSnapshot
    iterations_run: int
    supply_demand_gap: float
    max_lambda_delta: float
    trades: list[Trade] = field(default_factory=list)


# =============================================================================
# SERVICE
# =============================================================================


class EnergyMarketService:
    """Фасад операций энергетического рынка."""

    def __init__(
        self,
        store: KeyValueStore,
        clearing_config: ClearingConfig | None = None,
        matching_config: MatchingConfig | None = None,
    ):
        self.repository = MarketRepository(store)
        self.ledger = SettlementLedger()
        self.price_discovery = PriceDiscoveryEngine(clearing_config, self.ledger)
        self.matching = OrderMatchingEngine(matching_config, self.ledger)

    @contextmanager
    def _operation(self, name: str, ctx: TransactionContext | None = None, **fields):
        """Логирование отказа операции; исключение пробрасывается как есть."""
        log = logger.bind(operation=name, tx_id=ctx.tx_id if ctx else None, **fields)
        try:
            yield log
        except MarketError as e:
            log.warning("operation_rejected", error=type(e).__name__, reason=str(e))
            raise

    # -------------------------------------------------------------------------
    # Price discovery
    # -------------------------------------------------------------------------

    def initialize_market(self, ctx: TransactionContext) -> MarketSnapshot:
        """Засев эталонной конфигурации с нулевой статистикой.

        При повторной инициализации счётчики идентификаторов сохраняются
        (идентификаторы сделок не переиспользуются), открытые заявки
        прежнего рынка удаляются, история сделок остаётся.
        """
        with self._operation("initialize_market", ctx) as log:
            uow = self.repository.unit_of_work()
            existing = uow.peek_snapshot()

            snapshot = build_reference_snapshot()
            if existing is not None:
                snapshot.next_trade_seq = existing.next_trade_seq
                snapshot.next_order_seq = existing.next_order_seq
                for order in uow.open_orders():
                    uow.delete_order(order.order_id)

            uow.save_snapshot(snapshot)
            uow.commit()

            log.info(
                "market_initialized",
                producers=len(snapshot.producers),
                consumers=len(snapshot.consumers),
                version=snapshot.version,
            )
            return snapshot

    def advance_market(self, ctx: TransactionContext) -> AdvanceResult:
        """Одна итерация price discovery с фиксацией снапшота и сделок сходимости."""
        with self._operation("advance_market", ctx) as log:
            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()

            result = self.price_discovery.advance(snapshot, ctx)
            for trade in result.trades:
                uow.append_trade(trade)
            uow.save_snapshot(result.snapshot)
            uow.commit()

            if result.newly_converged:
                log.info(
                    "market_converged",
                    iteration=result.iteration,
                    social_welfare=result.snapshot.social_welfare,
                    trades=len(result.trades),
                )
            return result

    def run_until_converged(self, max_iterations: int, ctx: TransactionContext) -> ConvergenceReport:
        """Повтор advance_market до сходимости, не более max_iterations раз.

        Каждая итерация фиксируется отдельно.

        Raises:
            InvalidArgumentError: max_iterations < 1
            ConvergenceFailureError: сходимость не достигнута за лимит
        """
        if max_iterations < 1:
            raise InvalidArgumentError(f"max_iterations must be >= 1, got {max_iterations}")

        with self._operation("run_until_converged", ctx, max_iterations=max_iterations) as log:
            trades: list[Trade] = []
            result: AdvanceResult | None = None

            for i in range(max_iterations):
                result = self.advance_market(ctx)
                trades.extend(result.trades)
                if result.converged:
                    log.info(
                        "run_converged",
                        iterations_run=i + 1,
                        iteration_count=result.snapshot.iteration_count,
                        gap=result.supply_demand_gap,
                    )
                    return ConvergenceReport(
                        snapshot=result.snapshot,
                        iterations_run=i + 1,
                        supply_demand_gap=result.supply_demand_gap,
                        max_lambda_delta=result.max_lambda_delta,
                        trades=trades,
                    )

            raise ConvergenceFailureError(
                max_iterations,
                supply_demand_gap=result.supply_demand_gap,
                max_lambda_delta=result.max_lambda_delta,
            )

    def get_snapshot(self) -> MarketSnapshot:
        """Текущий снапшот рынка."""
        return self.repository.load_snapshot()

    def get_market_results(self) -> MarketSnapshot:
        """Результаты clearing (снапшот рынка)."""
        return self.get_snapshot()

    # -------------------------------------------------------------------------
    # Order book
    # -------------------------------------------------------------------------

    def place_order(
        self,
        ctx: TransactionContext,
        side: OrderSide | str,
        price: float,
        quantity: float,
        owner_id: str,
        producer_id: str | None = None,
    ) -> PlacementResult:
        """Валидация, размещение заявки и немедленный матчинг книги."""
        with self._operation("place_order", ctx, owner_id=owner_id) as log:
            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()

            order = self.matching.create_order(
                snapshot, side, price, quantity, owner_id, producer_id, ctx
            )
            uow.put_order(order)

            match = self._match_and_stage(uow, snapshot, ctx)
            uow.save_snapshot(snapshot)
            uow.commit()

            log.info(
                "order_placed",
                order_id=order.order_id,
                price=price,
                quantity=quantity,
                trades=len(match.trades),
            )
            return PlacementResult(order=order, match=match)

    def match_orders(self, ctx: TransactionContext) -> MatchResult:
        """Матчинг книги; пустая или непересечённая книга — не ошибка."""
        with self._operation("match_orders", ctx) as log:
            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()

            match = self._match_and_stage(uow, snapshot, ctx)
            if match.trades or match.filled_order_ids or match.updated_orders:
                uow.save_snapshot(snapshot)
                uow.commit()

            log.info("orders_matched", trades=len(match.trades))
            return match

    def _match_and_stage(
        self,
        uow: MarketUnitOfWork,
        snapshot: MarketSnapshot,
        ctx: TransactionContext,
    ) -> MatchResult:
        match = self.matching.match(snapshot, uow.open_orders(), ctx)
        for trade in match.trades:
            uow.append_trade(trade)
        for order in match.updated_orders:
            uow.put_order(order)
        for order_id in match.filled_order_ids:
            uow.delete_order(order_id)
        return match

    def get_order_book(self) -> OrderBookView:
        """Книга заявок: buy по убыванию цены, sell по возрастанию."""
        return build_order_book(self.repository.list_orders())

    # -------------------------------------------------------------------------
    # Trades and prices
    # -------------------------------------------------------------------------

    def get_trade_history(self) -> list[Trade]:
        """Все сделки, от новых к старым."""
        return newest_first(self.repository.list_trades())

    def get_recent_trades(self, limit: int = DEFAULT_RECENT_TRADES_LIMIT) -> list[Trade]:
        """Последние limit сделок."""
        if limit < 0:
            raise InvalidArgumentError(f"limit must be non-negative, got {limit}")
        return self.get_trade_history()[:limit]

    def get_current_price(self, ctx: TransactionContext) -> PriceQuote:
        """Цена последней сделки и изменение к последней сделке старше 24h."""
        return quote_current_price(self.repository.list_trades(), ctx.ts_utc_ms)

    def get_user_trades(self, owner_id: str) -> list[Trade]:
        """Сделки потребителя (покупатель или продавец), от новых к старым."""
        return trades_for_user(self.repository.list_trades(), owner_id)

    def get_market_statistics(self, ctx: TransactionContext) -> MarketStatisticsReport:
        """Сводная статистика рынка на момент ctx.ts_utc_ms."""
        return build_market_statistics(
            self.repository.load_snapshot(),
            self.repository.list_trades(),
            self.get_order_book(),
            ctx.ts_utc_ms,
        )

    # -------------------------------------------------------------------------
    # Participants
    # -------------------------------------------------------------------------

    def get_user_balance(self, owner_id: str) -> float:
        consumer = self.repository.load_snapshot().find_consumer(owner_id)
        if consumer is None:
            raise NotFoundError(f"user {owner_id} not found")
        return consumer.balance

    def get_producer_details(self, producer_id: str) -> Producer:
        producer = self.repository.load_snapshot().find_producer(producer_id)
        if producer is None:
            raise NotFoundError(f"producer {producer_id} not found")
        return producer

    def transfer_producer_ownership(
        self,
        ctx: TransactionContext,
        producer_id: str,
        current_owner_id: str,
        new_owner_id: str,
    ) -> Producer:
        """Атомарная передача владения производителем.

        Открытые sell-заявки прежнего владельца на этого производителя
        снимаются: право продажи проверялось при размещении.

        Raises:
            NotFoundError: неизвестный производитель или новый владелец
            InvalidArgumentError: current_owner_id не владеет производителем
        """
        with self._operation("transfer_producer_ownership", ctx, producer_id=producer_id) as log:
            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()

            producer = snapshot.find_producer(producer_id)
            if producer is None:
                raise NotFoundError(f"producer {producer_id} not found")
            if producer.owner_id != current_owner_id:
                raise InvalidArgumentError(
                    f"user {current_owner_id} is not the current owner of producer {producer_id}"
                )

            current_owner = snapshot.find_consumer(current_owner_id)
            if current_owner is None:
                raise NotFoundError(f"current owner {current_owner_id} not found")
            new_owner = snapshot.find_consumer(new_owner_id)
            if new_owner is None:
                raise NotFoundError(f"new owner {new_owner_id} not found")

            if current_owner_id != new_owner_id:
                producer.owner_id = new_owner_id
                current_owner.producer_ids = [
                    pid for pid in current_owner.producer_ids if pid != producer_id
                ]
                if producer_id not in new_owner.producer_ids:
                    new_owner.producer_ids.append(producer_id)

                for order in uow.open_orders():
                    if (
                        order.side == OrderSide.SELL
                        and order.producer_id == producer_id
                        and order.owner_id == current_owner_id
                    ):
                        uow.delete_order(order.order_id)

            uow.save_snapshot(snapshot)
            uow.commit()

            log.info("ownership_transferred", from_owner=current_owner_id, to_owner=new_owner_id)
            return producer

    def create_consumer(
        self,
        ctx: TransactionContext,
        consumer_id: str,
        beta: float,
        theta: float,
        demand_min: float,
        demand_max: float,
        initial_balance: float = 0.0,
    ) -> Consumer:
        """Добавление потребителя с нулевыми векторами спроса.

        Raises:
            InvalidArgumentError: дубликат идентификатора или невалидные параметры
        """
        with self._operation("create_consumer", ctx, consumer_id=consumer_id) as log:
            if not consumer_id:
                raise InvalidArgumentError("consumer id must be non-empty")
            try:
                if not is_valid_float(beta):
                    raise ValueError(f"beta must be a valid float, got {beta}")
                validate_positive(theta, "theta")
                validate_bounds(demand_min, demand_max, "demand")
                if not is_valid_float(initial_balance):
                    raise ValueError(f"initial_balance must be a valid float, got {initial_balance}")
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e

            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()
            if snapshot.find_consumer(consumer_id) is not None:
                raise InvalidArgumentError(f"consumer with ID {consumer_id} already exists")

            consumer = new_consumer(
                consumer_id,
                beta,
                theta,
                demand_min,
                demand_max,
                n_producers=len(snapshot.producers),
                balance=initial_balance,
            )
            snapshot.consumers.append(consumer)
            # Новый участник смещает равновесие
            snapshot.converged = False

            uow.save_snapshot(snapshot)
            uow.commit()

            log.info("consumer_created", consumers=len(snapshot.consumers))
            return consumer

    def create_producer(
        self,
        ctx: TransactionContext,
        producer_id: str,
        a: float,
        b: float,
        production_min: float,
        production_max: float,
        owner_id: str,
    ) -> Producer:
        """Добавление производителя; векторы спроса всех потребителей растут на один нулевой слот.

        Raises:
            InvalidArgumentError: дубликат идентификатора или невалидные параметры
            NotFoundError: неизвестный владелец
        """
        with self._operation("create_producer", ctx, producer_id=producer_id) as log:
            if not producer_id:
                raise InvalidArgumentError("producer id must be non-empty")
            try:
                validate_non_negative(a, "a")
                validate_non_negative(b, "b")
                validate_bounds(production_min, production_max, "production")
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e

            uow = self.repository.unit_of_work()
            snapshot = uow.load_snapshot()
            if snapshot.find_producer(producer_id) is not None:
                raise InvalidArgumentError(f"producer with ID {producer_id} already exists")

            owner = snapshot.find_consumer(owner_id)
            if owner is None:
                raise NotFoundError(f"owner {owner_id} not found")

            producer = new_producer(producer_id, a, b, production_min, production_max, owner_id)
            snapshot.producers.append(producer)
            owner.producer_ids.append(producer_id)

            for consumer in snapshot.consumers:
                consumer.demands.append(0.0)
                consumer.utilities.append(0.0)
            snapshot.converged = False

            uow.save_snapshot(snapshot)
            uow.commit()

            log.info("producer_created", producers=len(snapshot.producers), lambda_=producer.lambda_)
            return producer
