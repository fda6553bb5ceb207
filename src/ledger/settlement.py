"""Settlement Ledger — единая точка записи сделок.

Каждая сделка, порождённая сходимостью price discovery или матчингом
заявок, проходит через SettlementLedger.record_trade. Ledger мутирует
рабочую копию снапшота и возвращает неизменяемую Trade; запись сделки
и снапшота фиксируется вызывающим одним атомарным commit.

Инварианты:
- Сделка между двумя потребителями сохраняет суммарный баланс
  (дебет покупателя == кредит продавца == price * quantity)
- Сделка против CLEARING_POOL_ID только дебетует покупателя
- Потребитель не торгует сам с собой
- Все проверки выполняются до первой мутации
"""

from src.core.domain import (
    CLEARING_POOL_ID,
    MarketSnapshot,
    Trade,
    TradeSource,
    TransactionContext,
    format_trade_id,
)
from src.core.errors import InvalidArgumentError, NotFoundError
from src.core.logger import get_logger
from src.core.math import EPS_QTY, is_valid_float

logger = get_logger(__name__)


class SettlementLedger:
    """Запись сделок: балансы, объём производителя, статистика, идентификаторы."""

    def record_trade(
        self,
        snapshot: MarketSnapshot,
        buyer_id: str,
        seller_id: str,
        producer_id: str,
        price: float,
        quantity: float,
        ctx: TransactionContext,
        source: TradeSource,
    ) -> Trade:
        """Запись одной сделки в рабочую копию снапшота.
        
        Args:
            snapshot: рабочая копия снапшота (мутируется)
            buyer_id: покупатель (должен существовать)
            seller_id: продавец или CLEARING_POOL_ID
            producer_id: производитель, чья энергия продана
            price: цена за единицу (>= 0)
            quantity: количество (> 0)
            ctx: контекст транзакции (время, высота блока, tx_id)
            source: путь, породивший сделку
        
        Returns:
            Неизменяемая Trade с новым возрастающим идентификатором
        
        Raises:
            NotFoundError: неизвестный покупатель или продавец
            InvalidArgumentError: невалидные цена/количество или self-trade
        """
        if not is_valid_float(price) or price < 0:
            raise InvalidArgumentError(f"trade price must be non-negative, got {price}")
        if not is_valid_float(quantity) or quantity <= 0:
            raise InvalidArgumentError(f"trade quantity must be positive, got {quantity}")

        buyer = snapshot.find_consumer(buyer_id)
        if buyer is None:
            raise NotFoundError(f"buyer {buyer_id} does not exist")

        seller = None
        if seller_id != CLEARING_POOL_ID:
            seller = snapshot.find_consumer(seller_id)
            if seller is None:
                raise NotFoundError(f"seller {seller_id} does not exist")

        if buyer_id == seller_id:
            raise InvalidArgumentError(f"consumer {buyer_id} cannot trade with itself")

        total_value = price * quantity
        trade = Trade(
            trade_id=format_trade_id(snapshot.next_trade_seq),
            buyer_id=buyer_id,
            seller_id=seller_id,
            producer_id=producer_id,
            price=price,
            quantity=quantity,
            total_value=total_value,
            ts_utc_ms=ctx.ts_utc_ms,
            block_height=ctx.block_height,
            tx_id=ctx.tx_id,
            source=source,
        )

        # Мутации только после успешного построения Trade
        buyer.balance -= total_value
        if seller is not None:
            seller.balance += total_value

        # Объём неизвестного производителя не учитывается
        producer = snapshot.find_producer(producer_id)
        if producer is not None:
            producer.traded_volume += quantity

        snapshot.next_trade_seq += 1
        snapshot.statistics.trade_count += 1
        snapshot.statistics.traded_volume += quantity
        snapshot.statistics.traded_value += total_value

        logger.debug(
            "trade_recorded",
            trade_id=trade.trade_id,
            buyer_id=buyer_id,
            seller_id=seller_id,
            producer_id=producer_id,
            price=price,
            quantity=quantity,
            source=source.value,
        )
        return trade

    def settle_allocation(self, snapshot: MarketSnapshot, ctx: TransactionContext) -> list[Trade]:
        """Запись сделок по текущему распределению спроса (при сходимости).
        
        Для каждого потребителя и каждого производителя с положительным
        спросом записывается сделка по цене λ производителя. Продавец —
        владелец производителя (или CLEARING_POOL_ID для производителя без
        владельца). Спрос на собственного производителя сделкой не является.
        
        Returns:
            Список записанных сделок в порядке записи
        """
        trades: list[Trade] = []

        for consumer in snapshot.consumers:
            if consumer.total_demand <= 0:
                continue

            for i, producer in enumerate(snapshot.producers):
                demand = consumer.demands[i]
                if demand <= EPS_QTY:
                    continue

                seller_id = producer.owner_id or CLEARING_POOL_ID
                if seller_id == consumer.consumer_id:
                    continue

                trades.append(
                    self.record_trade(
                        snapshot,
                        buyer_id=consumer.consumer_id,
                        seller_id=seller_id,
                        producer_id=producer.producer_id,
                        price=producer.lambda_,
                        quantity=demand,
                        ctx=ctx,
                        source=TradeSource.CLEARING,
                    )
                )

        logger.info(
            "allocation_settled",
            iteration=snapshot.iteration_count,
            trades=len(trades),
            value=sum(t.total_value for t in trades),
        )
        return trades
