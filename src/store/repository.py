"""
Market Repository — раскладка ключей и unit of work

Ключи (логические):
- MarketState         — синглтон-снапшот рынка
- ORDER_<seq:012d>    — открытые заявки (range scan по префиксу)
- TRADE_<seq:012d>    — сделки, только добавление (range scan по префиксу)

MarketUnitOfWork накапливает все изменения одной операции и фиксирует
их одним атомарным commit. Снапшот записывается ровно один раз; его
прочитанное значение становится предусловием commit, поэтому гонка
read-modify-write обнаруживается как ConcurrentModificationError.
"""

from src.core.domain import MarketSnapshot, Order, Trade
from src.core.errors import NotFoundError
from src.store.codec import decode_order, decode_snapshot, decode_trade, encode_record
from src.store.kv_store import KeyValueStore, WriteBatch

SNAPSHOT_KEY = "MarketState"
ORDER_PREFIX = "ORDER_"
TRADE_PREFIX = "TRADE_"


def order_key(order_id: str) -> str:
    return f"{ORDER_PREFIX}{order_id}"


def trade_key(trade_id: str) -> str:
    return f"{TRADE_PREFIX}{trade_id}"


# =============================================================================
# REPOSITORY (READ SIDE)
# =============================================================================


class MarketRepository:
    """Чтение записей рынка и создание unit of work."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load_snapshot(self) -> MarketSnapshot:
        """
        Чтение снапшота рынка.

        Raises:
            NotFoundError: Рынок не инициализирован
            StateCorruptionError: Запись не декодируется
        """
        raw = self.store.get(SNAPSHOT_KEY)
        if raw is None:
            raise NotFoundError("market state does not exist; initialize the market first")
        return decode_snapshot(SNAPSHOT_KEY, raw)

    def list_orders(self) -> list[Order]:
        """Все открытые заявки в порядке размещения."""
        return [decode_order(key, raw) for key, raw in self.store.scan_prefix(ORDER_PREFIX)]

    def list_trades(self) -> list[Trade]:
        """Все сделки в порядке записи (от старых к новым)."""
        return [decode_trade(key, raw) for key, raw in self.store.scan_prefix(TRADE_PREFIX)]

    def unit_of_work(self) -> "MarketUnitOfWork":
        return MarketUnitOfWork(self.store)


# =============================================================================
# UNIT OF WORK (WRITE SIDE)
# =============================================================================


class MarketUnitOfWork:
    """
    Транзакционный контекст одной операции рынка.

    Изменения видны только через этот объект до commit; после
    исключения объект просто отбрасывается, и хранилище остаётся нетронутым.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._batch = WriteBatch()
        self._loaded_version: int | None = None
        self._staged_orders: dict[str, Order] = {}
        self._deleted_orders: set[str] = set()
        self._staged_trades: list[Trade] = []
        self._snapshot_saved = False

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def peek_snapshot(self) -> MarketSnapshot | None:
        """
        Чтение снапшота с фиксацией предусловия commit; None если рынка нет.

        Предусловием становится прочитанное значение ключа (в том числе
        его отсутствие), поэтому параллельная инициализация тоже обнаруживается.

        Raises:
            StateCorruptionError: Запись не декодируется
        """
        raw = self._store.get(SNAPSHOT_KEY)
        self._batch.expect(SNAPSHOT_KEY, raw)
        if raw is None:
            return None
        snapshot = decode_snapshot(SNAPSHOT_KEY, raw)
        self._loaded_version = snapshot.version
        return snapshot

    def load_snapshot(self) -> MarketSnapshot:
        """
        Чтение снапшота с фиксацией предусловия commit.

        Raises:
            NotFoundError: Рынок не инициализирован
            StateCorruptionError: Запись не декодируется
        """
        snapshot = self.peek_snapshot()
        if snapshot is None:
            raise NotFoundError("market state does not exist; initialize the market first")
        return snapshot

    def save_snapshot(self, snapshot: MarketSnapshot) -> None:
        """Постановка снапшота в пачку; version увеличивается."""
        base_version = self._loaded_version if self._loaded_version is not None else -1
        snapshot.version = max(snapshot.version, base_version + 1)
        self._batch.put(SNAPSHOT_KEY, encode_record(snapshot))
        self._snapshot_saved = True

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def open_orders(self) -> list[Order]:
        """Открытые заявки с учётом изменений, поставленных в эту транзакцию."""
        orders: dict[str, Order] = {}
        for key, raw in self._store.scan_prefix(ORDER_PREFIX):
            order = decode_order(key, raw)
            orders[order.order_id] = order

        orders.update(self._staged_orders)
        for order_id in self._deleted_orders:
            orders.pop(order_id, None)

        return sorted(orders.values(), key=lambda o: o.sequence)

    def put_order(self, order: Order) -> None:
        self._deleted_orders.discard(order.order_id)
        self._staged_orders[order.order_id] = order
        self._batch.put(order_key(order.order_id), encode_record(order))

    def delete_order(self, order_id: str) -> None:
        self._staged_orders.pop(order_id, None)
        self._deleted_orders.add(order_id)
        self._batch.delete(order_key(order_id))

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    def append_trade(self, trade: Trade) -> None:
        """Добавление сделки; ключ сделки обязан отсутствовать в хранилище."""
        key = trade_key(trade.trade_id)
        self._batch.expect(key, None)
        self._batch.put(key, encode_record(trade))
        self._staged_trades.append(trade)

    @property
    def staged_trades(self) -> list[Trade]:
        return list(self._staged_trades)

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def commit(self) -> None:
        """
        Атомарная фиксация всех изменений.

        Raises:
            ConcurrentModificationError: Снапшот изменён после чтения
            RuntimeError: Изменения поставлены без записи снапшота
        """
        if self._batch.is_empty():
            return
        if not self._snapshot_saved:
            raise RuntimeError("market snapshot must be saved exactly once before commit")
        self._store.commit(self._batch)
        self._batch = WriteBatch()
