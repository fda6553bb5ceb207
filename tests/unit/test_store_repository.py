"""
Тесты для хранилища, кодека записей и unit of work

Проверяет:
1. Атомарность commit и compare-and-set предусловия
2. Упорядоченный range scan по префиксу
3. Декодирование повреждённых записей в StateCorruptionError
4. Видимость поставленных изменений внутри unit of work
"""

import json

import pytest

from src.core.domain import Order, OrderSide, Trade, TradeSource
from src.core.errors import ConcurrentModificationError, NotFoundError, StateCorruptionError
from src.market import build_reference_snapshot
from src.store import (
    SNAPSHOT_KEY,
    InMemoryKeyValueStore,
    MarketRepository,
    WriteBatch,
    decode_order,
    decode_snapshot,
    encode_record,
    order_key,
    trade_key,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(store: InMemoryKeyValueStore) -> MarketRepository:
    """Репозиторий с сохранённым эталонным снапшотом."""
    repo = MarketRepository(store)
    uow = repo.unit_of_work()
    assert uow.peek_snapshot() is None
    uow.save_snapshot(build_reference_snapshot())
    uow.commit()
    return repo


def make_order(sequence: int, side: OrderSide = OrderSide.BUY) -> Order:
    return Order(
        order_id=f"{sequence:012d}",
        owner_id="consumer4",
        side=side,
        price=4.0,
        quantity=1.0,
        producer_id="producer1" if side == OrderSide.SELL else None,
        ts_utc_ms=0,
        sequence=sequence,
    )


def make_trade(sequence: int) -> Trade:
    return Trade(
        trade_id=f"{sequence:012d}",
        buyer_id="consumer4",
        seller_id="consumer1",
        producer_id="producer1",
        price=2.0,
        quantity=3.0,
        total_value=6.0,
        ts_utc_ms=0,
        tx_id="tx",
        source=TradeSource.ORDER_BOOK,
    )


# =============================================================================
# KEY-VALUE STORE
# =============================================================================


class TestInMemoryKeyValueStore:
    """Тесты для InMemoryKeyValueStore"""

    def test_scan_prefix_sorted(self, store: InMemoryKeyValueStore) -> None:
        store.put("TRADE_000000000002", "b")
        store.put("TRADE_000000000001", "a")
        store.put("ORDER_000000000001", "o")

        assert store.scan_prefix("TRADE_") == [
            ("TRADE_000000000001", "a"),
            ("TRADE_000000000002", "b"),
        ]

    def test_commit_applies_puts_and_deletes(self, store: InMemoryKeyValueStore) -> None:
        store.put("x", "1")
        batch = WriteBatch()
        batch.put("y", "2")
        batch.delete("x")
        store.commit(batch)

        assert store.keys() == ["y"]

    def test_commit_rejects_stale_expectation(self, store: InMemoryKeyValueStore) -> None:
        """Нарушение предусловия не применяет ни одного изменения"""
        store.put("x", "1")
        batch = WriteBatch()
        batch.expect("x", "1")
        batch.put("y", "2")
        store.put("x", "changed")

        with pytest.raises(ConcurrentModificationError) as exc_info:
            store.commit(batch)

        assert exc_info.value.key == "x"
        assert store.get("y") is None

    def test_expect_keeps_first_read(self) -> None:
        batch = WriteBatch()
        batch.expect("x", None)
        batch.expect("x", "later")
        assert batch.expected == {"x": None}

    def test_delete_after_put_in_batch(self) -> None:
        batch = WriteBatch()
        batch.put("x", "1")
        batch.delete("x")
        assert batch.puts == {}
        assert batch.deletes == {"x"}


# =============================================================================
# CODEC
# =============================================================================


class TestRecordCodec:
    """Тесты кодека записей"""

    def test_snapshot_roundtrip(self) -> None:
        snapshot = build_reference_snapshot()
        decoded = decode_snapshot(SNAPSHOT_KEY, encode_record(snapshot))
        assert decoded == snapshot

    def test_invalid_json_is_corruption(self) -> None:
        with pytest.raises(StateCorruptionError, match="invalid JSON") as exc_info:
            decode_snapshot(SNAPSHOT_KEY, "{not json")
        assert exc_info.value.key == SNAPSHOT_KEY

    def test_non_object_is_corruption(self) -> None:
        with pytest.raises(StateCorruptionError, match="expected JSON object"):
            decode_order("ORDER_1", "[1, 2]")

    def test_schema_violation_is_corruption(self) -> None:
        data = json.loads(encode_record(make_order(1)))
        data["side"] = "hold"
        with pytest.raises(StateCorruptionError, match="order contract violation"):
            decode_order("ORDER_1", json.dumps(data))

    def test_model_invariant_violation_is_corruption(self) -> None:
        """Запись проходит схему, но нарушает ссылочную целостность"""
        data = json.loads(encode_record(build_reference_snapshot()))
        data["consumers"][0]["producer_ids"] = []
        with pytest.raises(StateCorruptionError, match="MarketSnapshot invariant violation"):
            decode_snapshot(SNAPSHOT_KEY, json.dumps(data))


# =============================================================================
# REPOSITORY & UNIT OF WORK
# =============================================================================


class TestMarketRepository:
    """Тесты для MarketRepository и MarketUnitOfWork"""

    def test_load_missing_snapshot(self, store: InMemoryKeyValueStore) -> None:
        with pytest.raises(NotFoundError):
            MarketRepository(store).load_snapshot()

    def test_save_increments_version(self, repository: MarketRepository) -> None:
        assert repository.load_snapshot().version == 0

        uow = repository.unit_of_work()
        uow.save_snapshot(uow.load_snapshot())
        uow.commit()

        assert repository.load_snapshot().version == 1

    def test_concurrent_snapshot_write_detected(self, repository: MarketRepository) -> None:
        """Две транзакции читают одну версию — вторая отклоняется"""
        first = repository.unit_of_work()
        second = repository.unit_of_work()
        first_snapshot = first.load_snapshot()
        second_snapshot = second.load_snapshot()

        first_snapshot.iteration_count = 1
        first.save_snapshot(first_snapshot)
        first.commit()

        second_snapshot.iteration_count = 5
        second.save_snapshot(second_snapshot)
        with pytest.raises(ConcurrentModificationError):
            second.commit()

        assert repository.load_snapshot().iteration_count == 1

    def test_open_orders_include_staged_changes(self, repository: MarketRepository) -> None:
        uow = repository.unit_of_work()
        uow.load_snapshot()
        uow.put_order(make_order(2))
        uow.put_order(make_order(1, OrderSide.SELL))
        uow.save_snapshot(uow.load_snapshot())
        uow.commit()

        uow = repository.unit_of_work()
        uow.load_snapshot()
        uow.delete_order("000000000001")
        uow.put_order(make_order(3))

        assert [o.sequence for o in uow.open_orders()] == [2, 3]
        # До commit хранилище не изменено
        assert [o.sequence for o in repository.list_orders()] == [1, 2]

    def test_append_trade_rejects_existing_key(
        self, repository: MarketRepository, store: InMemoryKeyValueStore
    ) -> None:
        """Идентификатор сделки не переиспользуется"""
        store.put(trade_key("000000000001"), encode_record(make_trade(1)))

        uow = repository.unit_of_work()
        uow.append_trade(make_trade(1))
        uow.save_snapshot(uow.load_snapshot())

        with pytest.raises(ConcurrentModificationError):
            uow.commit()

    def test_commit_requires_snapshot(self, repository: MarketRepository) -> None:
        uow = repository.unit_of_work()
        uow.put_order(make_order(1))

        with pytest.raises(RuntimeError, match="snapshot must be saved"):
            uow.commit()

    def test_empty_commit_is_noop(self, repository: MarketRepository) -> None:
        uow = repository.unit_of_work()
        uow.load_snapshot()
        uow.commit()

        assert repository.load_snapshot().version == 0

    def test_corrupted_order_surfaces_on_list(
        self, repository: MarketRepository, store: InMemoryKeyValueStore
    ) -> None:
        store.put(order_key("000000000009"), "garbage")

        with pytest.raises(StateCorruptionError):
            repository.list_orders()
