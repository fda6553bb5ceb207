"""
Тесты для Price Discovery Engine

Проверяет:
1. Box-ограничения производства и спроса на каждой итерации
2. Согласованность λ = 2a·q + b
3. Social welfare = Σ utility − Σ cost
4. Сходимость к аналитическому равновесию (два производителя, один потребитель)
5. Однократный settlement при переходе в сходимость
6. Детерминизм и неизменность входного снапшота
"""

import pytest

from src.clearing import ClearingConfig, PriceDiscoveryEngine
from src.core.domain import CLEARING_POOL_ID, MarketSnapshot, TradeSource, TransactionContext
from src.core.math import consumer_utility, production_cost
from src.market.bootstrap import build_reference_snapshot, new_consumer, new_producer


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def ctx() -> TransactionContext:
    return TransactionContext(tx_id="tx-clearing", block_height=1, ts_utc_ms=1700000000000)


@pytest.fixture
def engine() -> PriceDiscoveryEngine:
    return PriceDiscoveryEngine()


@pytest.fixture
def two_producer_market() -> MarketSnapshot:
    """
    Два одинаковых производителя без владельца и один потребитель.

    Равновесие: λ* = 3.2, q* = 60 у каждого, спрос упирается в demand_max = 120.
    """
    producers = [
        new_producer("p1", 0.01, 2.0, 10.0, 100.0, None),
        new_producer("p2", 0.01, 2.0, 10.0, 100.0, None),
    ]
    consumer = new_consumer("c1", 8.0, 0.05, 20.0, 120.0, n_producers=2, balance=1000.0)
    return MarketSnapshot(producers=producers, consumers=[consumer])


def run_to_convergence(
    engine: PriceDiscoveryEngine,
    snapshot: MarketSnapshot,
    ctx: TransactionContext,
    max_iterations: int = 1000,
):
    """Итерации до сходимости; возвращает список результатов."""
    results = []
    for _ in range(max_iterations):
        result = engine.advance(snapshot, ctx)
        results.append(result)
        snapshot = result.snapshot
        if result.converged:
            return results
    pytest.fail(f"market did not converge in {max_iterations} iterations")


# =============================================================================
# ITERATION INVARIANTS
# =============================================================================


class TestIterationInvariants:
    """Инварианты, выполняющиеся после каждой итерации"""

    def test_bounds_and_marginal_cost_identity(
        self, engine: PriceDiscoveryEngine, ctx: TransactionContext
    ) -> None:
        """Эталонный рынок: границы и λ = 2a·q + b на первых 50 итерациях"""
        snapshot = build_reference_snapshot()

        for _ in range(50):
            snapshot = engine.advance(snapshot, ctx).snapshot

            for p in snapshot.producers:
                assert p.production_min <= p.production <= p.production_max
                assert p.lambda_ == pytest.approx(2 * p.a * p.production + p.b)
                assert p.cost == pytest.approx(production_cost(p.a, p.b, p.production))

            for c in snapshot.consumers:
                assert c.demand_min <= c.total_demand <= c.demand_max
                assert c.total_demand == pytest.approx(sum(c.demands))
                assert all(d >= 0 for d in c.demands)
                assert c.u_min >= 0 and c.u_max >= 0

    def test_scaled_demand_never_below_minimum(
        self, engine: PriceDiscoveryEngine, ctx: TransactionContext
    ) -> None:
        """Масштабированный спрос не опускается ниже demand_min даже на ulp"""
        snapshot = build_reference_snapshot()
        violations = []

        for _ in range(60):
            result = engine.advance(snapshot, ctx)
            snapshot = result.snapshot
            violations.extend(
                (result.iteration, c.consumer_id, c.total_demand)
                for c in snapshot.consumers
                if not c.demand_min <= c.total_demand <= c.demand_max
            )

        assert violations == []

    def test_social_welfare(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        snapshot = engine.advance(two_producer_market, ctx).snapshot

        utility = sum(
            consumer_utility(c.beta, c.theta, d) for c in snapshot.consumers for d in c.demands
        )
        cost = sum(p.cost for p in snapshot.producers)
        assert snapshot.social_welfare == pytest.approx(utility - cost)

    def test_aggregates(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        snapshot = engine.advance(two_producer_market, ctx).snapshot

        assert snapshot.total_generation == pytest.approx(sum(p.production for p in snapshot.producers))
        assert snapshot.total_demand == pytest.approx(sum(c.total_demand for c in snapshot.consumers))
        assert snapshot.iteration_count == 1

    def test_first_iteration_values(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        """Итерация 0: λ = 2.2 + 0.005·50 = 2.45, q = 22.5, спрос 60 + 60"""
        result = engine.advance(two_producer_market, ctx)

        for p in result.snapshot.producers:
            assert p.lambda_ == pytest.approx(2.45)
            assert p.production == pytest.approx(22.5)
        assert result.snapshot.consumers[0].demands == pytest.approx([60.0, 60.0])
        assert result.supply_demand_gap == pytest.approx(75.0)
        assert result.iteration == 0
        assert not result.converged

    def test_input_snapshot_not_mutated(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        before = two_producer_market.model_copy(deep=True)
        engine.advance(two_producer_market, ctx)
        assert two_producer_market == before

    def test_deterministic(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        first = engine.advance(two_producer_market, ctx).snapshot
        second = engine.advance(two_producer_market, ctx).snapshot
        assert first == second


# =============================================================================
# EDGE CASES
# =============================================================================


class TestEdgeCases:
    """Вырожденные конфигурации"""

    def test_linear_cost_producer_goes_to_max(
        self, engine: PriceDiscoveryEngine, ctx: TransactionContext
    ) -> None:
        """a = 0: λ выше b выводит производство на максимум, λ остаётся равной b"""
        producer = new_producer("p1", 0.0, 3.0, 10.0, 100.0, None)
        consumer = new_consumer("c1", 8.0, 0.05, 20.0, 50.0, n_producers=1)
        snapshot = MarketSnapshot(producers=[producer], consumers=[consumer])

        result = engine.advance(snapshot, ctx)

        assert result.snapshot.producers[0].production == 100.0
        assert result.snapshot.producers[0].lambda_ == 3.0

    def test_zero_demand_spreads_minimum_evenly(
        self, engine: PriceDiscoveryEngine, ctx: TransactionContext
    ) -> None:
        """Спрос, близкий к нулю, заменяется равномерным распределением demand_min"""
        producers = [
            new_producer("p1", 0.01, 2.0, 10.0, 100.0, None),
            new_producer("p2", 0.01, 2.0, 10.0, 100.0, None),
        ]
        consumer = new_consumer("c1", 1.0, 0.05, 20.0, 50.0, n_producers=2)
        snapshot = MarketSnapshot(producers=producers, consumers=[consumer])

        result = engine.advance(snapshot, ctx)

        assert result.snapshot.consumers[0].demands == pytest.approx([10.0, 10.0])
        assert result.snapshot.consumers[0].total_demand == pytest.approx(20.0)

    def test_empty_market(self, engine: PriceDiscoveryEngine, ctx: TransactionContext) -> None:
        """Рынок без участников сходится сразу и не порождает сделок"""
        result = engine.advance(MarketSnapshot(), ctx)

        assert result.converged
        assert result.trades == []
        assert result.snapshot.social_welfare == 0.0

    def test_custom_config(self, two_producer_market: MarketSnapshot, ctx: TransactionContext) -> None:
        """Больший шаг цены — больший сдвиг λ на первой итерации"""
        engine = PriceDiscoveryEngine(ClearingConfig(supply_step_base=0.01))
        result = engine.advance(two_producer_market, ctx)

        assert result.snapshot.producers[0].lambda_ == pytest.approx(2.7)


# =============================================================================
# CONVERGENCE & SETTLEMENT
# =============================================================================


class TestConvergence:
    """Сходимость и settlement"""

    def test_converges_to_equilibrium(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        results = run_to_convergence(engine, two_producer_market, ctx)
        final = results[-1]

        assert final.supply_demand_gap <= 1.0
        assert final.max_lambda_delta <= 9e-5
        for p in final.snapshot.producers:
            assert p.lambda_ == pytest.approx(3.2, abs=0.01)
            assert p.production == pytest.approx(60.0, abs=0.5)
        assert final.snapshot.total_demand == pytest.approx(120.0)
        assert final.snapshot.converged

    def test_gap_shrinks_monotonically(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        gaps = [r.supply_demand_gap for r in run_to_convergence(engine, two_producer_market, ctx)]
        assert all(a >= b for a, b in zip(gaps, gaps[1:]))

    def test_settlement_on_convergence(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        """При сходимости записываются сделки против clearing pool по λ производителя"""
        results = run_to_convergence(engine, two_producer_market, ctx)
        final = results[-1]

        assert final.newly_converged
        assert all(not r.trades for r in results[:-1])
        assert len(final.trades) == 2

        snapshot = final.snapshot
        for trade, producer in zip(final.trades, snapshot.producers):
            assert trade.seller_id == CLEARING_POOL_ID
            assert trade.buyer_id == "c1"
            assert trade.source == TradeSource.CLEARING
            assert trade.price == pytest.approx(producer.lambda_)
            assert trade.tx_id == "tx-clearing"
            assert producer.traded_volume == pytest.approx(trade.quantity)

        spent = sum(t.total_value for t in final.trades)
        assert snapshot.consumers[0].balance == pytest.approx(1000.0 - spent)
        assert snapshot.statistics.trade_count == 2
        assert snapshot.next_trade_seq == 3
        assert snapshot.settled_at_iteration == final.iteration

    def test_settlement_happens_once(
        self, engine: PriceDiscoveryEngine, two_producer_market: MarketSnapshot, ctx: TransactionContext
    ) -> None:
        """Дальнейшие итерации в сходимости не порождают новых сделок"""
        snapshot = run_to_convergence(engine, two_producer_market, ctx)[-1].snapshot

        for _ in range(5):
            result = engine.advance(snapshot, ctx)
            snapshot = result.snapshot
            assert result.converged
            assert not result.newly_converged
            assert result.trades == []

        assert snapshot.statistics.trade_count == 2

    def test_own_producer_not_settled(self, engine: PriceDiscoveryEngine, ctx: TransactionContext) -> None:
        """Спрос на собственного производителя не порождает сделку"""
        producers = [
            new_producer("p1", 0.01, 2.0, 10.0, 100.0, "c1"),
            new_producer("p2", 0.01, 2.0, 10.0, 100.0, None),
        ]
        consumer = new_consumer(
            "c1", 8.0, 0.05, 20.0, 120.0, n_producers=2, balance=1000.0, producer_ids=["p1"]
        )
        snapshot = MarketSnapshot(producers=producers, consumers=[consumer])

        final = run_to_convergence(engine, snapshot, ctx)[-1]

        assert [t.producer_id for t in final.trades] == ["p2"]
        assert final.snapshot.producers[0].traded_volume == 0.0
