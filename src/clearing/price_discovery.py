"""Price Discovery Engine — dual decomposition / projected subgradient.

Один вызов advance выполняет одну релаксационную итерацию задачи
максимизации social welfare (Σ utility − Σ cost) при балансе
спроса и предложения и box-ограничениях производства и спроса:

1. Агрегация спроса (итерация 0 — из условия первого порядка)
2. Supply update: субградиентный шаг цены λ по небалансу, обращение
   кривой стоимости, проекция на [production_min, production_max]
3. Demand update: проекция множителей u_min/u_max на неотрицательный
   ортант, пересчёт спроса, жёсткая проекция суммарного спроса на
   [demand_min, demand_max] пропорциональным масштабированием
4. Social welfare
5. Проверка сходимости; при переходе в сходимость — settlement
6. Инкремент iteration_count

Шаг детерминирован: результат зависит только от снапшота
(iteration_count входит в снапшот). Входной снапшот не мутируется.
"""

from dataclasses import dataclass, field

from src.core.domain import Consumer, MarketSnapshot, Trade, TransactionContext
from src.core.logger import get_logger
from src.core.math import (
    EPS_DEMAND_SCALE,
    clamp,
    consumer_utility,
    diminishing_step_size,
    marginal_cost,
    optimal_demand,
    production_cost,
    production_for_price,
    project_nonnegative,
)
from src.ledger.settlement import SettlementLedger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClearingConfig:
    """Конфигурация price discovery.

    - supply_step_base: базовый шаг цены производителей (0.005/√(k+1))
    - demand_step_base: базовый шаг множителей спроса (0.0001/√(k+1))
    - lambda_tolerance: порог |Δλ| для сходимости
    - balance_tolerance: порог |generation − demand| для сходимости (MW)
    - demand_scale_eps: нижняя граница суммарного спроса при масштабировании
    """
    supply_step_base: float = 0.005
    demand_step_base: float = 0.0001
    lambda_tolerance: float = 9e-5
    balance_tolerance: float = 1.0
    demand_scale_eps: float = EPS_DEMAND_SCALE


@dataclass(frozen=True)
class AdvanceResult:
    """Результат одной итерации price discovery."""

    snapshot: MarketSnapshot
    iteration: int  # Номер выполненной итерации (до инкремента)
    converged: bool
    newly_converged: bool  # Переход не-сходимость → сходимость на этой итерации

    # Диагностика сходимости
    max_lambda_delta: float
    supply_demand_gap: float

    # Сделки, записанные settlement при сходимости
    trades: list[Trade] = field(default_factory=list)


class PriceDiscoveryEngine:
    """Итерационный поиск равновесной цены и распределения энергии."""

    def __init__(
        self,
        config: ClearingConfig | None = None,
        ledger: SettlementLedger | None = None,
    ):
        self.config = config or ClearingConfig()
        self.ledger = ledger or SettlementLedger()

    def advance(self, snapshot: MarketSnapshot, ctx: TransactionContext) -> AdvanceResult:
        """Одна итерация алгоритма над копией снапшота.

        Args:
            snapshot: текущий снапшот рынка (не мутируется)
            ctx: контекст транзакции (используется только для записи сделок)

        Returns:
            AdvanceResult с новым снапшотом и диагностикой

        Raises:
            NotFoundError: settlement встретил неизвестного участника
        """
        working = snapshot.model_copy(deep=True)
        iteration = working.iteration_count

        # 1. Агрегация спроса по производителям
        if iteration == 0:
            producer_demands = self._initialize_demands(working)
        else:
            producer_demands = self._aggregate_demands(working)

        # 2. Supply update
        prev_lambdas = [p.lambda_ for p in working.producers]
        total_cost = self._update_supply(working, producer_demands, iteration)

        # 3. Demand update
        total_utility = self._update_demand(working, iteration)

        # 4. Objective
        working.social_welfare = total_utility - total_cost

        # 5. Сходимость
        max_lambda_delta = max(
            (abs(p.lambda_ - prev) for p, prev in zip(working.producers, prev_lambdas)),
            default=0.0,
        )
        gap = working.supply_demand_gap()
        converged = (
            max_lambda_delta <= self.config.lambda_tolerance
            and gap <= self.config.balance_tolerance
        )

        newly_converged = (
            converged
            and not working.converged
            and working.settled_at_iteration != iteration
        )
        trades: list[Trade] = []
        if newly_converged:
            trades = self.ledger.settle_allocation(working, ctx)
            working.settled_at_iteration = iteration

        working.converged = converged

        # 6. Инкремент счётчика итераций
        working.iteration_count = iteration + 1

        logger.debug(
            "market_iteration",
            iteration=iteration,
            total_generation=working.total_generation,
            total_demand=working.total_demand,
            social_welfare=working.social_welfare,
            max_lambda_delta=max_lambda_delta,
            gap=gap,
            converged=converged,
        )

        return AdvanceResult(
            snapshot=working,
            iteration=iteration,
            converged=converged,
            newly_converged=newly_converged,
            max_lambda_delta=max_lambda_delta,
            supply_demand_gap=gap,
            trades=trades,
        )

    # -------------------------------------------------------------------------
    # Step 1: demand aggregation
    # -------------------------------------------------------------------------

    def _initialize_demands(self, snapshot: MarketSnapshot) -> list[float]:
        """Начальный спрос из условия первого порядка: d = max(0, (β − λ)/θ)."""
        producer_demands = [0.0] * len(snapshot.producers)

        for consumer in snapshot.consumers:
            consumer.demands = [
                optimal_demand(consumer.beta, consumer.theta, producer.lambda_)
                for producer in snapshot.producers
            ]
            self._project_total_demand(consumer)

            for i, demand in enumerate(consumer.demands):
                producer_demands[i] += demand

        return producer_demands

    def _aggregate_demands(self, snapshot: MarketSnapshot) -> list[float]:
        """Суммы спроса по производителям из векторов предыдущей итерации."""
        producer_demands = [0.0] * len(snapshot.producers)

        for consumer in snapshot.consumers:
            consumer.total_demand = sum(consumer.demands)
            for i, demand in enumerate(consumer.demands):
                producer_demands[i] += demand

        return producer_demands

    # -------------------------------------------------------------------------
    # Step 2: supply update
    # -------------------------------------------------------------------------

    def _update_supply(
        self,
        snapshot: MarketSnapshot,
        producer_demands: list[float],
        iteration: int,
    ) -> float:
        """Субградиентный шаг цены и проекция производства. Возвращает Σ cost."""
        step = diminishing_step_size(self.config.supply_step_base, iteration)
        total_cost = 0.0
        total_generation = 0.0

        for producer, demand in zip(snapshot.producers, producer_demands):
            price = project_nonnegative(producer.lambda_ - step * (producer.production - demand))

            producer.production = production_for_price(
                producer.a,
                producer.b,
                price,
                current_production=producer.production,
                production_min=producer.production_min,
                production_max=producer.production_max,
            )
            # λ всегда выводится из спроецированного производства
            producer.lambda_ = marginal_cost(producer.a, producer.b, producer.production)
            producer.cost = production_cost(producer.a, producer.b, producer.production)

            total_cost += producer.cost
            total_generation += producer.production

        snapshot.total_generation = total_generation
        return total_cost

    # -------------------------------------------------------------------------
    # Step 3: demand update
    # -------------------------------------------------------------------------

    def _update_demand(self, snapshot: MarketSnapshot, iteration: int) -> float:
        """Проекция множителей, пересчёт и проекция спроса. Возвращает Σ utility."""
        step = diminishing_step_size(self.config.demand_step_base, iteration)
        total_utility = 0.0
        total_demand = 0.0

        for consumer in snapshot.consumers:
            previous_total = consumer.total_demand
            consumer.u_min = project_nonnegative(
                consumer.u_min + step * (consumer.demand_min - previous_total)
            )
            consumer.u_max = project_nonnegative(
                consumer.u_max + step * (previous_total - consumer.demand_max)
            )

            consumer.demands = [
                optimal_demand(
                    consumer.beta,
                    consumer.theta,
                    producer.lambda_,
                    u_min=consumer.u_min,
                    u_max=consumer.u_max,
                )
                for producer in snapshot.producers
            ]
            self._project_total_demand(consumer)

            total_utility += sum(consumer.utilities)
            total_demand += consumer.total_demand

        snapshot.total_demand = total_demand
        return total_utility

    def _project_total_demand(self, consumer: Consumer) -> None:
        """Жёсткая проекция суммарного спроса на [demand_min, demand_max].

        Масштабирует все компоненты одним множителем. Если спрос
        практически нулевой, минимальный спрос распределяется поровну.
        Полезности пересчитываются из итоговых значений, total_demand
        равен сумме спроса, ограниченной [demand_min, demand_max].
        """
        demands = consumer.demands
        total = sum(demands)

        if demands and total < consumer.demand_min:
            if total < self.config.demand_scale_eps:
                demands = [consumer.demand_min / len(demands)] * len(demands)
            else:
                scale = consumer.demand_min / max(total, self.config.demand_scale_eps)
                demands = [d * scale for d in demands]
        elif total > consumer.demand_max:
            scale = consumer.demand_max / total
            demands = [d * scale for d in demands]

        consumer.demands = demands
        consumer.utilities = [consumer_utility(consumer.beta, consumer.theta, d) for d in demands]
        # Сумма масштабированных компонент может уйти за границу на ulp
        consumer.total_demand = (
            clamp(sum(demands), consumer.demand_min, consumer.demand_max) if demands else 0.0
        )
