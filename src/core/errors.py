"""
Errors — таксономия ошибок рынка

Все операции рынка сообщают об отказе одним из исключений ниже.
Ни одна операция не фиксирует частичные изменения: исключение, поднятое
до commit, означает, что в хранилище не записано ничего.

Иерархия:
- MarketError                  — базовый класс
- NotFoundError                — нет снапшота / consumer / producer / order
- InvalidArgumentError         — невалидный вход (отклоняется до мутаций)
- StateCorruptionError         — сохранённая запись не десериализуется
- ConvergenceFailureError      — превышен лимит итераций
- ConcurrentModificationError  — снапшот изменён параллельной транзакцией
"""


class MarketError(Exception):
    """Базовое исключение для всех ошибок рынка."""


class NotFoundError(MarketError):
    """Запрошенная сущность отсутствует."""


class InvalidArgumentError(MarketError, ValueError):
    """Аргумент операции невалиден."""


class StateCorruptionError(MarketError):
    """Сохранённая запись повреждена или не соответствует контракту."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"corrupted record under key {key!r}: {reason}")


class ConvergenceFailureError(MarketError):
    """
    Рынок не сошёлся за заданное число итераций.

    Отделена от ошибок данных: вызывающий может повторить
    с большим лимитом.
    """

    def __init__(self, max_iterations: int, supply_demand_gap: float, max_lambda_delta: float):
        self.max_iterations = max_iterations
        self.supply_demand_gap = supply_demand_gap
        self.max_lambda_delta = max_lambda_delta
        super().__init__(
            f"market did not converge after {max_iterations} iterations "
            f"(gap={supply_demand_gap:.6f}, max_lambda_delta={max_lambda_delta:.8f})"
        )


class ConcurrentModificationError(MarketError):
    """Ключ изменён после чтения; операцию можно повторить."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key {key!r} was modified concurrently; retry the operation")
