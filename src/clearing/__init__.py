"""Clearing — итерационный поиск равновесной цены (price discovery).

- PriceDiscoveryEngine: одна итерация dual decomposition над снапшотом
- ClearingConfig: шаги и пороги сходимости
- AdvanceResult: снапшот после итерации и диагностика
"""

from .price_discovery import AdvanceResult, ClearingConfig, PriceDiscoveryEngine

__all__ = [
    "PriceDiscoveryEngine",
    "ClearingConfig",
    "AdvanceResult",
]
