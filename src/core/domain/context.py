"""
TransactionContext — контекст исполнения операции

Поставляется внешним окружением (узел реестра / оркестратор) для каждой
операции. Единственный источник времени: прямые чтения wall-clock
запрещены, чтобы независимо исполняющиеся реплики получали одинаковый
результат.
"""

from pydantic import BaseModel, Field

# Длина окна статистики (24 часа в миллисекундах)
DAY_MS = 24 * 60 * 60 * 1000


class TransactionContext(BaseModel):
    """Идентификатор транзакции, высота блока и детерминированное время."""

    tx_id: str = Field(..., min_length=1, description="Идентификатор транзакции")
    block_height: int = Field(0, ge=0, description="Высота блока")
    ts_utc_ms: int = Field(..., ge=0, description="Время транзакции (UTC, миллисекунды)")

    model_config = {"frozen": True}
