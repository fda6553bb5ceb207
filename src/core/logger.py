"""
Structured Logging — structlog поверх stdlib logging

Модули пакета получают логгер через get_logger(__name__) и пишут события
в стиле event + key/value (market_converged, trade_recorded, ...).

Пакет сам логирование не настраивает: configure_logging вызывается один
раз процессом-хостом (узел, исполняющий операции EnergyMarketService)
при старте, до первой операции. Без этого вызова structlog работает
с настройками по умолчанию.

Рендереры:
- json_logs=True  — JSON-строка на событие (для агрегаторов логов узла)
- json_logs=False — консольный рендерер, цвет только для TTY
"""

import logging
import sys
from typing import IO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


def _drop_unset_fields(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Удаление полей со значением None (например, tx_id у операций чтения)."""
    return {key: value for key, value in event_dict.items() if value is not None}


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """
    Настройка structlog и root-логгера stdlib.

    Повторный вызов заменяет обработчики root-логгера, а не добавляет новые.

    Args:
        level: Уровень root-логгера (DEBUG, INFO, WARNING, ...)
        json_logs: JSON-рендерер вместо консольного
        stream: Поток вывода (по умолчанию sys.stdout на момент вызова)
    """
    output = stream or sys.stdout

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_unset_fields,
    ]

    if json_logs:
        final_processors: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [structlog.dev.ConsoleRenderer(colors=output.isatty())]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final_processors,
        ],
    )

    handler = logging.StreamHandler(output)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Логгер модуля."""
    return structlog.get_logger(name)
