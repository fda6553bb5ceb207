"""
Key-Value Store — интерфейс внешнего хранилища состояния

Рынок не реализует собственную блокировку: согласованность параллельных
вызовов делегирована хранилищу. Контракт хранилища:
- get / put / delete по строковому ключу
- scan_prefix — упорядоченный по ключу range scan
- commit(WriteBatch) — атомарное применение пачки записей с
  compare-and-set предусловиями; нарушение предусловия означает, что
  ключ изменён после чтения, и поднимает ConcurrentModificationError

InMemoryKeyValueStore — эталонная реализация для тестов и локального запуска.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from src.core.errors import ConcurrentModificationError


# =============================================================================
# WRITE BATCH
# =============================================================================


@dataclass
class WriteBatch:
    """
    Пачка изменений, применяемая хранилищем атомарно.

    expected: ключ → значение, прочитанное транзакцией (None — ключ
    отсутствовал). Commit проходит только если текущие значения совпадают.
    """

    puts: dict[str, str] = field(default_factory=dict)
    deletes: set[str] = field(default_factory=set)
    expected: dict[str, str | None] = field(default_factory=dict)

    def put(self, key: str, value: str) -> None:
        self.deletes.discard(key)
        self.puts[key] = value

    def delete(self, key: str) -> None:
        self.puts.pop(key, None)
        self.deletes.add(key)

    def expect(self, key: str, value: str | None) -> None:
        # Первое чтение ключа фиксирует ожидаемое значение
        self.expected.setdefault(key, value)

    def is_empty(self) -> bool:
        return not self.puts and not self.deletes


# =============================================================================
# STORE INTERFACE
# =============================================================================


class KeyValueStore(ABC):
    """Интерфейс хранилища ключ-значение."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Значение по ключу или None."""

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Запись значения."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Удаление ключа (отсутствующий ключ — no-op)."""

    @abstractmethod
    def scan_prefix(self, prefix: str) -> list[tuple[str, str]]:
        """Все пары (ключ, значение) с заданным префиксом, по возрастанию ключа."""

    @abstractmethod
    def commit(self, batch: WriteBatch) -> None:
        """
        Атомарное применение пачки.

        Raises:
            ConcurrentModificationError: Если нарушено предусловие batch.expected
        """


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


class InMemoryKeyValueStore(KeyValueStore):
    """
    Хранилище в памяти процесса.

    Все операции сериализуются одной блокировкой, commit проверяет
    предусловия и применяет изменения под ней же.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def scan_prefix(self, prefix: str) -> list[tuple[str, str]]:
        with self._lock:
            return sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))

    def commit(self, batch: WriteBatch) -> None:
        with self._lock:
            for key, expected_value in batch.expected.items():
                if self._data.get(key) != expected_value:
                    raise ConcurrentModificationError(key)

            for key in batch.deletes:
                self._data.pop(key, None)
            self._data.update(batch.puts)

    def keys(self) -> list[str]:
        """Все ключи хранилища (отсортированы)."""
        with self._lock:
            return sorted(self._data)
