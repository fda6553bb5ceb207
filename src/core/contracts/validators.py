"""
JSON Schema Record Validators

Модуль для валидации записей хранилища согласно формальным JSON Schema
контрактам. Использует библиотеку jsonschema для проверки соответствия
данных схемам до построения Pydantic моделей.

Схемы (src/core/contracts/schema/):
- market_snapshot.json — синглтон-снапшот рынка
- order.json           — заявка order book
- trade.json           — исполненная сделка
"""

import json
from pathlib import Path
from typing import Any, Dict

import jsonschema
from jsonschema import Draft202012Validator


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """
    Загрузчик JSON Schema файлов.

    Схемы поставляются вместе с пакетом в каталоге schema/ рядом с модулем.
    """

    def __init__(self, schema_dir: Path | None = None):
        self._schema_dir = schema_dir or Path(__file__).parent / "schema"
        if not self._schema_dir.exists():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")

        # Кэш загруженных схем
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Загрузка JSON Schema файла.

        Args:
            schema_name: Имя схемы без расширения (например, 'trade')

        Returns:
            Загруженная схема как dict

        Raises:
            FileNotFoundError: Если файл схемы не найден
            ValueError: Если файл не является валидной JSON Schema
        """
        if schema_name in self._schemas:
            return self._schemas[schema_name]

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)

        # Meta-validation самой схемы
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_name}.json: {e}")

        self._schemas[schema_name] = schema
        return schema


# Глобальный экземпляр загрузчика
_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# RECORD VALIDATORS
# =============================================================================


class RecordValidator:
    """
    Базовый класс для валидаторов записей.

    Инкапсулирует логику валидации данных против JSON Schema.
    """

    def __init__(self, schema_name: str):
        self.schema_name = schema_name
        self.schema = _SCHEMA_LOADER.load_schema(schema_name)
        self.validator = Draft202012Validator(self.schema)

    def is_valid(self, data: Dict[str, Any]) -> bool:
        """Проверка валидности данных без exception."""
        return self.validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]):
        """Итератор по всем ошибкам валидации."""
        return self.validator.iter_errors(data)

    def error_summary(self, data: Dict[str, Any], limit: int = 3) -> str:
        """
        Краткое описание нарушений контракта для сообщений об ошибках.

        Нарушения упорядочены по пути в записи; путь корня обозначается '$'.
        """
        errors = sorted(self.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
        parts = [
            f"{'/'.join(str(p) for p in e.absolute_path) or '$'}: {e.message}"
            for e in errors[:limit]
        ]
        if len(errors) > limit:
            parts.append(f"... {len(errors) - limit} more")
        return "; ".join(parts)


class MarketSnapshotValidator(RecordValidator):
    """Валидатор для записи market_snapshot."""

    def __init__(self):
        super().__init__("market_snapshot")


class OrderValidator(RecordValidator):
    """Валидатор для записи order."""

    def __init__(self):
        super().__init__("order")


class TradeValidator(RecordValidator):
    """Валидатор для записи trade."""

    def __init__(self):
        super().__init__("trade")

