"""
JSON Schema Contract Validators

Контракты crowdfund ledger на JSON форму моделей (model_dump(mode="json")):
- campaign.json (запись реестра)
- ledger_event.json (уведомления наблюдателям, oneOf по event_type)
- ledger_snapshot.json (durable-состояние ledger)

Pydantic проверяет модели при создании; контракт проверяет то, что уходит
наружу (журнал событий, сохраненный снапшот), в том числе данные, собранные
в обход валидации (model_construct).
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import jsonschema
from jsonschema import Draft202012Validator, ValidationError
from pydantic import BaseModel

# contracts/schema/ в корне проекта (4 уровня вверх от этого файла)
DEFAULT_SCHEMA_DIR = Path(__file__).parent.parent.parent.parent / "contracts" / "schema"


# =============================================================================
# SCHEMA LOADER
# =============================================================================


class SchemaLoader:
    """Загрузка и кэширование схем контрактов с meta-validation."""

    def __init__(self, schema_dir: Optional[Path] = None):
        self._schema_dir = Path(schema_dir) if schema_dir is not None else DEFAULT_SCHEMA_DIR
        if not self._schema_dir.is_dir():
            raise RuntimeError(f"Schema directory not found: {self._schema_dir}")
        self._schemas: Dict[str, Dict[str, Any]] = {}

    @property
    def schema_dir(self) -> Path:
        return self._schema_dir

    def load_schema(self, schema_name: str) -> Dict[str, Any]:
        """
        Args:
            schema_name: имя контракта без расширения ('campaign', 'ledger_event', ...)

        Raises:
            FileNotFoundError: файла схемы нет
            ValueError: файл не является валидной Draft 2020-12 схемой
        """
        cached = self._schemas.get(schema_name)
        if cached is not None:
            return cached

        schema_path = self._schema_dir / f"{schema_name}.json"
        if not schema_path.exists():
            raise FileNotFoundError(f"Schema not found: {schema_path}")

        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        try:
            Draft202012Validator.check_schema(schema)
        except jsonschema.SchemaError as e:
            raise ValueError(f"Invalid JSON Schema in {schema_path.name}: {e.message}") from e

        self._schemas[schema_name] = schema
        return schema


_SCHEMA_LOADER = SchemaLoader()


# =============================================================================
# CONTRACT VALIDATORS
# =============================================================================


class ContractValidator:
    """
    Валидатор одного контракта.

    Подклассы задают schema_name; loader можно подменить (другой каталог схем).
    """

    schema_name: str = ""

    def __init__(self, loader: Optional[SchemaLoader] = None):
        self.schema = (loader or _SCHEMA_LOADER).load_schema(self.schema_name)
        self._validator = Draft202012Validator(self.schema)

    def validate(self, data: Dict[str, Any]) -> None:
        """
        Raises:
            ValidationError: данные не соответствуют контракту
        """
        self._validator.validate(data)

    def validate_model(self, model: BaseModel) -> Dict[str, Any]:
        """Проверка JSON формы модели; возвращает проверенный payload.

        Raises:
            ValidationError: JSON форма модели нарушает контракт
        """
        payload = model.model_dump(mode="json")
        self.validate(payload)
        return payload

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return self._validator.is_valid(data)

    def iter_errors(self, data: Dict[str, Any]) -> Iterator[ValidationError]:
        """Все нарушения контракта (а не только первое)."""
        return self._validator.iter_errors(data)


class CampaignValidator(ContractValidator):
    schema_name = "campaign"


class LedgerEventValidator(ContractValidator):
    schema_name = "ledger_event"


class LedgerSnapshotValidator(ContractValidator):
    schema_name = "ledger_snapshot"


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

# Validator строится один раз на контракт
_CAMPAIGN = CampaignValidator()
_LEDGER_EVENT = LedgerEventValidator()
_LEDGER_SNAPSHOT = LedgerSnapshotValidator()


def validate_campaign(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: запись кампании не соответствует campaign.json
    """
    _CAMPAIGN.validate(data)


def validate_ledger_event(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: событие не соответствует ledger_event.json
    """
    _LEDGER_EVENT.validate(data)


def validate_ledger_snapshot(data: Dict[str, Any]) -> None:
    """
    Raises:
        ValidationError: снапшот не соответствует ledger_snapshot.json
    """
    _LEDGER_SNAPSHOT.validate(data)
