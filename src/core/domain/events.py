"""
Ledger Events — Модели уведомлений для наблюдателей

Каждая успешная операция ledger порождает ровно одно событие.
Immutable Pydantic модели, JSON форма совместима с
contracts/schema/ledger_event.json.
"""

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field, field_validator

from src.core.math.numerical_safeguards import UINT32_MAX, is_uint


# =============================================================================
# ENUMS
# =============================================================================


class LedgerEventType(str, Enum):
    """Тип события ledger"""

    LAUNCH = "launch"
    CANCEL = "cancel"
    PLEDGE = "pledge"
    UNPLEDGE = "unpledge"
    CLAIM = "claim"
    REFUND = "refund"


# =============================================================================
# EVENT MODELS
# =============================================================================


class LedgerEvent(BaseModel):
    """Базовое событие: идентификатор кампании."""

    campaign_id: int = Field(..., ge=1, description="Идентификатор кампании")

    model_config = {"frozen": True}

    @field_validator("goal", "amount", check_fields=False)
    @classmethod
    def validate_uint256(cls, v: int) -> int:
        """Суммы ограничены uint256."""
        if not is_uint(v):
            raise ValueError(f"amount {v} is outside uint256 range")
        return v


class LaunchEvent(LedgerEvent):
    """Кампания создана."""

    event_type: Literal["launch"] = "launch"
    creator: str = Field(..., min_length=1)
    goal: int = Field(...)
    start_at: int = Field(..., ge=0, le=UINT32_MAX)
    end_at: int = Field(..., ge=0, le=UINT32_MAX)


class CancelEvent(LedgerEvent):
    """Кампания удалена до старта."""

    event_type: Literal["cancel"] = "cancel"


class PledgeEvent(LedgerEvent):
    """Взнос внесен."""

    event_type: Literal["pledge"] = "pledge"
    caller: str = Field(..., min_length=1)
    amount: int = Field(...)


class UnpledgeEvent(LedgerEvent):
    """Взнос (частично) отозван."""

    event_type: Literal["unpledge"] = "unpledge"
    caller: str = Field(..., min_length=1)
    amount: int = Field(...)


class ClaimEvent(LedgerEvent):
    """Создатель забрал собранные средства."""

    event_type: Literal["claim"] = "claim"
    creator: str = Field(..., min_length=1)
    amount: int = Field(..., description="Переведенная создателю сумма")


class RefundEvent(LedgerEvent):
    """Участник вернул свой взнос после неуспешной кампании."""

    event_type: Literal["refund"] = "refund"
    caller: str = Field(..., min_length=1)
    amount: int = Field(..., description="Возвращенная сумма (0 при повторном refund)")


AnyLedgerEvent = Union[
    LaunchEvent, CancelEvent, PledgeEvent, UnpledgeEvent, ClaimEvent, RefundEvent
]
