"""
Campaign — Модель краудфандинговой кампании

Immutable Pydantic модель, представляющая одну кампанию сбора средств.
Все изменения (pledged, claimed) создают новый экземпляр через model_copy.

Жизненный цикл (фаза вычисляется от now, часы не хранятся):
    PENDING  (now < start_at)              — cancel разрешен
    ACTIVE   (start_at <= now <= end_at)   — pledge / unpledge
    CLOSED   (now > end_at, не claimed)    — claim (goal достигнут) или refund
    CLAIMED  (claimed == True)             — терминальное состояние
"""

from enum import Enum
from typing import Final

from pydantic import BaseModel, Field, field_validator

from src.core.math.numerical_safeguards import UINT32_MAX, days_to_seconds, is_uint


# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Максимальная длительность окна кампании
MAX_CAMPAIGN_DURATION_DAYS: Final[int] = 90
MAX_CAMPAIGN_DURATION_SEC: Final[int] = days_to_seconds(MAX_CAMPAIGN_DURATION_DAYS)


# =============================================================================
# ENUMS
# =============================================================================


class CampaignPhase(str, Enum):
    """Фаза кампании относительно текущего времени"""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    CLAIMED = "CLAIMED"


# =============================================================================
# CAMPAIGN MODEL
# =============================================================================


class Campaign(BaseModel):
    """
    Модель кампании.

    Immutable модель (frozen=True). id, creator, goal, start_at, end_at
    фиксируются при launch и никогда не меняются.
    pledged — агрегат активных взносов, claimed — однократный флаг.
    """

    # Идентификация
    id: int = Field(..., ge=1, description="Последовательный идентификатор кампании")
    creator: str = Field(..., min_length=1, description="Аккаунт, запустивший кампанию")

    # Суммы
    goal: int = Field(..., description="Цель сбора (uint256, 0 допустим)")
    pledged: int = Field(default=0, description="Сумма активных взносов (uint256)")

    # Окно
    start_at: int = Field(
        ..., ge=0, le=UINT32_MAX, description="Начало окна (uint32, секунды)"
    )
    end_at: int = Field(..., ge=0, le=UINT32_MAX, description="Конец окна (uint32, секунды)")

    # Статус
    claimed: bool = Field(default=False, description="True после успешного claim")

    model_config = {"frozen": True}

    @field_validator("goal", "pledged")
    @classmethod
    def validate_uint256(cls, v: int) -> int:
        """Суммы ограничены uint256."""
        if not is_uint(v):
            raise ValueError(f"amount {v} is outside uint256 range")
        return v

    @field_validator("end_at")
    @classmethod
    def validate_window_order(cls, v: int, info) -> int:
        """Проверка, что end_at >= start_at"""
        if "start_at" in info.data:
            start_at = info.data["start_at"]
            if v < start_at:
                raise ValueError(f"end_at {v} must be >= start_at {start_at}")
        return v

    @property
    def duration_sec(self) -> int:
        """Длина окна в секундах."""
        return self.end_at - self.start_at

    @property
    def goal_reached(self) -> bool:
        """pledged >= goal (нулевая цель достигнута сразу)."""
        return self.pledged >= self.goal

    def has_started(self, now: int) -> bool:
        """Окно открыто или уже закрыто."""
        return now >= self.start_at

    def has_ended(self, now: int) -> bool:
        """
        Окно закрыто.

        end_at включительно принадлежит окну: в момент end_at pledge еще разрешен.
        """
        return now > self.end_at

    def is_active(self, now: int) -> bool:
        return self.has_started(now) and not self.has_ended(now)

    def phase(self, now: int) -> CampaignPhase:
        """
        Фаза кампании на момент now.

        Args:
            now: Текущее время (секунды, uint32)

        Returns:
            CampaignPhase
        """
        if self.claimed:
            return CampaignPhase.CLAIMED
        if not self.has_started(now):
            return CampaignPhase.PENDING
        if not self.has_ended(now):
            return CampaignPhase.ACTIVE
        return CampaignPhase.CLOSED
