"""Конфигурация CampaignLedger."""

from dataclasses import dataclass

from src.core.domain.campaign import MAX_CAMPAIGN_DURATION_SEC


@dataclass(frozen=True)
class LedgerConfig:
    """Конфигурация ledger.

    - max_duration_sec: максимальное расстояние end_at от now при launch (90 days)
    - custody_account: аккаунт, на котором transfer-сервис держит собранные средства
    """
    max_duration_sec: int = MAX_CAMPAIGN_DURATION_SEC
    custody_account: str = "ledger"

    def __post_init__(self):
        if self.max_duration_sec < 0:
            raise ValueError(
                f"max_duration_sec must be non-negative, got {self.max_duration_sec}"
            )
        if not self.custody_account:
            raise ValueError("custody_account cannot be empty")
