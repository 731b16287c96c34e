"""
Campaign Registry — реестр кампаний

- campaign_id → Campaign
- count: последний выданный id (монотонный, никогда не переиспользуется)

Реестр не выполняет проверок предусловий: это делает CampaignLedger.
"""

from typing import Dict, Iterator, Optional

from src.core.domain.campaign import Campaign

from .errors import NotFound


class CampaignRegistry:
    """Хранилище кампаний с последовательной выдачей id."""

    def __init__(self, count: int = 0):
        """
        Args:
            count: последний выданный id (восстановление из снапшота)
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        self._count = count
        self._campaigns: Dict[int, Campaign] = {}

    @property
    def count(self) -> int:
        """Последний выданный id (= число launch, включая отмененные)."""
        return self._count

    def allocate_id(self) -> int:
        """Выдача следующего id: count += 1."""
        self._count += 1
        return self._count

    def get(self, campaign_id: int) -> Campaign:
        """
        Получение кампании.

        Raises:
            NotFound: Если кампании нет (никогда не существовала или отменена)
        """
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise NotFound(f"campaign {campaign_id} not found", campaign_id=campaign_id)
        return campaign

    def find(self, campaign_id: int) -> Optional[Campaign]:
        return self._campaigns.get(campaign_id)

    def put(self, campaign: Campaign) -> None:
        """Запись (или замена) кампании."""
        if campaign.id > self._count:
            raise ValueError(f"campaign id {campaign.id} was never allocated (count={self._count})")
        self._campaigns[campaign.id] = campaign

    def remove(self, campaign_id: int) -> Campaign:
        """Удаление кампании (cancel). id не освобождается."""
        campaign = self.get(campaign_id)
        del self._campaigns[campaign_id]
        return campaign

    def __contains__(self, campaign_id: int) -> bool:
        return campaign_id in self._campaigns

    def __iter__(self) -> Iterator[Campaign]:
        return iter(sorted(list(self._campaigns.values()), key=lambda c: c.id))

    def __len__(self) -> int:
        return len(self._campaigns)
