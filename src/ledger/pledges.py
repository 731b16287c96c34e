"""
Pledge Book — книга взносов

Отображение (campaign_id, contributor) → amount.
Нулевые записи не хранятся: отсутствие записи эквивалентно 0.
Записи сгруппированы по campaign_id, чтобы операции над разными
кампаниями не пересекались по данным.
"""

from typing import Dict, Iterator, Tuple


class PledgeBook:
    """Книга взносов с составным ключом (campaign_id, contributor)."""

    def __init__(self):
        self._entries: Dict[int, Dict[str, int]] = {}

    def get(self, campaign_id: int, contributor: str) -> int:
        """Активный взнос участника (0 если записи нет)."""
        return self._entries.get(campaign_id, {}).get(contributor, 0)

    def set(self, campaign_id: int, contributor: str, amount: int) -> None:
        """
        Установка взноса участника.

        Args:
            campaign_id: Идентификатор кампании
            contributor: Участник
            amount: Новое значение (>= 0, 0 удаляет запись)
        """
        if amount < 0:
            raise ValueError(f"pledge amount must be non-negative, got {amount}")

        if amount == 0:
            book = self._entries.get(campaign_id)
            if book is not None:
                book.pop(contributor, None)
        else:
            self._entries.setdefault(campaign_id, {})[contributor] = amount

    def entries_for(self, campaign_id: int) -> Dict[str, int]:
        """Копия ненулевых взносов кампании: contributor → amount."""
        return dict(self._entries.get(campaign_id, {}))

    def total_for(self, campaign_id: int) -> int:
        """Σ взносов кампании."""
        return sum(self.entries_for(campaign_id).values())

    def clear(self, campaign_id: int) -> None:
        """Удаление всех записей кампании."""
        self._entries.pop(campaign_id, None)

    def __iter__(self) -> Iterator[Tuple[int, str, int]]:
        for campaign_id, book in sorted(list(self._entries.items())):
            for contributor, amount in sorted(dict(book).items()):
                yield campaign_id, contributor, amount

    def __len__(self) -> int:
        return sum(len(book) for book in list(self._entries.values()))
