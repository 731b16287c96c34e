"""
Observers — доставка событий ledger

Доставка fire-and-forget: исключение наблюдателя логируется и никогда не
влияет на состояние ledger или результат операции.

- EventDispatcher: рассылка событий подписчикам
- RecordingObserver: хранит модели событий в порядке доставки
- EventJournal: валидирует JSON форму события по контракту ledger_event
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from src.core.contracts.validators import LedgerEventValidator
from src.core.domain.events import LedgerEvent
from src.core.log import get_logger

logger = get_logger(__name__)


@runtime_checkable
class LedgerObserver(Protocol):
    """Подписчик на события ledger."""

    def notify(self, event: LedgerEvent) -> None:
        ...


class EventDispatcher:
    """Рассылка событий всем подписчикам."""

    def __init__(self, observers: Optional[Iterable[LedgerObserver]] = None):
        self._observers: List[LedgerObserver] = list(observers or [])

    def subscribe(self, observer: LedgerObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: LedgerObserver) -> None:
        self._observers.remove(observer)

    @property
    def observers(self) -> List[LedgerObserver]:
        return list(self._observers)

    def dispatch(self, event: LedgerEvent) -> int:
        """
        Доставка события всем подписчикам.

        Args:
            event: событие ledger

        Returns:
            Число подписчиков, получивших событие без ошибки
        """
        delivered = 0
        for observer in self._observers:
            try:
                observer.notify(event)
            except Exception:
                logger.exception(
                    "observer %r failed on %s event for campaign %d",
                    observer,
                    getattr(event, "event_type", type(event).__name__),
                    event.campaign_id,
                )
                continue
            delivered += 1
        return delivered


class RecordingObserver:
    """Хранит полученные события (in-memory)."""

    def __init__(self):
        self.events: List[LedgerEvent] = []

    def notify(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[LedgerEvent]:
        return [e for e in self.events if getattr(e, "event_type", None) == event_type]


class EventJournal:
    """
    Журнал событий в JSON форме.

    Каждое событие проверяется по контракту ledger_event перед записью;
    нарушение контракта — ошибка наблюдателя (логируется dispatcher'ом).
    """

    def __init__(self):
        self._validator = LedgerEventValidator()
        self.entries: List[Dict[str, Any]] = []

    def notify(self, event: LedgerEvent) -> None:
        self.entries.append(self._validator.validate_model(event))
