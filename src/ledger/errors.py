"""
Ledger Errors — иерархия отклоненных операций

Все ошибки — исправимые нарушения предусловий на стороне вызывающего.
Ни одна не является fatal: операция отклоняется без частичных изменений.
"""

from typing import Optional


class LedgerError(Exception):
    """
    Базовый класс отклоненной операции ledger.

    Attributes:
        message: Текст ошибки
        campaign_id: Идентификатор кампании (если известен)
    """

    def __init__(self, message: str, campaign_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.campaign_id = campaign_id


class InvalidWindow(LedgerError):
    """Launch с некорректной комбинацией start_at / end_at."""
    pass


class InvalidAmount(LedgerError):
    """Сумма не является uint256 или агрегат переполнился бы."""
    pass


class NotFound(LedgerError):
    """Кампания не существует или была отменена."""
    pass


class NotAuthorized(LedgerError):
    """Cancel / Claim вызван не создателем кампании."""
    pass


class AlreadyStarted(LedgerError):
    """Cancel после открытия окна."""
    pass


class NotStarted(LedgerError):
    """Pledge до открытия окна."""
    pass


class Ended(LedgerError):
    """Pledge / Unpledge после закрытия окна."""
    pass


class NotEnded(LedgerError):
    """Claim / Refund до закрытия окна."""
    pass


class GoalNotMet(LedgerError):
    """Claim при pledged < goal."""
    pass


class AlreadyClaimed(LedgerError):
    """Повторный Claim."""
    pass


class GoalMet(LedgerError):
    """Refund при достигнутой цели."""
    pass


class InsufficientPledge(LedgerError):
    """Unpledge увел бы взнос участника или агрегат кампании ниже нуля."""
    pass


class TransferFailed(LedgerError):
    """
    Внешний сервис перевода сообщил об ошибке.

    Все изменения состояния операции откатываются до raise.
    """
    pass


class LedgerInvariantViolation(LedgerError):
    """
    Нарушен внутренний инвариант ledger.

    Примеры: pledge-записи у отменяемой кампании, несогласованный снапшот.
    """
    pass
