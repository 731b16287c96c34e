"""
Value Transfer — внешний сервис перевода средств

CampaignLedger не хранит балансы токенов: он вызывает TransferService.
- pull(source, destination, amount): source → custody, требует allowance от source
- push(destination, amount): custody → destination

Оба вызова all-or-nothing: False (или exception) прерывает операцию ledger.

InMemoryTransferService — эталонная реализация с балансами и allowance
(предварительная авторизация pull, которую выдает сам владелец).
"""

import threading
from typing import Dict, Protocol, runtime_checkable

from src.core.log import get_logger
from src.core.math.numerical_safeguards import (
    ArithmeticOverflow,
    checked_add,
    validate_uint,
)

logger = get_logger(__name__)


@runtime_checkable
class TransferService(Protocol):
    """Интерфейс сервиса перевода, который использует ledger."""

    def pull(self, source: str, destination: str, amount: int) -> bool:
        ...

    def push(self, destination: str, amount: int) -> bool:
        ...


class InMemoryTransferService:
    """
    In-memory token service.

    Балансы аккаунтов, custody-аккаунт ledger и allowance владельцев.
    Ошибка перевода → False, балансы не меняются.
    """

    def __init__(self, custody_account: str = "ledger"):
        """
        Args:
            custody_account: аккаунт, на котором хранятся собранные средства
        """
        self.custody_account = custody_account
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[str, int] = {}
        self._lock = threading.Lock()

    def mint(self, account: str, amount: int) -> None:
        """Начисление баланса (настройка окружения)."""
        validate_uint(amount, "amount")
        with self._lock:
            self._balances[account] = checked_add(self._balances.get(account, 0), amount)

    def approve(self, owner: str, amount: int) -> None:
        """
        Авторизация pull на сумму amount со счета owner.

        Выдается самим владельцем вне ledger; повторный approve перезаписывает лимит.
        """
        validate_uint(amount, "amount")
        with self._lock:
            self._allowances[owner] = amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str) -> int:
        return self._allowances.get(owner, 0)

    @property
    def custody_balance(self) -> int:
        return self.balance_of(self.custody_account)

    def pull(self, source: str, destination: str, amount: int) -> bool:
        """
        Перевод source → destination в пределах allowance.

        Returns:
            True при успехе; False при недостатке allowance или баланса
        """
        with self._lock:
            allowance = self._allowances.get(source, 0)
            balance = self._balances.get(source, 0)

            if amount > allowance:
                logger.info(
                    "pull rejected: allowance %d < %d for %s", allowance, amount, source
                )
                return False
            if amount > balance:
                logger.info("pull rejected: balance %d < %d for %s", balance, amount, source)
                return False

            if destination != source:
                try:
                    credited = checked_add(self._balances.get(destination, 0), amount)
                except ArithmeticOverflow:
                    logger.info("pull rejected: balance overflow for %s", destination)
                    return False

                self._balances[source] = balance - amount
                self._balances[destination] = credited

            self._allowances[source] = allowance - amount
            return True

    def push(self, destination: str, amount: int) -> bool:
        """
        Перевод custody → destination.

        Returns:
            True при успехе; False при недостатке средств в custody
        """
        with self._lock:
            custody = self._balances.get(self.custody_account, 0)
            if amount > custody:
                logger.info("push rejected: custody %d < %d", custody, amount)
                return False

            if destination == self.custody_account:
                return True

            try:
                credited = checked_add(self._balances.get(destination, 0), amount)
            except ArithmeticOverflow:
                logger.info("push rejected: balance overflow for %s", destination)
                return False

            self._balances[self.custody_account] = custody - amount
            self._balances[destination] = credited
            return True
