"""CampaignLedger — учет краудфандинговых кампаний и взносов.

Операции:
- launch: новая кампания с целью и окном [start_at, end_at]
- cancel: удаление кампании создателем до старта
- pledge / unpledge: взнос и отзыв взноса в пределах окна
- claim: создатель забирает собранное после окна (goal достигнут, однократно)
- refund: участник возвращает свой взнос после окна (goal не достигнут)

Гарантии:
- Все предусловия проверяются до изменений состояния
- Операции над одной кампанией сериализуются (per-id lock)
- Ошибка внешнего перевода откатывает все изменения операции (TransferFailed)
- Инвариант: campaign.pledged == Σ взносов кампании в pledge-книге
"""

import threading
from contextlib import ExitStack, contextmanager
from typing import Callable, Dict, Iterable, Iterator, Optional

from src.core.domain.campaign import Campaign, CampaignPhase
from src.core.domain.events import (
    CancelEvent,
    ClaimEvent,
    LaunchEvent,
    LedgerEvent,
    PledgeEvent,
    RefundEvent,
    UnpledgeEvent,
)
from src.core.domain.snapshot import LedgerSnapshot, PledgeEntry
from src.core.log import get_logger
from src.core.math.numerical_safeguards import (
    UINT32_MAX,
    ArithmeticOverflow,
    ArithmeticUnderflow,
    checked_add,
    checked_sub,
    is_uint32,
    validate_uint,
)

from .config import LedgerConfig
from .errors import (
    AlreadyClaimed,
    AlreadyStarted,
    Ended,
    GoalMet,
    GoalNotMet,
    InsufficientPledge,
    InvalidAmount,
    InvalidWindow,
    LedgerInvariantViolation,
    NotAuthorized,
    NotEnded,
    NotFound,
    NotStarted,
    TransferFailed,
)
from .observers import EventDispatcher, LedgerObserver
from .pledges import PledgeBook
from .registry import CampaignRegistry
from .transfer import TransferService

logger = get_logger(__name__)


class CampaignLedger:
    """Реестр кампаний + книга взносов + вызовы внешнего сервиса перевода.

    Текущее время (now) и вызывающий аккаунт передаются в каждую операцию:
    ledger не владеет часами и не запускает фоновых задач.
    """

    def __init__(
        self,
        transfer: TransferService,
        config: Optional[LedgerConfig] = None,
        observers: Optional[Iterable[LedgerObserver]] = None,
    ):
        """
        Args:
            transfer: внешний сервис перевода (pull / push)
            config: конфигурация ledger
            observers: подписчики на события
        """
        self.transfer = transfer
        self.config = config or LedgerConfig()
        self.dispatcher = EventDispatcher(observers)

        self._registry = CampaignRegistry()
        self._pledges = PledgeBook()

        # Выдача id и снапшоты
        self._registry_lock = threading.RLock()
        # Per-campaign сериализация
        self._campaign_locks: Dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # ОПЕРАЦИИ
    # =========================================================================

    def launch(
        self, creator: str, goal: int, start_at: int, end_at: int, now: int
    ) -> int:
        """Создание кампании.

        Args:
            creator: аккаунт создателя (вызывающий)
            goal: цель сбора (uint256, 0 допустим)
            start_at: начало окна (uint32, >= now)
            end_at: конец окна (uint32, start_at <= end_at <= now + max_duration)
            now: текущее время

        Returns:
            Новый campaign_id (последовательный, начиная с 1)

        Raises:
            InvalidWindow: некорректное окно
            InvalidAmount: goal не uint256
        """
        _require_account(creator, "creator")
        _require_time(now)
        goal = _require_amount(goal, "goal")

        if not is_uint32(start_at) or not is_uint32(end_at):
            raise InvalidWindow(
                f"window bounds must be uint32 timestamps, got start_at={start_at!r}, end_at={end_at!r}"
            )
        if start_at < now:
            raise InvalidWindow(f"start_at {start_at} is before now {now}")
        if end_at < start_at:
            raise InvalidWindow(f"end_at {end_at} is before start_at {start_at}")
        latest_end = now + self.config.max_duration_sec
        if end_at > latest_end:
            raise InvalidWindow(
                f"end_at {end_at} exceeds max duration (latest allowed {latest_end})"
            )

        with self._registry_lock:
            campaign = Campaign(
                id=self._registry.count + 1,
                creator=creator,
                goal=goal,
                pledged=0,
                start_at=start_at,
                end_at=end_at,
                claimed=False,
            )
            self._registry.allocate_id()
            with self._locks_guard:
                self._campaign_locks[campaign.id] = threading.RLock()
            self._registry.put(campaign)

        logger.debug(
            "launch campaign=%d creator=%s goal=%d window=[%d, %d]",
            campaign.id, creator, goal, start_at, end_at,
        )
        self._emit(
            LaunchEvent(
                campaign_id=campaign.id,
                creator=creator,
                goal=goal,
                start_at=start_at,
                end_at=end_at,
            )
        )
        return campaign.id

    def cancel(self, campaign_id: int, caller: str, now: int) -> CancelEvent:
        """Удаление кампании до старта.

        Raises:
            NotFound, NotAuthorized, AlreadyStarted
            LedgerInvariantViolation: у кампании есть взносы
        """
        _require_account(caller, "caller")
        _require_time(now)

        with self._campaign_lock(campaign_id):
            campaign = self._registry.get(campaign_id)

            if caller != campaign.creator:
                raise NotAuthorized(
                    f"{caller} is not the creator of campaign {campaign_id}",
                    campaign_id=campaign_id,
                )
            if campaign.has_started(now):
                raise AlreadyStarted(
                    f"campaign {campaign_id} started at {campaign.start_at}",
                    campaign_id=campaign_id,
                )

            pledged_total = self._pledges.total_for(campaign_id)
            if pledged_total != 0 or campaign.pledged != 0:
                raise LedgerInvariantViolation(
                    f"campaign {campaign_id} has pledges before start "
                    f"(book={pledged_total}, aggregate={campaign.pledged})",
                    campaign_id=campaign_id,
                )

            self._registry.remove(campaign_id)
            self._pledges.clear(campaign_id)
            with self._locks_guard:
                self._campaign_locks.pop(campaign_id, None)

            logger.debug("cancel campaign=%d", campaign_id)
            return self._emit(CancelEvent(campaign_id=campaign_id))

    def pledge(self, campaign_id: int, caller: str, amount: int, now: int) -> PledgeEvent:
        """Взнос в активную кампанию.

        Состояние обновляется до pull; при ошибке pull изменения откатываются.

        Raises:
            NotFound, NotStarted, Ended, InvalidAmount, TransferFailed
        """
        _require_account(caller, "caller")
        _require_time(now)
        amount = _require_amount(amount, "amount", campaign_id)

        with self._campaign_lock(campaign_id):
            campaign = self._registry.get(campaign_id)

            if not campaign.has_started(now):
                raise NotStarted(
                    f"campaign {campaign_id} starts at {campaign.start_at}",
                    campaign_id=campaign_id,
                )
            if campaign.has_ended(now):
                raise Ended(
                    f"campaign {campaign_id} ended at {campaign.end_at}",
                    campaign_id=campaign_id,
                )

            try:
                new_total = checked_add(campaign.pledged, amount)
                new_pledge = checked_add(self._pledges.get(campaign_id, caller), amount)
            except ArithmeticOverflow as e:
                raise InvalidAmount(str(e), campaign_id=campaign_id) from e

            with self._atomic(campaign, caller):
                self._registry.put(campaign.model_copy(update={"pledged": new_total}))
                self._pledges.set(campaign_id, caller, new_pledge)
                self._call_transfer(
                    "pull",
                    campaign_id,
                    lambda: self.transfer.pull(caller, self.config.custody_account, amount),
                )

            logger.debug("pledge campaign=%d caller=%s amount=%d", campaign_id, caller, amount)
            return self._emit(PledgeEvent(campaign_id=campaign_id, caller=caller, amount=amount))

    def unpledge(
        self, campaign_id: int, caller: str, amount: int, now: int
    ) -> UnpledgeEvent:
        """Отзыв взноса до закрытия окна.

        Проверки "not started" нет: до старта взносов не существует,
        поэтому положительная сумма отклоняется как InsufficientPledge.

        Raises:
            NotFound, Ended, InsufficientPledge, InvalidAmount, TransferFailed
        """
        _require_account(caller, "caller")
        _require_time(now)
        amount = _require_amount(amount, "amount", campaign_id)

        with self._campaign_lock(campaign_id):
            campaign = self._registry.get(campaign_id)

            if campaign.has_ended(now):
                raise Ended(
                    f"campaign {campaign_id} ended at {campaign.end_at}",
                    campaign_id=campaign_id,
                )

            current = self._pledges.get(campaign_id, caller)
            try:
                new_pledge = checked_sub(current, amount)
                new_total = checked_sub(campaign.pledged, amount)
            except ArithmeticUnderflow as e:
                raise InsufficientPledge(
                    f"{caller} has {current} pledged to campaign {campaign_id}, "
                    f"cannot unpledge {amount}",
                    campaign_id=campaign_id,
                ) from e

            with self._atomic(campaign, caller):
                self._registry.put(campaign.model_copy(update={"pledged": new_total}))
                self._pledges.set(campaign_id, caller, new_pledge)
                self._call_transfer(
                    "push", campaign_id, lambda: self.transfer.push(caller, amount)
                )

            logger.debug("unpledge campaign=%d caller=%s amount=%d", campaign_id, caller, amount)
            return self._emit(
                UnpledgeEvent(campaign_id=campaign_id, caller=caller, amount=amount)
            )

    def claim(self, campaign_id: int, caller: str, now: int) -> ClaimEvent:
        """Перевод собранного создателю (однократно).

        Порядок проверок: NotAuthorized → NotEnded → GoalNotMet → AlreadyClaimed.

        Raises:
            NotFound, NotAuthorized, NotEnded, GoalNotMet, AlreadyClaimed, TransferFailed
        """
        _require_account(caller, "caller")
        _require_time(now)

        with self._campaign_lock(campaign_id):
            campaign = self._registry.get(campaign_id)

            if caller != campaign.creator:
                raise NotAuthorized(
                    f"{caller} is not the creator of campaign {campaign_id}",
                    campaign_id=campaign_id,
                )
            if not campaign.has_ended(now):
                raise NotEnded(
                    f"campaign {campaign_id} ends at {campaign.end_at}",
                    campaign_id=campaign_id,
                )
            if not campaign.goal_reached:
                raise GoalNotMet(
                    f"campaign {campaign_id} raised {campaign.pledged} of {campaign.goal}",
                    campaign_id=campaign_id,
                )
            if campaign.claimed:
                raise AlreadyClaimed(
                    f"campaign {campaign_id} already claimed", campaign_id=campaign_id
                )

            amount = campaign.pledged
            with self._atomic(campaign):
                self._registry.put(campaign.model_copy(update={"claimed": True}))
                self._call_transfer(
                    "push", campaign_id, lambda: self.transfer.push(campaign.creator, amount)
                )

            logger.debug("claim campaign=%d creator=%s amount=%d", campaign_id, caller, amount)
            return self._emit(
                ClaimEvent(campaign_id=campaign_id, creator=campaign.creator, amount=amount)
            )

    def refund(self, campaign_id: int, caller: str, now: int) -> RefundEvent:
        """Возврат взноса участнику после неуспешной кампании.

        Повторный refund успешен и переводит 0.
        Агрегат pledged уменьшается на возвращенную сумму.

        Raises:
            NotFound, NotEnded, GoalMet, TransferFailed
        """
        _require_account(caller, "caller")
        _require_time(now)

        with self._campaign_lock(campaign_id):
            campaign = self._registry.get(campaign_id)

            if not campaign.has_ended(now):
                raise NotEnded(
                    f"campaign {campaign_id} ends at {campaign.end_at}",
                    campaign_id=campaign_id,
                )
            if campaign.goal_reached:
                raise GoalMet(
                    f"campaign {campaign_id} reached its goal, refund not applicable",
                    campaign_id=campaign_id,
                )

            balance = self._pledges.get(campaign_id, caller)
            try:
                new_total = checked_sub(campaign.pledged, balance)
            except ArithmeticUnderflow as e:
                raise InsufficientPledge(
                    f"campaign {campaign_id} total {campaign.pledged} is below "
                    f"{caller}'s pledge {balance}",
                    campaign_id=campaign_id,
                ) from e

            with self._atomic(campaign, caller):
                self._registry.put(campaign.model_copy(update={"pledged": new_total}))
                self._pledges.set(campaign_id, caller, 0)
                self._call_transfer(
                    "push", campaign_id, lambda: self.transfer.push(caller, balance)
                )

            logger.debug("refund campaign=%d caller=%s amount=%d", campaign_id, caller, balance)
            return self._emit(RefundEvent(campaign_id=campaign_id, caller=caller, amount=balance))

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    @property
    def count(self) -> int:
        """Последний выданный id (= число launch, включая отмененные)."""
        return self._registry.count

    def get_campaign(self, campaign_id: int) -> Campaign:
        """
        Raises:
            NotFound: кампании нет
        """
        return self._registry.get(campaign_id)

    def pledged_amount(self, campaign_id: int, contributor: str) -> int:
        return self._pledges.get(campaign_id, contributor)

    def contributors(self, campaign_id: int) -> Dict[str, int]:
        """Ненулевые взносы кампании: contributor → amount."""
        return self._pledges.entries_for(campaign_id)

    def total_pledged(self, campaign_id: int) -> int:
        """Σ взносов кампании по pledge-книге."""
        return self._pledges.total_for(campaign_id)

    def campaign_phase(self, campaign_id: int, now: int) -> CampaignPhase:
        """
        Raises:
            NotFound: кампании нет (в т.ч. отменена)
        """
        return self._registry.get(campaign_id).phase(now)

    def check_invariants(self) -> None:
        """Проверка согласованности агрегатов и pledge-книги.

        Raises:
            LedgerInvariantViolation: при первом найденном нарушении
        """
        with self._all_campaigns_locked() as campaigns:
            _verify_state(
                self._registry.count,
                campaigns,
                list(self._pledges),
                self.config.max_duration_sec,
            )

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Согласованный снапшот состояния (ни одна операция не видна частично)."""
        with self._all_campaigns_locked() as campaigns:
            pledges = [
                PledgeEntry(campaign_id=cid, contributor=contributor, amount=amount)
                for cid, contributor, amount in self._pledges
            ]
            return LedgerSnapshot(
                count=self._registry.count, campaigns=campaigns, pledges=pledges
            )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        transfer: TransferService,
        config: Optional[LedgerConfig] = None,
        observers: Optional[Iterable[LedgerObserver]] = None,
    ) -> "CampaignLedger":
        """Восстановление ledger из снапшота.

        Raises:
            LedgerInvariantViolation: снапшот несогласован
        """
        config = config or LedgerConfig()
        entries = [(p.campaign_id, p.contributor, p.amount) for p in snapshot.pledges]
        _verify_state(snapshot.count, snapshot.campaigns, entries, config.max_duration_sec)

        ledger = cls(transfer, config=config, observers=observers)
        ledger._registry = CampaignRegistry(count=snapshot.count)
        for campaign in snapshot.campaigns:
            ledger._registry.put(campaign)
            ledger._campaign_locks[campaign.id] = threading.RLock()
        for campaign_id, contributor, amount in entries:
            ledger._pledges.set(campaign_id, contributor, amount)
        return ledger

    # =========================================================================
    # ВНУТРЕННЕЕ
    # =========================================================================

    def _campaign_lock(self, campaign_id: int) -> threading.RLock:
        """Lock живой кампании; создается в launch, удаляется в cancel.

        Raises:
            NotFound: кампании нет (в т.ч. отменена)
        """
        with self._locks_guard:
            lock = self._campaign_locks.get(campaign_id)
        if lock is None:
            raise NotFound(f"campaign {campaign_id} not found", campaign_id=campaign_id)
        return lock

    @contextmanager
    def _all_campaigns_locked(self) -> Iterator[list]:
        """Блокировка реестра и всех кампаний (порядок по id)."""
        with self._registry_lock, ExitStack() as stack:
            ids = sorted(c.id for c in self._registry)
            for campaign_id in ids:
                with self._locks_guard:
                    lock = self._campaign_locks.get(campaign_id)
                if lock is not None:
                    stack.enter_context(lock)
            campaigns = [
                c for c in (self._registry.find(cid) for cid in ids) if c is not None
            ]
            yield campaigns

    @contextmanager
    def _atomic(self, campaign: Campaign, contributor: Optional[str] = None):
        """Откат кампании и взноса contributor при любой ошибке внутри блока."""
        previous_pledge = (
            self._pledges.get(campaign.id, contributor) if contributor is not None else None
        )
        try:
            yield
        except Exception:
            self._registry.put(campaign)
            if contributor is not None:
                self._pledges.set(campaign.id, contributor, previous_pledge)
            logger.warning("rolled back operation on campaign %d", campaign.id)
            raise

    def _call_transfer(self, kind: str, campaign_id: int, call: Callable[[], bool]) -> None:
        """Вызов сервиса перевода; False или exception → TransferFailed."""
        try:
            ok = call()
        except Exception as e:
            logger.warning("%s raised for campaign %d: %s", kind, campaign_id, e)
            raise TransferFailed(
                f"{kind} failed for campaign {campaign_id}: {e}", campaign_id=campaign_id
            ) from e

        if not ok:
            logger.warning("%s rejected for campaign %d", kind, campaign_id)
            raise TransferFailed(f"{kind} rejected for campaign {campaign_id}", campaign_id=campaign_id)

    def _emit(self, event: LedgerEvent):
        self.dispatcher.dispatch(event)
        return event


# =============================================================================
# ПРОВЕРКИ ВХОДОВ
# =============================================================================


def _require_account(account: str, name: str) -> None:
    if not isinstance(account, str) or not account:
        raise ValueError(f"{name} must be a non-empty string, got {account!r}")


def _require_time(now: int) -> None:
    validate_uint(now, "now", max_value=UINT32_MAX)


def _require_amount(amount: int, name: str, campaign_id: Optional[int] = None) -> int:
    try:
        return validate_uint(amount, name)
    except ValueError as e:
        raise InvalidAmount(str(e), campaign_id=campaign_id) from e


def _verify_state(
    count: int,
    campaigns: Iterable[Campaign],
    pledges: Iterable[tuple],
    max_duration_sec: int,
) -> None:
    """Согласованность: id <= count, окно <= max_duration_sec,
    взносы ссылаются на живые кампании, Σ == pledged."""
    by_id = {}
    for campaign in campaigns:
        if campaign.id > count:
            raise LedgerInvariantViolation(
                f"campaign id {campaign.id} exceeds count {count}", campaign_id=campaign.id
            )
        if campaign.duration_sec > max_duration_sec:
            raise LedgerInvariantViolation(
                f"campaign {campaign.id} window of {campaign.duration_sec}s "
                f"exceeds max duration {max_duration_sec}s",
                campaign_id=campaign.id,
            )
        if campaign.id in by_id:
            raise LedgerInvariantViolation(
                f"duplicate campaign id {campaign.id}", campaign_id=campaign.id
            )
        by_id[campaign.id] = campaign

    totals: Dict[int, int] = {}
    seen = set()
    for campaign_id, contributor, amount in pledges:
        if campaign_id not in by_id:
            raise LedgerInvariantViolation(
                f"pledge by {contributor} references unknown campaign {campaign_id}",
                campaign_id=campaign_id,
            )
        if (campaign_id, contributor) in seen:
            raise LedgerInvariantViolation(
                f"duplicate pledge entry for {contributor} in campaign {campaign_id}",
                campaign_id=campaign_id,
            )
        seen.add((campaign_id, contributor))
        totals[campaign_id] = totals.get(campaign_id, 0) + amount

    for campaign_id, campaign in by_id.items():
        total = totals.get(campaign_id, 0)
        if total != campaign.pledged:
            raise LedgerInvariantViolation(
                f"campaign {campaign_id} pledged {campaign.pledged} != pledge book total {total}",
                campaign_id=campaign_id,
            )
