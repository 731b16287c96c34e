"""Тесты для CampaignLedger.

Coverage:
- launch / cancel / pledge / unpledge / claim / refund: предусловия и эффекты
- Сценарии успешной и неуспешной кампании
- Граница окна 90 дней
- Идемпотентность claim / refund
- Откат состояния при ошибке перевода
- Инвариант pledged == Σ pledge-книги
- Изоляция наблюдателей, параллельные взносы
"""

import threading

import pytest

from src.core.domain import (
    MAX_CAMPAIGN_DURATION_SEC,
    CampaignPhase,
    ClaimEvent,
    LaunchEvent,
    PledgeEvent,
    RefundEvent,
    UnpledgeEvent,
)
from src.ledger import (
    AlreadyClaimed,
    AlreadyStarted,
    CampaignLedger,
    Ended,
    EventJournal,
    GoalMet,
    GoalNotMet,
    InMemoryTransferService,
    InsufficientPledge,
    InvalidAmount,
    InvalidWindow,
    LedgerConfig,
    NotAuthorized,
    NotEnded,
    NotFound,
    NotStarted,
    RecordingObserver,
    TransferFailed,
)

T = 1_700_000_000


class FlakyTransfer:
    """Обертка над InMemoryTransferService с управляемыми отказами."""

    def __init__(self, inner: InMemoryTransferService):
        self.inner = inner
        self.fail_pull = False
        self.fail_push = False
        self.raise_error = None
        self.calls = []

    def pull(self, source, destination, amount):
        self.calls.append(("pull", source, amount))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_pull:
            return False
        return self.inner.pull(source, destination, amount)

    def push(self, destination, amount):
        self.calls.append(("push", destination, amount))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_push:
            return False
        return self.inner.push(destination, amount)


class ExplodingObserver:
    def notify(self, event):
        raise RuntimeError("observer down")


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def tokens():
    svc = InMemoryTransferService(custody_account="ledger")
    for account in ("bob", "carol", "dave"):
        svc.mint(account, 1_000)
        svc.approve(account, 1_000)
    return svc


@pytest.fixture
def transfer(tokens):
    return FlakyTransfer(tokens)


@pytest.fixture
def recorder():
    return RecordingObserver()


@pytest.fixture
def ledger(transfer, recorder):
    return CampaignLedger(transfer, observers=[recorder])


@pytest.fixture
def campaign_id(ledger):
    """goal=100, окно [T, T+10], запуск в момент T."""
    return ledger.launch("alice", goal=100, start_at=T, end_at=T + 10, now=T)


def state(ledger, campaign_id, *contributors):
    """Снимок (pledged, claimed, взносы участников) для проверки отката."""
    campaign = ledger.get_campaign(campaign_id)
    return (
        campaign.pledged,
        campaign.claimed,
        tuple(ledger.pledged_amount(campaign_id, c) for c in contributors),
    )


# =============================================================================
# LAUNCH
# =============================================================================


class TestLaunch:
    """Создание кампании."""

    def test_sequential_ids(self, ledger):
        first = ledger.launch("alice", goal=10, start_at=T, end_at=T + 5, now=T)
        second = ledger.launch("bob", goal=10, start_at=T, end_at=T + 5, now=T)
        assert (first, second) == (1, 2)
        assert ledger.count == 2

    def test_stored_fields(self, ledger, campaign_id):
        campaign = ledger.get_campaign(campaign_id)
        assert campaign.creator == "alice"
        assert campaign.goal == 100
        assert campaign.pledged == 0
        assert campaign.claimed is False
        assert (campaign.start_at, campaign.end_at) == (T, T + 10)

    def test_emits_launch_event(self, campaign_id, recorder):
        assert recorder.events == [
            LaunchEvent(campaign_id=campaign_id, creator="alice", goal=100, start_at=T, end_at=T + 10)
        ]

    def test_zero_goal_is_legal(self, ledger):
        cid = ledger.launch("alice", goal=0, start_at=T, end_at=T, now=T)
        assert ledger.get_campaign(cid).goal_reached

    def test_start_in_past_rejected(self, ledger):
        with pytest.raises(InvalidWindow, match="before now"):
            ledger.launch("alice", goal=1, start_at=T - 1, end_at=T + 5, now=T)
        assert ledger.count == 0

    def test_end_before_start_rejected(self, ledger):
        with pytest.raises(InvalidWindow, match="before start_at"):
            ledger.launch("alice", goal=1, start_at=T + 5, end_at=T + 4, now=T)

    def test_max_duration_boundary_accepted(self, ledger):
        cid = ledger.launch(
            "alice", goal=1, start_at=T, end_at=T + MAX_CAMPAIGN_DURATION_SEC, now=T
        )
        assert ledger.get_campaign(cid).duration_sec == 90 * 86_400

    def test_max_duration_plus_one_rejected(self, ledger):
        with pytest.raises(InvalidWindow, match="max duration"):
            ledger.launch(
                "alice", goal=1, start_at=T, end_at=T + MAX_CAMPAIGN_DURATION_SEC + 1, now=T
            )

    def test_end_measured_from_now(self, ledger):
        """end_at <= now + 90 days, даже если start_at позже now."""
        with pytest.raises(InvalidWindow):
            ledger.launch(
                "alice", goal=1, start_at=T + 10, end_at=T + 10 + MAX_CAMPAIGN_DURATION_SEC, now=T
            )

    def test_non_uint32_timestamps_rejected(self, ledger):
        with pytest.raises(InvalidWindow, match="uint32"):
            ledger.launch("alice", goal=1, start_at=T, end_at=2**32, now=T)

    def test_negative_goal_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.launch("alice", goal=-1, start_at=T, end_at=T + 1, now=T)

    def test_empty_creator_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.launch("", goal=1, start_at=T, end_at=T + 1, now=T)

    def test_custom_max_duration(self, transfer):
        ledger = CampaignLedger(transfer, config=LedgerConfig(max_duration_sec=60))
        ledger.launch("alice", goal=1, start_at=T, end_at=T + 60, now=T)
        with pytest.raises(InvalidWindow):
            ledger.launch("alice", goal=1, start_at=T, end_at=T + 61, now=T)


# =============================================================================
# CANCEL
# =============================================================================


class TestCancel:
    """Удаление кампании до старта."""

    @pytest.fixture
    def pending_id(self, ledger):
        """Запуск в T+5, старт в T+10."""
        return ledger.launch("alice", goal=100, start_at=T + 10, end_at=T + 20, now=T + 5)

    def test_cancel_before_start_then_not_found(self, ledger, pending_id):
        event = ledger.cancel(pending_id, "alice", now=T + 6)

        assert event.campaign_id == pending_id
        with pytest.raises(NotFound):
            ledger.pledge(pending_id, "bob", 10, now=T + 11)
        with pytest.raises(NotFound):
            ledger.get_campaign(pending_id)

    def test_cancelled_id_not_reused(self, ledger, pending_id):
        ledger.cancel(pending_id, "alice", now=T + 6)
        next_id = ledger.launch("alice", goal=1, start_at=T + 10, end_at=T + 20, now=T + 6)

        assert next_id == pending_id + 1
        assert ledger.count == 2

    def test_non_creator(self, ledger, pending_id):
        with pytest.raises(NotAuthorized):
            ledger.cancel(pending_id, "mallory", now=T + 6)
        assert ledger.get_campaign(pending_id).creator == "alice"

    def test_already_started(self, ledger, pending_id):
        with pytest.raises(AlreadyStarted):
            ledger.cancel(pending_id, "alice", now=T + 10)

    def test_unknown_id(self, ledger):
        with pytest.raises(NotFound):
            ledger.cancel(99, "alice", now=T)

    def test_double_cancel(self, ledger, pending_id):
        ledger.cancel(pending_id, "alice", now=T + 6)
        with pytest.raises(NotFound):
            ledger.cancel(pending_id, "alice", now=T + 7)

    def test_emits_cancel_event(self, ledger, pending_id, recorder):
        ledger.cancel(pending_id, "alice", now=T + 6)
        assert [e.event_type for e in recorder.events] == ["launch", "cancel"]


# =============================================================================
# PLEDGE
# =============================================================================


class TestPledge:
    """Взнос в активную кампанию."""

    def test_before_start(self, ledger):
        cid = ledger.launch("alice", goal=100, start_at=T + 10, end_at=T + 20, now=T)
        with pytest.raises(NotStarted):
            ledger.pledge(cid, "bob", 10, now=T + 9)

    def test_window_bounds_inclusive(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 10, now=T)
        ledger.pledge(campaign_id, "bob", 10, now=T + 10)
        assert ledger.pledged_amount(campaign_id, "bob") == 20

    def test_after_end(self, ledger, campaign_id):
        with pytest.raises(Ended):
            ledger.pledge(campaign_id, "bob", 10, now=T + 11)

    def test_updates_state_and_balances(self, ledger, campaign_id, tokens):
        event = ledger.pledge(campaign_id, "bob", 60, now=T + 1)

        assert event == PledgeEvent(campaign_id=campaign_id, caller="bob", amount=60)
        assert ledger.get_campaign(campaign_id).pledged == 60
        assert ledger.pledged_amount(campaign_id, "bob") == 60
        assert tokens.balance_of("bob") == 940
        assert tokens.custody_balance == 60

    def test_zero_pledge_is_legal_event(self, ledger, campaign_id, recorder):
        event = ledger.pledge(campaign_id, "bob", 0, now=T + 1)
        assert event.amount == 0
        assert ledger.get_campaign(campaign_id).pledged == 0
        assert recorder.events[-1] == event

    def test_negative_amount(self, ledger, campaign_id):
        with pytest.raises(InvalidAmount):
            ledger.pledge(campaign_id, "bob", -5, now=T + 1)

    def test_unknown_campaign(self, ledger):
        with pytest.raises(NotFound):
            ledger.pledge(42, "bob", 5, now=T)

    def test_rejected_pull_rolls_back(self, ledger, campaign_id, transfer, recorder):
        ledger.pledge(campaign_id, "bob", 30, now=T + 1)
        before = state(ledger, campaign_id, "bob")
        events_before = len(recorder.events)
        transfer.fail_pull = True

        with pytest.raises(TransferFailed):
            ledger.pledge(campaign_id, "bob", 20, now=T + 2)

        assert state(ledger, campaign_id, "bob") == before
        assert len(recorder.events) == events_before

    def test_raising_pull_rolls_back(self, ledger, campaign_id, transfer):
        transfer.raise_error = ConnectionError("token service unreachable")

        with pytest.raises(TransferFailed) as exc_info:
            ledger.pledge(campaign_id, "carol", 20, now=T + 2)

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert state(ledger, campaign_id, "carol") == (0, False, (0,))

    def test_without_allowance(self, ledger, campaign_id, tokens):
        tokens.mint("erin", 50)
        with pytest.raises(TransferFailed):
            ledger.pledge(campaign_id, "erin", 50, now=T + 1)
        assert ledger.pledged_amount(campaign_id, "erin") == 0
        assert tokens.balance_of("erin") == 50


# =============================================================================
# UNPLEDGE
# =============================================================================


class TestUnpledge:
    """Отзыв взноса."""

    def test_round_trip(self, ledger, campaign_id, tokens):
        ledger.pledge(campaign_id, "carol", 25, now=T + 1)
        before = ledger.get_campaign(campaign_id).pledged

        ledger.pledge(campaign_id, "bob", 100, now=T + 2)
        event = ledger.unpledge(campaign_id, "bob", 100, now=T + 3)

        assert event == UnpledgeEvent(campaign_id=campaign_id, caller="bob", amount=100)
        assert ledger.pledged_amount(campaign_id, "bob") == 0
        assert ledger.get_campaign(campaign_id).pledged == before
        assert tokens.balance_of("bob") == 1_000

    def test_partial(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 60, now=T + 1)
        ledger.unpledge(campaign_id, "bob", 15, now=T + 2)
        assert ledger.pledged_amount(campaign_id, "bob") == 45
        assert ledger.get_campaign(campaign_id).pledged == 45

    def test_more_than_pledged(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 60, now=T + 1)
        ledger.pledge(campaign_id, "carol", 50, now=T + 1)
        before = state(ledger, campaign_id, "bob", "carol")

        with pytest.raises(InsufficientPledge):
            ledger.unpledge(campaign_id, "bob", 61, now=T + 2)

        assert state(ledger, campaign_id, "bob", "carol") == before

    def test_at_end_allowed(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 10, now=T + 1)
        ledger.unpledge(campaign_id, "bob", 10, now=T + 10)
        assert ledger.pledged_amount(campaign_id, "bob") == 0

    def test_after_end(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 10, now=T + 1)
        with pytest.raises(Ended):
            ledger.unpledge(campaign_id, "bob", 10, now=T + 11)

    def test_before_start_without_pledge(self, ledger):
        """Нет guard 'not started': до старта взносов нет → InsufficientPledge."""
        cid = ledger.launch("alice", goal=100, start_at=T + 10, end_at=T + 20, now=T)
        with pytest.raises(InsufficientPledge):
            ledger.unpledge(cid, "bob", 1, now=T + 5)

    def test_before_start_zero_is_noop(self, ledger):
        cid = ledger.launch("alice", goal=100, start_at=T + 10, end_at=T + 20, now=T)
        event = ledger.unpledge(cid, "bob", 0, now=T + 5)
        assert event.amount == 0
        assert ledger.get_campaign(cid).pledged == 0

    def test_rejected_push_rolls_back(self, ledger, campaign_id, transfer):
        ledger.pledge(campaign_id, "bob", 60, now=T + 1)
        before = state(ledger, campaign_id, "bob")
        transfer.fail_push = True

        with pytest.raises(TransferFailed):
            ledger.unpledge(campaign_id, "bob", 60, now=T + 2)

        assert state(ledger, campaign_id, "bob") == before


# =============================================================================
# CLAIM
# =============================================================================


class TestClaim:
    """Перевод собранного создателю."""

    @pytest.fixture
    def funded_id(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 60, now=T + 1)
        ledger.pledge(campaign_id, "carol", 50, now=T + 2)
        return campaign_id

    def test_successful_campaign(self, ledger, funded_id, tokens):
        assert ledger.get_campaign(funded_id).pledged == 110

        event = ledger.claim(funded_id, "alice", now=T + 11)

        assert event == ClaimEvent(campaign_id=funded_id, creator="alice", amount=110)
        assert ledger.get_campaign(funded_id).claimed is True
        assert tokens.balance_of("alice") == 110
        assert tokens.custody_balance == 0
        assert ledger.campaign_phase(funded_id, T + 11) == CampaignPhase.CLAIMED

    def test_claim_twice(self, ledger, funded_id, tokens):
        ledger.claim(funded_id, "alice", now=T + 11)
        with pytest.raises(AlreadyClaimed):
            ledger.claim(funded_id, "alice", now=T + 12)
        assert tokens.balance_of("alice") == 110

    def test_non_creator(self, ledger, funded_id):
        with pytest.raises(NotAuthorized):
            ledger.claim(funded_id, "bob", now=T + 11)

    def test_authorization_checked_before_time(self, ledger, funded_id):
        with pytest.raises(NotAuthorized):
            ledger.claim(funded_id, "bob", now=T + 1)

    def test_not_ended_at_end_at(self, ledger, funded_id):
        with pytest.raises(NotEnded):
            ledger.claim(funded_id, "alice", now=T + 10)

    def test_goal_not_met(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 40, now=T + 1)
        with pytest.raises(GoalNotMet):
            ledger.claim(campaign_id, "alice", now=T + 11)

    def test_goal_exactly_met(self, ledger, campaign_id, tokens):
        ledger.pledge(campaign_id, "bob", 100, now=T + 1)
        assert ledger.claim(campaign_id, "alice", now=T + 11).amount == 100

    def test_zero_goal_zero_pledged(self, ledger):
        cid = ledger.launch("alice", goal=0, start_at=T, end_at=T + 1, now=T)
        assert ledger.claim(cid, "alice", now=T + 2).amount == 0

    def test_rejected_push_keeps_unclaimed(self, ledger, funded_id, transfer, tokens):
        transfer.fail_push = True

        with pytest.raises(TransferFailed):
            ledger.claim(funded_id, "alice", now=T + 11)

        assert ledger.get_campaign(funded_id).claimed is False
        transfer.fail_push = False
        assert ledger.claim(funded_id, "alice", now=T + 12).amount == 110
        assert tokens.balance_of("alice") == 110


# =============================================================================
# REFUND
# =============================================================================


class TestRefund:
    """Возврат взносов после неуспешной кампании."""

    @pytest.fixture
    def failed_id(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 40, now=T + 1)
        return campaign_id

    def test_failed_campaign(self, ledger, failed_id, tokens):
        with pytest.raises(GoalNotMet):
            ledger.claim(failed_id, "alice", now=T + 11)

        event = ledger.refund(failed_id, "bob", now=T + 11)

        assert event == RefundEvent(campaign_id=failed_id, caller="bob", amount=40)
        assert ledger.pledged_amount(failed_id, "bob") == 0
        assert tokens.balance_of("bob") == 1_000

    def test_refund_twice_transfers_zero(self, ledger, failed_id, tokens, transfer):
        ledger.refund(failed_id, "bob", now=T + 11)
        second = ledger.refund(failed_id, "bob", now=T + 12)

        assert second.amount == 0
        assert transfer.calls[-1] == ("push", "bob", 0)
        assert tokens.balance_of("bob") == 1_000

    def test_refund_decreases_aggregate(self, ledger, failed_id):
        ledger.pledge(failed_id, "carol", 30, now=T + 2)
        ledger.refund(failed_id, "bob", now=T + 11)

        assert ledger.get_campaign(failed_id).pledged == 30
        assert ledger.total_pledged(failed_id) == 30
        ledger.check_invariants()

    def test_non_contributor_gets_zero(self, ledger, failed_id):
        assert ledger.refund(failed_id, "dave", now=T + 11).amount == 0

    def test_not_ended(self, ledger, failed_id):
        with pytest.raises(NotEnded):
            ledger.refund(failed_id, "bob", now=T + 10)

    def test_goal_met(self, ledger, campaign_id):
        ledger.pledge(campaign_id, "bob", 100, now=T + 1)
        with pytest.raises(GoalMet):
            ledger.refund(campaign_id, "bob", now=T + 11)

    def test_rejected_push_rolls_back(self, ledger, failed_id, transfer):
        before = state(ledger, failed_id, "bob")
        transfer.fail_push = True

        with pytest.raises(TransferFailed):
            ledger.refund(failed_id, "bob", now=T + 11)

        assert state(ledger, failed_id, "bob") == before


# =============================================================================
# ИНВАРИАНТЫ
# =============================================================================


class TestInvariants:
    """pledged == Σ pledge-книги после каждой операции."""

    def test_pledged_equals_sum_of_contributions(self, ledger, campaign_id):
        steps = [
            ("pledge", "bob", 30),
            ("pledge", "carol", 20),
            ("unpledge", "bob", 10),
            ("pledge", "dave", 5),
            ("unpledge", "carol", 20),
            ("pledge", "bob", 7),
            ("unpledge", "dave", 5),
        ]
        for i, (op, who, amount) in enumerate(steps):
            getattr(ledger, op)(campaign_id, who, amount, now=T + 1 + i % 9)
            campaign = ledger.get_campaign(campaign_id)
            assert campaign.pledged == sum(ledger.contributors(campaign_id).values())
            ledger.check_invariants()

        assert ledger.contributors(campaign_id) == {"bob": 27}

    def test_failed_operations_keep_invariant(self, ledger, campaign_id, transfer):
        ledger.pledge(campaign_id, "bob", 30, now=T + 1)
        transfer.fail_pull = True
        with pytest.raises(TransferFailed):
            ledger.pledge(campaign_id, "carol", 30, now=T + 2)
        with pytest.raises(InsufficientPledge):
            ledger.unpledge(campaign_id, "carol", 1, now=T + 2)

        ledger.check_invariants()
        assert ledger.total_pledged(campaign_id) == 30


# =============================================================================
# НАБЛЮДАТЕЛИ И ПАРАЛЛЕЛИЗМ
# =============================================================================


class TestObserverIsolation:
    """Ошибка наблюдателя не влияет на ledger."""

    def test_exploding_observer(self, transfer):
        recorder = RecordingObserver()
        ledger = CampaignLedger(transfer, observers=[ExplodingObserver(), recorder])

        cid = ledger.launch("alice", goal=10, start_at=T, end_at=T + 5, now=T)
        event = ledger.pledge(cid, "bob", 10, now=T + 1)

        assert event.amount == 10
        assert ledger.get_campaign(cid).pledged == 10
        assert len(recorder.events) == 2

    def test_journal_records_full_lifecycle(self, transfer):
        journal = EventJournal()
        ledger = CampaignLedger(transfer, observers=[journal])

        cancelled = ledger.launch("alice", goal=10, start_at=T + 1, end_at=T + 5, now=T)
        ledger.cancel(cancelled, "alice", now=T)
        funded = ledger.launch("alice", goal=10, start_at=T, end_at=T + 5, now=T)
        ledger.pledge(funded, "bob", 15, now=T + 1)
        ledger.unpledge(funded, "bob", 5, now=T + 2)
        ledger.claim(funded, "alice", now=T + 6)
        failed = ledger.launch("alice", goal=100, start_at=T, end_at=T + 5, now=T)
        ledger.pledge(failed, "carol", 5, now=T + 1)
        ledger.refund(failed, "carol", now=T + 6)

        assert [e["event_type"] for e in journal.entries] == [
            "launch", "cancel", "launch", "pledge", "unpledge", "claim",
            "launch", "pledge", "refund",
        ]
        assert journal.entries[5]["amount"] == 10


class TestConcurrency:
    """Операции над одной кампанией сериализуются."""

    def test_parallel_pledges(self, tokens):
        for i in range(8):
            tokens.mint(f"user{i}", 100)
            tokens.approve(f"user{i}", 100)
        ledger = CampaignLedger(tokens)
        cid = ledger.launch("alice", goal=1_000, start_at=T, end_at=T + 10, now=T)

        def worker(name):
            for _ in range(25):
                ledger.pledge(cid, name, 2, now=T + 1)
                ledger.unpledge(cid, name, 1, now=T + 1)

        threads = [threading.Thread(target=worker, args=(f"user{i}",)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert ledger.get_campaign(cid).pledged == 8 * 25
        assert tokens.custody_balance == 8 * 25
        ledger.check_invariants()


class TestCampaignLocks:
    """Per-id locks существуют только для живых кампаний."""

    def test_unknown_ids_allocate_no_locks(self, ledger):
        for campaign_id in range(1, 101):
            with pytest.raises(NotFound):
                ledger.pledge(campaign_id, "mallory", 0, now=T)
            with pytest.raises(NotFound):
                ledger.refund(campaign_id, "mallory", now=T)

        assert ledger._campaign_locks == {}

    def test_lock_created_at_launch(self, ledger, campaign_id):
        assert set(ledger._campaign_locks) == {campaign_id}

    def test_cancel_drops_lock(self, ledger):
        cid = ledger.launch("alice", goal=1, start_at=T + 10, end_at=T + 20, now=T)
        ledger.cancel(cid, "alice", now=T)

        assert cid not in ledger._campaign_locks
        with pytest.raises(NotFound):
            ledger.pledge(cid, "bob", 1, now=T + 10)
        assert cid not in ledger._campaign_locks

    def test_restored_campaigns_have_locks(self, ledger, campaign_id, transfer):
        restored = CampaignLedger.from_snapshot(ledger.snapshot(), transfer)

        assert set(restored._campaign_locks) == {campaign_id}
        restored.pledge(campaign_id, "bob", 5, now=T + 1)
