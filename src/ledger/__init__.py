"""Ledger — учет краудфандинговых кампаний.

- CampaignLedger: launch / cancel / pledge / unpledge / claim / refund
- CampaignRegistry, PledgeBook: состояние ledger
- TransferService: внешний сервис перевода (InMemoryTransferService — эталон)
- LedgerObserver: подписчики на события (fire-and-forget)
"""

from .campaign_ledger import CampaignLedger
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
    LedgerError,
    LedgerInvariantViolation,
    NotAuthorized,
    NotEnded,
    NotFound,
    NotStarted,
    TransferFailed,
)
from .observers import EventDispatcher, EventJournal, LedgerObserver, RecordingObserver
from .pledges import PledgeBook
from .registry import CampaignRegistry
from .transfer import InMemoryTransferService, TransferService

__all__ = [
    "CampaignLedger",
    "LedgerConfig",
    "CampaignRegistry",
    "PledgeBook",
    "TransferService",
    "InMemoryTransferService",
    "LedgerObserver",
    "EventDispatcher",
    "EventJournal",
    "RecordingObserver",
    # Errors
    "LedgerError",
    "InvalidWindow",
    "InvalidAmount",
    "NotFound",
    "NotAuthorized",
    "AlreadyStarted",
    "NotStarted",
    "Ended",
    "NotEnded",
    "GoalNotMet",
    "AlreadyClaimed",
    "GoalMet",
    "InsufficientPledge",
    "TransferFailed",
    "LedgerInvariantViolation",
]
