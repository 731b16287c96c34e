"""
Domain models and value objects.

Contains fundamental domain entities like Campaign, ledger events, LedgerSnapshot.
"""

from src.core.domain.campaign import (
    MAX_CAMPAIGN_DURATION_DAYS,
    MAX_CAMPAIGN_DURATION_SEC,
    Campaign,
    CampaignPhase,
)
from src.core.domain.events import (
    AnyLedgerEvent,
    CancelEvent,
    ClaimEvent,
    LaunchEvent,
    LedgerEvent,
    LedgerEventType,
    PledgeEvent,
    RefundEvent,
    UnpledgeEvent,
)
from src.core.domain.snapshot import LedgerSnapshot, PledgeEntry

__all__ = [
    # Campaign model
    "MAX_CAMPAIGN_DURATION_DAYS",
    "MAX_CAMPAIGN_DURATION_SEC",
    "Campaign",
    "CampaignPhase",
    # Events
    "AnyLedgerEvent",
    "LedgerEvent",
    "LedgerEventType",
    "LaunchEvent",
    "CancelEvent",
    "PledgeEvent",
    "UnpledgeEvent",
    "ClaimEvent",
    "RefundEvent",
    # Snapshot
    "LedgerSnapshot",
    "PledgeEntry",
]
