"""
Contract Validation Module

Модуль для валидации JSON контрактов crowdfund ledger.
"""

from .validators import (
    CampaignValidator,
    ContractValidator,
    LedgerEventValidator,
    LedgerSnapshotValidator,
    DEFAULT_SCHEMA_DIR,
    SchemaLoader,
    validate_campaign,
    validate_ledger_event,
    validate_ledger_snapshot,
)

__all__ = [
    "DEFAULT_SCHEMA_DIR",
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "CampaignValidator",
    "LedgerEventValidator",
    "LedgerSnapshotValidator",
    # Functions
    "validate_campaign",
    "validate_ledger_event",
    "validate_ledger_snapshot",
]
