"""
LedgerSnapshot — Снапшот состояния ledger

Полное durable-состояние: счетчик id, живые кампании и записи pledge-книги.
JSON форма (model_dump(mode="json")) совместима с
contracts/schema/ledger_snapshot.json.
"""

from pydantic import BaseModel, Field, field_validator

from src.core.math.numerical_safeguards import is_uint

from .campaign import Campaign


class PledgeEntry(BaseModel):
    """Одна запись pledge-книги: (campaign_id, contributor) → amount."""

    campaign_id: int = Field(..., ge=1, description="Идентификатор кампании")
    contributor: str = Field(..., min_length=1, description="Участник")
    amount: int = Field(..., description="Активный взнос участника")

    model_config = {"frozen": True}

    @field_validator("amount")
    @classmethod
    def validate_uint256(cls, v: int) -> int:
        if not is_uint(v):
            raise ValueError(f"amount {v} is outside uint256 range")
        return v


class LedgerSnapshot(BaseModel):
    """
    Снапшот ledger.

    count — последний выданный id (включая отмененные кампании),
    поэтому count >= max(campaign.id).
    """

    count: int = Field(..., ge=0, description="Последний выданный идентификатор")
    campaigns: list[Campaign] = Field(default_factory=list, description="Живые кампании")
    pledges: list[PledgeEntry] = Field(
        default_factory=list, description="Ненулевые записи pledge-книги"
    )

    model_config = {"frozen": True}
