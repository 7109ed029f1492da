"""Pydantic models for unbonding records."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stayer_keeper.helpers.db_mixins import as_utc
from stayer_keeper.helpers.parsers import PublicKeyHex, U512Str


class UnbondingRecord(BaseModel):
    """A confirmed undelegation tracked until its funds return to the pool."""

    id: int
    validator: str
    amount: str
    start_era: int
    complete_era: int
    deposited: bool
    confirm_hash: str
    created_at: datetime
    deposited_at: datetime | None = None
    deposit_hash: str | None = None
    deposit_submitted_ms: int | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at", "deposited_at")
    @classmethod
    def ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    def is_ready(self, current_era: int) -> bool:
        return not self.deposited and self.complete_era <= current_era


class LedgerStats(BaseModel):
    """Record counts for status output."""

    total: int
    pending: int
    ready: int
    deposited: int


class LegacyUnbondingRecord(BaseModel):
    """One entry of the legacy ``unbonding-records.json`` file."""

    validator: PublicKeyHex
    amount: U512Str
    start_era: int = Field(..., alias="startEra", ge=0)
    complete_era: int = Field(..., alias="completeEra", ge=0)
    deposited: bool = False
    confirm_hash: str = Field(..., alias="confirmHash", min_length=1)
    created_at_ms: int = Field(..., alias="createdAt", ge=0)

    model_config = ConfigDict(populate_by_name=True)


__all__ = ["LedgerStats", "LegacyUnbondingRecord", "UnbondingRecord"]
