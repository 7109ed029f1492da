"""Pydantic models for validator registry updates."""

from pydantic import BaseModel, ConfigDict, Field

from stayer_keeper.helpers.parsers import PublicKeyHex


class ValidatorUpdateRecord(BaseModel):
    """One validator entry of an ``update_validators`` batch."""

    public_key: PublicKeyHex
    fee_rate: int = Field(..., ge=0)
    is_active: bool
    decay_factor: int = Field(..., ge=0, le=100)

    model_config = ConfigDict(frozen=True)


class PerformanceScore(BaseModel):
    """One row of the CSPR.cloud historical performance response."""

    public_key: str
    score: float


class PerformanceResponse(BaseModel):
    """CSPR.cloud ``get-historical-average-validators-performance`` payload."""

    data: list[PerformanceScore] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class SyncReport(BaseModel):
    """Summary of one ``update_validators`` run."""

    era: int
    validator_count: int
    scored_count: int
    batches_submitted: int
    batches_failed: int
    transaction_hashes: list[str] = Field(default_factory=list)


__all__ = [
    "PerformanceResponse",
    "PerformanceScore",
    "SyncReport",
    "ValidatorUpdateRecord",
]
