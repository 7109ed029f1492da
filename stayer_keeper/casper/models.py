"""Pydantic models returned by the chain gateway."""

from pydantic import BaseModel, ConfigDict, Field

from stayer_keeper.helpers.parsers import PublicKeyHex


class ValidatorInfo(BaseModel):
    """Validator state read from the auction bids.

    Fetched fresh every sync and never persisted.
    """

    public_key: PublicKeyHex
    fee_rate: int = Field(..., ge=0, description="Delegation rate charged by the validator")
    is_active: bool
    total_stake: int = Field(..., ge=0, description="Self-stake in motes")

    model_config = ConfigDict(frozen=True)


class ConfirmationResult(BaseModel):
    """Outcome of waiting for a deploy to execute."""

    transaction_hash: str
    success: bool
    error_message: str | None = None
    timed_out: bool = False

    model_config = ConfigDict(frozen=True)


__all__ = ["ConfirmationResult", "ValidatorInfo"]
