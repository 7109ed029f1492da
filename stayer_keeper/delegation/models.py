"""Pydantic models for pending pool operations."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from stayer_keeper.helpers.parsers import PublicKeyHex, U512Str


class OperationKind(StrEnum):
    """Direction of a pool intent."""

    DELEGATE = "delegate"
    UNDELEGATE = "undelegate"


class OperationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class Phase(StrEnum):
    """Lifecycle phases, in execution order per kind."""

    WITHDRAW = "withdraw"
    NATIVE = "native"
    CONFIRM = "confirm"


DELEGATION_PHASES: tuple[Phase, ...] = (Phase.WITHDRAW, Phase.NATIVE, Phase.CONFIRM)
"""withdraw_for_delegation -> native delegate -> confirm_delegation"""

UNDELEGATION_PHASES: tuple[Phase, ...] = (Phase.NATIVE, Phase.CONFIRM)
"""native undelegate -> confirm_undelegation"""


class OperationRequest(BaseModel):
    """Validated input for enqueueing a pool intent."""

    kind: OperationKind
    validator_public_key: PublicKeyHex
    amount: U512Str
    era: int = Field(..., ge=0)


class PendingOperation(BaseModel):
    """A pool intent plus its phase progress."""

    id: int
    kind: OperationKind
    validator_public_key: str
    amount: str
    era: int
    status: OperationStatus
    completed_phases: list[Phase] = Field(default_factory=list)
    withdraw_hash: str | None = None
    native_hash: str | None = None
    confirm_hash: str | None = None
    confirmed_era: int | None = None
    submitted_phase: Phase | None = None
    submitted_hash: str | None = None
    submitted_at_ms: int | None = None
    lease_expires_ms: int | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def amount_motes(self) -> int:
        return int(self.amount)

    @property
    def phases(self) -> tuple[Phase, ...]:
        if self.kind is OperationKind.DELEGATE:
            return DELEGATION_PHASES
        return UNDELEGATION_PHASES

    def next_phase(self) -> Phase | None:
        """First phase not yet confirmed, or None when all are done."""
        for phase in self.phases:
            if phase not in self.completed_phases:
                return phase
        return None


class PassReport(BaseModel):
    """Counts for one processing pass over a work list."""

    task: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    transaction_hashes: list[str] = Field(default_factory=list)


__all__ = [
    "DELEGATION_PHASES",
    "UNDELEGATION_PHASES",
    "OperationKind",
    "OperationRequest",
    "OperationStatus",
    "PassReport",
    "PendingOperation",
    "Phase",
]
