"""Typed arguments for every contract entry point the keeper calls.

Each struct names its entry point and converts itself to ``RuntimeArgs``
through the encoder, so business logic never builds CLValues by hand.
"""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from stayer_keeper.casper.encoder import (
    RuntimeArgs,
    cl_any,
    cl_public_key,
    cl_u512,
    cl_u64,
    encode_bool,
    encode_public_key,
    encode_u32,
    encode_u64,
)
from stayer_keeper.helpers.parsers import PublicKeyHex, U512Str
from stayer_keeper.registry.models import ValidatorUpdateRecord


class EntryPointArgs(BaseModel):
    """Base class for typed entry point arguments."""

    entry_point: ClassVar[str]

    model_config = ConfigDict(frozen=True)

    def to_runtime_args(self) -> RuntimeArgs:
        raise NotImplementedError


class ValidatorAmountArgs(EntryPointArgs):
    """``(validator: PublicKey, amount: U512)`` pool contract calls."""

    validator: PublicKeyHex
    amount: U512Str

    def to_runtime_args(self) -> RuntimeArgs:
        return RuntimeArgs({
            "validator": cl_public_key(self.validator),
            "amount": cl_u512(self.amount),
        })


class WithdrawForDelegationArgs(ValidatorAmountArgs):
    """Release pooled CSPR to the keeper ahead of a native delegation."""

    entry_point: ClassVar[str] = "withdraw_for_delegation"


class ConfirmDelegationArgs(ValidatorAmountArgs):
    """Mark a pending delegation as delegated in the pool's ledger."""

    entry_point: ClassVar[str] = "confirm_delegation"


class ConfirmUndelegationArgs(ValidatorAmountArgs):
    """Mark a pending undelegation as undelegated in the pool's ledger."""

    entry_point: ClassVar[str] = "confirm_undelegation"


class NativeDelegateArgs(EntryPointArgs):
    """Auction contract ``delegate``."""

    entry_point: ClassVar[str] = "delegate"

    delegator: PublicKeyHex
    validator: PublicKeyHex
    amount: U512Str

    def to_runtime_args(self) -> RuntimeArgs:
        return RuntimeArgs({
            "delegator": cl_public_key(self.delegator),
            "validator": cl_public_key(self.validator),
            "amount": cl_u512(self.amount),
        })


class NativeUndelegateArgs(NativeDelegateArgs):
    """Auction contract ``undelegate``."""

    entry_point: ClassVar[str] = "undelegate"


class HarvestRewardsArgs(EntryPointArgs):
    """Pool ``harvest_rewards``: report total delegation for the era."""

    entry_point: ClassVar[str] = "harvest_rewards"

    new_total_delegation: U512Str
    current_era: int = Field(..., ge=0)

    def to_runtime_args(self) -> RuntimeArgs:
        return RuntimeArgs({
            "new_total_delegation": cl_u512(self.new_total_delegation),
            "current_era": cl_u64(self.current_era),
        })


class DepositFromUndelegationArgs(EntryPointArgs):
    """Pool ``deposit_from_undelegation`` (payable, no named args)."""

    entry_point: ClassVar[str] = "deposit_from_undelegation"

    def to_runtime_args(self) -> RuntimeArgs:
        return RuntimeArgs()


def encode_validator_update(record: ValidatorUpdateRecord) -> bytes:
    """Serialise one ``ValidatorUpdateData`` struct (field order matters)."""
    return (
        encode_public_key(record.public_key)
        + encode_u64(record.fee_rate)
        + encode_bool(record.is_active)
        + encode_u64(record.decay_factor)
    )


class UpdateValidatorsArgs(EntryPointArgs):
    """Registry ``update_validators``: one batch of validator records."""

    entry_point: ClassVar[str] = "update_validators"

    validators_data: list[ValidatorUpdateRecord] = Field(..., min_length=1)
    p_avg: int = Field(..., ge=0)
    current_era: int = Field(..., ge=0)

    def to_runtime_args(self) -> RuntimeArgs:
        # Vec<ValidatorUpdateData> goes over as opaque bytes
        payload = encode_u32(len(self.validators_data)) + b"".join(
            encode_validator_update(record) for record in self.validators_data
        )
        return RuntimeArgs({
            "validators_data": cl_any(payload),
            "p_avg": cl_u64(self.p_avg),
            "current_era": cl_u64(self.current_era),
        })


__all__ = [
    "ConfirmDelegationArgs",
    "ConfirmUndelegationArgs",
    "DepositFromUndelegationArgs",
    "EntryPointArgs",
    "HarvestRewardsArgs",
    "NativeDelegateArgs",
    "NativeUndelegateArgs",
    "UpdateValidatorsArgs",
    "ValidatorAmountArgs",
    "WithdrawForDelegationArgs",
    "encode_validator_update",
]
