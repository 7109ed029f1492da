"""Pydantic models for Casper JSON-RPC requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request model."""

    jsonrpc: str = Field(default="2.0", description="JSON-RPC version")
    method: str = Field(..., description="Method name to call")
    params: dict[str, Any] = Field(
        default_factory=dict, description="Named method parameters"
    )
    id: int | str = Field(..., description="Request ID")


class JsonRpcErrorBody(BaseModel):
    """The ``error`` member of a failed JSON-RPC response."""

    code: int | None = None
    message: str = ""
    data: Any = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response envelope."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcErrorBody | None = None


class LastAddedBlockInfo(BaseModel):
    """``last_added_block_info`` from ``info_get_status``."""

    hash: str | None = None
    era_id: int
    height: int | None = None

    model_config = ConfigDict(extra="allow")


class StatusResult(BaseModel):
    """Result of ``info_get_status``."""

    chainspec_name: str | None = None
    last_added_block_info: LastAddedBlockInfo | None = None

    model_config = ConfigDict(extra="allow")


class AuctionDelegator(BaseModel):
    """Delegator entry inside a validator bid.

    Node versions disagree on the key name; both spellings are accepted.
    """

    public_key: str | None = None
    delegator_public_key: str | None = None
    staked_amount: str | int = "0"

    model_config = ConfigDict(extra="allow")

    @property
    def key(self) -> str:
        """Delegator public key, whichever field carried it."""
        return (self.delegator_public_key or self.public_key or "").lower()


class AuctionBidData(BaseModel):
    """Validator bid payload."""

    validator_public_key: str | None = None
    staked_amount: str | int = "0"
    delegation_rate: int = 0
    inactive: bool = False
    delegators: list[AuctionDelegator] | dict[str, AuctionDelegator] = Field(
        default_factory=list
    )

    model_config = ConfigDict(extra="allow")

    def iter_delegators(self) -> list[AuctionDelegator]:
        """Delegators as a list (1.4 nodes return a map keyed by public key)."""
        if isinstance(self.delegators, dict):
            return list(self.delegators.values())
        return self.delegators


class AuctionBid(BaseModel):
    """One entry of ``auction_state.bids``."""

    public_key: str
    bid: AuctionBidData

    model_config = ConfigDict(extra="allow")

    @field_validator("bid", mode="before")
    @classmethod
    def unwrap_bid_kind(cls, value: Any) -> Any:
        """2.x nodes wrap the payload as ``{"Unified": ...}`` or ``{"Validator": ...}``."""
        if isinstance(value, dict) and len(value) == 1:
            kind, inner = next(iter(value.items()))
            if kind.lower() in ("unified", "validator") and isinstance(inner, dict):
                return inner
        return value


class AuctionState(BaseModel):
    """``auction_state`` from ``state_get_auction_info``."""

    era_validators: list[Any] = Field(default_factory=list)
    bids: list[AuctionBid] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class AuctionInfoResult(BaseModel):
    """Result of ``state_get_auction_info``."""

    auction_state: AuctionState

    model_config = ConfigDict(extra="allow")


__all__ = [
    "AuctionBid",
    "AuctionBidData",
    "AuctionDelegator",
    "AuctionInfoResult",
    "AuctionState",
    "JsonRpcErrorBody",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LastAddedBlockInfo",
    "StatusResult",
]
