"""Configuration management and environment variable utilities."""

import os

from typing import Self

from pydantic import BaseModel, ConfigDict, Field

from dotenv import load_dotenv

from stayer_keeper.helpers.constants import (
    DEFAULT_AUCTION_CONTRACT_HASH,
    DEFAULT_CHAIN_NAME,
    DEFAULT_DATABASE_URL,
)


# Load environment variables from .env file
load_dotenv()


def get_required_env(key: str) -> str:
    """Get a required environment variable.

    Args:
        key: Environment variable name

    Returns:
        Environment variable value

    Raises:
        ValueError: If the environment variable is not set

    Example:
        ```python
        from stayer_keeper.helpers.config import get_required_env

        node_url = get_required_env("NODE_URL")
        ```
    """
    value = os.getenv(key)
    if not value:
        msg = f"{key} environment variable is not set"
        raise ValueError(msg)
    return value


def get_optional_env(key: str, default: str | None = None) -> str | None:
    """Get an optional environment variable with a default value.

    Empty strings are treated as unset.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    value = os.getenv(key)
    return value if value else default


def get_int_env(key: str, default: int) -> int:
    """Get an integer environment variable.

    Args:
        key: Environment variable name
        default: Value used when the variable is unset or empty

    Returns:
        Parsed integer value

    Raises:
        ValueError: If the variable is set but is not an integer
    """
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        msg = f"{key} must be an integer, got {value!r}"
        raise ValueError(msg) from None


def get_bool_env(key: str, *, default: bool = False) -> bool:
    """Get a boolean environment variable ("1", "true", "yes", "on")."""
    value = os.getenv(key)
    if not value:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class KeeperConfig(BaseModel):
    """Runtime configuration for the keeper.

    Built once at startup and passed to each component; nothing reads the
    environment after that.
    """

    node_url: str
    chain_name: str = DEFAULT_CHAIN_NAME
    keeper_private_key_path: str = "./secret_key.pem"
    validator_registry_contract_package_hash: str
    liquid_staking_contract_package_hash: str
    auction_contract_hash: str = DEFAULT_AUCTION_CONTRACT_HASH
    proxy_caller_wasm_path: str | None = None

    update_interval_ms: int = Field(default=3_600_000, gt=0)
    harvest_interval_ms: int = Field(default=7_200_000, gt=0)
    withdrawal_interval_ms: int = Field(default=1_800_000, gt=0)
    delegation_interval_ms: int = Field(default=3_600_000, gt=0)

    cspr_cloud_api_url: str | None = None
    cspr_cloud_api_key: str | None = None

    database_url: str = DEFAULT_DATABASE_URL

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> Self:
        """Build the configuration from environment variables.

        Raises:
            ValueError: If a required variable is missing or malformed
        """
        return cls(
            node_url=get_required_env("NODE_URL"),
            chain_name=get_optional_env("CHAIN_NAME", DEFAULT_CHAIN_NAME),
            keeper_private_key_path=get_optional_env(
                "KEEPER_PRIVATE_KEY_PATH", "./secret_key.pem"
            ),
            validator_registry_contract_package_hash=get_required_env(
                "VALIDATOR_REGISTRY_CONTRACT_PACKAGE_HASH"
            ),
            liquid_staking_contract_package_hash=get_required_env(
                "LIQUID_STAKING_CONTRACT_PACKAGE_HASH"
            ),
            auction_contract_hash=get_optional_env(
                "AUCTION_CONTRACT_HASH", DEFAULT_AUCTION_CONTRACT_HASH
            ),
            proxy_caller_wasm_path=get_optional_env("PROXY_CALLER_WASM_PATH"),
            update_interval_ms=get_int_env("UPDATE_INTERVAL_MS", 3_600_000),
            harvest_interval_ms=get_int_env("HARVEST_INTERVAL_MS", 7_200_000),
            withdrawal_interval_ms=get_int_env("WITHDRAWAL_INTERVAL_MS", 1_800_000),
            delegation_interval_ms=get_int_env("DELEGATION_INTERVAL_MS", 3_600_000),
            cspr_cloud_api_url=get_optional_env("CSPR_CLOUD_API_URL"),
            cspr_cloud_api_key=get_optional_env("CSPR_CLOUD_API_KEY"),
            database_url=get_optional_env("KEEPER_DATABASE_URL", DEFAULT_DATABASE_URL),
        )


__all__ = [
    "KeeperConfig",
    "get_bool_env",
    "get_int_env",
    "get_optional_env",
    "get_required_env",
]
