"""Casper deploy construction and signing.

A deploy is ``header + payment + session + approvals``. The body hash is
blake2b-256 over ``payment || session`` bytes, the deploy hash is
blake2b-256 over the header bytes, and each approval signs the deploy hash.
"""

import hashlib
import time

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from stayer_keeper.casper.encoder import (
    RuntimeArgs,
    cl_byte_array,
    cl_bytes,
    cl_string,
    cl_u512,
    encode_bytes,
    encode_string,
    encode_u32,
    encode_u64,
    encode_u8,
)
from stayer_keeper.casper.keys import KeeperSigner
from stayer_keeper.helpers.constants import DEPLOY_GAS_PRICE, DEPLOY_TTL_MS


def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def format_timestamp(timestamp_ms: int) -> str:
    """ISO-8601 with millisecond precision, as nodes expect."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp_ms % 1000:03d}Z"


def format_ttl(ttl_ms: int) -> str:
    """Humanised duration in the largest whole unit ("30m", "1h", "90s")."""
    for unit_ms, suffix in ((86_400_000, "day"), (3_600_000, "h"), (60_000, "m"), (1000, "s")):
        if ttl_ms % unit_ms == 0:
            return f"{ttl_ms // unit_ms}{suffix}"
    return f"{ttl_ms}ms"


class ExecutableDeployItem:
    """Payment or session code of a deploy."""

    def to_bytes(self) -> bytes:
        raise NotImplementedError

    def to_json(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class ModuleBytes(ExecutableDeployItem):
    """Wasm module (empty module bytes means standard payment)."""

    module_bytes: bytes
    args: RuntimeArgs

    def to_bytes(self) -> bytes:
        return encode_u8(0) + encode_bytes(self.module_bytes) + self.args.to_bytes()

    def to_json(self) -> dict[str, Any]:
        return {
            "ModuleBytes": {
                "module_bytes": self.module_bytes.hex(),
                "args": self.args.to_json(),
            }
        }


@dataclass(frozen=True)
class StoredContractByHash(ExecutableDeployItem):
    """Call an entry point of a contract (e.g. the auction system contract)."""

    contract_hash: bytes
    entry_point: str
    args: RuntimeArgs

    def to_bytes(self) -> bytes:
        return (
            encode_u8(1)
            + self.contract_hash
            + encode_string(self.entry_point)
            + self.args.to_bytes()
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "StoredContractByHash": {
                "hash": self.contract_hash.hex(),
                "entry_point": self.entry_point,
                "args": self.args.to_json(),
            }
        }


@dataclass(frozen=True)
class StoredVersionedContractByHash(ExecutableDeployItem):
    """Call an entry point of a contract package (latest version by default)."""

    package_hash: bytes
    entry_point: str
    args: RuntimeArgs
    version: int | None = None

    def to_bytes(self) -> bytes:
        version = b"\x00" if self.version is None else b"\x01" + encode_u32(self.version)
        return (
            encode_u8(3)
            + self.package_hash
            + version
            + encode_string(self.entry_point)
            + self.args.to_bytes()
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "StoredVersionedContractByHash": {
                "hash": self.package_hash.hex(),
                "version": self.version,
                "entry_point": self.entry_point,
                "args": self.args.to_json(),
            }
        }


def standard_payment(amount: int) -> ModuleBytes:
    return ModuleBytes(b"", RuntimeArgs({"amount": cl_u512(amount)}))


def proxy_caller_session(
    proxy_wasm: bytes,
    package_hash: bytes,
    entry_point: str,
    args: RuntimeArgs,
    attached_value: int,
) -> ModuleBytes:
    """Session that forwards CSPR to a payable Odra entry point.

    The proxy wasm creates a cargo purse funded with ``attached_value`` from
    the caller's main purse and calls ``entry_point`` on the package with the
    inner arguments passed as serialised bytes.
    """
    return ModuleBytes(
        proxy_wasm,
        RuntimeArgs({
            "package_hash": cl_byte_array(package_hash),
            "entry_point": cl_string(entry_point),
            "args": cl_bytes(args.to_bytes()),
            "attached_value": cl_u512(attached_value),
            "amount": cl_u512(attached_value),
        }),
    )


@dataclass(frozen=True)
class DeployHeader:
    account: bytes
    timestamp_ms: int
    ttl_ms: int
    gas_price: int
    body_hash: bytes
    chain_name: str
    dependencies: tuple[bytes, ...] = ()

    def to_bytes(self) -> bytes:
        return (
            self.account
            + encode_u64(self.timestamp_ms)
            + encode_u64(self.ttl_ms)
            + encode_u64(self.gas_price)
            + self.body_hash
            + encode_u32(len(self.dependencies))
            + b"".join(self.dependencies)
            + encode_string(self.chain_name)
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "account": self.account.hex(),
            "timestamp": format_timestamp(self.timestamp_ms),
            "ttl": format_ttl(self.ttl_ms),
            "gas_price": self.gas_price,
            "body_hash": self.body_hash.hex(),
            "dependencies": [dep.hex() for dep in self.dependencies],
            "chain_name": self.chain_name,
        }


@dataclass
class Deploy:
    hash: bytes
    header: DeployHeader
    payment: ExecutableDeployItem
    session: ExecutableDeployItem
    approvals: list[tuple[bytes, bytes]] = field(default_factory=list)

    @property
    def hash_hex(self) -> str:
        return self.hash.hex()

    def to_json(self) -> dict[str, Any]:
        return {
            "hash": self.hash.hex(),
            "header": self.header.to_json(),
            "payment": self.payment.to_json(),
            "session": self.session.to_json(),
            "approvals": [
                {"signer": signer.hex(), "signature": signature.hex()}
                for signer, signature in self.approvals
            ],
        }


def build_deploy(
    signer: KeeperSigner,
    session: ExecutableDeployItem,
    payment_amount: int,
    chain_name: str,
    *,
    timestamp_ms: int | None = None,
    ttl_ms: int = DEPLOY_TTL_MS,
    gas_price: int = DEPLOY_GAS_PRICE,
) -> Deploy:
    """Build and sign a deploy from the keeper account.

    Args:
        signer: Keeper signing key (also the deploy account)
        session: Session code to execute
        payment_amount: Standard payment in motes
        chain_name: Network name, e.g. "casper-test"
        timestamp_ms: Deploy timestamp, defaults to now
        ttl_ms: Time-to-live in milliseconds
        gas_price: Gas price multiplier

    Returns:
        Signed deploy ready for ``account_put_deploy``
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    payment = standard_payment(payment_amount)
    body_hash = blake2b256(payment.to_bytes() + session.to_bytes())
    header = DeployHeader(
        account=signer.public_key_bytes,
        timestamp_ms=timestamp_ms,
        ttl_ms=ttl_ms,
        gas_price=gas_price,
        body_hash=body_hash,
        chain_name=chain_name,
    )
    deploy_hash = blake2b256(header.to_bytes())
    return Deploy(
        hash=deploy_hash,
        header=header,
        payment=payment,
        session=session,
        approvals=[(signer.public_key_bytes, signer.sign(deploy_hash))],
    )


__all__ = [
    "Deploy",
    "DeployHeader",
    "ExecutableDeployItem",
    "ModuleBytes",
    "StoredContractByHash",
    "StoredVersionedContractByHash",
    "blake2b256",
    "build_deploy",
    "format_timestamp",
    "format_ttl",
    "proxy_caller_session",
    "standard_payment",
]
