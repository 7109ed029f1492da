"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
import pytest_asyncio

from cryptography.hazmat.primitives.asymmetric import ed25519
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from stayer_keeper.casper.encoder import RuntimeArgs
from stayer_keeper.casper.keys import KeeperSigner
from stayer_keeper.casper.models import ConfirmationResult, ValidatorInfo
from stayer_keeper.delegation.queue import PendingOperationQueue
from stayer_keeper.helpers.db import create_session_factory, create_tables
from stayer_keeper.unbonding.ledger import UnbondingLedger


VALIDATOR_A = "01" + "aa" * 32
VALIDATOR_B = "01" + "bb" * 32
POOL_HASH = "hash-" + "11" * 32
REGISTRY_HASH = "hash-" + "22" * 32


def make_validator_key(index: int) -> str:
    """Deterministic ed25519-tagged validator key for ``index``."""
    return "01" + index.to_bytes(32, "big").hex()


@dataclass
class SubmittedCall:
    kind: str
    target: str | None
    entry_point: str
    args: RuntimeArgs | None = None
    amount: int | None = None
    validator: str | None = None
    attached_value: int | None = None
    payment_amount: int | None = None


@dataclass
class FakeGateway:
    """In-memory ChainGateway recording every submission.

    ``failing_entry_points`` makes confirmation fail for deploys of those
    entry points; ``rejecting_entry_points`` makes submission itself raise.
    While ``timeouts`` is positive each wait gives up unresolved and
    decrements it.
    """

    era: int = 1000
    validators: list[ValidatorInfo] = field(default_factory=list)
    total_delegation: int = 0
    failing_entry_points: set[str] = field(default_factory=set)
    rejecting_entry_points: set[str] = field(default_factory=set)
    timeouts: int = 0
    calls: list[SubmittedCall] = field(default_factory=list)
    confirmations: list[str] = field(default_factory=list)
    _hash_entry_points: dict[str, str] = field(default_factory=dict)

    def _record(self, call: SubmittedCall) -> str:
        if call.entry_point in self.rejecting_entry_points:
            msg = f"{call.entry_point} rejected"
            raise RuntimeError(msg)
        self.calls.append(call)
        tx_hash = f"{len(self.calls):064x}"
        self._hash_entry_points[tx_hash] = call.entry_point
        return tx_hash

    def entry_points(self) -> list[str]:
        return [call.entry_point for call in self.calls]

    async def get_current_era(self) -> int:
        return self.era

    async def get_validators(self) -> list[ValidatorInfo]:
        return list(self.validators)

    async def get_total_delegation(self) -> int:
        return self.total_delegation

    async def submit_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        payment_amount: int,
    ) -> str:
        return self._record(
            SubmittedCall(
                "contract",
                target_contract,
                entry_point,
                args=args,
                payment_amount=payment_amount,
            )
        )

    async def submit_payable_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        attached_value: int,
        payment_amount: int,
    ) -> str:
        return self._record(
            SubmittedCall(
                "payable",
                target_contract,
                entry_point,
                args=args,
                attached_value=attached_value,
                payment_amount=payment_amount,
            )
        )

    async def native_delegate(self, validator_public_key: str, amount: int) -> str:
        return self._record(
            SubmittedCall(
                "native", None, "delegate", validator=validator_public_key, amount=amount
            )
        )

    async def native_undelegate(self, validator_public_key: str, amount: int) -> str:
        return self._record(
            SubmittedCall(
                "native", None, "undelegate", validator=validator_public_key, amount=amount
            )
        )

    async def wait_for_confirmation(
        self,
        transaction_hash: str,
        timeout: float = 180.0,
        poll_interval: float = 5.0,
    ) -> ConfirmationResult:
        self.confirmations.append(transaction_hash)
        if self.timeouts > 0:
            self.timeouts -= 1
            return ConfirmationResult(
                transaction_hash=transaction_hash,
                success=False,
                error_message="Deploy not executed within 0.0s",
                timed_out=True,
            )
        entry_point = self._hash_entry_points[transaction_hash]
        if entry_point in self.failing_entry_points:
            return ConfirmationResult(
                transaction_hash=transaction_hash,
                success=False,
                error_message=f"User error: {entry_point}",
            )
        return ConfirmationResult(transaction_hash=transaction_hash, success=True)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Chain gateway double at era 1000."""
    return FakeGateway()


@pytest.fixture
def signer() -> KeeperSigner:
    """Fresh ed25519 keeper key."""
    return KeeperSigner(ed25519.Ed25519PrivateKey.generate())


@pytest_asyncio.fixture
async def db(
    tmp_path: Path,
) -> AsyncGenerator[tuple[AsyncEngine, async_sessionmaker[AsyncSession]], None]:
    """Engine and session factory over a throwaway SQLite file."""
    engine, session_factory = create_session_factory(
        f"sqlite+aiosqlite:///{tmp_path / 'keeper.db'}"
    )
    await create_tables(engine)
    yield engine, session_factory
    await engine.dispose()


@pytest_asyncio.fixture
async def ledger(
    db: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> UnbondingLedger:
    """Initialized unbonding ledger on the test database."""
    engine, session_factory = db
    ledger = UnbondingLedger(engine, session_factory)
    await ledger.initialize()
    return ledger


@pytest.fixture
def queue(
    db: tuple[AsyncEngine, async_sessionmaker[AsyncSession]],
) -> PendingOperationQueue:
    """Pending operation queue on the test database."""
    _, session_factory = db
    return PendingOperationQueue(session_factory)
