"""Durable request queue of pool delegate/undelegate intents."""

from collections.abc import Callable

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stayer_keeper.delegation.db import PendingOperationDB
from stayer_keeper.delegation.models import (
    OperationKind,
    OperationRequest,
    OperationStatus,
    PendingOperation,
    Phase,
)
from stayer_keeper.helpers.constants import WORK_CLAIM_SECONDS
from stayer_keeper.helpers.db_mixins import utc_now_ms
from stayer_keeper.helpers.logging import get_logger


logger = get_logger(__name__)

_PHASE_HASH_COLUMNS = {
    Phase.WITHDRAW: "withdraw_hash",
    Phase.NATIVE: "native_hash",
    Phase.CONFIRM: "confirm_hash",
}


def _clear_submission(row: PendingOperationDB) -> None:
    row.submitted_phase = None
    row.submitted_hash = None
    row.submitted_at_ms = None


class OperationNotFoundError(LookupError):
    """Raised when an operation id is not in the queue."""


class PendingOperationQueue:
    """Owner of the ``pending_operations`` table.

    Operations stay ``pending`` until every phase is confirmed; each
    confirmed phase is recorded with its deploy hash so a later pass
    resumes where the previous one stopped. A deploy is recorded as soon as
    it is sent, so an unresolved one is polled again instead of resent.
    Workers claim an operation before touching it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def enqueue(
        self,
        kind: OperationKind | str,
        validator_public_key: str,
        amount: int | str,
        era: int,
    ) -> PendingOperation:
        """Queue a new intent.

        Raises:
            ValueError: If the key, amount or era is invalid
        """
        request = OperationRequest(
            kind=kind,
            validator_public_key=validator_public_key,
            amount=amount,
            era=era,
        )
        async with self.session_factory() as session, session.begin():
            row = PendingOperationDB(
                kind=request.kind.value,
                validator_public_key=request.validator_public_key,
                amount=request.amount,
                era=request.era,
                status=OperationStatus.PENDING.value,
                completed_phases=[],
                attempts=0,
            )
            session.add(row)
            await session.flush()
            operation = PendingOperation.model_validate(row)

        logger.info(
            "Queued %s #%d: %s motes, validator %s",
            operation.kind,
            operation.id,
            operation.amount,
            operation.validator_public_key,
        )
        return operation

    async def get(self, operation_id: int) -> PendingOperation:
        async with self.session_factory() as session:
            row = await session.get(PendingOperationDB, operation_id)
            if row is None:
                msg = f"Pending operation {operation_id} not found"
                raise OperationNotFoundError(msg)
            return PendingOperation.model_validate(row)

    async def list_pending(
        self, kind: OperationKind | None = None
    ) -> list[PendingOperation]:
        """Pending operations in queue order, optionally of one kind."""
        stmt = select(PendingOperationDB).where(
            PendingOperationDB.status == OperationStatus.PENDING.value
        )
        if kind is not None:
            stmt = stmt.where(PendingOperationDB.kind == kind.value)
        async with self.session_factory() as session:
            rows = await session.scalars(stmt.order_by(PendingOperationDB.id))
            return [PendingOperation.model_validate(row) for row in rows]

    async def list_recent(self, limit: int = 20) -> list[PendingOperation]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(PendingOperationDB)
                .order_by(PendingOperationDB.id.desc())
                .limit(limit)
            )
            return [PendingOperation.model_validate(row) for row in rows]

    async def _update(
        self,
        operation_id: int,
        mutate: Callable[[PendingOperationDB], None],
    ) -> PendingOperation:
        async with self.session_factory() as session, session.begin():
            row = await session.get(PendingOperationDB, operation_id)
            if row is None:
                msg = f"Pending operation {operation_id} not found"
                raise OperationNotFoundError(msg)
            mutate(row)
            await session.flush()
            return PendingOperation.model_validate(row)

    async def claim(
        self, operation_id: int, lease_seconds: float = WORK_CLAIM_SECONDS
    ) -> PendingOperation | None:
        """Atomically take ownership of a pending operation.

        The conditional update matches for exactly one caller, including
        keeper processes sharing the database, until the lease is released
        or runs out.

        Returns:
            Fresh state of the claimed operation, or None if it is already
            confirmed or another keeper holds it
        """
        now = utc_now_ms()
        stmt = (
            update(PendingOperationDB)
            .where(
                PendingOperationDB.id == operation_id,
                PendingOperationDB.status == OperationStatus.PENDING.value,
                or_(
                    PendingOperationDB.lease_expires_ms.is_(None),
                    PendingOperationDB.lease_expires_ms <= now,
                ),
            )
            .values(lease_expires_ms=now + int(lease_seconds * 1000))
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(PendingOperationDB, operation_id)
            return PendingOperation.model_validate(row)

    async def release(self, operation_id: int) -> PendingOperation:
        def apply(row: PendingOperationDB) -> None:
            row.lease_expires_ms = None

        return await self._update(operation_id, apply)

    async def record_submission(
        self, operation_id: int, phase: Phase, tx_hash: str
    ) -> PendingOperation:
        """Persist a deploy as soon as it is sent, before waiting on it."""

        def apply(row: PendingOperationDB) -> None:
            row.submitted_phase = phase.value
            row.submitted_hash = tx_hash
            row.submitted_at_ms = utc_now_ms()

        return await self._update(operation_id, apply)

    async def clear_submission(self, operation_id: int) -> PendingOperation:
        """Forget a deploy that is known not to have executed."""
        return await self._update(operation_id, _clear_submission)

    async def record_phase(
        self,
        operation_id: int,
        phase: Phase,
        tx_hash: str,
        era: int | None = None,
    ) -> PendingOperation:
        """Persist a confirmed phase, its deploy hash and optionally its era."""

        def apply(row: PendingOperationDB) -> None:
            if phase.value not in row.completed_phases:
                # Reassign so the JSON column is flagged dirty
                row.completed_phases = [*row.completed_phases, phase.value]
            setattr(row, _PHASE_HASH_COLUMNS[phase], tx_hash)
            _clear_submission(row)
            if era is not None:
                row.confirmed_era = era

        return await self._update(operation_id, apply)

    async def mark_confirmed(
        self, operation_id: int, confirmed_era: int | None = None
    ) -> PendingOperation:
        def apply(row: PendingOperationDB) -> None:
            row.status = OperationStatus.CONFIRMED.value
            if confirmed_era is not None:
                row.confirmed_era = confirmed_era
            row.last_error = None
            row.lease_expires_ms = None

        operation = await self._update(operation_id, apply)
        logger.info("Operation #%d confirmed", operation_id)
        return operation

    async def record_failure(self, operation_id: int, error: str) -> PendingOperation:
        """Count a failed attempt; the operation stays pending for retry."""

        def apply(row: PendingOperationDB) -> None:
            row.attempts += 1
            row.last_error = error[:2000]

        return await self._update(operation_id, apply)


__all__ = ["OperationNotFoundError", "PendingOperationQueue"]
