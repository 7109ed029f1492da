"""Durable ledger of native undelegations awaiting the unbonding period.

Each record is written when ``confirm_undelegation`` succeeds and flipped to
deposited once its funds are returned to the pool. ``complete_era`` is fixed
at creation (``start_era + UNBONDING_ERAS``) and never recomputed.
"""

import asyncio
import json

from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import TypeAdapter
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from stayer_keeper.helpers.constants import (
    DEPOSITED_RETENTION_DAYS,
    UNBONDING_ERAS,
    WORK_CLAIM_SECONDS,
)
from stayer_keeper.helpers.db import create_tables
from stayer_keeper.helpers.db_mixins import utc_now, utc_now_ms
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.helpers.parsers import normalize_public_key, parse_u512
from stayer_keeper.unbonding.db import UnbondingRecordDB
from stayer_keeper.unbonding.models import (
    LedgerStats,
    LegacyUnbondingRecord,
    UnbondingRecord,
)


logger = get_logger(__name__)

_legacy_records = TypeAdapter(list[LegacyUnbondingRecord])


class UnbondingLedger:
    """Single writer of the ``unbonding_records`` table.

    Every mutation runs in its own transaction under an in-process lock and
    is committed before the call returns. Storage errors propagate. A sweep
    claims a record before depositing it, which keeps keeper processes
    sharing the database from depositing the same record twice.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        unbonding_eras: int = UNBONDING_ERAS,
        retention_days: int = DEPOSITED_RETENTION_DAYS,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.unbonding_eras = unbonding_eras
        self.retention = timedelta(days=retention_days)
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create the ledger table and log how many records are on file."""
        await create_tables(self.engine)
        async with self.session_factory() as session:
            count = await session.scalar(select(func.count(UnbondingRecordDB.id)))
        logger.info("Loaded %d unbonding record(s)", count or 0)

    async def add_unbonding(
        self,
        validator: str,
        amount: int | str,
        current_era: int,
        confirm_hash: str,
    ) -> UnbondingRecord:
        """Record a confirmed undelegation.

        Idempotent on ``confirm_hash``: re-adding returns the stored record
        unchanged.

        Args:
            validator: Validator public key (hex)
            amount: Undelegated amount in motes
            current_era: Era in which the undelegation was confirmed
            confirm_hash: Hash of the ``confirm_undelegation`` deploy

        Returns:
            The stored record
        """
        validator = normalize_public_key(validator)
        amount_str = str(parse_u512(amount))

        async with self._lock, self.session_factory() as session, session.begin():
            existing = await session.scalar(
                select(UnbondingRecordDB).where(
                    UnbondingRecordDB.confirm_hash == confirm_hash
                )
            )
            if existing is not None:
                logger.info("Unbonding %s already recorded", confirm_hash)
                return UnbondingRecord.model_validate(existing)

            row = UnbondingRecordDB(
                validator=validator,
                amount=amount_str,
                start_era=current_era,
                complete_era=current_era + self.unbonding_eras,
                deposited=False,
                confirm_hash=confirm_hash,
                created_at=utc_now(),
            )
            session.add(row)
            await session.flush()
            record = UnbondingRecord.model_validate(row)

        logger.info(
            "Added unbonding record: validator=%s, amount=%s, complete_era=%d",
            validator,
            amount_str,
            record.complete_era,
        )
        return record

    async def _select(self, *conditions) -> list[UnbondingRecord]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(UnbondingRecordDB)
                .where(*conditions)
                .order_by(UnbondingRecordDB.id)
            )
            return [UnbondingRecord.model_validate(row) for row in rows]

    async def get_ready_unbondings(self, current_era: int) -> list[UnbondingRecord]:
        """Records with ``not deposited and complete_era <= current_era``."""
        return await self._select(
            UnbondingRecordDB.deposited.is_(False),
            UnbondingRecordDB.complete_era <= current_era,
        )

    async def get_pending_unbondings(self) -> list[UnbondingRecord]:
        """All records not yet deposited, ready or not."""
        return await self._select(UnbondingRecordDB.deposited.is_(False))

    async def get_all_records(self) -> list[UnbondingRecord]:
        return await self._select()

    async def mark_as_deposited(
        self,
        validator: str,
        amount: int | str,
        *,
        confirm_hash: str | None = None,
    ) -> bool:
        """Flip one non-deposited record to deposited.

        With ``confirm_hash`` the record is matched on that key; otherwise the
        oldest non-deposited record for ``(validator, amount)`` is used.

        Returns:
            True if a record was updated, False if nothing matched
        """
        validator = normalize_public_key(validator)
        amount_str = str(parse_u512(amount))

        if confirm_hash is not None:
            match = UnbondingRecordDB.confirm_hash == confirm_hash
        else:
            match = (UnbondingRecordDB.validator == validator) & (
                UnbondingRecordDB.amount == amount_str
            )

        async with self._lock, self.session_factory() as session, session.begin():
            row = await session.scalar(
                select(UnbondingRecordDB)
                .where(match, UnbondingRecordDB.deposited.is_(False))
                .order_by(UnbondingRecordDB.id)
                .limit(1)
            )
            if row is None:
                logger.warning(
                    "No pending unbonding for validator=%s, amount=%s",
                    validator,
                    amount_str,
                )
                return False
            row.deposited = True
            row.deposited_at = utc_now()
            row.lease_expires_ms = None

        logger.info(
            "Marked unbonding as deposited: validator=%s, amount=%s",
            validator,
            amount_str,
        )
        return True

    async def _update_record(
        self, record_id: int, **values: object
    ) -> UnbondingRecord:
        async with self._lock, self.session_factory() as session, session.begin():
            row = await session.get(UnbondingRecordDB, record_id)
            if row is None:
                msg = f"Unbonding record {record_id} not found"
                raise LookupError(msg)
            for name, value in values.items():
                setattr(row, name, value)
            await session.flush()
            return UnbondingRecord.model_validate(row)

    async def claim_for_deposit(
        self, record_id: int, lease_seconds: float = WORK_CLAIM_SECONDS
    ) -> UnbondingRecord | None:
        """Atomically take ownership of an undeposited record.

        Returns:
            Fresh state of the record, or None if it is already deposited or
            another keeper holds it
        """
        now = utc_now_ms()
        stmt = (
            update(UnbondingRecordDB)
            .where(
                UnbondingRecordDB.id == record_id,
                UnbondingRecordDB.deposited.is_(False),
                or_(
                    UnbondingRecordDB.lease_expires_ms.is_(None),
                    UnbondingRecordDB.lease_expires_ms <= now,
                ),
            )
            .values(lease_expires_ms=now + int(lease_seconds * 1000))
            .execution_options(synchronize_session=False)
        )
        async with self._lock, self.session_factory() as session, session.begin():
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return None
            row = await session.get(UnbondingRecordDB, record_id)
            return UnbondingRecord.model_validate(row)

    async def release_deposit_claim(self, record_id: int) -> UnbondingRecord:
        return await self._update_record(record_id, lease_expires_ms=None)

    async def record_deposit_submission(
        self, record_id: int, tx_hash: str
    ) -> UnbondingRecord:
        """Remember a sent deposit before waiting on it."""
        return await self._update_record(
            record_id, deposit_hash=tx_hash, deposit_submitted_ms=utc_now_ms()
        )

    async def clear_deposit_submission(self, record_id: int) -> UnbondingRecord:
        return await self._update_record(
            record_id, deposit_hash=None, deposit_submitted_ms=None
        )

    async def cleanup_old_records(self, now: datetime | None = None) -> int:
        """Delete deposited records created before the retention window.

        Undeposited records are never removed.

        Returns:
            Number of deleted records
        """
        cutoff = (now or utc_now()) - self.retention
        async with self._lock, self.session_factory() as session, session.begin():
            result = await session.execute(
                delete(UnbondingRecordDB).where(
                    UnbondingRecordDB.deposited.is_(True),
                    UnbondingRecordDB.created_at < cutoff,
                )
            )
            cleaned = result.rowcount or 0

        if cleaned:
            logger.info("Cleaned up %d old unbonding record(s)", cleaned)
        return cleaned

    async def get_stats(self, current_era: int) -> LedgerStats:
        records = await self.get_all_records()
        return LedgerStats(
            total=len(records),
            pending=sum(1 for r in records if not r.deposited),
            ready=sum(1 for r in records if r.is_ready(current_era)),
            deposited=sum(1 for r in records if r.deposited),
        )

    async def import_legacy_records(self, path: str | Path) -> int:
        """Import records from a legacy ``unbonding-records.json`` file.

        Stored eras are kept as-is and confirm hashes already present are
        skipped, so importing the same file twice is harmless.

        Args:
            path: JSON file holding a list of legacy records

        Returns:
            Number of records inserted

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is not a valid record list
        """
        source = Path(path)
        if not source.exists():
            msg = f"Legacy ledger not found at: {source}"
            raise FileNotFoundError(msg)
        legacy = _legacy_records.validate_python(json.loads(source.read_text()))

        inserted = 0
        async with self._lock, self.session_factory() as session, session.begin():
            known = set(await session.scalars(select(UnbondingRecordDB.confirm_hash)))
            for item in legacy:
                if item.confirm_hash in known:
                    continue
                created_at = datetime.fromtimestamp(item.created_at_ms / 1000, tz=UTC)
                session.add(
                    UnbondingRecordDB(
                        validator=item.validator,
                        amount=item.amount,
                        start_era=item.start_era,
                        complete_era=item.complete_era,
                        deposited=item.deposited,
                        confirm_hash=item.confirm_hash,
                        created_at=created_at,
                        deposited_at=created_at if item.deposited else None,
                    )
                )
                known.add(item.confirm_hash)
                inserted += 1

        logger.info(
            "Imported %d of %d legacy unbonding record(s) from %s",
            inserted,
            len(legacy),
            source,
        )
        return inserted


__all__ = ["UnbondingLedger"]
