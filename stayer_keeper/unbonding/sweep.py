"""Return matured unbondings to the pool."""

from stayer_keeper.casper.entry_points import DepositFromUndelegationArgs
from stayer_keeper.casper.gateway import ChainGateway
from stayer_keeper.casper.models import ConfirmationResult
from stayer_keeper.delegation.models import PassReport
from stayer_keeper.helpers.constants import (
    CONFIRMATION_POLL_INTERVAL,
    CONFIRMATION_TIMEOUT,
    POOL_CALL_PAYMENT,
    SUBMISSION_EXPIRY_MS,
    WORK_CLAIM_SECONDS,
)
from stayer_keeper.helpers.db_mixins import utc_now_ms
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.unbonding.ledger import UnbondingLedger
from stayer_keeper.unbonding.models import UnbondingRecord


logger = get_logger(__name__)


class UnbondingSweeper:
    """Deposits every ready unbonding record back into the pool contract.

    A record is flipped to deposited only after its deposit confirms, so a
    failed deposit is retried on the next sweep. The deposit hash is stored
    as soon as it is sent; a deposit that timed out is polled again rather
    than sent a second time.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        ledger: UnbondingLedger,
        pool_package_hash: str,
        *,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
        claim_lease: float = WORK_CLAIM_SECONDS,
        submission_expiry_ms: int = SUBMISSION_EXPIRY_MS,
    ) -> None:
        self.gateway = gateway
        self.ledger = ledger
        self.pool_package_hash = pool_package_hash
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.claim_lease = claim_lease
        self.submission_expiry_ms = submission_expiry_ms

    async def _wait(self, tx_hash: str) -> ConfirmationResult:
        return await self.gateway.wait_for_confirmation(
            tx_hash, self.confirmation_timeout, self.poll_interval
        )

    def _submission_expired(self, record: UnbondingRecord) -> bool:
        if record.deposit_submitted_ms is None:
            return True
        return utc_now_ms() - record.deposit_submitted_ms > self.submission_expiry_ms

    async def _mark(self, record: UnbondingRecord, tx_hash: str) -> str:
        await self.ledger.mark_as_deposited(
            record.validator, record.amount, confirm_hash=record.confirm_hash
        )
        return tx_hash

    async def deposit(self, record: UnbondingRecord) -> str:
        """Deposit one record's amount and mark it once confirmed.

        A deposit already sent for the record is polled first and only
        replaced once it has failed or outlived its TTL.

        Raises:
            RuntimeError: If the deposit does not confirm
        """
        if record.deposit_hash is not None:
            previous = record.deposit_hash
            logger.info(
                "Deposit for %s already sent, polling %s", record.confirm_hash, previous
            )
            result = await self._wait(previous)
            if result.success:
                return await self._mark(record, previous)
            if result.timed_out and not self._submission_expired(record):
                msg = f"Deposit {previous} still unresolved: {result.error_message}"
                raise RuntimeError(msg)
            logger.warning(
                "Deposit %s will not execute (%s), resubmitting",
                previous,
                result.error_message,
            )
            record = await self.ledger.clear_deposit_submission(record.id)

        call = DepositFromUndelegationArgs()
        tx_hash = await self.gateway.submit_payable_transaction(
            self.pool_package_hash,
            call.entry_point,
            call.to_runtime_args(),
            int(record.amount),
            POOL_CALL_PAYMENT,
        )
        await self.ledger.record_deposit_submission(record.id, tx_hash)
        result = await self._wait(tx_hash)
        if not result.success:
            if not result.timed_out:
                await self.ledger.clear_deposit_submission(record.id)
            msg = f"Deposit {tx_hash} failed: {result.error_message}"
            raise RuntimeError(msg)

        return await self._mark(record, tx_hash)

    async def process_withdrawals(self) -> PassReport:
        """Deposit ready unbondings, then purge old deposited records."""
        report = PassReport(task="process_withdrawals")
        logger.info("Processing matured withdrawals...")

        current_era = await self.gateway.get_current_era()
        ready = await self.ledger.get_ready_unbondings(current_era)
        logger.info("Found %d unbonding(s) ready at era %d", len(ready), current_era)

        for record in ready:
            report.processed += 1
            claimed = await self.ledger.claim_for_deposit(record.id, self.claim_lease)
            if claimed is None:
                logger.info(
                    "Skipping unbonding %s: deposited or claimed by another keeper",
                    record.confirm_hash,
                )
                report.skipped += 1
                continue

            try:
                tx_hash = await self.deposit(claimed)
            except Exception:
                logger.exception(
                    "Deposit of %s motes from %s failed",
                    record.amount,
                    record.validator,
                )
                report.failed += 1
            else:
                logger.info(
                    "Deposited %s motes from %s: %s",
                    record.amount,
                    record.validator,
                    tx_hash,
                )
                report.succeeded += 1
                report.transaction_hashes.append(tx_hash)
            finally:
                await self.ledger.release_deposit_claim(record.id)

        await self.ledger.cleanup_old_records()
        return report


__all__ = ["UnbondingSweeper"]
