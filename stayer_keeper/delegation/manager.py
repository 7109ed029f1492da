"""Delegation lifecycle: move pooled CSPR into and out of native delegations.

Delegate path, per pending delegation:

1. ``withdraw_for_delegation`` on the pool contract (keeper takes custody)
2. native ``delegate`` on the auction contract
3. ``confirm_delegation`` on the pool contract

Undelegate path: native ``undelegate``, then ``confirm_undelegation``, then
the unbonding ledger takes over until the funds mature.

Every phase is submitted, then awaited; only a confirmed phase is recorded
and only then does the next phase start. A failed phase aborts that item,
which stays pending and resumes at the same phase on the next pass.

The deploy hash of a phase is stored before waiting on it. If the wait
times out, the next pass polls that same deploy and resends only once it
has failed or outlived its TTL. Each item is claimed in the database first,
so keeper processes sharing it never work the same operation at once.
"""

from collections.abc import Awaitable, Callable

from stayer_keeper.casper.entry_points import (
    ConfirmDelegationArgs,
    ConfirmUndelegationArgs,
    WithdrawForDelegationArgs,
)
from stayer_keeper.casper.gateway import ChainGateway, submit_call
from stayer_keeper.casper.models import ConfirmationResult
from stayer_keeper.delegation.models import (
    OperationKind,
    PassReport,
    PendingOperation,
    Phase,
)
from stayer_keeper.delegation.queue import PendingOperationQueue
from stayer_keeper.helpers.constants import (
    CONFIRMATION_POLL_INTERVAL,
    CONFIRMATION_TIMEOUT,
    MIN_DELEGATION_MOTES,
    POOL_CALL_PAYMENT,
    SUBMISSION_EXPIRY_MS,
    WORK_CLAIM_SECONDS,
)
from stayer_keeper.helpers.db_mixins import utc_now_ms
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.unbonding.ledger import UnbondingLedger


logger = get_logger(__name__)


class PhaseFailedError(Exception):
    """A lifecycle phase did not confirm successfully."""

    def __init__(
        self,
        operation_id: int,
        phase: Phase,
        transaction_hash: str,
        reason: str | None,
    ) -> None:
        self.operation_id = operation_id
        self.phase = phase
        self.transaction_hash = transaction_hash
        self.reason = reason
        super().__init__(
            f"Operation #{operation_id} {phase} phase failed "
            f"({transaction_hash}): {reason or 'unknown error'}"
        )


class DelegationLifecycleManager:
    """Drives pending operations through their on-chain phases."""

    def __init__(
        self,
        gateway: ChainGateway,
        queue: PendingOperationQueue,
        ledger: UnbondingLedger,
        pool_package_hash: str,
        *,
        min_delegation: int = MIN_DELEGATION_MOTES,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
        claim_lease: float = WORK_CLAIM_SECONDS,
        submission_expiry_ms: int = SUBMISSION_EXPIRY_MS,
    ) -> None:
        """Initialize the manager.

        Args:
            gateway: Chain gateway
            queue: Source of pending delegate/undelegate intents
            ledger: Unbonding ledger receiving confirmed undelegations
            pool_package_hash: Liquid staking contract package hash
            min_delegation: Smallest delegation attempted, in motes
            confirmation_timeout: Seconds to wait for each phase
            poll_interval: Seconds between confirmation polls
            claim_lease: Seconds an operation stays claimed by this keeper
            submission_expiry_ms: Age after which an unseen deploy is resent
        """
        self.gateway = gateway
        self.queue = queue
        self.ledger = ledger
        self.pool_package_hash = pool_package_hash
        self.min_delegation = min_delegation
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self.claim_lease = claim_lease
        self.submission_expiry_ms = submission_expiry_ms

    def _submitter(
        self, operation: PendingOperation, phase: Phase
    ) -> Callable[[], Awaitable[str]]:
        validator = operation.validator_public_key
        amount = operation.amount_motes

        if phase is Phase.WITHDRAW:
            call = WithdrawForDelegationArgs(validator=validator, amount=amount)
            return lambda: submit_call(
                self.gateway, self.pool_package_hash, call, POOL_CALL_PAYMENT
            )
        if phase is Phase.NATIVE:
            if operation.kind is OperationKind.DELEGATE:
                return lambda: self.gateway.native_delegate(validator, amount)
            return lambda: self.gateway.native_undelegate(validator, amount)

        if operation.kind is OperationKind.DELEGATE:
            confirm = ConfirmDelegationArgs(validator=validator, amount=amount)
        else:
            confirm = ConfirmUndelegationArgs(validator=validator, amount=amount)
        return lambda: submit_call(
            self.gateway, self.pool_package_hash, confirm, POOL_CALL_PAYMENT
        )

    def _submission_expired(self, operation: PendingOperation) -> bool:
        if operation.submitted_at_ms is None:
            return True
        return utc_now_ms() - operation.submitted_at_ms > self.submission_expiry_ms

    async def _wait(self, tx_hash: str) -> ConfirmationResult:
        return await self.gateway.wait_for_confirmation(
            tx_hash, self.confirmation_timeout, self.poll_interval
        )

    async def _recheck_submission(
        self, operation: PendingOperation, phase: Phase, tx_hash: str
    ) -> tuple[PendingOperation, ConfirmationResult | None]:
        """Poll a deploy sent on an earlier pass.

        Returns the result if it executed successfully, or None once it is
        known never to execute (failed, or unseen past its TTL).

        Raises:
            PhaseFailedError: If the deploy is still unresolved
        """
        logger.info(
            "Operation #%d %s phase already sent, polling %s",
            operation.id,
            phase,
            tx_hash,
        )
        result = await self._wait(tx_hash)
        if result.success:
            return operation, result
        if result.timed_out and not self._submission_expired(operation):
            raise PhaseFailedError(operation.id, phase, tx_hash, result.error_message)

        logger.warning(
            "Operation #%d %s deploy %s will not execute (%s), resubmitting",
            operation.id,
            phase,
            tx_hash,
            result.error_message,
        )
        return await self.queue.clear_submission(operation.id), None

    async def _run_phase(
        self,
        operation: PendingOperation,
        phase: Phase,
        report: PassReport | None = None,
    ) -> PendingOperation:
        result = None
        if operation.submitted_phase is phase and operation.submitted_hash is not None:
            operation, result = await self._recheck_submission(
                operation, phase, operation.submitted_hash
            )

        if result is None:
            tx_hash = await self._submitter(operation, phase)()
            operation = await self.queue.record_submission(operation.id, phase, tx_hash)
            result = await self._wait(tx_hash)
            if not result.success:
                if not result.timed_out:
                    await self.queue.clear_submission(operation.id)
                raise PhaseFailedError(
                    operation.id, phase, tx_hash, result.error_message
                )

        tx_hash = result.transaction_hash
        logger.info(
            "Operation #%d %s phase confirmed: %s", operation.id, phase, tx_hash
        )
        if report is not None:
            report.transaction_hashes.append(tx_hash)

        era = None
        if operation.kind is OperationKind.UNDELEGATE and phase is Phase.CONFIRM:
            # Unbonding starts in the era the confirmation landed in
            era = await self.gateway.get_current_era()
        return await self.queue.record_phase(operation.id, phase, tx_hash, era)

    async def _advance(
        self, operation: PendingOperation, report: PassReport | None
    ) -> PendingOperation:
        """Run every incomplete phase in order."""
        while (phase := operation.next_phase()) is not None:
            operation = await self._run_phase(operation, phase, report)
        return operation

    async def process_delegation(
        self, operation: PendingOperation, report: PassReport | None = None
    ) -> None:
        logger.info(
            "Processing delegation #%d to %s: %s motes",
            operation.id,
            operation.validator_public_key,
            operation.amount,
        )
        operation = await self._advance(operation, report)
        await self.queue.mark_confirmed(operation.id)
        logger.info(
            "Delegation confirmed for %s: %s",
            operation.validator_public_key,
            operation.confirm_hash,
        )

    async def process_undelegation(
        self, operation: PendingOperation, report: PassReport | None = None
    ) -> None:
        logger.info(
            "Processing undelegation #%d from %s: %s motes",
            operation.id,
            operation.validator_public_key,
            operation.amount,
        )
        operation = await self._advance(operation, report)

        start_era = operation.confirmed_era
        if start_era is None:
            start_era = await self.gateway.get_current_era()
        await self.ledger.add_unbonding(
            operation.validator_public_key,
            operation.amount,
            start_era,
            operation.confirm_hash,
        )
        await self.queue.mark_confirmed(operation.id, start_era)
        logger.info(
            "Undelegation confirmed for %s: %s",
            operation.validator_public_key,
            operation.confirm_hash,
        )

    async def _process(
        self,
        kind: OperationKind,
        handler: Callable[[PendingOperation, PassReport], Awaitable[None]],
        report: PassReport,
    ) -> PassReport:
        pending = await self.queue.list_pending(kind)
        if not pending:
            logger.info("No pending %ss to process", kind)
            return report
        logger.info("Found %d pending %ss", len(pending), kind)

        for operation in pending:
            report.processed += 1
            if (
                kind is OperationKind.DELEGATE
                and operation.amount_motes < self.min_delegation
            ):
                logger.warning(
                    "Skipping delegation to %s: amount %s below minimum %d",
                    operation.validator_public_key,
                    operation.amount,
                    self.min_delegation,
                )
                report.skipped += 1
                continue

            claimed = await self.queue.claim(operation.id, self.claim_lease)
            if claimed is None:
                logger.info(
                    "Skipping %s #%d: confirmed or claimed by another keeper",
                    kind,
                    operation.id,
                )
                report.skipped += 1
                continue

            try:
                await handler(claimed, report)
            except Exception as e:
                logger.exception(
                    "Failed to process %s #%d (%s)",
                    kind,
                    operation.id,
                    operation.validator_public_key,
                )
                await self.queue.record_failure(operation.id, str(e))
                report.failed += 1
            else:
                report.succeeded += 1
            finally:
                await self.queue.release(operation.id)

        logger.info(
            "%s processing completed: %d succeeded, %d failed, %d skipped",
            kind.capitalize(),
            report.succeeded,
            report.failed,
            report.skipped,
        )
        return report

    async def process_delegations(self) -> PassReport:
        """One sequential pass over pending delegations."""
        return await self._process(
            OperationKind.DELEGATE,
            self.process_delegation,
            PassReport(task="process_delegations"),
        )

    async def process_undelegations(self) -> PassReport:
        """One sequential pass over pending undelegations."""
        return await self._process(
            OperationKind.UNDELEGATE,
            self.process_undelegation,
            PassReport(task="process_undelegations"),
        )

    async def process_all(self) -> list[PassReport]:
        """Delegations first, then undelegations."""
        return [await self.process_delegations(), await self.process_undelegations()]


__all__ = ["DelegationLifecycleManager", "PhaseFailedError"]
