"""Tests for the pending operation queue."""

import pytest

from conftest import VALIDATOR_A, VALIDATOR_B

from stayer_keeper.delegation.models import (
    OperationKind,
    OperationStatus,
    PendingOperation,
    Phase,
)
from stayer_keeper.delegation.queue import OperationNotFoundError, PendingOperationQueue


AMOUNT = "500000000000"


class TestEnqueue:
    """Tests for enqueueing intents."""

    @pytest.mark.asyncio
    async def test_enqueue(self, queue: PendingOperationQueue) -> None:
        """Test a new intent is pending with no completed phases."""
        operation = await queue.enqueue("delegate", VALIDATOR_A.upper(), 500, 1000)

        assert operation.id >= 1
        assert operation.kind is OperationKind.DELEGATE
        assert operation.validator_public_key == VALIDATOR_A
        assert operation.amount == "500"
        assert operation.status is OperationStatus.PENDING
        assert operation.completed_phases == []
        assert operation.next_phase() is Phase.WITHDRAW

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("kind", "validator", "amount", "era"),
        [
            ("restake", VALIDATOR_A, AMOUNT, 1),
            ("delegate", "01abc", AMOUNT, 1),
            ("delegate", VALIDATOR_A, "-5", 1),
            ("delegate", VALIDATOR_A, AMOUNT, -1),
        ],
    )
    async def test_invalid_requests(
        self,
        queue: PendingOperationQueue,
        kind: str,
        validator: str,
        amount: str,
        era: int,
    ) -> None:
        """Test invalid intents are rejected before storage."""
        with pytest.raises(ValueError):
            await queue.enqueue(kind, validator, amount, era)
        assert await queue.list_pending() == []


class TestQueries:
    """Tests for reading the queue."""

    @pytest.mark.asyncio
    async def test_list_pending_by_kind(self, queue: PendingOperationQueue) -> None:
        """Test filtering by kind keeps queue order."""
        first = await queue.enqueue(OperationKind.DELEGATE, VALIDATOR_A, AMOUNT, 1)
        undelegation = await queue.enqueue(OperationKind.UNDELEGATE, VALIDATOR_B, AMOUNT, 1)
        second = await queue.enqueue(OperationKind.DELEGATE, VALIDATOR_B, AMOUNT, 2)

        delegations = await queue.list_pending(OperationKind.DELEGATE)
        undelegations = await queue.list_pending(OperationKind.UNDELEGATE)

        assert [op.id for op in delegations] == [first.id, second.id]
        assert [op.id for op in undelegations] == [undelegation.id]
        assert len(await queue.list_pending()) == 3

    @pytest.mark.asyncio
    async def test_confirmed_leave_pending(self, queue: PendingOperationQueue) -> None:
        """Test confirmed operations are no longer listed as pending."""
        operation = await queue.enqueue("undelegate", VALIDATOR_A, AMOUNT, 1)

        confirmed = await queue.mark_confirmed(operation.id, 1005)

        assert confirmed.status is OperationStatus.CONFIRMED
        assert confirmed.confirmed_era == 1005
        assert await queue.list_pending() == []
        assert [op.id for op in await queue.list_recent()] == [operation.id]

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self, queue: PendingOperationQueue) -> None:
        """Test recent operations are returned newest first up to the limit."""
        ids = [
            (await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, era)).id
            for era in range(3)
        ]

        assert [op.id for op in await queue.list_recent(limit=2)] == ids[::-1][:2]

    @pytest.mark.asyncio
    async def test_get_unknown(self, queue: PendingOperationQueue) -> None:
        """Test unknown ids raise OperationNotFoundError."""
        with pytest.raises(OperationNotFoundError, match="42"):
            await queue.get(42)


class TestProgress:
    """Tests for phase and failure bookkeeping."""

    @pytest.mark.asyncio
    async def test_record_phase(self, queue: PendingOperationQueue) -> None:
        """Test phases are persisted with their hashes and advance the cursor."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)

        await queue.record_phase(operation.id, Phase.WITHDRAW, "w" * 64)
        updated = await queue.record_phase(operation.id, Phase.NATIVE, "n" * 64)
        reloaded = await queue.get(operation.id)

        for op in (updated, reloaded):
            assert op.completed_phases == [Phase.WITHDRAW, Phase.NATIVE]
            assert op.withdraw_hash == "w" * 64
            assert op.native_hash == "n" * 64
            assert op.next_phase() is Phase.CONFIRM

    @pytest.mark.asyncio
    async def test_record_phase_twice(self, queue: PendingOperationQueue) -> None:
        """Test re-recording a phase updates the hash without duplicating it."""
        operation = await queue.enqueue("undelegate", VALIDATOR_A, AMOUNT, 1)

        await queue.record_phase(operation.id, Phase.NATIVE, "a" * 64)
        updated = await queue.record_phase(operation.id, Phase.NATIVE, "b" * 64)

        assert updated.completed_phases == [Phase.NATIVE]
        assert updated.native_hash == "b" * 64

    @pytest.mark.asyncio
    async def test_record_failure(self, queue: PendingOperationQueue) -> None:
        """Test failures count attempts and keep a truncated error."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)

        await queue.record_failure(operation.id, "first")
        failed = await queue.record_failure(operation.id, "x" * 5000)

        assert failed.attempts == 2
        assert failed.last_error is not None
        assert len(failed.last_error) == 2000
        assert failed.status is OperationStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_unknown(self, queue: PendingOperationQueue) -> None:
        """Test updating a missing operation raises."""
        with pytest.raises(OperationNotFoundError):
            await queue.record_failure(99, "boom")


class TestClaims:
    """Tests for claiming operations and remembering sent deploys."""

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, queue: PendingOperationQueue) -> None:
        """Test a held claim blocks a second one until released."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)

        claimed = await queue.claim(operation.id)

        assert claimed is not None
        assert claimed.lease_expires_ms is not None
        assert await queue.claim(operation.id) is None

        await queue.release(operation.id)

        assert await queue.claim(operation.id) is not None

    @pytest.mark.asyncio
    async def test_expired_claim_can_be_taken(self, queue: PendingOperationQueue) -> None:
        """Test a lease that ran out no longer blocks other keepers."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)

        assert await queue.claim(operation.id, lease_seconds=-1) is not None
        assert await queue.claim(operation.id) is not None

    @pytest.mark.asyncio
    async def test_confirmed_cannot_be_claimed(self, queue: PendingOperationQueue) -> None:
        """Test finished operations and unknown ids are never claimed."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)
        await queue.mark_confirmed(operation.id)

        assert await queue.claim(operation.id) is None
        assert await queue.claim(99) is None

    @pytest.mark.asyncio
    async def test_submission_until_phase_confirmed(
        self, queue: PendingOperationQueue
    ) -> None:
        """Test a sent deploy is remembered and cleared once its phase is recorded."""
        operation = await queue.enqueue("undelegate", VALIDATOR_A, AMOUNT, 1)

        sent = await queue.record_submission(operation.id, Phase.NATIVE, "n" * 64)

        assert sent.submitted_phase is Phase.NATIVE
        assert sent.submitted_hash == "n" * 64
        assert sent.submitted_at_ms is not None
        assert (await queue.get(operation.id)).submitted_hash == "n" * 64

        done = await queue.record_phase(operation.id, Phase.NATIVE, "n" * 64)

        assert done.completed_phases == [Phase.NATIVE]
        assert (done.submitted_phase, done.submitted_hash, done.submitted_at_ms) == (
            None,
            None,
            None,
        )

    @pytest.mark.asyncio
    async def test_clear_submission(self, queue: PendingOperationQueue) -> None:
        """Test a failed deploy can be forgotten without recording the phase."""
        operation = await queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1)
        await queue.record_submission(operation.id, Phase.WITHDRAW, "w" * 64)

        cleared = await queue.clear_submission(operation.id)

        assert cleared.submitted_hash is None
        assert cleared.completed_phases == []

    @pytest.mark.asyncio
    async def test_record_phase_with_era(self, queue: PendingOperationQueue) -> None:
        """Test the confirmation era is stored with the confirm phase."""
        operation = await queue.enqueue("undelegate", VALIDATOR_A, AMOUNT, 1)

        updated = await queue.record_phase(operation.id, Phase.CONFIRM, "c" * 64, 1000)

        assert updated.confirmed_era == 1000
        assert updated.status is OperationStatus.PENDING


class TestPendingOperationModel:
    """Tests for phase ordering on the model."""

    def test_undelegation_phases(self) -> None:
        """Test undelegations start at the native phase."""
        operation = PendingOperation(
            id=1,
            kind=OperationKind.UNDELEGATE,
            validator_public_key=VALIDATOR_A,
            amount=AMOUNT,
            era=1,
            status=OperationStatus.PENDING,
        )

        assert operation.next_phase() is Phase.NATIVE
        assert operation.model_copy(
            update={"completed_phases": [Phase.NATIVE, Phase.CONFIRM]}
        ).next_phase() is None
