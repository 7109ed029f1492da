"""Reconcile validator performance into the on-chain validator registry."""

import asyncio
import math

from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from stayer_keeper.casper.entry_points import UpdateValidatorsArgs
from stayer_keeper.casper.gateway import ChainGateway, submit_call
from stayer_keeper.casper.models import ValidatorInfo
from stayer_keeper.helpers.constants import (
    MIN_ACTIVE_DECAY_FACTOR,
    NETWORK_P_AVG,
    NEUTRAL_DECAY_FACTOR,
    PERFORMANCE_ERAS,
    REGISTRY_UPDATE_PAYMENT,
    VALIDATOR_BATCH_DELAY,
    VALIDATOR_BATCH_SIZE,
)
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.registry.models import SyncReport, ValidatorUpdateRecord
from stayer_keeper.registry.telemetry import PerformanceTelemetry


logger = get_logger(__name__)

T = TypeVar("T")


def compute_decay_factor(validator: ValidatorInfo, score: float | None) -> int:
    """Registry decay factor for one validator.

    Inactive validators get 0, validators without a usable performance
    sample (missing, NaN or infinite) are neutral (100), and everyone else
    maps ``80 + score * 0.2`` rounded half up into ``[80, 100]``.

    Example:
        ```python
        compute_decay_factor(active_validator, 97.5)  # 100 (99.5 rounds up)
        compute_decay_factor(active_validator, 42.0)  # 88 (88.4)
        compute_decay_factor(active_validator, None)  # 100
        ```
    """
    if not validator.is_active:
        return 0
    if score is None or not math.isfinite(score):
        return NEUTRAL_DECAY_FACTOR
    decay = math.floor(MIN_ACTIVE_DECAY_FACTOR + score * 0.2 + 0.5)
    return max(MIN_ACTIVE_DECAY_FACTOR, min(NEUTRAL_DECAY_FACTOR, decay))


def split_into_batches(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive batches of at most ``size``.

    Raises:
        ValueError: If size is not positive
    """
    if size <= 0:
        msg = f"Batch size must be positive, got {size}"
        raise ValueError(msg)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class ValidatorRegistrySyncer:
    """Push fee, activity and decay factor of every validator to the registry."""

    def __init__(
        self,
        gateway: ChainGateway,
        telemetry: PerformanceTelemetry,
        registry_package_hash: str,
        *,
        batch_size: int = VALIDATOR_BATCH_SIZE,
        batch_delay: float = VALIDATOR_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        """Initialize the syncer.

        Args:
            gateway: Chain gateway
            telemetry: Performance score source
            registry_package_hash: Validator registry contract package hash
            batch_size: Validators per ``update_validators`` call
            batch_delay: Seconds to wait between batches
            sleep: Awaitable sleep, replaceable in tests
        """
        self.gateway = gateway
        self.telemetry = telemetry
        self.registry_package_hash = registry_package_hash
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

    def build_records(
        self, validators: Sequence[ValidatorInfo], scores: dict[str, float]
    ) -> list[ValidatorUpdateRecord]:
        return [
            ValidatorUpdateRecord(
                public_key=v.public_key,
                fee_rate=v.fee_rate,
                is_active=v.is_active,
                decay_factor=compute_decay_factor(v, scores.get(v.public_key)),
            )
            for v in validators
        ]

    async def update_validators(self) -> SyncReport | None:
        """Run one registry sync.

        Returns:
            SyncReport, or None when the auction returned no validators
        """
        logger.info("Starting validator update...")

        validators = await self.gateway.get_validators()
        if not validators:
            logger.warning("No validators found")
            return None

        era = await self.gateway.get_current_era()
        logger.info("Current era: %d", era)

        scores = await self.telemetry.fetch_performance_scores(era, PERFORMANCE_ERAS)
        logger.info("Fetched performance scores for %d validators", len(scores))

        records = self.build_records(validators, scores)
        batches = split_into_batches(records, self.batch_size)
        logger.info(
            "Updating %d validators in %d batches", len(records), len(batches)
        )

        report = SyncReport(
            era=era,
            validator_count=len(records),
            scored_count=sum(1 for v in validators if v.public_key in scores),
            batches_submitted=0,
            batches_failed=0,
        )

        for number, batch in enumerate(batches, start=1):
            logger.info(
                "Processing batch %d/%d (%d validators)", number, len(batches), len(batch)
            )
            call = UpdateValidatorsArgs(
                validators_data=batch, p_avg=NETWORK_P_AVG, current_era=era
            )
            try:
                deploy_hash = await submit_call(
                    self.gateway,
                    self.registry_package_hash,
                    call,
                    REGISTRY_UPDATE_PAYMENT,
                )
            except Exception:
                logger.exception("Batch %d/%d failed", number, len(batches))
                report.batches_failed += 1
            else:
                logger.info("Batch %d/%d sent: %s", number, len(batches), deploy_hash)
                report.batches_submitted += 1
                report.transaction_hashes.append(deploy_hash)

            if number < len(batches):
                await self._sleep(self.batch_delay)

        logger.info(
            "Validator update finished: %d/%d batches sent",
            report.batches_submitted,
            len(batches),
        )
        return report


__all__ = [
    "ValidatorRegistrySyncer",
    "compute_decay_factor",
    "split_into_batches",
]
