"""Reward harvest task."""

from stayer_keeper.casper.entry_points import HarvestRewardsArgs
from stayer_keeper.casper.gateway import ChainGateway, submit_call
from stayer_keeper.helpers.constants import (
    CONFIRMATION_POLL_INTERVAL,
    CONFIRMATION_TIMEOUT,
    HARVEST_PAYMENT,
)
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.helpers.parsers import motes_to_cspr


logger = get_logger(__name__)


class HarvestFailedError(Exception):
    """The ``harvest_rewards`` deploy did not execute successfully."""


class RewardHarvester:
    """Reports the keeper's total delegation so the pool can book rewards.

    The pool contract derives accrued rewards from the difference between
    the reported delegation and its own ledger, which moves the exchange rate.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        pool_package_hash: str,
        *,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    ) -> None:
        self.gateway = gateway
        self.pool_package_hash = pool_package_hash
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval

    async def harvest_rewards(self) -> str:
        """Submit ``harvest_rewards`` and wait for it to execute.

        Returns:
            Deploy hash of the confirmed harvest

        Raises:
            HarvestFailedError: If the deploy fails or times out
        """
        logger.info("Starting reward harvest...")

        current_era = await self.gateway.get_current_era()
        total_delegation = await self.gateway.get_total_delegation()
        logger.info(
            "Harvesting rewards for era %d (total delegation %s CSPR)",
            current_era,
            motes_to_cspr(total_delegation),
        )

        call = HarvestRewardsArgs(
            new_total_delegation=total_delegation, current_era=current_era
        )
        tx_hash = await submit_call(
            self.gateway, self.pool_package_hash, call, HARVEST_PAYMENT
        )
        result = await self.gateway.wait_for_confirmation(
            tx_hash, self.confirmation_timeout, self.poll_interval
        )
        if not result.success:
            msg = f"Harvest rewards deploy failed: {tx_hash} ({result.error_message})"
            raise HarvestFailedError(msg)

        logger.info("Harvest completed: %s", tx_hash)
        return tx_hash


__all__ = ["HarvestFailedError", "RewardHarvester"]
