"""CSPR.cloud validator performance client."""

import asyncio
import math

import httpx

from stayer_keeper.helpers.constants import DEFAULT_TIMEOUT, PERFORMANCE_ERAS
from stayer_keeper.helpers.http import handle_http_errors
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.registry.models import PerformanceResponse, PerformanceScore


logger = get_logger(__name__)

PERFORMANCE_PATH = "/validator-performance/get-historical-average-validators-performance"


class PerformanceTelemetry:
    """Fetches historical per-era validator performance scores.

    Any failure (missing configuration, HTTP errors, malformed payloads)
    degrades to fewer or no samples; callers treat a validator without a
    sample as neutral.
    """

    def __init__(
        self,
        api_url: str | None,
        api_key: str | None,
        http_client: httpx.AsyncClient,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_url = api_url.rstrip("/") if api_url else None
        self.api_key = api_key
        self.http_client = http_client
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    @handle_http_errors(default_return=[])
    async def fetch_era_scores(self, era: int) -> list[PerformanceScore]:
        """Scores for a single era (empty on any HTTP or payload error)."""
        response = await self.http_client.get(
            f"{self.api_url}{PERFORMANCE_PATH}",
            params={"start_era": era, "end_era": era},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return PerformanceResponse.model_validate(response.json()).data

    async def fetch_performance_scores(
        self, era: int, eras: int = PERFORMANCE_ERAS
    ) -> dict[str, float]:
        """Average score per validator over ``era`` and the preceding eras.

        Args:
            era: Most recent era to include
            eras: Number of eras to sample (stops below era 0)

        Returns:
            Mapping of lower-case public key to mean score
        """
        if not self.configured:
            logger.warning("CSPR.cloud API not configured")
            return {}

        targets = [era - offset for offset in range(eras) if era - offset >= 0]
        per_era = await asyncio.gather(*(self.fetch_era_scores(t) for t in targets))

        samples: dict[str, list[float]] = {}
        for rows in per_era:
            for row in rows:
                if not math.isfinite(row.score):
                    logger.warning(
                        "Ignoring non-finite score %s for %s", row.score, row.public_key
                    )
                    continue
                samples.setdefault(row.public_key.lower(), []).append(row.score)

        return {key: sum(values) / len(values) for key, values in samples.items()}


__all__ = ["PERFORMANCE_PATH", "PerformanceTelemetry"]
