"""Tests for the CSPR.cloud performance client."""

from typing import TYPE_CHECKING

import httpx
import pytest

from stayer_keeper.registry.telemetry import PERFORMANCE_PATH, PerformanceTelemetry


if TYPE_CHECKING:
    from pytest_httpx import HTTPXMock


API_URL = "https://api.cspr.test"
VALIDATOR_A = "01" + "aa" * 32
VALIDATOR_B = "01" + "bb" * 32


def _era_url(era: int) -> httpx.URL:
    return httpx.URL(
        f"{API_URL}{PERFORMANCE_PATH}", params={"start_era": era, "end_era": era}
    )


class TestPerformanceTelemetry:
    """Tests for PerformanceTelemetry."""

    @pytest.mark.asyncio
    async def test_not_configured_returns_empty(self) -> None:
        """Test that a missing key yields no scores and no requests."""
        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, None, client)
            assert telemetry.configured is False
            assert await telemetry.fetch_performance_scores(1000) == {}

    @pytest.mark.asyncio
    async def test_fetch_era_scores_sends_bearer(self, httpx_mock: "HTTPXMock") -> None:
        """Test the request carries era bounds and the API key."""
        httpx_mock.add_response(
            url=_era_url(1000),
            json={"data": [{"public_key": VALIDATOR_A, "score": 97.5}]},
        )

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL + "/", "secret", client)
            rows = await telemetry.fetch_era_scores(1000)

        assert [(row.public_key, row.score) for row in rows] == [(VALIDATOR_A, 97.5)]
        assert httpx_mock.get_request().headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_averages_across_eras(self, httpx_mock: "HTTPXMock") -> None:
        """Test scores are averaged per validator over the sampled eras."""
        httpx_mock.add_response(
            url=_era_url(1000),
            json={
                "data": [
                    {"public_key": VALIDATOR_A.upper(), "score": 90},
                    {"public_key": VALIDATOR_B, "score": 50},
                ]
            },
        )
        httpx_mock.add_response(
            url=_era_url(999),
            json={"data": [{"public_key": VALIDATOR_A, "score": 100}]},
        )
        httpx_mock.add_response(url=_era_url(998), json={"data": []})

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, "secret", client)
            scores = await telemetry.fetch_performance_scores(1000, eras=3)

        assert scores == {VALIDATOR_A: 95.0, VALIDATOR_B: 50.0}

    @pytest.mark.asyncio
    async def test_failed_era_is_skipped(self, httpx_mock: "HTTPXMock") -> None:
        """Test an HTTP error for one era only drops that era's samples."""
        httpx_mock.add_response(url=_era_url(1000), status_code=500)
        httpx_mock.add_response(
            url=_era_url(999),
            json={"data": [{"public_key": VALIDATOR_A, "score": 80}]},
        )

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, "secret", client)
            scores = await telemetry.fetch_performance_scores(1000, eras=2)

        assert scores == {VALIDATOR_A: 80.0}

    @pytest.mark.asyncio
    async def test_malformed_payload_is_ignored(self, httpx_mock: "HTTPXMock") -> None:
        """Test a payload that fails validation degrades to no samples."""
        httpx_mock.add_response(
            url=_era_url(5), json={"data": [{"public_key": VALIDATOR_A}]}
        )

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, "secret", client)
            assert await telemetry.fetch_performance_scores(5, eras=1) == {}

    @pytest.mark.asyncio
    async def test_stops_at_era_zero(self, httpx_mock: "HTTPXMock") -> None:
        """Test that no negative eras are requested."""
        httpx_mock.add_response(url=_era_url(1), json={"data": []})
        httpx_mock.add_response(url=_era_url(0), json={"data": []})

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, "secret", client)
            assert await telemetry.fetch_performance_scores(1, eras=10) == {}

        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_non_finite_rows_are_dropped(self, httpx_mock: "HTTPXMock") -> None:
        """Test NaN and Infinity scores drop only their own rows."""
        httpx_mock.add_response(
            url=_era_url(7),
            content=(
                b'{"data": ['
                b'{"public_key": "' + VALIDATOR_A.encode() + b'", "score": NaN}, '
                b'{"public_key": "' + VALIDATOR_B.encode() + b'", "score": 60}, '
                b'{"public_key": "' + VALIDATOR_B.encode() + b'", "score": Infinity}'
                b"]}"
            ),
            headers={"Content-Type": "application/json"},
        )

        async with httpx.AsyncClient() as client:
            telemetry = PerformanceTelemetry(API_URL, "secret", client)
            scores = await telemetry.fetch_performance_scores(7, eras=1)

        assert scores == {VALIDATOR_B: 60.0}
