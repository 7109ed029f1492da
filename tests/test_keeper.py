"""Tests for keeper wiring and the command-line interface."""

import json
import re

from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from conftest import POOL_HASH, REGISTRY_HASH, VALIDATOR_A, FakeGateway
from rich.console import Console

from stayer_keeper.helpers.config import KeeperConfig
from stayer_keeper.keeper import (
    HARVEST_REWARDS,
    PROCESS_DELEGATIONS,
    PROCESS_WITHDRAWALS,
    TASK_NAMES,
    UPDATE_VALIDATORS,
    Keeper,
    Storage,
    build_parser,
    cli,
    main,
    show_status,
)
from stayer_keeper.registry.telemetry import PerformanceTelemetry
from stayer_keeper.scheduler import TickOutcome


AMOUNT = "500000000000"


@pytest.fixture
def config(tmp_path: Path) -> KeeperConfig:
    """Keeper configuration pointing at a throwaway database."""
    return KeeperConfig(
        node_url="http://node.test:7777/rpc",
        validator_registry_contract_package_hash=REGISTRY_HASH,
        liquid_staking_contract_package_hash=POOL_HASH,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'keeper.db'}",
        harvest_interval_ms=60_000,
    )


@pytest_asyncio.fixture
async def keeper(
    config: KeeperConfig, fake_gateway: FakeGateway
) -> AsyncGenerator[Keeper, None]:
    """Keeper over the fake gateway and a real SQLite store."""
    storage = await Storage.open(config.database_url)
    keeper = Keeper(config, fake_gateway, storage, AsyncMock(spec=PerformanceTelemetry))
    yield keeper
    await keeper.close()


@pytest.fixture
def database_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point storage-only commands at a throwaway database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("KEEPER_DATABASE_URL", url)
    return url


class TestKeeper:
    """Tests for Keeper wiring."""

    @pytest.mark.asyncio
    async def test_registers_all_tasks(self, keeper: Keeper) -> None:
        """Test every keeper task is scheduled with its configured interval."""
        assert keeper.scheduler.task_names == list(TASK_NAMES)
        assert keeper.scheduler.task_names == [
            UPDATE_VALIDATORS,
            HARVEST_REWARDS,
            PROCESS_DELEGATIONS,
            PROCESS_WITHDRAWALS,
        ]

    @pytest.mark.asyncio
    async def test_trigger_harvest(self, keeper: Keeper, fake_gateway: FakeGateway) -> None:
        """Test a manual trigger runs the task through the scheduler."""
        assert await keeper.trigger(HARVEST_REWARDS) is TickOutcome.COMPLETED
        assert fake_gateway.entry_points() == ["harvest_rewards"]
        assert keeper.scheduler.get_run_states()[HARVEST_REWARDS].runs == 1

    @pytest.mark.asyncio
    async def test_trigger_failure_is_reported(
        self, keeper: Keeper, fake_gateway: FakeGateway
    ) -> None:
        """Test a failing task reports FAILED instead of raising."""
        fake_gateway.failing_entry_points.add("harvest_rewards")

        assert await keeper.trigger(HARVEST_REWARDS) is TickOutcome.FAILED

    @pytest.mark.asyncio
    async def test_trigger_delegations(
        self, keeper: Keeper, fake_gateway: FakeGateway
    ) -> None:
        """Test the delegation task drains the queue and hands off to the ledger."""
        await keeper.storage.queue.enqueue("undelegate", VALIDATOR_A, AMOUNT, 1000)

        assert await keeper.trigger(PROCESS_DELEGATIONS) is TickOutcome.COMPLETED
        assert len(await keeper.storage.ledger.get_pending_unbondings()) == 1

    @pytest.mark.asyncio
    async def test_show_status(self, keeper: Keeper) -> None:
        """Test status output lists the era, unbondings and operations."""
        await keeper.storage.ledger.add_unbonding(VALIDATOR_A, AMOUNT, 990, "c1")
        await keeper.storage.queue.enqueue("delegate", VALIDATOR_A, AMOUNT, 1000)
        console = Console(record=True, width=200)

        await show_status(keeper, console)

        output = console.export_text()
        assert "Era 1000" in output
        assert "1 total, 1 pending, 1 ready, 0 deposited" in output
        assert "Pending Unbondings" in output
        assert "Recent Pool Operations" in output
        assert "500" in output

    @pytest.mark.asyncio
    async def test_show_status_lists_task_runs(self, keeper: Keeper) -> None:
        """Test status output reports each scheduled task's run counters."""
        assert await keeper.trigger(PROCESS_DELEGATIONS) is TickOutcome.COMPLETED
        console = Console(record=True, width=200)

        await show_status(keeper, console)

        output = console.export_text()
        assert "Scheduled Tasks" in output
        cells = [
            [cell.strip() for cell in re.split("[│|]", line) if cell.strip()]
            for line in output.splitlines()
            if any(name in line for name in TASK_NAMES)
        ]
        rows = {row[0]: row[1:] for row in cells}
        assert set(rows) == set(TASK_NAMES)
        assert rows[PROCESS_DELEGATIONS] == ["1", "0", "0", "completed", "-"]
        assert rows[UPDATE_VALIDATORS] == ["0", "0", "0", "-", "-"]


class TestParser:
    """Tests for the argument parser."""

    def test_trigger_choices(self) -> None:
        """Test trigger accepts only known task names."""
        args = build_parser().parse_args(["trigger", "process-withdrawals"])

        assert args.command == "trigger"
        assert args.task == PROCESS_WITHDRAWALS
        with pytest.raises(SystemExit):
            build_parser().parse_args(["trigger", "rebalance"])

    def test_enqueue(self) -> None:
        """Test enqueue arguments are parsed."""
        args = build_parser().parse_args(
            ["enqueue", "delegate", "--validator", VALIDATOR_A, "--amount", AMOUNT, "--era", "1200"]
        )

        assert (args.kind, args.validator, args.amount, args.era) == (
            "delegate",
            VALIDATOR_A,
            AMOUNT,
            1200,
        )

    def test_command_required(self) -> None:
        """Test a subcommand is mandatory."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Tests for storage-only CLI commands."""

    @pytest.mark.asyncio
    async def test_enqueue(self, database_env: str) -> None:
        """Test enqueue writes a pending operation."""
        args = build_parser().parse_args(
            ["enqueue", "undelegate", "--validator", VALIDATOR_A, "--amount", AMOUNT, "--era", "7"]
        )
        console = Console(record=True)

        assert await main(args, console) == 0

        assert "Queued undelegate #1" in console.export_text()
        storage = await Storage.open(database_env)
        try:
            (operation,) = await storage.queue.list_pending()
        finally:
            await storage.close()
        assert operation.validator_public_key == VALIDATOR_A
        assert operation.era == 7

    @pytest.mark.asyncio
    async def test_import_ledger(self, database_env: str, tmp_path: Path) -> None:
        """Test import-ledger loads a legacy JSON file."""
        path = tmp_path / "unbonding-records.json"
        path.write_text(
            json.dumps([
                {
                    "validator": VALIDATOR_A,
                    "amount": AMOUNT,
                    "startEra": 10,
                    "completeEra": 17,
                    "deposited": False,
                    "confirmHash": "legacy",
                    "createdAt": 1_700_000_000_000,
                }
            ])
        )
        args = build_parser().parse_args(["import-ledger", str(path)])
        console = Console(record=True)

        assert await main(args, console) == 0
        assert "Imported 1 record(s)" in console.export_text()


class TestCli:
    """Tests for the cli entry point."""

    def test_configuration_error_exits_1(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test a missing required variable exits with code 1."""
        monkeypatch.delenv("NODE_URL", raising=False)

        with pytest.raises(SystemExit) as exc_info:
            cli(["status"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_enqueue_exits_1(
        self, database_env: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test invalid operation input is reported, not raised."""
        with pytest.raises(SystemExit) as exc_info:
            cli(["enqueue", "delegate", "--validator", "01abc", "--amount", "1", "--era", "1"])

        assert exc_info.value.code == 1
        assert "Configuration error" in capsys.readouterr().err
