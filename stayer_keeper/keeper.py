"""Stayer liquid-staking keeper.

Wires the chain gateway, storage and task components together and exposes
them through a small CLI.

Usage:
    stayer-keeper run
    stayer-keeper trigger update-validators
    stayer-keeper status
    stayer-keeper enqueue delegate --validator 01ab... --amount 500000000000 --era 1200
    stayer-keeper import-ledger data/unbonding-records.json
"""

import argparse
import asyncio
import signal
import sys

from dataclasses import dataclass
from pathlib import Path
from typing import Self

import httpx
from rich.console import Console
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncEngine

from stayer_keeper.casper.gateway import CasperGateway, ChainGateway
from stayer_keeper.casper.keys import KeeperSigner
from stayer_keeper.delegation.manager import DelegationLifecycleManager
from stayer_keeper.delegation.models import OperationKind, PendingOperation
from stayer_keeper.delegation.queue import PendingOperationQueue
from stayer_keeper.helpers.config import KeeperConfig, get_optional_env
from stayer_keeper.helpers.constants import DEFAULT_DATABASE_URL, EXTENDED_TIMEOUT
from stayer_keeper.helpers.db import create_session_factory
from stayer_keeper.helpers.http import create_http_client
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.helpers.parsers import motes_to_cspr
from stayer_keeper.helpers.rpc import RPCClient
from stayer_keeper.registry.syncer import ValidatorRegistrySyncer
from stayer_keeper.registry.telemetry import PerformanceTelemetry
from stayer_keeper.rewards.harvest import RewardHarvester
from stayer_keeper.scheduler import SchedulerCore, TickOutcome
from stayer_keeper.unbonding.ledger import UnbondingLedger
from stayer_keeper.unbonding.models import UnbondingRecord
from stayer_keeper.unbonding.sweep import UnbondingSweeper


logger = get_logger(__name__)

UPDATE_VALIDATORS = "update-validators"
HARVEST_REWARDS = "harvest-rewards"
PROCESS_DELEGATIONS = "process-delegations"
PROCESS_WITHDRAWALS = "process-withdrawals"

TASK_NAMES = (UPDATE_VALIDATORS, HARVEST_REWARDS, PROCESS_DELEGATIONS, PROCESS_WITHDRAWALS)


@dataclass
class Storage:
    """Database engine plus the two stores built on it."""

    engine: AsyncEngine
    ledger: UnbondingLedger
    queue: PendingOperationQueue

    @classmethod
    async def open(cls, database_url: str) -> Self:
        engine, session_factory = create_session_factory(database_url)
        storage = cls(
            engine=engine,
            ledger=UnbondingLedger(engine, session_factory),
            queue=PendingOperationQueue(session_factory),
        )
        await storage.ledger.initialize()
        return storage

    async def close(self) -> None:
        await self.engine.dispose()


class Keeper:
    """All keeper components, constructed from injected collaborators."""

    def __init__(
        self,
        config: KeeperConfig,
        gateway: ChainGateway,
        storage: Storage,
        telemetry: PerformanceTelemetry,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the keeper.

        Args:
            config: Keeper configuration
            gateway: Chain gateway used by every task
            storage: Ledger and pending operation queue
            telemetry: Validator performance source
            http_client: Client to close on shutdown, if the keeper owns it
        """
        self.config = config
        self.gateway = gateway
        self.storage = storage
        self.http_client = http_client

        pool = config.liquid_staking_contract_package_hash
        self.syncer = ValidatorRegistrySyncer(
            gateway, telemetry, config.validator_registry_contract_package_hash
        )
        self.manager = DelegationLifecycleManager(
            gateway, storage.queue, storage.ledger, pool
        )
        self.harvester = RewardHarvester(gateway, pool)
        self.sweeper = UnbondingSweeper(gateway, storage.ledger, pool)

        self.scheduler = SchedulerCore()
        self.scheduler.register_task(
            UPDATE_VALIDATORS, config.update_interval_ms, self.syncer.update_validators
        )
        self.scheduler.register_task(
            HARVEST_REWARDS, config.harvest_interval_ms, self.harvester.harvest_rewards
        )
        self.scheduler.register_task(
            PROCESS_DELEGATIONS, config.delegation_interval_ms, self.manager.process_all
        )
        self.scheduler.register_task(
            PROCESS_WITHDRAWALS,
            config.withdrawal_interval_ms,
            self.sweeper.process_withdrawals,
        )

    async def close(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
        await self.storage.close()

    async def run(self) -> None:
        """Run the scheduler until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.scheduler.shutdown)

        logger.info("Keeper started for %s", self.config.chain_name)
        await self.scheduler.run()
        logger.info("Keeper stopped")

    async def trigger(self, name: str) -> TickOutcome:
        return await self.scheduler.trigger(name)


async def build_keeper(config: KeeperConfig) -> Keeper:
    """Construct a keeper with the production gateway and storage.

    Raises:
        FileNotFoundError: If the key or proxy wasm file is missing
        ValueError: If the key or a configured hash is invalid
    """
    signer = KeeperSigner.from_pem_file(config.keeper_private_key_path)

    proxy_wasm = None
    if config.proxy_caller_wasm_path:
        proxy_wasm = Path(config.proxy_caller_wasm_path).read_bytes()
        logger.info("Loaded proxy caller wasm (%d bytes)", len(proxy_wasm))

    http_client = create_http_client(timeout=EXTENDED_TIMEOUT)
    gateway = CasperGateway(
        RPCClient(config.node_url),
        http_client,
        signer,
        chain_name=config.chain_name,
        auction_contract_hash=config.auction_contract_hash,
        proxy_caller_wasm=proxy_wasm,
    )
    telemetry = PerformanceTelemetry(
        config.cspr_cloud_api_url, config.cspr_cloud_api_key, http_client
    )

    try:
        storage = await Storage.open(config.database_url)
    except Exception:
        await http_client.aclose()
        raise

    return Keeper(config, gateway, storage, telemetry, http_client=http_client)


def _unbonding_table(records: list[UnbondingRecord], current_era: int) -> Table:
    table = Table(title="Pending Unbondings")
    table.add_column("Validator", style="cyan")
    table.add_column("Amount (CSPR)", justify="right", style="green")
    table.add_column("Start Era", justify="right")
    table.add_column("Complete Era", justify="right", style="magenta")
    table.add_column("Ready", justify="center", style="bold")

    for record in records:
        ready = record.is_ready(current_era)
        table.add_row(
            f"{record.validator[:10]}...",
            f"{motes_to_cspr(record.amount):,}",
            str(record.start_era),
            str(record.complete_era),
            "[green]✓[/green]" if ready else "[yellow]…[/yellow]",
        )
    return table


def _operations_table(operations: list[PendingOperation]) -> Table:
    table = Table(title="Recent Pool Operations")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Validator", style="cyan")
    table.add_column("Amount (CSPR)", justify="right", style="green")
    table.add_column("Status", style="bold")
    table.add_column("Phases")
    table.add_column("Attempts", justify="right")

    for operation in operations:
        color = "green" if operation.status == "confirmed" else "yellow"
        table.add_row(
            str(operation.id),
            operation.kind,
            f"{operation.validator_public_key[:10]}...",
            f"{motes_to_cspr(operation.amount):,}",
            f"[{color}]{operation.status}[/{color}]",
            ", ".join(operation.completed_phases) or "-",
            str(operation.attempts),
        )
    return table


def _tasks_table(scheduler: SchedulerCore) -> Table:
    table = Table(title="Scheduled Tasks")
    table.add_column("Task", style="cyan")
    table.add_column("Runs", justify="right")
    table.add_column("Failures", justify="right", style="red")
    table.add_column("Skips", justify="right", style="yellow")
    table.add_column("Last Outcome", style="bold")
    table.add_column("Last Error")

    states = scheduler.get_run_states()
    for name in scheduler.task_names:
        state = states[name]
        outcome = "running" if state.running else (state.last_outcome or "-")
        table.add_row(
            name,
            str(state.runs),
            str(state.failures),
            str(state.skips),
            str(outcome),
            state.last_error or "-",
        )
    return table


async def show_status(keeper: Keeper, console: Console) -> None:
    current_era = await keeper.gateway.get_current_era()
    stats = await keeper.storage.ledger.get_stats(current_era)

    console.print(f"\n[bold]Era {current_era}[/bold]")
    console.print(
        f"  Unbondings: {stats.total} total, {stats.pending} pending, "
        f"{stats.ready} ready, {stats.deposited} deposited"
    )
    pending = await keeper.storage.ledger.get_pending_unbondings()
    if pending:
        console.print(_unbonding_table(pending, current_era))
    operations = await keeper.storage.queue.list_recent()
    if operations:
        console.print(_operations_table(operations))
    console.print(_tasks_table(keeper.scheduler))


async def main(args: argparse.Namespace, console: Console | None = None) -> int:
    """Run one CLI command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    console = console or Console()

    if args.command in ("enqueue", "import-ledger"):
        database_url = get_optional_env("KEEPER_DATABASE_URL", DEFAULT_DATABASE_URL)
        storage = await Storage.open(database_url)
        try:
            if args.command == "enqueue":
                operation = await storage.queue.enqueue(
                    args.kind, args.validator, args.amount, args.era
                )
                console.print(
                    f"[green]✓ Queued {operation.kind} #{operation.id}[/green] "
                    f"({motes_to_cspr(operation.amount)} CSPR)"
                )
            else:
                inserted = await storage.ledger.import_legacy_records(args.path)
                console.print(f"[green]✓ Imported {inserted} record(s)[/green]")
            return 0
        finally:
            await storage.close()

    keeper = await build_keeper(KeeperConfig.from_env())
    try:
        if args.command == "run":
            await keeper.run()
            return 0
        if args.command == "trigger":
            outcome = await keeper.trigger(args.task)
            color = "green" if outcome is TickOutcome.COMPLETED else "red"
            console.print(f"[{color}]{args.task}: {outcome}[/{color}]")
            return 0 if outcome is TickOutcome.COMPLETED else 1
        await show_status(keeper, console)
        return 0
    finally:
        await keeper.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stayer-keeper",
        description="Keeper bot for the Stayer liquid staking pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the scheduler
  stayer-keeper run

  # Run a single task now
  stayer-keeper trigger process-delegations

  # Queue a delegation of 500 CSPR
  stayer-keeper enqueue delegate --validator 01ab... --amount 500000000000 --era 1200
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("run", help="Start all scheduled tasks")

    trigger = subparsers.add_parser("trigger", help="Run one task once")
    trigger.add_argument("task", choices=TASK_NAMES, help="Task to run")

    subparsers.add_parser("status", help="Show ledger and queue status")

    enqueue = subparsers.add_parser("enqueue", help="Queue a pool operation")
    enqueue.add_argument(
        "kind", choices=[kind.value for kind in OperationKind], help="Operation kind"
    )
    enqueue.add_argument("--validator", required=True, help="Validator public key (hex)")
    enqueue.add_argument("--amount", required=True, help="Amount in motes")
    enqueue.add_argument("--era", required=True, type=int, help="Era of the request")

    import_ledger = subparsers.add_parser(
        "import-ledger", help="Import a legacy unbonding-records.json file"
    )
    import_ledger.add_argument("path", help="Path to the JSON file")

    return parser


def cli(argv: list[str] | None = None) -> None:
    """Command-line interface entry point."""
    args = build_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, exiting...")
        exit_code = 130
    except (ValueError, FileNotFoundError) as e:
        print(f"\n❌ Configuration error: {e}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
