"""Independent periodic triggers for keeper tasks.

Each registered task gets its own timer. A timer never awaits its handler:
every tick runs as a separate asyncio task, so a slow task never delays the
others. A tick that finds the previous run of the same task still in flight
is skipped.
"""

import asyncio

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from stayer_keeper.helpers.db_mixins import utc_now
from stayer_keeper.helpers.logging import get_logger


logger = get_logger(__name__)

TaskHandler = Callable[[], Awaitable[object]]


class TickOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskSchedule:
    """A registered task. Created at startup and never mutated."""

    name: str
    interval_ms: int
    handler: TaskHandler


@dataclass
class TaskRunState:
    """Per-task bookkeeping for the skip-if-running guard and status output."""

    running: bool = False
    runs: int = 0
    failures: int = 0
    skips: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_outcome: TickOutcome | None = None
    last_error: str | None = None


class SchedulerCore:
    """Runs registered tasks on fixed intervals until shut down."""

    def __init__(self) -> None:
        self._schedules: dict[str, TaskSchedule] = {}
        self._states: dict[str, TaskRunState] = {}
        self._inflight: set[asyncio.Task[TickOutcome]] = set()
        self._stopping = asyncio.Event()

    @property
    def task_names(self) -> list[str]:
        return list(self._schedules)

    def register_task(
        self, name: str, interval_ms: int, handler: TaskHandler
    ) -> TaskSchedule:
        """Register a repeating task.

        Args:
            name: Unique task name
            interval_ms: Milliseconds between ticks
            handler: Coroutine function run on every tick

        Returns:
            The registered schedule

        Raises:
            ValueError: If the name is taken or the interval is not positive
        """
        if name in self._schedules:
            msg = f"Task already registered: {name}"
            raise ValueError(msg)
        if interval_ms <= 0:
            msg = f"Interval for {name} must be positive, got {interval_ms}"
            raise ValueError(msg)

        schedule = TaskSchedule(name=name, interval_ms=interval_ms, handler=handler)
        self._schedules[name] = schedule
        self._states[name] = TaskRunState()
        logger.info(
            "%s scheduled every %dms (%g minutes)",
            name,
            interval_ms,
            interval_ms / 1000 / 60,
        )
        return schedule

    def get_run_states(self) -> dict[str, TaskRunState]:
        return dict(self._states)

    async def tick(self, name: str) -> TickOutcome:
        """Run one invocation of ``name`` unless it is already running.

        Handler exceptions are logged and never propagate.

        Raises:
            ValueError: If no task with that name is registered
        """
        if name not in self._schedules:
            msg = f"Unknown task: {name}"
            raise ValueError(msg)

        schedule = self._schedules[name]
        state = self._states[name]

        # Check and set happen before the first await
        if state.running:
            state.skips += 1
            logger.warning("Skipping %s: previous run still in progress", name)
            return TickOutcome.SKIPPED
        state.running = True
        state.last_started_at = utc_now()

        logger.info("Executing %s...", name)
        try:
            await schedule.handler()
        except Exception as e:
            state.failures += 1
            state.last_error = str(e)
            state.last_outcome = TickOutcome.FAILED
            logger.exception("Scheduled %s failed: %s", name, e)
        else:
            state.last_error = None
            state.last_outcome = TickOutcome.COMPLETED
        finally:
            state.running = False
            state.runs += 1
            state.last_finished_at = utc_now()

        return state.last_outcome

    async def trigger(self, name: str) -> TickOutcome:
        """Manually run a task through the same guard as its timer."""
        return await self.tick(name)

    def _spawn(self, name: str) -> asyncio.Task[TickOutcome]:
        task = asyncio.create_task(self.tick(name), name=f"tick:{name}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _timer(self, schedule: TaskSchedule) -> None:
        interval = schedule.interval_ms / 1000
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                self._spawn(schedule.name)

    async def run(self) -> None:
        """Start every timer and block until ``shutdown()``.

        In-flight ticks are awaited before returning.
        """
        timers = [
            asyncio.create_task(self._timer(schedule), name=f"timer:{schedule.name}")
            for schedule in self._schedules.values()
        ]
        logger.info("Scheduler started with %d task(s)", len(timers))

        try:
            await self._stopping.wait()
        finally:
            for timer in timers:
                timer.cancel()
            await asyncio.gather(*timers, return_exceptions=True)
            if self._inflight:
                logger.info("Waiting for %d in-flight task(s)...", len(self._inflight))
                await asyncio.gather(*self._inflight, return_exceptions=True)

        logger.info("Scheduler stopped")

    def shutdown(self) -> None:
        """Stop all timers; ``run()`` returns once in-flight ticks finish."""
        logger.info("Shutdown signal received, stopping...")
        self._stopping.set()


__all__ = [
    "SchedulerCore",
    "TaskHandler",
    "TaskRunState",
    "TaskSchedule",
    "TickOutcome",
]
