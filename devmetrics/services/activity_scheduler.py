"""Per-project timer loop that turns folder edits into change records."""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from ..config.settings import Settings
from ..exceptions import DevMetricsError
from ..protocols.snapshot_repository_protocol import SnapshotRepositoryProtocol
from .change_record_store import ChangeRecordStore, utc_now
from .project_registry import ProjectRegistry

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


@dataclass(frozen=True)
class SchedulerConfig:
    """Snapshot cadence. Polling is decoupled from the analysis interval."""

    analysis_interval_seconds: float = 15 * 60
    poll_interval_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulerConfig":
        return cls(
            analysis_interval_seconds=settings.ANALYSIS_INTERVAL_MINUTES * 60,
            poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
        )


class ActivityScheduler:
    """
    Drives one project's SnapshotRepository on a fixed poll interval.

    Every poll re-reads the project's tracking flag and only snapshots once
    the analysis interval has elapsed since the session start, so snapshot
    drift stays within one poll interval. All snapshot/diff cycles, timed or
    forced, run under one lock per project.
    """

    def __init__(
        self,
        project_name: str,
        repository: SnapshotRepositoryProtocol,
        record_store: ChangeRecordStore,
        registry: ProjectRegistry,
        config: Optional[SchedulerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.project_name = project_name
        self.repository = repository
        self.record_store = record_store
        self.registry = registry
        self.config = config or SchedulerConfig()
        self.clock = clock

        self.state = SchedulerState.STOPPED
        self.session_start: Optional[float] = None
        self.last_capture_time: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._tick: Optional[asyncio.Future] = None

    @property
    def is_running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    async def start(self) -> None:
        """Initialize the mirror and arm the periodic check."""
        if self.state != SchedulerState.STOPPED:
            return

        self.state = SchedulerState.STARTING
        try:
            async with self._lock:
                await asyncio.to_thread(self.repository.initialize_repository)
        except DevMetricsError as e:
            self.state = SchedulerState.STOPPED
            self.last_error = str(e)
            logger.error("Failed to start tracking %s: %s", self.project_name, e)
            raise

        self.session_start = self.clock()
        self._arm()
        self.state = SchedulerState.RUNNING
        logger.info("Started tracking %s", self.project_name)

    async def stop(self) -> Optional[str]:
        """Cancel the timer, then run one final capture."""
        if self.state == SchedulerState.STOPPED:
            return None

        await self._disarm()
        try:
            return await self.capture_now()
        except DevMetricsError as e:
            self.last_error = str(e)
            logger.warning("Final capture for %s failed: %s", self.project_name, e)
            return None
        finally:
            self.state = SchedulerState.STOPPED
            logger.info("Stopped tracking %s", self.project_name)

    async def restart(self) -> None:
        """Reset the session start and re-arm without re-initializing."""
        if self.state != SchedulerState.RUNNING:
            return
        await self._disarm()
        if self.state != SchedulerState.RUNNING or self._task is not None:
            return
        self.session_start = self.clock()
        self._arm()
        logger.info("Restarted tracking %s", self.project_name)

    async def reconfigure(self, config: SchedulerConfig) -> None:
        self.config = config
        await self.restart()

    def rename(self, new_name: str) -> None:
        self.project_name = new_name

    async def capture_now(self) -> Optional[str]:
        """Run one snapshot/diff cycle; returns the saved record id, if any."""
        async with self._lock:
            change_set = await asyncio.to_thread(self.repository.capture_changes)
            if change_set is None or change_set.summary.files_changed == 0:
                return None
            try:
                record_id = await asyncio.to_thread(
                    self.record_store.save, self.project_name, change_set
                )
            except DevMetricsError:
                # Unsaved delta is diffed again by the next capture.
                self.repository.rewind_baseline(change_set.from_revision)
                raise
            self.last_capture_time = utc_now()
            self.last_error = None
            return record_id

    async def run_exclusive(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking call while no capture is in flight for this project."""
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    async def tick(self) -> Optional[str]:
        """One poll of the periodic check."""
        try:
            tracking = await asyncio.to_thread(
                self.registry.is_tracking, self.project_name
            )
        except DevMetricsError as e:
            logger.warning("Could not read tracking flag of %s: %s", self.project_name, e)
            return None
        if not tracking:
            logger.debug("%s is not tracked; skipping tick", self.project_name)
            return None

        now = self.clock()
        if now - self.session_start < self.config.analysis_interval_seconds:
            return None

        try:
            return await self.capture_now()
        except DevMetricsError as e:
            self.last_error = str(e)
            logger.warning("Scheduled capture for %s failed: %s", self.project_name, e)
            return None
        finally:
            self.session_start = now

    def _arm(self) -> None:
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"devmetrics-poll-{self.project_name}"
        )

    async def _disarm(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        tick, self._tick = self._tick, None
        if tick is not None and not tick.done():
            # An in-flight tick finishes before the final capture starts.
            await asyncio.wait([tick])

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval_seconds)
            try:
                self._tick = asyncio.ensure_future(self.tick())
                # Shielded: cancelling the timer never aborts a capture midway.
                await asyncio.shield(self._tick)
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error in tick for %s", self.project_name)
