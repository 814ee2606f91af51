"""Coordinates project lifecycle with the per-project activity schedulers."""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from ..exceptions import DevMetricsError, ValidationError
from ..schemas import ChangeRecord, MetricSummary, Project, ProjectStatus
from .activity_scheduler import ActivityScheduler, SchedulerConfig, SchedulerState
from .change_record_store import ChangeRecordStore
from .project_registry import ProjectRegistry, normalize_folder
from .snapshot_repository_factory import RepositoryFactory

logger = logging.getLogger(__name__)


class TrackingCoordinator:
    """Owns one ActivityScheduler per tracked project."""

    def __init__(
        self,
        registry: ProjectRegistry,
        record_store: ChangeRecordStore,
        repository_factory: RepositoryFactory,
        config: Optional[SchedulerConfig] = None,
    ):
        self.registry = registry
        self.record_store = record_store
        self.repository_factory = repository_factory
        self.config = config or SchedulerConfig()
        self.schedulers: Dict[str, ActivityScheduler] = {}
        self._lifecycle_lock = asyncio.Lock()

    # --- Projects ---

    async def list_projects(self) -> List[Project]:
        return await asyncio.to_thread(self.registry.get_all)

    async def get_project(self, name: str) -> Project:
        return await asyncio.to_thread(self.registry.require, name)

    async def create_project(
        self, name: str, folder_path: str, start_tracking: bool = False
    ) -> Project:
        async with self._lifecycle_lock:
            project = await asyncio.to_thread(self.registry.create, name, folder_path)
        if start_tracking:
            project = await self.start_tracking(project.name)
        return project

    async def update_project(
        self,
        name: str,
        new_name: Optional[str] = None,
        folder_path: Optional[str] = None,
    ) -> Project:
        """
        Rename and/or move a project.

        Every change is validated before tracking is touched, then applied in
        one transaction, so a rejected update leaves the project as it was.
        Moving the folder stops tracking first; a rename alone waits for any
        in-flight capture to finish under the old name.
        """
        async with self._lifecycle_lock:
            project = await asyncio.to_thread(
                self.registry.check_update, name, new_name, folder_path
            )
            moves = (
                folder_path is not None
                and normalize_folder(folder_path) != project.folder_path
            )
            if moves:
                await self._stop(name)
                return await asyncio.to_thread(
                    self.registry.update, name, new_name, folder_path, False
                )

            scheduler = self.schedulers.get(name)
            if scheduler is None:
                return await asyncio.to_thread(self.registry.update, name, new_name)

            project = await scheduler.run_exclusive(
                self.registry.update, name, new_name
            )
            if project.name != name:
                scheduler.rename(project.name)
                self.schedulers[project.name] = self.schedulers.pop(name)
            return project

    async def rename_project(self, old_name: str, new_name: str) -> Project:
        return await self.update_project(old_name, new_name=new_name)

    async def change_project_folder(self, name: str, folder_path: str) -> Project:
        return await self.update_project(name, folder_path=folder_path)

    async def delete_project(self, name: str) -> int:
        """Stop tracking, then remove the project with all its records."""
        async with self._lifecycle_lock:
            await self._stop(name)
            return await asyncio.to_thread(self.registry.delete, name)

    # --- Tracking ---

    async def start_tracking(self, name: str) -> Project:
        """Begin tracking. The flag is only set once the mirror is initialized."""
        async with self._lifecycle_lock:
            project = await asyncio.to_thread(self.registry.require, name)
            scheduler = self.schedulers.get(name)
            if scheduler is None:
                scheduler = ActivityScheduler(
                    project_name=project.name,
                    repository=self.repository_factory(project.folder_path),
                    record_store=self.record_store,
                    registry=self.registry,
                    config=self.config,
                )

            if not scheduler.is_running:
                await scheduler.start()
                self.schedulers[name] = scheduler

            if project.is_tracking:
                return project
            return await asyncio.to_thread(self.registry.set_tracking, name, True)

    async def stop_tracking(self, name: str) -> Project:
        async with self._lifecycle_lock:
            await asyncio.to_thread(self.registry.require, name)
            await self._stop(name)
            return await asyncio.to_thread(self.registry.set_tracking, name, False)

    async def record_now(self, name: str) -> Optional[str]:
        """Force a capture outside the timer; returns the new record id, if any."""
        scheduler = self.schedulers.get(name)
        if scheduler is None or not scheduler.is_running:
            await asyncio.to_thread(self.registry.require, name)
            raise ValidationError(f"No active tracking for project {name}")
        return await scheduler.capture_now()

    async def reconfigure(
        self,
        analysis_interval_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
    ) -> SchedulerConfig:
        """Apply a new cadence to every running scheduler."""
        changes = {}
        if analysis_interval_seconds is not None and analysis_interval_seconds > 0:
            changes["analysis_interval_seconds"] = analysis_interval_seconds
        if poll_interval_seconds is not None and poll_interval_seconds > 0:
            changes["poll_interval_seconds"] = poll_interval_seconds
        self.config = replace(self.config, **changes)

        for scheduler in list(self.schedulers.values()):
            await scheduler.reconfigure(self.config)
        logger.info(
            "Tracking every %ss, polling every %ss",
            self.config.analysis_interval_seconds,
            self.config.poll_interval_seconds,
        )
        return self.config

    async def resume_tracked_projects(self) -> List[str]:
        """Restart schedulers for projects persisted as tracking."""
        resumed = []
        for project in await asyncio.to_thread(self.registry.get_tracked):
            try:
                await self.start_tracking(project.name)
                resumed.append(project.name)
            except DevMetricsError as e:
                logger.error("Could not resume tracking %s: %s", project.name, e)
                await asyncio.to_thread(self.registry.set_tracking, project.name, False)
        return resumed

    async def shutdown(self) -> None:
        """Stop every scheduler; persisted tracking flags are left as they are."""
        async with self._lifecycle_lock:
            for name in list(self.schedulers):
                await self._stop(name)

    # --- Metrics ---

    async def load_records(
        self,
        name: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ChangeRecord]:
        await asyncio.to_thread(self.registry.require, name)
        return await asyncio.to_thread(
            self.record_store.load, name, start_date, end_date, limit
        )

    async def summarize(
        self, name: str, timeframe: str = "all"
    ) -> Optional[MetricSummary]:
        summary = await asyncio.to_thread(self.record_store.summarize, name, timeframe)
        if summary is None:
            await asyncio.to_thread(self.registry.require, name)
        return summary

    async def clear_metrics(self, name: str) -> int:
        scheduler = self.schedulers.get(name)
        if scheduler is not None:
            return await scheduler.run_exclusive(self.record_store.clear, name)
        return await asyncio.to_thread(self.record_store.clear, name)

    async def get_status(self) -> List[ProjectStatus]:
        statuses = []
        for project in await asyncio.to_thread(self.registry.get_all):
            scheduler = self.schedulers.get(project.name)
            statuses.append(
                ProjectStatus(
                    project=project,
                    scheduler_state=(
                        scheduler.state.value
                        if scheduler
                        else SchedulerState.STOPPED.value
                    ),
                    last_capture_time=scheduler.last_capture_time if scheduler else None,
                    last_error=scheduler.last_error if scheduler else None,
                )
            )
        return statuses

    async def _stop(self, name: str) -> None:
        scheduler = self.schedulers.pop(name, None)
        if scheduler is not None:
            await scheduler.stop()
