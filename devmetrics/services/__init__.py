"""Services for the application."""

from .activity_scheduler import ActivityScheduler, SchedulerConfig, SchedulerState
from .change_record_store import ChangeRecordStore
from .project_registry import ProjectRegistry
from .snapshot_repository_factory import (
    create_snapshot_repository,
    mirror_path_for,
    repository_factory_from_settings,
)
from .tracking_coordinator import TrackingCoordinator

__all__ = [
    "ActivityScheduler",
    "ChangeRecordStore",
    "ProjectRegistry",
    "SchedulerConfig",
    "SchedulerState",
    "TrackingCoordinator",
    "create_snapshot_repository",
    "mirror_path_for",
    "repository_factory_from_settings",
]
