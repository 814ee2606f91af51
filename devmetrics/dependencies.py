from typing import Optional

from fastapi import Depends

from devmetrics.config.settings import Settings, get_settings
from devmetrics.db import Database
from devmetrics.services import (
    ChangeRecordStore,
    ProjectRegistry,
    SchedulerConfig,
    TrackingCoordinator,
    repository_factory_from_settings,
)

# Global tracking coordinator instance
_tracking_coordinator: Optional[TrackingCoordinator] = None


def build_tracking_coordinator(settings: Settings) -> TrackingCoordinator:
    """Wire storage, registry and schedulers from the application settings."""
    database = Database(settings.database_url)
    database.create_schema()
    record_store = ChangeRecordStore(database)
    registry = ProjectRegistry(database, record_store)
    return TrackingCoordinator(
        registry=registry,
        record_store=record_store,
        repository_factory=repository_factory_from_settings(settings),
        config=SchedulerConfig.from_settings(settings),
    )


def get_tracking_coordinator(
    settings: Settings = Depends(get_settings),
) -> TrackingCoordinator:
    """Get or create the tracking coordinator instance."""
    global _tracking_coordinator
    if _tracking_coordinator is None:
        _tracking_coordinator = build_tracking_coordinator(settings)
    return _tracking_coordinator


async def close_tracking_coordinator() -> None:
    """Stop all schedulers and release the database."""
    global _tracking_coordinator
    coordinator, _tracking_coordinator = _tracking_coordinator, None
    if coordinator is None:
        return
    await coordinator.shutdown()
    coordinator.registry.database.dispose()
