from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from devmetrics.dependencies import get_tracking_coordinator
from devmetrics.exceptions import (
    DevMetricsError,
    DuplicateFolderPath,
    DuplicateProjectName,
    ProjectNotFound,
    SnapshotError,
    ValidationError,
)
from devmetrics.schemas import (
    ChangeRecord,
    MetricSummary,
    Project,
    ProjectCreate,
    ProjectStatus,
    ProjectUpdate,
    Timeframe,
)
from devmetrics.services import TrackingCoordinator

router = APIRouter(prefix="/projects", tags=["projects"])


class CaptureResult(BaseModel):
    record_id: Optional[str] = None
    recorded: bool = False


class IntervalUpdate(BaseModel):
    analysis_interval_minutes: Optional[float] = None
    poll_interval_seconds: Optional[float] = None


def _http_error(error: DevMetricsError) -> HTTPException:
    if isinstance(error, ProjectNotFound):
        status_code = 404
    elif isinstance(error, (DuplicateProjectName, DuplicateFolderPath)):
        status_code = 409
    elif isinstance(error, (ValidationError, SnapshotError)):
        status_code = 400
    else:
        status_code = 500
    return HTTPException(
        status_code=status_code, detail={"code": error.code, "message": str(error)}
    )


@router.get("", response_model=List[Project])
async def list_projects(
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    """All projects, ordered by name."""
    try:
        return await coordinator.list_projects()
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.post("", response_model=Project, status_code=201)
async def create_project(
    request: ProjectCreate,
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    try:
        return await coordinator.create_project(
            request.name, request.folder_path, start_tracking=request.start_tracking
        )
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.get("/status", response_model=List[ProjectStatus])
async def get_status(
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    """Projects with the live state of their schedulers."""
    try:
        return await coordinator.get_status()
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.put("/intervals", response_model=Dict[str, Any])
async def update_intervals(
    request: IntervalUpdate,
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    """Change the snapshot cadence of every running scheduler."""
    analysis_seconds = None
    if request.analysis_interval_minutes is not None:
        analysis_seconds = request.analysis_interval_minutes * 60
    config = await coordinator.reconfigure(
        analysis_interval_seconds=analysis_seconds,
        poll_interval_seconds=request.poll_interval_seconds,
    )
    return {
        "analysis_interval_seconds": config.analysis_interval_seconds,
        "poll_interval_seconds": config.poll_interval_seconds,
    }


@router.get("/{name}", response_model=Project)
async def get_project(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    try:
        return await coordinator.get_project(name)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.patch("/{name}", response_model=Project)
async def update_project(
    name: str,
    request: ProjectUpdate,
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    """Rename and/or move a project; a rejected update changes nothing."""
    try:
        return await coordinator.update_project(
            name, new_name=request.name, folder_path=request.folder_path
        )
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.delete("/{name}", response_model=Dict[str, Any])
async def delete_project(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    try:
        removed = await coordinator.delete_project(name)
        return {"deleted": name, "records_removed": removed}
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.post("/{name}/tracking/start", response_model=Project)
async def start_tracking(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    try:
        return await coordinator.start_tracking(name)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.post("/{name}/tracking/stop", response_model=Project)
async def stop_tracking(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    try:
        return await coordinator.stop_tracking(name)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.post("/{name}/capture", response_model=CaptureResult)
async def capture_now(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    """Record metrics now instead of waiting for the next interval."""
    try:
        record_id = await coordinator.record_now(name)
        return CaptureResult(record_id=record_id, recorded=record_id is not None)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.get("/{name}/records", response_model=List[ChangeRecord])
async def list_records(
    name: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    try:
        return await coordinator.load_records(name, start_date, end_date, limit)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.get("/{name}/summary", response_model=MetricSummary)
async def get_summary(
    name: str,
    timeframe: Timeframe = "all",
    coordinator: TrackingCoordinator = Depends(get_tracking_coordinator),
):
    try:
        return await coordinator.summarize(name, timeframe)
    except DevMetricsError as e:
        raise _http_error(e) from e


@router.delete("/{name}/records", response_model=Dict[str, Any])
async def clear_records(
    name: str, coordinator: TrackingCoordinator = Depends(get_tracking_coordinator)
):
    try:
        removed = await coordinator.clear_metrics(name)
        return {"project_name": name, "records_removed": removed}
    except DevMetricsError as e:
        raise _http_error(e) from e
