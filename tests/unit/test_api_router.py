"""Unit tests for the HTTP surface with a mocked coordinator."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from devmetrics.dependencies import get_tracking_coordinator
from devmetrics.exceptions import (
    DuplicateProjectName,
    EmptySource,
    ProjectNotFound,
    ValidationError,
)
from devmetrics.main import app
from devmetrics.schemas import MetricSummary, Project
from devmetrics.services import SchedulerConfig, TrackingCoordinator


def make_project(name: str = "alpha", is_tracking: bool = False) -> Project:
    return Project(
        id="p1",
        name=name,
        folder_path=f"/work/{name}",
        is_tracking=is_tracking,
        last_saved_time=datetime(2026, 6, 10, tzinfo=timezone.utc),
    )


class TestProjectsRouter:
    """Test cases for /api/projects endpoints."""

    def setup_method(self):
        self.mock_coordinator = Mock(spec=TrackingCoordinator)
        app.dependency_overrides[get_tracking_coordinator] = (
            lambda: self.mock_coordinator
        )
        self.client = TestClient(app)

    def teardown_method(self):
        self.client.close()
        app.dependency_overrides.pop(get_tracking_coordinator, None)

    def test_health_check(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_list_projects(self):
        self.mock_coordinator.list_projects = AsyncMock(
            return_value=[make_project("alpha"), make_project("bravo")]
        )

        response = self.client.get("/api/projects")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["alpha", "bravo"]

    def test_create_project(self):
        self.mock_coordinator.create_project = AsyncMock(
            return_value=make_project(is_tracking=True)
        )

        response = self.client.post(
            "/api/projects",
            json={"name": "alpha", "folder_path": "/work/alpha", "start_tracking": True},
        )

        assert response.status_code == 201
        assert response.json()["is_tracking"] is True
        self.mock_coordinator.create_project.assert_awaited_once_with(
            "alpha", "/work/alpha", start_tracking=True
        )

    def test_create_duplicate_project(self):
        self.mock_coordinator.create_project = AsyncMock(
            side_effect=DuplicateProjectName("alpha")
        )

        response = self.client.post(
            "/api/projects", json={"name": "alpha", "folder_path": "/work/alpha"}
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_NAME"

    def test_get_unknown_project(self):
        self.mock_coordinator.get_project = AsyncMock(
            side_effect=ProjectNotFound("ghost")
        )

        response = self.client.get("/api/projects/ghost")

        assert response.status_code == 404

    def test_update_project_renames(self):
        self.mock_coordinator.update_project = AsyncMock(
            return_value=make_project("omega")
        )

        response = self.client.patch("/api/projects/alpha", json={"name": "omega"})

        assert response.status_code == 200
        assert response.json()["name"] == "omega"
        self.mock_coordinator.update_project.assert_awaited_once_with(
            "alpha", new_name="omega", folder_path=None
        )

    def test_update_project_conflict(self):
        self.mock_coordinator.update_project = AsyncMock(
            side_effect=DuplicateProjectName("bravo")
        )

        response = self.client.patch(
            "/api/projects/alpha",
            json={"name": "bravo", "folder_path": "/work/elsewhere"},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_NAME"
        self.mock_coordinator.update_project.assert_awaited_once_with(
            "alpha", new_name="bravo", folder_path="/work/elsewhere"
        )

    def test_delete_project(self):
        self.mock_coordinator.delete_project = AsyncMock(return_value=3)

        response = self.client.delete("/api/projects/alpha")

        assert response.status_code == 200
        assert response.json() == {"deleted": "alpha", "records_removed": 3}

    def test_start_tracking_snapshot_failure(self):
        self.mock_coordinator.start_tracking = AsyncMock(
            side_effect=EmptySource("/work/alpha")
        )

        response = self.client.post("/api/projects/alpha/tracking/start")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "EMPTY_SOURCE"

    def test_capture_without_tracking(self):
        self.mock_coordinator.record_now = AsyncMock(
            side_effect=ValidationError("No active tracking for project alpha")
        )

        response = self.client.post("/api/projects/alpha/capture")

        assert response.status_code == 400

    def test_capture_records(self):
        self.mock_coordinator.record_now = AsyncMock(return_value="record-1")

        response = self.client.post("/api/projects/alpha/capture")

        assert response.json() == {"record_id": "record-1", "recorded": True}

    def test_list_records_passes_filters(self):
        self.mock_coordinator.load_records = AsyncMock(return_value=[])

        response = self.client.get(
            "/api/projects/alpha/records",
            params={"start_date": "2026-06-01T00:00:00Z", "limit": 5},
        )

        assert response.status_code == 200
        args = self.mock_coordinator.load_records.await_args.args
        assert args[0] == "alpha"
        assert args[1] == datetime(2026, 6, 1, tzinfo=timezone.utc)
        assert args[2] is None
        assert args[3] == 5

    def test_summary(self):
        self.mock_coordinator.summarize = AsyncMock(
            return_value=MetricSummary(
                project_name="alpha",
                lines_added=5,
                lines_removed=2,
                files_modified=1,
                date_range="Today",
            )
        )

        response = self.client.get(
            "/api/projects/alpha/summary", params={"timeframe": "today"}
        )

        assert response.status_code == 200
        assert response.json()["lines_added"] == 5
        self.mock_coordinator.summarize.assert_awaited_once_with("alpha", "today")

    @pytest.mark.parametrize("timeframe", ["decade", "yesterday"])
    def test_summary_rejects_unknown_timeframe(self, timeframe):
        response = self.client.get(
            "/api/projects/alpha/summary", params={"timeframe": timeframe}
        )

        assert response.status_code == 422

    def test_clear_records(self):
        self.mock_coordinator.clear_metrics = AsyncMock(return_value=4)

        response = self.client.delete("/api/projects/alpha/records")

        assert response.json() == {"project_name": "alpha", "records_removed": 4}

    def test_update_intervals(self):
        self.mock_coordinator.reconfigure = AsyncMock(
            return_value=SchedulerConfig(
                analysis_interval_seconds=300, poll_interval_seconds=60
            )
        )

        response = self.client.put(
            "/api/projects/intervals", json={"analysis_interval_minutes": 5}
        )

        assert response.status_code == 200
        assert response.json()["analysis_interval_seconds"] == 300
        self.mock_coordinator.reconfigure.assert_awaited_once_with(
            analysis_interval_seconds=300, poll_interval_seconds=None
        )
