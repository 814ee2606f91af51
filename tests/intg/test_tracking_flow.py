"""End-to-end tracking through the coordinator and the HTTP API."""

import asyncio
from pathlib import Path
from typing import List
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import devmetrics.dependencies as dependencies
from devmetrics.dependencies import build_tracking_coordinator
from devmetrics.exceptions import DuplicateProjectName, StorageError
from devmetrics.main import app
from devmetrics.services import SchedulerState


def write_lines(path: Path, lines: List[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")


class TestTrackingFlow:
    """Tracking lifecycle on real mirrors and a SQLite file."""

    @pytest.fixture(autouse=True)
    def setup(self, coordinator, project_folder: Path, edited_app, settings):
        self.coordinator = coordinator
        self.folder = project_folder
        self.edited_app = edited_app
        self.settings = settings

    @pytest.mark.asyncio
    async def test_edit_is_measured(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )

        assert await self.coordinator.record_now("alpha") is None

        write_lines(self.folder / "app.py", self.edited_app)
        record_id = await self.coordinator.record_now("alpha")

        records = await self.coordinator.load_records("alpha")
        assert [r.id for r in records] == [record_id]
        summary = await self.coordinator.summarize("alpha", "today")
        assert (summary.files_modified, summary.lines_added, summary.lines_removed) == (
            1,
            5,
            2,
        )

    @pytest.mark.asyncio
    async def test_rename_keeps_history(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        write_lines(self.folder / "app.py", self.edited_app)
        await self.coordinator.record_now("alpha")

        await self.coordinator.rename_project("alpha", "omega")
        write_lines(self.folder / "extra.txt", ["one more"])
        await self.coordinator.record_now("omega")

        records = await self.coordinator.load_records("omega")
        assert len(records) == 2
        assert {r.project_name for r in records} == {"omega"}
        assert records[0].timestamp < records[1].timestamp

    @pytest.mark.asyncio
    async def test_concurrent_captures_record_once(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        write_lines(self.folder / "app.py", self.edited_app)

        results = await asyncio.gather(
            self.coordinator.record_now("alpha"),
            self.coordinator.record_now("alpha"),
        )

        assert len([r for r in results if r is not None]) == 1
        assert len(await self.coordinator.load_records("alpha")) == 1

    @pytest.mark.asyncio
    async def test_stop_tracking_captures_pending_edits(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        write_lines(self.folder / "app.py", self.edited_app)

        project = await self.coordinator.stop_tracking("alpha")

        assert project.is_tracking is False
        records = await self.coordinator.load_records("alpha")
        assert records[0].change_set.summary.insertions == 5

    @pytest.mark.asyncio
    async def test_delete_project_removes_history(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        write_lines(self.folder / "app.py", self.edited_app)
        await self.coordinator.record_now("alpha")

        removed = await self.coordinator.delete_project("alpha")

        assert removed == 1
        assert await self.coordinator.list_projects() == []

    @pytest.mark.asyncio
    async def test_failed_save_is_recorded_by_next_capture(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        write_lines(self.folder / "app.py", self.edited_app)

        with patch.object(
            self.coordinator.record_store,
            "save",
            side_effect=StorageError("database is locked"),
        ):
            with pytest.raises(StorageError):
                await self.coordinator.record_now("alpha")

        assert await self.coordinator.record_now("alpha") is not None
        records = await self.coordinator.load_records("alpha")
        assert len(records) == 1
        summary = records[0].change_set.summary
        assert (summary.files_changed, summary.insertions, summary.deletions) == (
            1,
            5,
            2,
        )

    @pytest.mark.asyncio
    async def test_rejected_update_keeps_folder_and_tracking(self, tmp_path: Path):
        other = tmp_path / "work" / "bravo"
        write_lines(other / "main.py", ["print(1)"])
        elsewhere = tmp_path / "work" / "elsewhere"
        write_lines(elsewhere / "main.py", ["print(2)"])
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        await self.coordinator.create_project("bravo", str(other))

        with pytest.raises(DuplicateProjectName):
            await self.coordinator.update_project(
                "alpha", new_name="bravo", folder_path=str(elsewhere)
            )

        project = await self.coordinator.get_project("alpha")
        assert project.folder_path == str(self.folder.resolve())
        assert project.is_tracking is True
        assert self.coordinator.schedulers["alpha"].is_running

    @pytest.mark.asyncio
    async def test_resume_after_restart(self):
        await self.coordinator.create_project(
            "alpha", str(self.folder), start_tracking=True
        )
        await self.coordinator.shutdown()

        restarted = build_tracking_coordinator(self.settings)
        try:
            assert await restarted.resume_tracked_projects() == ["alpha"]
            assert restarted.schedulers["alpha"].state == SchedulerState.RUNNING
            assert await restarted.record_now("alpha") is None

            write_lines(self.folder / "app.py", self.edited_app)
            assert await restarted.record_now("alpha") is not None
        finally:
            await restarted.shutdown()
            restarted.registry.database.dispose()


class TestTrackingApi:
    """The same flow driven over HTTP."""

    @pytest.fixture(autouse=True)
    def setup(self, monkeypatch, project_folder: Path, edited_app, settings):
        self.folder = project_folder
        self.edited_app = edited_app
        monkeypatch.setattr(
            dependencies,
            "_tracking_coordinator",
            build_tracking_coordinator(settings),
        )

    def test_track_edit_and_summarize(self):
        with TestClient(app) as client:
            response = client.post(
                "/api/projects",
                json={
                    "name": "alpha",
                    "folder_path": str(self.folder),
                    "start_tracking": True,
                },
            )
            assert response.status_code == 201
            assert response.json()["is_tracking"] is True

            write_lines(self.folder / "app.py", self.edited_app)
            response = client.post("/api/projects/alpha/capture")
            assert response.json()["recorded"] is True

            response = client.get(
                "/api/projects/alpha/summary", params={"timeframe": "today"}
            )
            assert response.json()["lines_added"] == 5
            assert response.json()["lines_removed"] == 2
            assert response.json()["date_range"] == "Today"

            records = client.get("/api/projects/alpha/records").json()
            assert records[0]["change_set"]["changes"][0]["file_path"] == "app.py"

            response = client.delete("/api/projects/alpha/records")
            assert response.json()["records_removed"] == 1

            status = client.get("/api/projects/status").json()
            assert status[0]["scheduler_state"] == "running"

    def test_rejected_patch_changes_nothing(self, tmp_path: Path):
        other = tmp_path / "work" / "bravo"
        write_lines(other / "main.py", ["print(1)"])
        elsewhere = tmp_path / "work" / "elsewhere"
        write_lines(elsewhere / "main.py", ["print(2)"])

        with TestClient(app) as client:
            client.post(
                "/api/projects",
                json={
                    "name": "alpha",
                    "folder_path": str(self.folder),
                    "start_tracking": True,
                },
            )
            client.post(
                "/api/projects", json={"name": "bravo", "folder_path": str(other)}
            )

            response = client.patch(
                "/api/projects/alpha",
                json={"name": "bravo", "folder_path": str(elsewhere)},
            )

            assert response.status_code == 409
            project = client.get("/api/projects/alpha").json()
            assert project["folder_path"] == str(self.folder.resolve())
            assert project["is_tracking"] is True

            response = client.patch(
                "/api/projects/alpha",
                json={"name": "omega", "folder_path": str(elsewhere)},
            )

            assert response.status_code == 200
            assert response.json()["name"] == "omega"
            assert response.json()["folder_path"] == str(elsewhere.resolve())
            assert response.json()["is_tracking"] is False

    def test_missing_folder_cannot_be_tracked(self, tmp_path: Path):
        with TestClient(app) as client:
            client.post(
                "/api/projects",
                json={"name": "ghost", "folder_path": str(tmp_path / "missing")},
            )

            response = client.post("/api/projects/ghost/tracking/start")

            assert response.status_code == 400
            assert response.json()["detail"]["code"] == "SOURCE_NOT_FOUND"
            project = client.get("/api/projects/ghost").json()
            assert project["is_tracking"] is False
