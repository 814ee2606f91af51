import shutil
from pathlib import Path
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio

from devmetrics.config.settings import Settings
from devmetrics.dependencies import build_tracking_coordinator
from devmetrics.services import TrackingCoordinator

ORIGINAL_APP = [f"line{n}" for n in range(1, 11)]


@pytest.fixture(autouse=True)
def require_git():
    if shutil.which("git") is None:
        pytest.skip("git executable not available")


def write_lines(path: Path, lines: List[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture
def project_folder(tmp_path: Path) -> Path:
    """A folder with three files, ready to be tracked."""
    folder = tmp_path / "work" / "alpha"
    write_lines(folder / "app.py", ORIGINAL_APP)
    write_lines(folder / "README.md", ["# Alpha", "", "Sample project."])
    write_lines(folder / "notes" / "todo.txt", ["buy milk", "write tests"])
    return folder


@pytest.fixture
def edited_app() -> List[str]:
    """app.py with two lines replaced and three appended: +5 / -2."""
    return (
        ORIGINAL_APP[:2]
        + ["changed3", "changed4"]
        + ORIGINAL_APP[4:]
        + ["new1", "new2", "new3"]
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        STORAGE_PATH=str(tmp_path / "storage"),
        ANALYSIS_INTERVAL_MINUTES=15,
        POLL_INTERVAL_SECONDS=3600,
    )


@pytest_asyncio.fixture
async def coordinator(settings: Settings) -> AsyncGenerator[TrackingCoordinator, None]:
    coordinator = build_tracking_coordinator(settings)
    yield coordinator
    await coordinator.shutdown()
    coordinator.registry.database.dispose()
