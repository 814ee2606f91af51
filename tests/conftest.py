from typing import Callable, Generator, List, Optional

import pytest

from devmetrics.db import Database
from devmetrics.schemas import ChangeSet, DiffSummary, FileChange, FileChangeType


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory SQLite database with the schema created."""
    db = Database("sqlite://")
    db.create_schema()
    yield db
    db.dispose()


def build_change_set(
    insertions: int = 5,
    deletions: int = 2,
    paths: Optional[List[str]] = None,
    from_revision: Optional[str] = "a" * 40,
    to_revision: Optional[str] = "b" * 40,
) -> ChangeSet:
    """ChangeSet whose per-file counts add up to the given totals."""
    paths = paths or ["src/app.py"]
    changes = []
    for index, path in enumerate(paths):
        added = insertions if index == 0 else 0
        deleted = deletions if index == 0 else 0
        changes.append(
            FileChange(
                file_path=path,
                change_type=FileChangeType.CHANGED,
                added_lines_count=added,
                deleted_lines_count=deleted,
                unchanged_lines_count=3,
                total_lines_count=added + 3,
                original_lines_count=deleted + 3,
                change_ratio=FileChange.compute_ratio(added, deleted, 3),
            )
        )
    return ChangeSet(
        summary=DiffSummary(
            files_changed=len(paths), insertions=insertions, deletions=deletions
        ),
        changes=changes,
        from_revision=from_revision,
        to_revision=to_revision,
    )


@pytest.fixture
def change_set_factory() -> Callable[..., ChangeSet]:
    return build_change_set
