"""Structured change model produced by diff classification."""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class LineChangeType(str, Enum):
    """Kind of a single diff line."""

    ADDED = "Added"
    DELETED = "Deleted"
    UNCHANGED = "Unchanged"
    MESSAGE = "Message"  # Diff metadata such as "\ No newline at end of file"


class FileChangeType(str, Enum):
    """Kind of a per-file diff segment."""

    ADDED = "Added"
    DELETED = "Deleted"
    CHANGED = "Changed"
    RENAMED = "Renamed"


class LineChange(BaseModel):
    change_type: LineChangeType
    content: str
    line_number: Optional[int] = None


class ChunkRange(BaseModel):
    """One side of a hunk header, e.g. ``-12,4``."""

    start: int
    line_count: int


class FileChange(BaseModel):
    """Classified changes of one file between two revisions."""

    file_path: str
    old_file_path: Optional[str] = None  # Set only for renamed files
    change_type: FileChangeType
    line_changes: List[LineChange] = Field(default_factory=list)
    added_lines_count: int = 0
    deleted_lines_count: int = 0
    unchanged_lines_count: int = 0
    total_lines_count: int = 0
    original_lines_count: int = 0
    change_ratio: float = 0.0
    is_binary: bool = False
    chunk_ranges: List[ChunkRange] = Field(default_factory=list)

    @staticmethod
    def compute_ratio(added: int, deleted: int, unchanged: int) -> float:
        largest = max(added + unchanged, deleted + unchanged)
        if largest == 0:
            return 0.0
        return (added + deleted) / largest

    @model_validator(mode="after")
    def _check_invariants(self) -> "FileChange":
        if (self.change_type == FileChangeType.RENAMED) != (
            self.old_file_path is not None
        ):
            raise ValueError("old_file_path must be set if and only if renamed")
        if self.total_lines_count != self.added_lines_count + self.unchanged_lines_count:
            raise ValueError("total_lines_count must equal added + unchanged")
        if (
            self.original_lines_count
            != self.deleted_lines_count + self.unchanged_lines_count
        ):
            raise ValueError("original_lines_count must equal deleted + unchanged")
        expected = self.compute_ratio(
            self.added_lines_count,
            self.deleted_lines_count,
            self.unchanged_lines_count,
        )
        if self.change_ratio != expected:
            raise ValueError("change_ratio does not match line counts")
        return self


class DiffSummary(BaseModel):
    """Machine summary of a two-revision diff (``git diff --numstat``)."""

    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0


class ChangeSet(BaseModel):
    """Result of classifying one diff between two mirror revisions."""

    summary: DiffSummary
    changes: List[FileChange] = Field(default_factory=list)
    from_revision: Optional[str] = None
    to_revision: Optional[str] = None

    def describe(self) -> str:
        return (
            f"Changed {self.summary.files_changed} files with "
            f"{self.summary.insertions} insertions and "
            f"{self.summary.deletions} deletions"
        )


class ChangeRecord(BaseModel):
    """A persisted ChangeSet. Immutable once written."""

    id: str
    project_name: str
    timestamp: datetime
    change_set: ChangeSet


Timeframe = Literal["today", "week", "month", "all"]

TIMEFRAME_LABELS = {
    "today": "Today",
    "week": "This Week",
    "month": "This Month",
    "all": "All Time",
}


class MetricSummary(BaseModel):
    project_name: str
    lines_added: int = 0
    lines_removed: int = 0
    files_modified: int = 0
    date_range: str = TIMEFRAME_LABELS["all"]

