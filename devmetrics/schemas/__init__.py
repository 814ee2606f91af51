"""Schemas for the application."""

from .changes import (
    TIMEFRAME_LABELS,
    ChangeRecord,
    ChangeSet,
    ChunkRange,
    DiffSummary,
    FileChange,
    FileChangeType,
    LineChange,
    LineChangeType,
    MetricSummary,
    Timeframe,
)
from .project import Project, ProjectCreate, ProjectStatus, ProjectUpdate

__all__ = [
    "TIMEFRAME_LABELS",
    "ChangeRecord",
    "ChangeSet",
    "ChunkRange",
    "DiffSummary",
    "FileChange",
    "FileChangeType",
    "LineChange",
    "LineChangeType",
    "MetricSummary",
    "Project",
    "ProjectCreate",
    "ProjectStatus",
    "ProjectUpdate",
    "Timeframe",
]
