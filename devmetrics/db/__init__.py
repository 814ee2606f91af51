"""Database access for projects and change records."""

from .database import Database
from .tables import (
    Base,
    ChangeRecordRow,
    ChunkRangeRow,
    FileChangeRow,
    LineChangeRow,
    ProjectRow,
)

__all__ = [
    "Base",
    "ChangeRecordRow",
    "ChunkRangeRow",
    "Database",
    "FileChangeRow",
    "LineChangeRow",
    "ProjectRow",
]
