"""Snapshot repository protocol interface."""

from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from ..schemas import ChangeSet


@runtime_checkable
class SnapshotRepositoryProtocol(Protocol):
    """Protocol for the per-project snapshot mirror."""

    @property
    def source_path(self) -> Path:
        """Tracked folder."""
        ...

    @property
    def mirror_path(self) -> Path:
        """Private mirror folder."""
        ...

    @property
    def baseline_revision(self) -> Optional[str]:
        """Revision the next diff starts from."""
        ...

    def initialize_repository(self) -> str:
        """Create or open the mirror. Returns the baseline revision."""
        ...

    def capture_changes(self) -> Optional[ChangeSet]:
        """Snapshot the folder. Returns None when there is nothing new."""
        ...

    def rewind_baseline(self, revision: str) -> None:
        """Make the next capture diff from ``revision`` again."""
        ...
