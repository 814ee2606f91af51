"""Factory for creating SnapshotRepository instances for tracked folders."""

import hashlib
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..config.settings import Settings
from ..models import SnapshotRepository
from ..protocols.snapshot_repository_protocol import SnapshotRepositoryProtocol

RepositoryFactory = Callable[[str], SnapshotRepositoryProtocol]


def mirror_path_for(mirrors_dir: Path, folder_path: str) -> Path:
    """Mirror location keyed by a hash of the source folder path."""
    digest = hashlib.md5(folder_path.encode("utf-8")).hexdigest()
    return Path(mirrors_dir) / digest


def create_snapshot_repository(
    folder_path: str,
    mirrors_dir: Path,
    excluded_paths: Optional[Iterable[str]] = None,
) -> SnapshotRepositoryProtocol:
    """
    Create a SnapshotRepository for a tracked folder.

    Args:
        folder_path: Folder whose edits are measured
        mirrors_dir: Directory holding one private mirror per folder
        excluded_paths: Glob patterns never copied into the mirror

    Returns:
        SnapshotRepositoryProtocol implementation
    """
    return SnapshotRepository(
        source_path=folder_path,
        mirror_path=str(mirror_path_for(mirrors_dir, folder_path)),
        excluded_paths=excluded_paths,
    )


def repository_factory_from_settings(settings: Settings) -> RepositoryFactory:
    """Bind the storage layout and exclusions of the application settings."""

    def factory(folder_path: str) -> SnapshotRepositoryProtocol:
        return create_snapshot_repository(
            folder_path,
            mirrors_dir=settings.mirrors_dir,
            excluded_paths=settings.EXCLUDED_PATHS,
        )

    return factory
