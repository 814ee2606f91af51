"""Models for the application."""

from .diff_classifier import DiffClassifier, parse_file_changes
from .snapshot_repository import SnapshotRepository

__all__ = ["DiffClassifier", "SnapshotRepository", "parse_file_changes"]
