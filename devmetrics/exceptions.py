"""Error taxonomy shared by the snapshot, storage and scheduling layers."""

from enum import Enum
from typing import Optional


class DevMetricsError(Exception):
    """Base class for all errors raised by devmetrics."""

    code = "DEVMETRICS_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# --- Validation ---


class ValidationError(DevMetricsError):
    """Rejected user operation. Never retried."""

    code = "VALIDATION_FAILED"


class ProjectNotFound(ValidationError):
    code = "NOT_FOUND"

    def __init__(self, project_name: str):
        super().__init__(f"Project not found: {project_name}")
        self.project_name = project_name


class DuplicateProjectName(ValidationError):
    code = "DUPLICATE_NAME"

    def __init__(self, project_name: str):
        super().__init__(f"Project with name {project_name} already exists")
        self.project_name = project_name


class DuplicateFolderPath(ValidationError):
    code = "FOLDER_IN_USE"

    def __init__(self, folder_path: str, owner: Optional[str] = None):
        if owner:
            message = f'Folder is already used by project "{owner}"'
        else:
            message = f"Project with folder path {folder_path} already exists"
        super().__init__(message)
        self.folder_path = folder_path
        self.owner = owner


class EmptyProjectName(ValidationError):
    code = "EMPTY_NAME"

    def __init__(self):
        super().__init__("Project name cannot be empty")


# --- Snapshot mirror ---


class SnapshotPhase(str, Enum):
    """Phase of a mirror operation in which a failure occurred."""

    INIT = "init"
    COPY = "copy"
    COMMIT = "commit"
    DIFF = "diff"


class SnapshotError(DevMetricsError):
    code = "SNAPSHOT_FAILED"


class SourceNotFound(SnapshotError):
    code = "SOURCE_NOT_FOUND"

    def __init__(self, source_path: str):
        super().__init__(f"Source folder does not exist: {source_path}")
        self.source_path = source_path


class SourceNotDirectory(SnapshotError):
    code = "SOURCE_NOT_DIRECTORY"

    def __init__(self, source_path: str):
        super().__init__(f"Source path is not a directory: {source_path}")
        self.source_path = source_path


class EmptySource(SnapshotError):
    code = "EMPTY_SOURCE"

    def __init__(self, source_path: str):
        super().__init__(f"No files in source folder to track: {source_path}")
        self.source_path = source_path


class SnapshotOperationFailed(SnapshotError):
    """A version-control or filesystem step of the mirror failed."""

    def __init__(self, phase: SnapshotPhase, message: str):
        super().__init__(f"Snapshot {phase.value} failed: {message}")
        self.phase = phase
        self.original_message = message


# --- Diff classification ---


class DiffParseFailed(DevMetricsError):
    code = "DIFF_PARSE_FAILED"

    def __init__(self, message: str, line_number: Optional[int] = None):
        if line_number is not None:
            message = f"{message} (diff line {line_number})"
        super().__init__(message)
        self.line_number = line_number


# --- Storage ---


class StorageError(DevMetricsError):
    code = "STORAGE_FAILED"
