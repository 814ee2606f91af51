import filecmp
import logging
import os
import shutil
import time
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Optional, Set

from git import Repo
from git.exc import GitCommandError, GitError

from ..exceptions import (
    EmptySource,
    SnapshotOperationFailed,
    SnapshotPhase,
    SourceNotDirectory,
    SourceNotFound,
)
from ..schemas import ChangeSet, DiffSummary
from .diff_classifier import DiffClassifier

logger = logging.getLogger(__name__)

HISTORY_DIR = ".git"
NOTHING_TO_COMMIT = ("nothing to commit", "nothing added to commit")
DIFF_OPTIONS = (
    "--find-renames",
    "--no-color",
    "--no-ext-diff",
    "--src-prefix=a/",
    "--dst-prefix=b/",
)


class SnapshotRepository:
    """Maintains a private, linear git mirror of a tracked folder."""

    AUTHOR_NAME = "devmetrics"
    AUTHOR_EMAIL = "devmetrics@localhost"

    def __init__(
        self,
        source_path: str,
        mirror_path: str,
        excluded_paths: Optional[Iterable[str]] = None,
        classifier: Optional[DiffClassifier] = None,
    ):
        self.source_path = Path(source_path)
        self.mirror_path = Path(mirror_path)
        self.excluded_paths: List[str] = list(excluded_paths or [])
        self.classifier = classifier or DiffClassifier()
        self.repo: Optional[Repo] = None
        self.baseline_revision: Optional[str] = None

    def initialize_repository(self) -> str:
        """Open or create the mirror and record its head as the baseline."""
        self._validate_source()

        try:
            self.mirror_path.mkdir(parents=True, exist_ok=True)
            if (self.mirror_path / HISTORY_DIR).exists():
                self.repo = Repo(self.mirror_path)
            else:
                self.repo = Repo.init(self.mirror_path)
                logger.info("Initialized snapshot mirror at %s", self.mirror_path)
            self._configure_repository()
        except (GitError, OSError) as e:
            self.repo = None
            raise SnapshotOperationFailed(SnapshotPhase.INIT, str(e)) from e

        head = self._head_revision()
        if head is None:
            if self._sync_mirror() == 0:
                raise EmptySource(str(self.source_path))
            self._stage_all()
            self._commit("Initial commit")
            head = self._head_revision(SnapshotPhase.COMMIT)
            if head is None:
                raise SnapshotOperationFailed(
                    SnapshotPhase.COMMIT, "Initial commit was not created"
                )
            logger.info("Created initial snapshot %s of %s", head, self.source_path)

        self.baseline_revision = head
        return head

    def capture_changes(self) -> Optional[ChangeSet]:
        """
        Snapshot the source folder and classify what changed since the baseline.

        Returns None when nothing changed or when the commit only establishes
        the baseline.
        """
        if self.repo is None:
            raise SnapshotOperationFailed(
                SnapshotPhase.INIT, "Repository not initialized"
            )

        self._validate_source()
        self._sync_mirror()
        self._stage_all()
        self._commit(f"Snapshot at {int(time.time() * 1000)}")

        new_revision = self._head_revision(SnapshotPhase.COMMIT)
        if new_revision is None:
            raise SnapshotOperationFailed(SnapshotPhase.COMMIT, "Mirror has no HEAD")

        base_revision = self.baseline_revision
        if base_revision is None or base_revision == new_revision:
            self.baseline_revision = new_revision
            return None

        summary = self._diff_summary(base_revision, new_revision)
        diff_text = self._diff_text(base_revision, new_revision)
        change_set = self.classifier.classify(
            diff_text, summary, from_revision=base_revision, to_revision=new_revision
        )

        self.baseline_revision = new_revision
        logger.info(
            "Captured %s..%s for %s: %s",
            base_revision[:8],
            new_revision[:8],
            self.source_path,
            change_set.describe(),
        )
        return change_set

    def rewind_baseline(self, revision: str) -> None:
        """Diff the next capture from an earlier revision again."""
        self.baseline_revision = revision

    def _validate_source(self) -> None:
        if not self.source_path.exists():
            raise SourceNotFound(str(self.source_path))
        if not self.source_path.is_dir():
            raise SourceNotDirectory(str(self.source_path))

    def _configure_repository(self) -> None:
        """Pin settings so mirror commits never depend on the user's git config."""
        with self.repo.config_writer() as config:
            config.set_value("user", "name", self.AUTHOR_NAME)
            config.set_value("user", "email", self.AUTHOR_EMAIL)
            config.set_value("commit", "gpgsign", "false")
            config.set_value("core", "quotepath", "false")
            config.set_value("core", "autocrlf", "false")

    def _head_revision(
        self, phase: SnapshotPhase = SnapshotPhase.INIT
    ) -> Optional[str]:
        try:
            if not self.repo.head.is_valid():
                return None
            return self.repo.head.commit.hexsha
        except (GitError, ValueError) as e:
            raise SnapshotOperationFailed(phase, str(e)) from e

    def _is_excluded(self, relative_path: str) -> bool:
        parts = relative_path.split("/")
        if HISTORY_DIR in parts:
            return True
        for pattern in self.excluded_paths:
            if fnmatch(relative_path, pattern):
                return True
            if pattern.endswith("/**") and fnmatch(relative_path, pattern[:-3]):
                return True
        return False

    def _sync_mirror(self) -> int:
        """Make the mirror working tree match the source; returns file count."""
        try:
            copied = self._copy_source()
            self._remove_stale(copied)
        except (OSError, shutil.Error) as e:
            raise SnapshotOperationFailed(SnapshotPhase.COPY, str(e)) from e
        return len(copied)

    def _copy_source(self) -> Set[str]:
        copied: Set[str] = set()
        for root, dirnames, filenames in os.walk(self.source_path):
            root_path = Path(root)
            relative_root = root_path.relative_to(self.source_path).as_posix()
            prefix = "" if relative_root == "." else relative_root + "/"

            kept_dirs = []
            for dirname in dirnames:
                relative = prefix + dirname
                if self._is_excluded(relative):
                    continue
                if (root_path / dirname).is_symlink():
                    filenames.append(dirname)
                    continue
                target = self.mirror_path / relative
                if target.is_symlink() or target.is_file():
                    target.unlink()
                kept_dirs.append(dirname)
            dirnames[:] = kept_dirs

            for filename in filenames:
                relative = prefix + filename
                if self._is_excluded(relative):
                    continue
                self._copy_file(root_path / filename, self.mirror_path / relative)
                copied.add(relative)
        return copied

    @staticmethod
    def _copy_file(source: Path, target: Path) -> None:
        if source.is_symlink():
            if target.is_symlink() and os.readlink(target) == os.readlink(source):
                return
            if target.is_symlink() or target.is_file():
                target.unlink()
            elif target.is_dir():
                shutil.rmtree(target)
            target.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(os.readlink(source), target)
            return

        if target.is_symlink():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        elif target.is_file() and filecmp.cmp(source, target, shallow=True):
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)

    def _remove_stale(self, keep: Set[str]) -> None:
        directories: List[Path] = []
        for root, dirnames, filenames in os.walk(self.mirror_path):
            root_path = Path(root)
            relative_root = root_path.relative_to(self.mirror_path).as_posix()
            prefix = "" if relative_root == "." else relative_root + "/"
            if not prefix:
                dirnames[:] = [name for name in dirnames if name != HISTORY_DIR]

            for dirname in list(dirnames):
                path = root_path / dirname
                if path.is_symlink():
                    dirnames.remove(dirname)
                    if prefix + dirname not in keep:
                        path.unlink()
                else:
                    directories.append(path)
            for filename in filenames:
                if prefix + filename not in keep:
                    (root_path / filename).unlink()

        # Deepest first so parents empty out after their children.
        for path in sorted(directories, key=lambda p: len(p.parts), reverse=True):
            if not any(path.iterdir()):
                path.rmdir()

    def _stage_all(self) -> None:
        try:
            self.repo.git.add("--all", ".")
        except GitError as e:
            raise SnapshotOperationFailed(SnapshotPhase.COMMIT, str(e)) from e

    def _commit(self, message: str) -> bool:
        """Commit staged changes; False when there is nothing to commit."""
        try:
            if self.repo.head.is_valid() and not self.repo.is_dirty(
                index=True, working_tree=False, untracked_files=False
            ):
                return False
            self.repo.git.commit("-m", message, "--no-verify")
            return True
        except GitCommandError as e:
            if any(marker in str(e) for marker in NOTHING_TO_COMMIT):
                return False
            raise SnapshotOperationFailed(SnapshotPhase.COMMIT, str(e)) from e
        except GitError as e:
            raise SnapshotOperationFailed(SnapshotPhase.COMMIT, str(e)) from e

    def _diff_summary(self, old_revision: str, new_revision: str) -> DiffSummary:
        try:
            output = self.repo.git.diff(
                old_revision, new_revision, "--numstat", "--find-renames"
            )
        except GitError as e:
            raise SnapshotOperationFailed(SnapshotPhase.DIFF, str(e)) from e

        summary = DiffSummary()
        for line in output.splitlines():
            if not line.strip():
                continue
            fields = line.split("\t", 2)
            if len(fields) < 3:
                raise SnapshotOperationFailed(
                    SnapshotPhase.DIFF, f"Unexpected numstat line: {line!r}"
                )
            added, deleted = fields[0], fields[1]
            summary.files_changed += 1
            # Binary files report "-" for both counts.
            if added != "-":
                summary.insertions += int(added)
            if deleted != "-":
                summary.deletions += int(deleted)
        return summary

    def _diff_text(self, old_revision: str, new_revision: str) -> str:
        try:
            raw = self.repo.git.diff(
                old_revision, new_revision, *DIFF_OPTIONS, stdout_as_string=False
            )
        except GitError as e:
            raise SnapshotOperationFailed(SnapshotPhase.DIFF, str(e)) from e
        return raw.decode("utf-8", errors="replace")
