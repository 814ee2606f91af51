"""Turns raw ``git diff`` text into the structured FileChange model."""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..exceptions import DiffParseFailed
from ..schemas import (
    ChangeSet,
    ChunkRange,
    DiffSummary,
    FileChange,
    FileChangeType,
    LineChange,
    LineChangeType,
)

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
DEV_NULL = "/dev/null"

# Extended header lines that carry nothing the model needs.
IGNORED_HEADERS = (
    "index ",
    "similarity index ",
    "dissimilarity index ",
    "old mode ",
    "new mode ",
)

C_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    '"': '"',
}


@dataclass
class _FileSegment:
    """Accumulator for one ``diff --git`` block."""

    header_old: Optional[str]
    header_new: Optional[str]
    start_line: int
    new_file: bool = False
    deleted_file: bool = False
    rename_from: Optional[str] = None
    rename_to: Optional[str] = None
    copy_to: Optional[str] = None
    minus_path: Optional[str] = None
    plus_path: Optional[str] = None
    is_binary: bool = False
    line_changes: List[LineChange] = field(default_factory=list)
    chunk_ranges: List[ChunkRange] = field(default_factory=list)
    added: int = 0
    deleted: int = 0
    unchanged: int = 0

    def record(self, change: LineChange) -> None:
        self.line_changes.append(change)
        if change.change_type == LineChangeType.ADDED:
            self.added += 1
        elif change.change_type == LineChangeType.DELETED:
            self.deleted += 1
        elif change.change_type == LineChangeType.UNCHANGED:
            self.unchanged += 1
        elif change.change_type == LineChangeType.MESSAGE:
            pass
        else:
            raise DiffParseFailed(f"Unknown line change type {change.change_type!r}")

    def to_file_change(self) -> FileChange:
        old_file_path = None
        if self.rename_from is not None or self.rename_to is not None:
            if self.rename_from is None or self.rename_to is None:
                raise DiffParseFailed(
                    "Rename header is missing its source or target", self.start_line
                )
            change_type = FileChangeType.RENAMED
            file_path = self.rename_to
            old_file_path = self.rename_from
        elif self.new_file or self.copy_to is not None:
            change_type = FileChangeType.ADDED
            file_path = self.copy_to or self.plus_path or self.header_new
        elif self.deleted_file:
            change_type = FileChangeType.DELETED
            file_path = self.minus_path or self.header_old
        else:
            change_type = FileChangeType.CHANGED
            file_path = self.plus_path or self.minus_path or self.header_new

        if not file_path:
            raise DiffParseFailed("Could not determine file path", self.start_line)

        return FileChange(
            file_path=file_path,
            old_file_path=old_file_path,
            change_type=change_type,
            line_changes=self.line_changes,
            added_lines_count=self.added,
            deleted_lines_count=self.deleted,
            unchanged_lines_count=self.unchanged,
            total_lines_count=self.added + self.unchanged,
            original_lines_count=self.deleted + self.unchanged,
            change_ratio=FileChange.compute_ratio(
                self.added, self.deleted, self.unchanged
            ),
            is_binary=self.is_binary,
            chunk_ranges=self.chunk_ranges,
        )


def _unquote(path: str) -> str:
    """Undo git's C-style quoting of unusual file names."""
    if not (len(path) >= 2 and path.startswith('"') and path.endswith('"')):
        return path
    body = path[1:-1]
    raw = bytearray()
    i = 0
    while i < len(body):
        char = body[i]
        if char != "\\":
            raw.extend(char.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1 : i + 2]
        if nxt in C_ESCAPES:
            raw.extend(C_ESCAPES[nxt].encode("utf-8"))
            i += 2
        elif re.match(r"[0-7]{3}", body[i + 1 : i + 4]):
            raw.append(int(body[i + 1 : i + 4], 8))
            i += 4
        else:
            raise DiffParseFailed(f"Invalid escape in quoted path: {path}")
    return raw.decode("utf-8", errors="surrogateescape")


def _strip_prefix(path: str, prefix: str) -> Optional[str]:
    path = _unquote(path.rstrip("\t"))
    if path == DEV_NULL:
        return None
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def _split_git_header(rest: str):
    """Split the ``a/<old> b/<new>`` tail of a ``diff --git`` line."""
    if rest.startswith('"'):
        end = rest.find('" ', 1)
        while end != -1 and rest[end - 1] == "\\":
            end = rest.find('" ', end + 1)
        if end == -1:
            return None, None
        return _strip_prefix(rest[: end + 1], "a/"), _strip_prefix(
            rest[end + 2 :], "b/"
        )
    if rest.endswith('"'):
        start = rest.rfind(' "')
        if start == -1:
            return None, None
        return _strip_prefix(rest[:start], "a/"), _strip_prefix(
            rest[start + 1 :], "b/"
        )

    candidates = [m.start() for m in re.finditer(" b/", rest)]
    for index in candidates:
        old, new = rest[:index], rest[index + 1 :]
        if old[2:] == new[2:]:
            return _strip_prefix(old, "a/"), _strip_prefix(new, "b/")
    if candidates:
        index = candidates[0]
        return _strip_prefix(rest[:index], "a/"), _strip_prefix(
            rest[index + 1 :], "b/"
        )
    return None, None


def parse_file_changes(diff_text: str) -> List[FileChange]:
    """
    Parse unified ``git diff`` output into one FileChange per file segment.

    Raises:
        DiffParseFailed: on any line that does not fit the diff grammar.
            Nothing is skipped; a partial classification would corrupt the
            aggregate metrics built on top of it.
    """
    if not diff_text:
        return []

    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    segments: List[_FileSegment] = []
    current: Optional[_FileSegment] = None
    in_hunks = False
    i = 0

    while i < len(lines):
        line = lines[i]
        line_no = i + 1

        if line.startswith("diff --git "):
            old, new = _split_git_header(line[len("diff --git ") :])
            current = _FileSegment(header_old=old, header_new=new, start_line=line_no)
            segments.append(current)
            in_hunks = False
            i += 1
            continue

        if current is None:
            if line.strip():
                raise DiffParseFailed("Content before first file header", line_no)
            i += 1
            continue

        if line.startswith("@@"):
            i = _consume_hunk(lines, i, current)
            in_hunks = True
            continue

        if in_hunks:
            raise DiffParseFailed(f"Unexpected line after hunk: {line!r}", line_no)

        if line.startswith("new file mode "):
            current.new_file = True
        elif line.startswith("deleted file mode "):
            current.deleted_file = True
        elif line.startswith("rename from "):
            current.rename_from = _unquote(line[len("rename from ") :])
        elif line.startswith("rename to "):
            current.rename_to = _unquote(line[len("rename to ") :])
        elif line.startswith("copy from "):
            pass
        elif line.startswith("copy to "):
            current.copy_to = _unquote(line[len("copy to ") :])
        elif line.startswith("--- "):
            current.minus_path = _strip_prefix(line[4:], "a/")
        elif line.startswith("+++ "):
            current.plus_path = _strip_prefix(line[4:], "b/")
        elif line.startswith("Binary files ") and line.endswith(" differ"):
            current.is_binary = True
        elif line == "GIT binary patch":
            current.is_binary = True
            i += 1
            # Skip literal/delta payload up to the next file header.
            while i < len(lines) and not lines[i].startswith("diff --git "):
                i += 1
            continue
        elif line.startswith(IGNORED_HEADERS):
            pass
        else:
            raise DiffParseFailed(f"Unrecognized diff header: {line!r}", line_no)
        i += 1

    return [segment.to_file_change() for segment in segments]


def _consume_hunk(lines: List[str], start: int, segment: _FileSegment) -> int:
    """Classify one hunk; returns the index of the first line after it."""
    header = lines[start]
    match = HUNK_HEADER.match(header)
    if not match:
        raise DiffParseFailed(f"Malformed hunk header: {header!r}", start + 1)

    old_start = int(match.group(1))
    old_count = int(match.group(2)) if match.group(2) is not None else 1
    new_start = int(match.group(3))
    new_count = int(match.group(4)) if match.group(4) is not None else 1

    segment.chunk_ranges.append(ChunkRange(start=old_start, line_count=old_count))
    segment.chunk_ranges.append(ChunkRange(start=new_start, line_count=new_count))

    old_remaining, new_remaining = old_count, new_count
    old_line, new_line = old_start, new_start
    i = start + 1

    while i < len(lines):
        line = lines[i]
        if old_remaining == 0 and new_remaining == 0 and not line.startswith("\\"):
            break

        marker, content = line[:1], line[1:]
        if marker == "+":
            if new_remaining == 0:
                raise DiffParseFailed("Hunk has more added lines than declared", i + 1)
            segment.record(
                LineChange(
                    change_type=LineChangeType.ADDED,
                    content=content,
                    line_number=new_line,
                )
            )
            new_remaining -= 1
            new_line += 1
        elif marker == "-":
            if old_remaining == 0:
                raise DiffParseFailed(
                    "Hunk has more deleted lines than declared", i + 1
                )
            segment.record(
                LineChange(
                    change_type=LineChangeType.DELETED,
                    content=content,
                    line_number=old_line,
                )
            )
            old_remaining -= 1
            old_line += 1
        elif marker in (" ", ""):
            if old_remaining == 0 or new_remaining == 0:
                raise DiffParseFailed(
                    "Hunk has more context lines than declared", i + 1
                )
            segment.record(
                LineChange(
                    change_type=LineChangeType.UNCHANGED,
                    content=content,
                    line_number=new_line,
                )
            )
            old_remaining -= 1
            new_remaining -= 1
            old_line += 1
            new_line += 1
        elif marker == "\\":
            segment.record(
                LineChange(change_type=LineChangeType.MESSAGE, content=content.strip())
            )
        else:
            raise DiffParseFailed(f"Unexpected line in hunk: {line!r}", i + 1)
        i += 1

    if old_remaining or new_remaining:
        raise DiffParseFailed("Truncated hunk", start + 1)
    return i


class DiffClassifier:
    """Pure transformation from a two-revision diff into a ChangeSet."""

    def classify(
        self,
        diff_text: str,
        summary: DiffSummary,
        from_revision: Optional[str] = None,
        to_revision: Optional[str] = None,
    ) -> ChangeSet:
        return ChangeSet(
            summary=summary,
            changes=parse_file_changes(diff_text),
            from_revision=from_revision,
            to_revision=to_revision,
        )
