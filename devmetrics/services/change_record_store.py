"""Durable store of ChangeRecords, partitioned by project name."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union
from uuid import uuid4

from sqlalchemy import Select, delete, func, select
from sqlalchemy.orm import Session

from ..db import (
    ChangeRecordRow,
    ChunkRangeRow,
    Database,
    FileChangeRow,
    LineChangeRow,
    ProjectRow,
)
from ..exceptions import ProjectNotFound, ValidationError
from ..schemas import (
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
)

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.astimezone()  # naive values are local time
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class ChangeRecordStore:
    """Persists, queries, aggregates and cascade-deletes change records."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now):
        self.database = database
        self.clock = clock

    def save(self, project_name: str, change_set: ChangeSet) -> str:
        """Persist a ChangeSet under the project; returns the new record id."""
        with self.database.transaction() as session:
            project = session.execute(
                select(ProjectRow).where(ProjectRow.name == project_name)
            ).scalar_one_or_none()
            if project is None:
                raise ProjectNotFound(project_name)

            timestamp_ms = to_millis(self.clock())
            latest = session.execute(
                select(func.max(ChangeRecordRow.timestamp_ms)).where(
                    ChangeRecordRow.project_name == project_name
                )
            ).scalar()
            # Records of one project are strictly ordered by timestamp.
            if latest is not None and timestamp_ms <= latest:
                timestamp_ms = latest + 1

            record = _record_to_row(project_name, timestamp_ms, change_set)
            session.add(record)
            project.last_saved_time = timestamp_ms

        logger.info(
            "Saved change record %s for %s: %s",
            record.id,
            project_name,
            change_set.describe(),
        )
        return record.id

    def load(
        self,
        project_name: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ChangeRecord]:
        """
        Records of a project within [start_date, end_date], oldest first.

        Unknown projects and empty ranges both yield an empty list. A limit of
        zero yields an empty list; a negative limit is rejected.
        """
        if limit is not None and limit < 0:
            raise ValidationError(f"Limit must not be negative: {limit}")

        query = select(ChangeRecordRow).where(
            ChangeRecordRow.project_name == project_name
        )
        if start_date is not None:
            query = query.where(ChangeRecordRow.timestamp_ms >= to_millis(start_date))
        if end_date is not None:
            query = query.where(ChangeRecordRow.timestamp_ms <= to_millis(end_date))
        query = query.order_by(ChangeRecordRow.timestamp_ms, ChangeRecordRow.id)
        if limit is not None:
            query = query.limit(limit)

        with self.database.transaction() as session:
            rows = session.execute(query).scalars().all()
            return [_row_to_record(row) for row in rows]

    def summarize(
        self, project_name: str, timeframe: str = "all"
    ) -> Optional[MetricSummary]:
        """Sum insertions, deletions and files changed over a named window."""
        start_date, end_date = self.timeframe_window(timeframe)

        with self.database.transaction() as session:
            project = session.execute(
                select(ProjectRow.name).where(ProjectRow.name == project_name)
            ).scalar_one_or_none()
            if project is None:
                return None

            totals = session.execute(
                select(
                    func.coalesce(func.sum(ChangeRecordRow.insertions), 0),
                    func.coalesce(func.sum(ChangeRecordRow.deletions), 0),
                    func.coalesce(func.sum(ChangeRecordRow.files_changed), 0),
                ).where(
                    ChangeRecordRow.project_name == project_name,
                    ChangeRecordRow.timestamp_ms >= to_millis(start_date),
                    ChangeRecordRow.timestamp_ms <= to_millis(end_date),
                )
            ).one()

        return MetricSummary(
            project_name=project_name,
            lines_added=int(totals[0]),
            lines_removed=int(totals[1]),
            files_modified=int(totals[2]),
            date_range=TIMEFRAME_LABELS[timeframe],
        )

    def timeframe_window(self, timeframe: str):
        """Local-time [start, end] bounds of a named timeframe."""
        now = self.clock().astimezone()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

        if timeframe == "today":
            return midnight, midnight.replace(
                hour=23, minute=59, second=59, microsecond=999000
            )
        if timeframe == "week":
            return midnight - timedelta(days=now.weekday()), now
        if timeframe == "month":
            return midnight.replace(day=1), now
        if timeframe == "all":
            return EPOCH, now
        raise ValidationError(f"Unknown timeframe: {timeframe}")

    def clear(self, project_name: str) -> int:
        """Cascade-delete every record of the project; returns how many."""
        with self.database.transaction() as session:
            exists = session.execute(
                select(ProjectRow.id).where(ProjectRow.name == project_name)
            ).scalar_one_or_none()
            if exists is None:
                raise ProjectNotFound(project_name)
            removed = self.delete_project_records(session, project_name)

        logger.info("Cleared %d change records of %s", removed, project_name)
        return removed

    def delete_cascade(self, record_id: str) -> None:
        """Remove a single record and everything it owns."""
        with self.database.transaction() as session:
            self._delete_records(session, [record_id])

    def delete_project_records(self, session: Session, project_name: str) -> int:
        """Cascade-delete a project's records inside the caller's transaction."""
        count = session.execute(
            select(func.count(ChangeRecordRow.id)).where(
                ChangeRecordRow.project_name == project_name
            )
        ).scalar()
        self._delete_records(
            session,
            select(ChangeRecordRow.id).where(
                ChangeRecordRow.project_name == project_name
            ),
        )
        return int(count or 0)

    @staticmethod
    def _delete_records(session: Session, record_ids: Union[List[str], Select]) -> None:
        # Innermost first: lines and chunks, then files, then the records.
        file_change_ids = select(FileChangeRow.id).where(
            FileChangeRow.record_id.in_(record_ids)
        )
        options = {"synchronize_session": False}
        session.execute(
            delete(LineChangeRow)
            .where(LineChangeRow.file_change_id.in_(file_change_ids))
            .execution_options(**options)
        )
        session.execute(
            delete(ChunkRangeRow)
            .where(ChunkRangeRow.file_change_id.in_(file_change_ids))
            .execution_options(**options)
        )
        session.execute(
            delete(FileChangeRow)
            .where(FileChangeRow.record_id.in_(record_ids))
            .execution_options(**options)
        )
        session.execute(
            delete(ChangeRecordRow)
            .where(ChangeRecordRow.id.in_(record_ids))
            .execution_options(**options)
        )


def _record_to_row(
    project_name: str, timestamp_ms: int, change_set: ChangeSet
) -> ChangeRecordRow:
    record = ChangeRecordRow(
        id=_new_id(),
        project_name=project_name,
        timestamp_ms=timestamp_ms,
        files_changed=change_set.summary.files_changed,
        insertions=change_set.summary.insertions,
        deletions=change_set.summary.deletions,
        from_revision=change_set.from_revision,
        to_revision=change_set.to_revision,
    )
    for position, change in enumerate(change_set.changes):
        file_row = FileChangeRow(
            id=_new_id(),
            position=position,
            file_path=change.file_path,
            old_file_path=change.old_file_path,
            change_type=change.change_type.value,
            added_lines_count=change.added_lines_count,
            deleted_lines_count=change.deleted_lines_count,
            unchanged_lines_count=change.unchanged_lines_count,
            total_lines_count=change.total_lines_count,
            original_lines_count=change.original_lines_count,
            change_ratio=change.change_ratio,
            is_binary=change.is_binary,
        )
        file_row.line_changes = [
            LineChangeRow(
                id=_new_id(),
                position=index,
                change_type=line.change_type.value,
                content=line.content,
                line_number=line.line_number,
            )
            for index, line in enumerate(change.line_changes)
        ]
        file_row.chunk_ranges = [
            ChunkRangeRow(
                id=_new_id(),
                position=index,
                start=chunk.start,
                line_count=chunk.line_count,
            )
            for index, chunk in enumerate(change.chunk_ranges)
        ]
        record.file_changes.append(file_row)
    return record


def _row_to_record(row: ChangeRecordRow) -> ChangeRecord:
    changes = [
        FileChange(
            file_path=file_row.file_path,
            old_file_path=file_row.old_file_path,
            change_type=FileChangeType(file_row.change_type),
            line_changes=[
                LineChange(
                    change_type=LineChangeType(line.change_type),
                    content=line.content,
                    line_number=line.line_number,
                )
                for line in file_row.line_changes
            ],
            added_lines_count=file_row.added_lines_count,
            deleted_lines_count=file_row.deleted_lines_count,
            unchanged_lines_count=file_row.unchanged_lines_count,
            total_lines_count=file_row.total_lines_count,
            original_lines_count=file_row.original_lines_count,
            change_ratio=file_row.change_ratio,
            is_binary=file_row.is_binary,
            chunk_ranges=[
                ChunkRange(start=chunk.start, line_count=chunk.line_count)
                for chunk in file_row.chunk_ranges
            ],
        )
        for file_row in row.file_changes
    ]
    return ChangeRecord(
        id=row.id,
        project_name=row.project_name,
        timestamp=from_millis(row.timestamp_ms),
        change_set=ChangeSet(
            summary=DiffSummary(
                files_changed=row.files_changed,
                insertions=row.insertions,
                deletions=row.deletions,
            ),
            changes=changes,
            from_revision=row.from_revision,
            to_revision=row.to_revision,
        ),
    )
