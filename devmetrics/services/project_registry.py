"""CRUD over project identity with name and folder uniqueness."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db import ChangeRecordRow, Database, ProjectRow
from ..exceptions import (
    DuplicateFolderPath,
    DuplicateProjectName,
    EmptyProjectName,
    ProjectNotFound,
)
from ..schemas import Project
from .change_record_store import ChangeRecordStore, from_millis, to_millis, utc_now

logger = logging.getLogger(__name__)


def normalize_folder(folder_path: str) -> str:
    return str(Path(folder_path).expanduser().resolve())


def _row_to_project(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        folder_path=row.folder_path,
        is_tracking=bool(row.is_tracking),
        last_saved_time=from_millis(row.last_saved_time),
    )


class ProjectRegistry:
    """Project identity table shared by the store and the schedulers."""

    def __init__(
        self,
        database: Database,
        record_store: ChangeRecordStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.database = database
        self.record_store = record_store
        self.clock = clock

    def create(self, name: str, folder_path: str) -> Project:
        name = self._clean_name(name)
        folder = normalize_folder(folder_path)

        with self.database.transaction() as session:
            self._ensure_name_free(session, name)
            self._ensure_folder_free(session, folder)
            row = ProjectRow(
                id=uuid4().hex,
                name=name,
                folder_path=folder,
                is_tracking=False,
                last_saved_time=to_millis(self.clock()),
            )
            session.add(row)

        logger.info("Created project %s for %s", name, folder)
        return _row_to_project(row)

    def get(self, name: str) -> Optional[Project]:
        with self.database.transaction() as session:
            row = self._find(session, name)
            return _row_to_project(row) if row else None

    def require(self, name: str) -> Project:
        project = self.get(name)
        if project is None:
            raise ProjectNotFound(name)
        return project

    def get_all(self) -> List[Project]:
        with self.database.transaction() as session:
            rows = session.execute(select(ProjectRow).order_by(ProjectRow.name))
            return [_row_to_project(row) for row in rows.scalars()]

    def get_tracked(self) -> List[Project]:
        return [project for project in self.get_all() if project.is_tracking]

    def is_tracking(self, name: str) -> bool:
        project = self.get(name)
        return bool(project and project.is_tracking)

    def set_tracking(self, name: str, is_tracking: bool) -> Project:
        with self.database.transaction() as session:
            row = self._find_or_raise(session, name)
            row.is_tracking = is_tracking
        return _row_to_project(row)

    def rename(self, old_name: str, new_name: str) -> Project:
        """Rename a project and re-key all of its records atomically."""
        return self.update(old_name, new_name=new_name)

    def change_folder(self, name: str, folder_path: str) -> Project:
        return self.update(name, folder_path=folder_path)

    def check_update(
        self,
        name: str,
        new_name: Optional[str] = None,
        folder_path: Optional[str] = None,
    ) -> Project:
        """Raise whatever ``update`` would raise, without changing anything."""
        with self.database.transaction() as session:
            row, _, _ = self._resolve_update(session, name, new_name, folder_path)
            return _row_to_project(row)

    def update(
        self,
        name: str,
        new_name: Optional[str] = None,
        folder_path: Optional[str] = None,
        is_tracking: Optional[bool] = None,
    ) -> Project:
        """
        Rename and/or move a project in one transaction.

        Records are re-keyed together with the name, so either every change
        applies or none does.
        """
        with self.database.transaction() as session:
            row, target_name, target_folder = self._resolve_update(
                session, name, new_name, folder_path
            )
            values = {}
            if target_name != row.name:
                values["name"] = target_name
            if target_folder != row.folder_path:
                values["folder_path"] = target_folder
            if is_tracking is not None and is_tracking != bool(row.is_tracking):
                values["is_tracking"] = is_tracking
            if not values:
                return _row_to_project(row)

            if "name" in values:
                session.execute(
                    update(ChangeRecordRow)
                    .where(ChangeRecordRow.project_name == name)
                    .values(project_name=target_name)
                    .execution_options(synchronize_session=False)
                )
            session.execute(
                update(ProjectRow)
                .where(ProjectRow.name == name)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            updated = self._find_or_raise(session, target_name)
            session.refresh(updated)
            project = _row_to_project(updated)

        if "name" in values:
            logger.info("Renamed project %s to %s", name, target_name)
        if "folder_path" in values:
            logger.info("Project %s now tracks %s", target_name, target_folder)
        return project

    def delete(self, name: str) -> int:
        """Delete a project and cascade its records; returns records removed."""
        with self.database.transaction() as session:
            row = self._find_or_raise(session, name)
            removed = self.record_store.delete_project_records(session, name)
            session.delete(row)

        logger.info("Deleted project %s with %d change records", name, removed)
        return removed

    @staticmethod
    def _clean_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise EmptyProjectName()
        return name

    @staticmethod
    def _find(session: Session, name: str) -> Optional[ProjectRow]:
        return session.execute(
            select(ProjectRow).where(ProjectRow.name == name)
        ).scalar_one_or_none()

    def _find_or_raise(self, session: Session, name: str) -> ProjectRow:
        row = self._find(session, name)
        if row is None:
            raise ProjectNotFound(name)
        return row

    def _resolve_update(
        self,
        session: Session,
        name: str,
        new_name: Optional[str],
        folder_path: Optional[str],
    ) -> Tuple[ProjectRow, str, str]:
        row = self._find_or_raise(session, name)
        target_name = row.name if new_name is None else self._clean_name(new_name)
        target_folder = (
            row.folder_path if folder_path is None else normalize_folder(folder_path)
        )
        if target_name != row.name:
            self._ensure_name_free(session, target_name)
        if target_folder != row.folder_path:
            self._ensure_folder_free(session, target_folder)
        return row, target_name, target_folder

    def _ensure_name_free(self, session: Session, name: str) -> None:
        if self._find(session, name) is not None:
            raise DuplicateProjectName(name)

    @staticmethod
    def _ensure_folder_free(session: Session, folder: str) -> None:
        owner = session.execute(
            select(ProjectRow.name).where(ProjectRow.folder_path == folder)
        ).scalar_one_or_none()
        if owner is not None:
            raise DuplicateFolderPath(folder, owner)
