"""SQLAlchemy engine and transaction management."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..exceptions import StorageError
from .tables import Base

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and hands out one transaction per unit of work."""

    def __init__(self, url: str):
        self.url = url
        parsed = make_url(url)
        engine_kwargs = {}

        if parsed.get_backend_name() == "sqlite":
            database = parsed.database
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if not database or database == ":memory:":
                engine_kwargs["poolclass"] = StaticPool
            else:
                Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)

        self.engine: Engine = create_engine(url, **engine_kwargs)
        if parsed.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def create_schema(self) -> None:
        """Create missing tables. Migrations live under alembic/."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create schema: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session whose work commits as a whole or not at all."""
        session = self.session_factory()
        try:
            with session.begin():
                yield session
        except SQLAlchemyError as e:
            logger.error("Storage operation failed: %s", e)
            raise StorageError(str(e)) from e
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
