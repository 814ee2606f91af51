"""SQLAlchemy tables for projects and the change records they own."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String(32), primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    folder_path = Column(Text, nullable=False, unique=True)
    is_tracking = Column(Boolean, nullable=False, default=False)
    last_saved_time = Column(BigInteger, nullable=False)  # epoch milliseconds

    def __repr__(self):
        return f"<ProjectRow(name={self.name}, folder_path={self.folder_path})>"


class ChangeRecordRow(Base):
    __tablename__ = "change_records"

    id = Column(String(32), primary_key=True)
    # Deferred so a rename can re-key records and the project in one transaction.
    project_name = Column(
        Text,
        ForeignKey("projects.name", deferrable=True, initially="DEFERRED"),
        nullable=False,
    )
    timestamp_ms = Column(BigInteger, nullable=False)
    files_changed = Column(Integer, nullable=False, default=0)
    insertions = Column(Integer, nullable=False, default=0)
    deletions = Column(Integer, nullable=False, default=0)
    from_revision = Column(String(64), nullable=True)
    to_revision = Column(String(64), nullable=True)

    file_changes = relationship(
        "FileChangeRow", order_by="FileChangeRow.position", lazy="selectin"
    )

    def __repr__(self):
        return f"<ChangeRecordRow(id={self.id}, project={self.project_name})>"


class FileChangeRow(Base):
    __tablename__ = "file_changes"

    id = Column(String(32), primary_key=True)
    record_id = Column(String(32), ForeignKey("change_records.id"), nullable=False)
    position = Column(Integer, nullable=False)
    file_path = Column(Text, nullable=False)
    old_file_path = Column(Text, nullable=True)
    change_type = Column(String(16), nullable=False)
    added_lines_count = Column(Integer, nullable=False, default=0)
    deleted_lines_count = Column(Integer, nullable=False, default=0)
    unchanged_lines_count = Column(Integer, nullable=False, default=0)
    total_lines_count = Column(Integer, nullable=False, default=0)
    original_lines_count = Column(Integer, nullable=False, default=0)
    change_ratio = Column(Float, nullable=False, default=0.0)
    is_binary = Column(Boolean, nullable=False, default=False)

    line_changes = relationship(
        "LineChangeRow", order_by="LineChangeRow.position", lazy="selectin"
    )
    chunk_ranges = relationship(
        "ChunkRangeRow", order_by="ChunkRangeRow.position", lazy="selectin"
    )


class LineChangeRow(Base):
    __tablename__ = "line_changes"

    id = Column(String(32), primary_key=True)
    file_change_id = Column(String(32), ForeignKey("file_changes.id"), nullable=False)
    position = Column(Integer, nullable=False)
    change_type = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    line_number = Column(Integer, nullable=True)


class ChunkRangeRow(Base):
    __tablename__ = "chunk_ranges"

    id = Column(String(32), primary_key=True)
    file_change_id = Column(String(32), ForeignKey("file_changes.id"), nullable=False)
    position = Column(Integer, nullable=False)
    start = Column(Integer, nullable=False)
    line_count = Column(Integer, nullable=False)


Index("idx_change_records_project", ChangeRecordRow.project_name)
Index(
    "idx_change_records_project_time",
    ChangeRecordRow.project_name,
    ChangeRecordRow.timestamp_ms,
)
Index("idx_file_changes_record", FileChangeRow.record_id)
Index("idx_line_changes_file", LineChangeRow.file_change_id)
Index("idx_chunk_ranges_file", ChunkRangeRow.file_change_id)
