"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("folder_path", sa.Text(), nullable=False, unique=True),
        sa.Column("is_tracking", sa.Boolean(), nullable=False),
        sa.Column("last_saved_time", sa.BigInteger(), nullable=False),
    )
    op.create_table(
        "change_records",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "project_name",
            sa.Text(),
            sa.ForeignKey("projects.name", deferrable=True, initially="DEFERRED"),
            nullable=False,
        ),
        sa.Column("timestamp_ms", sa.BigInteger(), nullable=False),
        sa.Column("files_changed", sa.Integer(), nullable=False),
        sa.Column("insertions", sa.Integer(), nullable=False),
        sa.Column("deletions", sa.Integer(), nullable=False),
        sa.Column("from_revision", sa.String(64), nullable=True),
        sa.Column("to_revision", sa.String(64), nullable=True),
    )
    op.create_table(
        "file_changes",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column(
            "record_id",
            sa.String(32),
            sa.ForeignKey("change_records.id"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("old_file_path", sa.Text(), nullable=True),
        sa.Column("change_type", sa.String(16), nullable=False),
        sa.Column("added_lines_count", sa.Integer(), nullable=False),
        sa.Column("deleted_lines_count", sa.Integer(), nullable=False),
        sa.Column("unchanged_lines_count", sa.Integer(), nullable=False),
        sa.Column("total_lines_count", sa.Integer(), nullable=False),
        sa.Column("original_lines_count", sa.Integer(), nullable=False),
        sa.Column("change_ratio", sa.Float(), nullable=False),
        sa.Column("is_binary", sa.Boolean(), nullable=False),
    )
    for table in ("line_changes", "chunk_ranges"):
        columns = [
            sa.Column("id", sa.String(32), primary_key=True),
            sa.Column(
                "file_change_id",
                sa.String(32),
                sa.ForeignKey("file_changes.id"),
                nullable=False,
            ),
            sa.Column("position", sa.Integer(), nullable=False),
        ]
        if table == "line_changes":
            columns += [
                sa.Column("change_type", sa.String(16), nullable=False),
                sa.Column("content", sa.Text(), nullable=False),
                sa.Column("line_number", sa.Integer(), nullable=True),
            ]
        else:
            columns += [
                sa.Column("start", sa.Integer(), nullable=False),
                sa.Column("line_count", sa.Integer(), nullable=False),
            ]
        op.create_table(table, *columns)

    op.create_index("idx_change_records_project", "change_records", ["project_name"])
    op.create_index(
        "idx_change_records_project_time",
        "change_records",
        ["project_name", "timestamp_ms"],
    )
    op.create_index("idx_file_changes_record", "file_changes", ["record_id"])
    op.create_index("idx_line_changes_file", "line_changes", ["file_change_id"])
    op.create_index("idx_chunk_ranges_file", "chunk_ranges", ["file_change_id"])


def downgrade() -> None:
    op.drop_table("chunk_ranges")
    op.drop_table("line_changes")
    op.drop_table("file_changes")
    op.drop_table("change_records")
    op.drop_table("projects")
