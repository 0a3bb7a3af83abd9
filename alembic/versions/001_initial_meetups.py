"""initial meetups, participations

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "meetups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("creator_id", sa.String(length=64), nullable=False),
        sa.Column("active_creator_id", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=1), nullable=False),
        sa.Column("status", sa.String(length=20), server_default="ACTIVE", nullable=False),
        sa.Column("meeting_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("chat_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_text", sa.String(length=100), nullable=False),
        sa.Column("message", sa.String(length=200), nullable=False),
        sa.Column("creator_lat", sa.Float(), nullable=False),
        sa.Column("creator_lng", sa.Float(), nullable=False),
        sa.Column("reported_by", sa.JSON(), nullable=False),
        sa.Column("report_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("active_creator_id"),
    )
    op.create_index(op.f("ix_meetups_id"), "meetups", ["id"], unique=False)
    op.create_index(op.f("ix_meetups_creator_id"), "meetups", ["creator_id"], unique=False)
    op.create_index(op.f("ix_meetups_status"), "meetups", ["status"], unique=False)
    op.create_index(op.f("ix_meetups_meeting_time"), "meetups", ["meeting_time"], unique=False)

    op.create_table(
        "participations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("meetup_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["meetup_id"], ["meetups.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("meetup_id", "participant_id", name="uq_participation_meetup_participant"),
    )
    op.create_index(op.f("ix_participations_id"), "participations", ["id"], unique=False)
    op.create_index(op.f("ix_participations_meetup_id"), "participations", ["meetup_id"], unique=False)
    op.create_index(op.f("ix_participations_participant_id"), "participations", ["participant_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_participations_participant_id"), table_name="participations")
    op.drop_index(op.f("ix_participations_meetup_id"), table_name="participations")
    op.drop_index(op.f("ix_participations_id"), table_name="participations")
    op.drop_table("participations")
    op.drop_index(op.f("ix_meetups_meeting_time"), table_name="meetups")
    op.drop_index(op.f("ix_meetups_status"), table_name="meetups")
    op.drop_index(op.f("ix_meetups_creator_id"), table_name="meetups")
    op.drop_index(op.f("ix_meetups_id"), table_name="meetups")
    op.drop_table("meetups")
