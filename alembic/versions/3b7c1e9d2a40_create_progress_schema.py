"""create course catalog, enrollment, progress and quiz tables

Revision ID: 3b7c1e9d2a40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7c1e9d2a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid(name: str, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), **kw)


def upgrade() -> None:
    op.create_table(
        "courses",
        _uuid("id", primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
    )
    op.create_table(
        "course_modules",
        _uuid("id", primary_key=True),
        _uuid(
            "course_id",
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
    )
    op.create_table(
        "lessons",
        _uuid("id", primary_key=True),
        _uuid(
            "module_id",
            sa.ForeignKey("course_modules.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
    )
    op.create_table(
        "lesson_contents",
        _uuid("id", primary_key=True),
        _uuid(
            "lesson_id",
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("content_type", sa.String(length=16), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("media_duration", sa.Integer(), nullable=True),
        _uuid("quiz_id", nullable=True),
    )
    op.create_table(
        "enrollments",
        _uuid("id", primary_key=True),
        _uuid("user_id", nullable=False),
        _uuid("course_id", sa.ForeignKey("courses.id"), nullable=False, index=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("progress_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("user_id", "course_id"),
    )
    op.create_table(
        "progress_events",
        _uuid("id", primary_key=True),
        sa.Column(
            "sequence", sa.BigInteger(), sa.Identity(), nullable=False, unique=True
        ),
        _uuid(
            "enrollment_id",
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid(
            "lesson_content_id",
            sa.ForeignKey("lesson_contents.id"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("occurred_at", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("watched_duration", sa.Float(), nullable=True),
        sa.Column("total_duration", sa.Float(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
    )
    op.create_index(
        "ix_progress_events_enrollment_order",
        "progress_events",
        ["enrollment_id", "occurred_at", "sequence"],
    )
    op.create_table(
        "progress_summaries",
        _uuid("id", primary_key=True),
        _uuid(
            "enrollment_id",
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _uuid("lesson_id", sa.ForeignKey("lessons.id"), nullable=False),
        sa.Column("completion_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("quiz_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("last_accessed_at", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("enrollment_id", "lesson_id"),
    )
    op.create_table(
        "quizzes",
        _uuid("id", primary_key=True),
        _uuid(
            "lesson_id",
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pass_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("time_limit", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("shuffle_questions", sa.Boolean(), nullable=False),
    )
    op.create_table(
        "quiz_questions",
        _uuid("id", primary_key=True),
        _uuid(
            "quiz_id",
            sa.ForeignKey("quizzes.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("question_type", sa.String(length=32), nullable=False),
        sa.Column("points", sa.Numeric(5, 2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
    )
    op.create_table(
        "quiz_options",
        _uuid("id", primary_key=True),
        _uuid(
            "question_id",
            sa.ForeignKey("quiz_questions.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("option_text", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
    )
    op.create_table(
        "quiz_attempts",
        _uuid("id", primary_key=True),
        _uuid("quiz_id", sa.ForeignKey("quizzes.id"), nullable=False),
        _uuid(
            "enrollment_id",
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("score", sa.Numeric(5, 2), nullable=True),
        sa.Column("max_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=True),
        sa.Column("started_at", sa.Integer(), nullable=False),
        sa.Column("submitted_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("quiz_id", "enrollment_id", "attempt_number"),
    )
    op.create_table(
        "quiz_responses",
        _uuid("id", primary_key=True),
        _uuid(
            "attempt_id",
            sa.ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        _uuid("question_id", sa.ForeignKey("quiz_questions.id"), nullable=False),
        _uuid("option_id", nullable=True),
        sa.Column("answer_text", sa.Text(), nullable=True),
        sa.Column("is_correct", sa.Boolean(), nullable=True),
        sa.Column("points_earned", sa.Numeric(5, 2), nullable=False),
        sa.Column("answered_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint("attempt_id", "question_id"),
    )


def downgrade() -> None:
    op.drop_table("quiz_responses")
    op.drop_table("quiz_attempts")
    op.drop_table("quiz_options")
    op.drop_table("quiz_questions")
    op.drop_table("quizzes")
    op.drop_table("progress_summaries")
    op.drop_index("ix_progress_events_enrollment_order", table_name="progress_events")
    op.drop_table("progress_events")
    op.drop_table("enrollments")
    op.drop_table("lesson_contents")
    op.drop_table("lessons")
    op.drop_table("course_modules")
    op.drop_table("courses")
