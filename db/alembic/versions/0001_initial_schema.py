"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "game_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("title", sa.String(160), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _created_at(),
    )
    op.create_table(
        "characters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(80), unique=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("emoji", sa.String(16)),
        sa.Column("archetype", sa.String(120)),
        sa.Column("vibe", sa.String(160)),
        sa.Column("motto", sa.Text),
        sa.Column("ai_style", postgresql.JSONB),
    )
    op.create_table(
        "player_profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(120)),
        sa.Column("character_id", sa.String(36), sa.ForeignKey("characters.id")),
        sa.Column("context_self", sa.Text),
        sa.Column("context_family", sa.Text),
        sa.Column("context_home", sa.Text),
        sa.Column("context_routine", sa.Text),
        sa.Column("context_challenges", sa.Text),
        _created_at(),
    )
    op.create_table(
        "adventures",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), sa.ForeignKey("game_sessions.id")),
        sa.Column("title", sa.String(160)),
        sa.Column("description", sa.Text),
        sa.Column("context_text", sa.Text),
        sa.Column("welcome_text", sa.Text),
        _created_at(),
    )
    op.create_table(
        "chapters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), sa.ForeignKey("game_sessions.id")),
        sa.Column("adventure_id", sa.String(36), sa.ForeignKey("adventures.id")),
        sa.Column("title", sa.String(160)),
        sa.Column("chapter_code", sa.String(80)),
        sa.Column("context_text", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _created_at(),
    )
    op.create_table(
        "adventure_quests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), sa.ForeignKey("game_sessions.id")),
        sa.Column("adventure_id", sa.String(36), sa.ForeignKey("adventures.id")),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("room_code", sa.String(80)),
        sa.Column("difficulty", sa.Integer),
        _created_at(),
    )
    op.create_table(
        "chapter_quests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), sa.ForeignKey("game_sessions.id")),
        sa.Column("chapter_id", sa.String(36), sa.ForeignKey("chapters.id")),
        sa.Column("adventure_quest_id", sa.String(36), sa.ForeignKey("adventure_quests.id")),
        sa.Column("status", sa.String(20), nullable=False, server_default="todo"),
        sa.Column("mission_md", sa.Text),
        _created_at(),
    )
    op.create_table(
        "ai_generations",
        sa.Column("id", sa.String(36), primary_key=True),
        _created_at(),
        sa.Column("session_id", sa.String(36), nullable=False, index=True),
        sa.Column("user_id", sa.String(36)),
        sa.Column("chapter_quest_id", sa.String(36)),
        sa.Column("chapter_id", sa.String(36)),
        sa.Column("adventure_id", sa.String(36)),
        sa.Column("generation_type", sa.String(80), nullable=False),
        sa.Column("source", sa.String(120)),
        sa.Column("provider", sa.String(40), nullable=False, server_default="openai"),
        sa.Column("model", sa.String(80), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text),
        sa.Column("error_code", sa.String(80)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("request_json", postgresql.JSONB, nullable=False),
        sa.Column("system_text", sa.Text),
        sa.Column("user_input_text", sa.Text),
        sa.Column("context_json", postgresql.JSONB),
        sa.Column("response_json", postgresql.JSONB),
        sa.Column("output_text", sa.Text),
        sa.Column("parsed_json", postgresql.JSONB),
        sa.Column("parse_error", sa.Text),
        sa.Column("rendered_md", sa.Text),
        sa.Column("usage_json", postgresql.JSONB),
        sa.Column("tags", postgresql.JSONB),
        sa.Column("metadata", postgresql.JSONB),
    )
    op.create_table(
        "journal_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        _created_at(),
        sa.Column("session_id", sa.String(36), nullable=False, index=True),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("content", sa.Text),
        sa.Column("chapter_id", sa.String(36)),
        sa.Column("quest_id", sa.String(36)),
        sa.Column("adventure_quest_id", sa.String(36)),
        sa.Column("adventure_id", sa.String(36)),
        sa.Column("meta", postgresql.JSONB),
    )
    op.create_table(
        "quest_threads",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column(
            "chapter_quest_id",
            sa.String(36),
            sa.ForeignKey("chapter_quests.id"),
            nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint("session_id", "chapter_quest_id"),
    )
    op.create_table(
        "quest_messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("thread_id", sa.String(36), sa.ForeignKey("quest_threads.id"), nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False),
        sa.Column("chapter_quest_id", sa.String(36), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="mj"),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("title", sa.String(200)),
        sa.Column("content", sa.Text, nullable=False),
        _created_at(),
    )
    op.create_table(
        "photos",
        sa.Column("id", sa.String(36), primary_key=True),
        _created_at(),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("session_id", sa.String(36), nullable=False, index=True),
        sa.Column("chapter_quest_id", sa.String(36), index=True),
        sa.Column("adventure_quest_id", sa.String(36)),
        sa.Column("bucket", sa.String(80), nullable=False, server_default="photos"),
        sa.Column("path", sa.String(400)),
        sa.Column("mime_type", sa.String(80)),
        sa.Column("size", sa.Integer),
        sa.Column("width", sa.Integer),
        sa.Column("height", sa.Integer),
        sa.Column("caption", sa.Text),
        sa.Column("is_cover", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sort", sa.Integer, nullable=False, server_default="0"),
        sa.Column("category", sa.String(20), nullable=False, server_default="other"),
    )


def downgrade() -> None:
    op.drop_table("photos")
    op.drop_table("quest_messages")
    op.drop_table("quest_threads")
    op.drop_table("journal_entries")
    op.drop_table("ai_generations")
    op.drop_table("chapter_quests")
    op.drop_table("adventure_quests")
    op.drop_table("chapters")
    op.drop_table("adventures")
    op.drop_table("player_profiles")
    op.drop_table("characters")
    op.drop_table("game_sessions")
