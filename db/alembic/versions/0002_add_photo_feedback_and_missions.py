"""add photo feedback and mission orders

Revision ID: 0002_add_photo_feedback_and_missions
Revises: 0001_initial_schema
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0002_add_photo_feedback_and_missions"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("photos", sa.Column("ai_description", sa.Text))
    op.add_column("quest_messages", sa.Column("photo_id", sa.String(36)))
    op.add_column("chapter_quests", sa.Column("mission_json", postgresql.JSONB))


def downgrade() -> None:
    op.drop_column("chapter_quests", "mission_json")
    op.drop_column("quest_messages", "photo_id")
    op.drop_column("photos", "ai_description")
