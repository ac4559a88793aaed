"""Notifications table.

Revision ID: 001
Revises: None
Create Date: 2026-03-01

Creates the notifications store:
- notification_type_enum for the four notification kinds
- notifications table (one row per recipient, metadata as JSONB)
- Indexes for per-user listing, unread counts and task lookups
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute(
        "CREATE TYPE notification_type_enum AS ENUM "
        "('TASK_CREATED', 'TASK_UPDATED', 'TASK_ASSIGNED', 'TASK_COMMENTED')"
    )

    # Recipients and tasks live in other services, so no foreign keys
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY,
            user_id VARCHAR(255) NOT NULL,
            type notification_type_enum NOT NULL,
            message TEXT NOT NULL,
            task_id VARCHAR(255),
            metadata JSONB,
            read BOOLEAN NOT NULL DEFAULT FALSE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id ON notifications(user_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_task_id ON notifications(task_id);
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id_read ON notifications(user_id, read);
        CREATE INDEX IF NOT EXISTS ix_notifications_user_id_created_at ON notifications(user_id, created_at);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TYPE IF EXISTS notification_type_enum")
