"""add device sessions, suspicious activity and geo cache

Revision ID: 4c7e2b91d0a3
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4c7e2b91d0a3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "device_sessions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("device_name", sa.String(length=100), nullable=False),
        sa.Column("device_type", sa.String(length=10), nullable=False),
        sa.Column("browser", sa.String(length=50), nullable=False),
        sa.Column("os", sa.String(length=50), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("location_country", sa.String(length=100), nullable=True),
        sa.Column("location_city", sa.String(length=100), nullable=True),
        sa.Column("location_country_code", sa.String(length=2), nullable=True),
        sa.Column("is_current", sa.Integer(), nullable=False),
        sa.Column("last_active", sa.String(length=26), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("device_sessions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_device_sessions_token"), ["token"], unique=True)
        batch_op.create_index(batch_op.f("ix_device_sessions_user_id"), ["user_id"], unique=False)
        batch_op.create_index("ix_device_sessions_user_activity", ["user_id", "last_active"], unique=False)
        batch_op.create_index(
            "uq_device_sessions_user_current",
            ["user_id"],
            unique=True,
            sqlite_where=sa.text("is_current = 1"),
            postgresql_where=sa.text("is_current = 1"),
        )

    op.create_table(
        "suspicious_activity",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("activity_type", sa.String(length=50), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("session_id", sa.String(length=36), nullable=True),
        sa.Column("reviewed", sa.Integer(), nullable=False),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_at", sa.String(length=26), nullable=True),
        sa.Column("action_taken", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.String(length=26), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("suspicious_activity", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_suspicious_activity_user_id"), ["user_id"], unique=False)
        batch_op.create_index("ix_suspicious_activity_pending", ["reviewed", "created_at"], unique=False)
        batch_op.create_index(
            "ix_suspicious_activity_user_type",
            ["user_id", "activity_type", "created_at"],
            unique=False,
        )

    op.create_table(
        "geo_cache",
        sa.Column("ip_address", sa.String(length=45), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("ip_address"),
    )
    with op.batch_alter_table("geo_cache", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_geo_cache_expires_at"), ["expires_at"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table("geo_cache", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_geo_cache_expires_at"))
    op.drop_table("geo_cache")

    with op.batch_alter_table("suspicious_activity", schema=None) as batch_op:
        batch_op.drop_index("ix_suspicious_activity_user_type")
        batch_op.drop_index("ix_suspicious_activity_pending")
        batch_op.drop_index(batch_op.f("ix_suspicious_activity_user_id"))
    op.drop_table("suspicious_activity")

    with op.batch_alter_table("device_sessions", schema=None) as batch_op:
        batch_op.drop_index("uq_device_sessions_user_current")
        batch_op.drop_index("ix_device_sessions_user_activity")
        batch_op.drop_index(batch_op.f("ix_device_sessions_user_id"))
        batch_op.drop_index(batch_op.f("ix_device_sessions_token"))
    op.drop_table("device_sessions")
