"""create_salla_connections

Revision ID: 3c1f9e7a2b54
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1f9e7a2b54"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "salla_connections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.String(length=100), nullable=True),
        sa.Column("store_name", sa.String(length=255), nullable=True),
        sa.Column("store_email", sa.String(length=320), nullable=True),
        sa.Column("store_domain", sa.String(length=500), nullable=True),
        sa.Column("store_plan", sa.String(length=50), nullable=True),
        sa.Column("store_avatar", sa.String(length=500), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_type", sa.String(length=50), nullable=False, server_default="Bearer"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scope", sa.Text(), nullable=True),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "connected_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_salla_connections_user_id", "salla_connections", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_salla_connections_user_id", table_name="salla_connections")
    op.drop_table("salla_connections")
