"""Initial schema: identities and booking requests.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_WHERE = sa.text("status IN ('pending', 'accepted')")


def upgrade() -> None:
    # Identities: one row per live connection, deleted on disconnect
    op.create_table(
        "identities",
        sa.Column("connection_id", sa.String(64), primary_key=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('seeker', 'provider')", name="check_identity_role"),
    )
    # Presence fan-out reads "located identities of a role" on every location update
    op.create_index("ix_identities_role_latitude", "identities", ["role", "latitude"])

    # Requests: kept after their participants leave, so no foreign keys
    op.create_table(
        "requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("requester_role", sa.String(20), nullable=False),
        sa.Column("target_id", sa.String(64), nullable=False),
        sa.Column("acceptor_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("cancel_reason", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'cancelled', 'completed')",
            name="check_request_status",
        ),
    )
    op.create_index("ix_requests_requester_id", "requests", ["requester_id"])
    op.create_index("ix_requests_target_id", "requests", ["target_id"])
    op.create_index("ix_requests_acceptor_id", "requests", ["acceptor_id"])
    # Expiry scan: WHERE status = 'pending' AND created_at < :cutoff
    op.create_index("ix_requests_status_created", "requests", ["status", "created_at"])
    # At most one pending/accepted request per requester
    op.create_index(
        "uq_requests_active_requester",
        "requests",
        ["requester_id"],
        unique=True,
        postgresql_where=ACTIVE_WHERE,
        sqlite_where=ACTIVE_WHERE,
    )


def downgrade() -> None:
    op.drop_table("requests")
    op.drop_table("identities")
