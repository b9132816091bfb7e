"""Initial schema: users, gigs, contracts, messages

Learn: Messages carry two indexes — one for keyset pagination of a
contract's history (contract_id, created_at, id), one for unread counts
(contract_id, sender_id, is_read).

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2025-02-10 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3f1c2a9d7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )

    op.create_table(
        "gigs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="other"),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("idx_gigs_user", "gigs", ["user_id"])

    op.create_table(
        "contracts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("gig_id", sa.Uuid(), sa.ForeignKey("gigs.id"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.UniqueConstraint("gig_id", "user_id", name="uq_contracts_gig_user"),
    )
    op.create_index("idx_contracts_user", "contracts", ["user_id"])
    op.create_index("idx_contracts_gig", "contracts", ["gig_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "contract_id", sa.Uuid(), sa.ForeignKey("contracts.id"), nullable=False
        ),
        sa.Column("sender_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index(
        "idx_messages_contract_created",
        "messages",
        ["contract_id", "created_at", "id"],
    )
    op.create_index(
        "idx_messages_unread",
        "messages",
        ["contract_id", "sender_id", "is_read"],
    )


def downgrade() -> None:
    op.drop_index("idx_messages_unread", table_name="messages")
    op.drop_index("idx_messages_contract_created", table_name="messages")
    op.drop_table("messages")
    op.drop_index("idx_contracts_gig", table_name="contracts")
    op.drop_index("idx_contracts_user", table_name="contracts")
    op.drop_table("contracts")
    op.drop_index("idx_gigs_user", table_name="gigs")
    op.drop_table("gigs")
    op.drop_table("users")
