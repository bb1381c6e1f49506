"""initial schema: verification records, witness events, Merkle pairs

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "page_verification",
        sa.Column("page_verification_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain_id", sa.String(), nullable=False, server_default=""),
        sa.Column("page_title", sa.String(), nullable=False, server_default=""),
        sa.Column("page_id", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rev_id", sa.Integer(), nullable=False),
        sa.Column("time_stamp", sa.String(), nullable=False, server_default=""),
        sa.Column("hash_content", sa.String(), nullable=False, server_default=""),
        sa.Column("hash_metadata", sa.String(), nullable=False, server_default=""),
        sa.Column("hash_verification", sa.String(), nullable=False, server_default=""),
        sa.Column("signature", sa.String(), nullable=False, server_default=""),
        sa.Column("public_key", sa.String(), nullable=False, server_default=""),
        sa.Column("wallet_address", sa.String(), nullable=False, server_default=""),
        sa.Column("witness_event_id", sa.Integer(), nullable=True),
        sa.Column("source", sa.String(), nullable=False, server_default="default"),
    )
    op.create_index("ix_page_verification_page_title", "page_verification", ["page_title"])
    op.create_index("ix_page_verification_page_id", "page_verification", ["page_id"])
    op.create_index("ix_page_verification_rev_id", "page_verification", ["rev_id"])
    op.create_index("ix_page_verification_hash_verification", "page_verification", ["hash_verification"])
    op.create_index("ix_page_verification_witness_event_id", "page_verification", ["witness_event_id"])

    op.create_table(
        "witness_events",
        sa.Column("witness_event_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain_id", sa.String(), nullable=False, server_default=""),
        sa.Column("page_manifest_title", sa.String(), nullable=False, server_default=""),
        sa.Column("witness_event_verification_hash", sa.String(), nullable=False),
        sa.Column("witness_network", sa.String(), nullable=False, server_default=""),
        sa.Column("smart_contract_address", sa.String(), nullable=False, server_default=""),
        sa.Column("page_manifest_verification_hash", sa.String(), nullable=False, server_default=""),
        sa.Column("merkle_root", sa.String(), nullable=False, server_default=""),
        sa.Column("witness_event_transaction_hash", sa.String(), nullable=False, server_default=""),
        sa.Column("sender_account_address", sa.String(), nullable=False, server_default=""),
        sa.Column("source", sa.String(), nullable=False, server_default="default"),
    )
    op.create_index(
        "ix_witness_events_witness_event_verification_hash",
        "witness_events", ["witness_event_verification_hash"], unique=True,
    )

    op.create_table(
        "witness_merkle_tree",
        sa.Column("witness_merkle_tree_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "witness_event_id", sa.Integer(),
            sa.ForeignKey("witness_events.witness_event_id"), nullable=False,
        ),
        sa.Column("left_leaf", sa.String(), nullable=False),
        sa.Column("right_leaf", sa.String(), nullable=False),
        sa.UniqueConstraint("witness_event_id", "left_leaf", "right_leaf", name="uq_witness_merkle_pair"),
    )
    op.create_index("ix_witness_merkle_tree_witness_event_id", "witness_merkle_tree", ["witness_event_id"])
    op.create_index("ix_witness_merkle_tree_left_leaf", "witness_merkle_tree", ["left_leaf"])
    op.create_index("ix_witness_merkle_tree_right_leaf", "witness_merkle_tree", ["right_leaf"])


def downgrade() -> None:
    op.drop_table("witness_merkle_tree")
    op.drop_table("witness_events")
    op.drop_table("page_verification")
