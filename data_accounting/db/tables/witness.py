"""Witness events and the Merkle sibling pairs that anchor page hashes to them."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class WitnessEventRow(SQLModel, table=True):
    __tablename__ = "witness_events"

    witness_event_id: Optional[int] = Field(default=None, primary_key=True)
    domain_id: str = Field(default="")
    page_manifest_title: str = Field(default="")
    witness_event_verification_hash: str = Field(unique=True, index=True)
    witness_network: str = Field(default="")
    smart_contract_address: str = Field(default="")
    page_manifest_verification_hash: str = Field(default="")
    merkle_root: str = Field(default="")
    witness_event_transaction_hash: str = Field(default="")
    sender_account_address: str = Field(default="")
    source: str = Field(default="default")


class WitnessMerkleTreeRow(SQLModel, table=True):
    """Both children of one internal Merkle node. Append-only."""
    __tablename__ = "witness_merkle_tree"
    __table_args__ = (
        UniqueConstraint("witness_event_id", "left_leaf", "right_leaf", name="uq_witness_merkle_pair"),
    )

    witness_merkle_tree_id: Optional[int] = Field(default=None, primary_key=True)
    witness_event_id: int = Field(foreign_key="witness_events.witness_event_id", index=True)
    left_leaf: str = Field(index=True)
    right_leaf: str = Field(index=True)
