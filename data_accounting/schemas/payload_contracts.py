"""Portable verification format exchanged between deployments.

The wire name ``verification_hash`` is stored locally as ``hash_verification``.
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MerkleProofPair(BaseModel):
    left_leaf: str
    right_leaf: str


class WitnessPayload(BaseModel):
    """Witness event attached to an exported revision, with the leaf's proof path."""

    domain_id: str = ""
    page_manifest_title: str = ""
    witness_event_verification_hash: str = Field(min_length=1)
    witness_network: str = ""
    smart_contract_address: str = ""
    page_manifest_verification_hash: str = ""
    merkle_root: str = ""
    witness_event_transaction_hash: str = ""
    sender_account_address: str = ""
    structured_merkle_proof: list[MerkleProofPair] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator("structured_merkle_proof", mode="before")
    @classmethod
    def _decode_flat_proof(cls, value: Any) -> Any:
        # Older exports embed the proof as a JSON string.
        if isinstance(value, str):
            return json.loads(value) if value.strip() else []
        return value


class VerificationPayload(BaseModel):
    """One revision's verification record in chain order."""

    domain_id: str = ""
    rev_id: int | None = None
    verification_hash: str = ""
    time_stamp: str = ""
    witness_event_id: int | None = None
    signature: str = ""
    public_key: str = ""
    wallet_address: str = ""
    witness: WitnessPayload | None = None

    model_config = ConfigDict(extra="allow")


class PagePayload(BaseModel):
    title: str = Field(min_length=1)
    chain_height: int | None = Field(default=None, ge=0)
    verifications: list[VerificationPayload] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class ExportBundle(BaseModel):
    schema_version: str = "1"
    pages: list[PagePayload] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(exclude_none=True, indent=indent)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ExportBundle":
        return cls.model_validate_json(raw)
