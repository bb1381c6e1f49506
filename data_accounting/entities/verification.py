from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import StrEnum


class VerificationSource(StrEnum):
    DEFAULT = "default"
    IMPORTED = "imported"


@dataclass
class PageVerificationRecord:
    """Verification state of one revision. Hash fields stay empty until finalized."""
    revision_id: int
    page_id: int
    page_title: str
    page_verification_id: int | None = None
    domain_id: str = ""
    time_stamp: str = ""
    hash_content: str = ""
    hash_metadata: str = ""
    hash_verification: str = ""
    signature: str = ""
    public_key: str = ""
    wallet_address: str = ""
    witness_event_id: int | None = None
    source: VerificationSource = VerificationSource.DEFAULT

    @property
    def is_finalized(self) -> bool:
        return bool(self.hash_verification)

    @property
    def is_empty(self) -> bool:
        return self.page_verification_id is None and not self.hash_verification


def empty_record(page_title: str = "") -> PageVerificationRecord:
    """Sentinel predecessor: every string field empty, no witness."""
    return PageVerificationRecord(revision_id=0, page_id=0, page_title=page_title)


@dataclass
class WitnessEvent:
    """One external anchoring action covering a batch of page hashes."""
    witness_event_verification_hash: str
    witness_event_id: int | None = None
    domain_id: str = ""
    page_manifest_title: str = ""
    witness_network: str = ""
    witness_event_transaction_hash: str = ""
    smart_contract_address: str = ""
    sender_account_address: str = ""
    page_manifest_verification_hash: str = ""
    merkle_root: str = ""
    source: VerificationSource = VerificationSource.DEFAULT

    def differing_fields(self, other: "WitnessEvent") -> list[str]:
        """Names of content fields where ``other`` carries a different non-empty value."""
        skip = {"witness_event_id", "source"}
        diffs = []
        for f in fields(self):
            if f.name in skip:
                continue
            theirs = getattr(other, f.name)
            if theirs and getattr(self, f.name) != theirs:
                diffs.append(f.name)
        return diffs


@dataclass(frozen=True)
class MerkleProofEntry:
    witness_event_id: int
    left_leaf: str
    right_leaf: str
    witness_merkle_tree_id: int | None = field(default=None, compare=False)
