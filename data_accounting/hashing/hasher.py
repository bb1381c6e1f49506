"""Canonical hashing for verification records and Merkle tree nodes."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

DEFAULT_HASH_ALGORITHM = "sha3_512"

NONCE = "nonce"


def get_hash_sum(data: str | bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Hash ``data`` with ``algorithm`` and return the lowercase hex digest.

    Strings are encoded as UTF-8; bytes are hashed exactly as given.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.new(algorithm, data).hexdigest()


def hash_concat(left: str, right: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """Hash two hex-encoded hashes together: H(left + right)."""
    return get_hash_sum(left + right, algorithm)


def make_empty_if_nonce(value: str | None) -> str:
    if value is None or value == NONCE:
        return ""
    return value


@dataclass(frozen=True)
class HashComposer:
    """Computes the four hash layers of a revision and their combination.

    Every method is a pure function of its arguments and the configured
    algorithm. The verification hash is a commitment over the content,
    metadata, signature and witness commitments, so each layer can be
    checked on its own as long as its sub-hash is published.
    """

    algorithm: str = DEFAULT_HASH_ALGORITHM

    def __post_init__(self) -> None:
        if self.algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash algorithm: {self.algorithm!r}")

    def hash(self, data: str | bytes) -> str:
        return get_hash_sum(data, self.algorithm)

    def concat(self, left: str, right: str) -> str:
        return hash_concat(left, right, self.algorithm)

    def content_hash(self, content: str | bytes) -> str:
        return self.hash(content)

    def metadata_hash(
        self, domain_id: str, timestamp: str, previous_verification_hash: str | None = "",
    ) -> str:
        previous = make_empty_if_nonce(previous_verification_hash)
        return self.hash(domain_id + timestamp + previous)

    def signature_hash(self, signature: str | None, public_key: str | None) -> str:
        return self.hash((signature or "") + (public_key or ""))

    def witness_hash(
        self,
        page_manifest_verification_hash: str,
        merkle_root: str,
        witness_network: str,
        witness_tx_hash: str,
    ) -> str:
        return self.hash(
            page_manifest_verification_hash + merkle_root + witness_network + witness_tx_hash
        )

    def witness_hash_for(self, event) -> str:
        """Witness layer for an optional event; ``""`` when there is none."""
        if event is None:
            return ""
        return self.witness_hash(
            event.page_manifest_verification_hash or "",
            event.merkle_root or "",
            event.witness_network or "",
            event.witness_event_transaction_hash or "",
        )

    def verification_hash(
        self, content_hash: str, metadata_hash: str, signature_hash: str, witness_hash: str,
    ) -> str:
        return self.hash(content_hash + metadata_hash + signature_hash + witness_hash)
