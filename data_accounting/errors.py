"""Errors raised by the verification engine."""
from __future__ import annotations


class DataAccountingError(Exception):
    """Base class for verification engine failures."""


class RevisionNotTracked(DataAccountingError, LookupError):
    """No verification row exists for the revision."""

    def __init__(self, revision_id: int):
        super().__init__(f"No verification record for revision {revision_id}")
        self.revision_id = revision_id


class MissingContent(DataAccountingError):
    """Revision content is absent or cannot be serialized; the row stays unfinalized."""

    def __init__(self, revision_id: int, reason: str = "content is missing"):
        super().__init__(f"Cannot finalize revision {revision_id}: {reason}")
        self.revision_id = revision_id


class ChainLookupAmbiguous(DataAccountingError):
    """More than one candidate record for a single chain position."""

    def __init__(self, page_title: str, revision_id: int, candidates: int):
        super().__init__(
            f"{candidates} verification records compete for revision {revision_id} "
            f"of page {page_title!r}"
        )
        self.page_title = page_title
        self.revision_id = revision_id
        self.candidates = candidates


class WitnessEventConflict(DataAccountingError):
    """Same witness verification hash, different event content. Local event wins."""

    def __init__(self, verification_hash: str, existing_id: int, fields: list[str]):
        super().__init__(
            f"Witness event {verification_hash[:16]} conflicts with local event "
            f"{existing_id} on: {', '.join(fields)}"
        )
        self.verification_hash = verification_hash
        self.existing_id = existing_id
        self.fields = fields


class ProofVerificationFailed(DataAccountingError):
    """A Merkle proof does not reproduce the claimed root."""

    def __init__(self, leaf_hash: str, merkle_root: str):
        super().__init__(
            f"Merkle proof for {leaf_hash[:16]} does not reproduce root {merkle_root[:16]}"
        )
        self.leaf_hash = leaf_hash
        self.merkle_root = merkle_root


class TitleCollisionUnresolved(DataAccountingError):
    """Chain-height reconciliation could not move the local page aside."""

    def __init__(self, page_title: str, target_title: str):
        super().__init__(
            f"Cannot move {page_title!r} out of the way: {target_title!r} already exists"
        )
        self.page_title = page_title
        self.target_title = target_title
