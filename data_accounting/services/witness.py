"""Witness service: record anchoring events, store Merkle proofs, replay them."""
from __future__ import annotations

import logging

from sqlmodel import Session

from data_accounting.db.repositories import (
    DBMerkleProofRepository, DBPageVerificationRepository, DBWitnessEventRepository,
)
from data_accounting.db.unit_of_work import atomic
from data_accounting.entities.verification import MerkleProofEntry, WitnessEvent
from data_accounting.errors import DataAccountingError, ProofVerificationFailed, WitnessEventConflict
from data_accounting.hashing.hasher import HashComposer
from data_accounting.merkle.tree import (
    SiblingPair,
    build_merkle_tree,
    get_root,
    leaves_from_hashes,
    sibling_pairs,
    verify_proof,
)

logger = logging.getLogger(__name__)


class WitnessAnchor:
    """Owns witness events and the Merkle sibling pairs that anchor page hashes.

    - record_event(): insert-or-fetch by witness_event_verification_hash.
    - attach_proof(): append sibling pairs for an event, skipping known pairs.
    - build_proof() / verify_proof(): walk stored pairs from a leaf to the
      event's merkle_root and replay them.
    - complete_round(): consume a finished anchoring round pushed by the
      external witness system.
    """

    def __init__(
        self,
        session: Session,
        composer: HashComposer | None = None,
        witness_event_repository: DBWitnessEventRepository | None = None,
        merkle_proof_repository: DBMerkleProofRepository | None = None,
        page_verification_repository: DBPageVerificationRepository | None = None,
    ):
        self._session = session
        self.composer = composer or HashComposer()
        self.event_repo = witness_event_repository or DBWitnessEventRepository(session)
        self.proof_repo = merkle_proof_repository or DBMerkleProofRepository(session)
        self.record_repo = page_verification_repository or DBPageVerificationRepository(session)

    def get_event(self, witness_event_id: int | None) -> WitnessEvent | None:
        if witness_event_id is None:
            return None
        return self.event_repo.get(witness_event_id)

    def record_event(self, event: WitnessEvent) -> int:
        """Return the local id for ``event``, inserting it only if its hash is new.

        Raises WitnessEventConflict when a stored event shares the hash but
        carries different content; the stored event is never overwritten.
        """
        verification_hash = event.witness_event_verification_hash
        if not verification_hash:
            raise ValueError("witness_event_verification_hash is required")

        with atomic(self._session):
            existing = self.event_repo.get_by_verification_hash(verification_hash)
            if existing is None:
                inserted = self.event_repo.try_insert(event)
                if inserted is not None:
                    logger.info(
                        "Recorded witness event %s as local id %d (%s)",
                        verification_hash[:16], inserted.witness_event_id, event.source,
                    )
                    return inserted.witness_event_id
                # Lost an insert race; the winner's row is now visible.
                existing = self.event_repo.get_by_verification_hash(verification_hash)
                if existing is None:
                    raise DataAccountingError(
                        f"Witness event {verification_hash[:16]} neither inserted nor found"
                    )

            diffs = existing.differing_fields(event)
            if diffs:
                logger.warning(
                    "Witness event %s differs from local id %d on %s",
                    verification_hash[:16], existing.witness_event_id, diffs,
                )
                raise WitnessEventConflict(verification_hash, existing.witness_event_id, diffs)
            return existing.witness_event_id

    def attach_proof(self, witness_event_id: int, proof: list[SiblingPair]) -> int:
        """Store the sibling pairs of ``proof`` under ``witness_event_id``.

        Pairs already stored under the same event are skipped, so every event
        keeps a complete path for each of its leaves even when rounds overlap.
        Returns the number of pairs inserted.
        """
        added = 0
        with atomic(self._session):
            for pair in proof:
                if self.proof_repo.pair_exists(witness_event_id, pair.left_leaf, pair.right_leaf):
                    continue
                self.proof_repo.add(MerkleProofEntry(
                    witness_event_id=witness_event_id,
                    left_leaf=pair.left_leaf,
                    right_leaf=pair.right_leaf,
                ))
                added += 1
        if added:
            logger.debug("Attached %d Merkle pairs to witness event %d", added, witness_event_id)
        return added

    def is_anchored_under(self, leaf_hash: str, witness_event_id: int) -> bool:
        """True when stored pairs lead from ``leaf_hash`` to the event's merkle_root."""
        event = self.event_repo.get(witness_event_id)
        if event is None or not event.merkle_root:
            return False
        return self.verify_proof(leaf_hash, self.build_proof(leaf_hash, witness_event_id), event.merkle_root)

    def build_proof(self, leaf_hash: str, witness_event_id: int | None = None) -> list[SiblingPair]:
        """Walk stored pairs from ``leaf_hash`` to a witness event's merkle_root.

        At each level the first stored pair (by insertion order) holding the
        current value is taken, and the parent H(left + right) becomes the
        next value. Returns an empty list when no path reaches a root.
        """
        candidate_events: list[int] = []
        for entry in self.proof_repo.find_containing(leaf_hash, witness_event_id):
            if entry.witness_event_id not in candidate_events:
                candidate_events.append(entry.witness_event_id)

        for event_id in candidate_events:
            path = self._walk_to_root(leaf_hash, event_id)
            if path:
                return path
        return []

    def _walk_to_root(self, leaf_hash: str, witness_event_id: int) -> list[SiblingPair]:
        event = self.event_repo.get(witness_event_id)
        if event is None or not event.merkle_root:
            return []

        entries = self.proof_repo.find_by_event(witness_event_id)
        by_value: dict[str, list[MerkleProofEntry]] = {}
        for entry in entries:
            by_value.setdefault(entry.left_leaf, []).append(entry)
            if entry.right_leaf != entry.left_leaf:
                by_value.setdefault(entry.right_leaf, []).append(entry)

        path: list[SiblingPair] = []
        used: set[tuple[str, str]] = set()
        current = leaf_hash
        while current != event.merkle_root:
            step = next(
                (e for e in by_value.get(current, []) if (e.left_leaf, e.right_leaf) not in used),
                None,
            )
            if step is None:
                return []
            used.add((step.left_leaf, step.right_leaf))
            path.append(SiblingPair(left_leaf=step.left_leaf, right_leaf=step.right_leaf))
            current = self.composer.concat(step.left_leaf, step.right_leaf)
        return path

    def verify_proof(self, leaf_hash: str, proof: list[SiblingPair], expected_root: str) -> bool:
        return verify_proof(leaf_hash, proof, expected_root, self.composer.algorithm)

    def require_proof(self, leaf_hash: str, proof: list[SiblingPair], expected_root: str) -> None:
        if not self.verify_proof(leaf_hash, proof, expected_root):
            raise ProofVerificationFailed(leaf_hash, expected_root)

    def complete_round(self, event: WitnessEvent, leaves: list[str]) -> int:
        """Anchor ``leaves`` (page verification hashes) under a finished witness event.

        Builds the Merkle tree over the leaves in the given order, checks its
        root against ``event.merkle_root``, stores every sibling pair and
        points the matching page verification records at the local event id.
        """
        if not leaves:
            raise ValueError("A witness round needs at least one leaf")

        nodes = build_merkle_tree(leaves_from_hashes(leaves), self.composer.algorithm)
        root = get_root(nodes)
        if root is None or root.hash != event.merkle_root:
            raise ProofVerificationFailed(leaves[0], event.merkle_root)

        with atomic(self._session):
            event_id = self.record_event(event)
            added = self.attach_proof(event_id, sibling_pairs(nodes))
            records = self.record_repo.find_by_hash_verification(leaves)
            self.record_repo.set_witness_event(
                [r.page_verification_id for r in records], event_id,
            )

        logger.info(
            "Witness round %s: %d leaves, %d new pairs, %d records, root=%s",
            event.witness_event_verification_hash[:16], len(leaves), added,
            len(records), event.merkle_root[:16],
        )
        return event_id
