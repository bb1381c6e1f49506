"""Re-derive a page's stored hashes and report where the chain breaks."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from sqlmodel import Session

from data_accounting.db.repositories import DBPageVerificationRepository
from data_accounting.entities.verification import PageVerificationRecord, empty_record
from data_accounting.hashing.hasher import HashComposer
from data_accounting.services.witness import WitnessAnchor

logger = logging.getLogger(__name__)


class CheckStatus(StrEnum):
    VERIFIED = "verified"
    UNFINALIZED = "unfinalized"
    NOT_REDERIVABLE = "not_rederivable"
    BROKEN_CHAIN = "broken_chain"
    BAD_COMPOSITION = "bad_composition"
    BAD_ANCHOR = "bad_anchor"


FAILING = {CheckStatus.BROKEN_CHAIN, CheckStatus.BAD_COMPOSITION, CheckStatus.BAD_ANCHOR}


@dataclass
class RecordCheck:
    revision_id: int
    status: CheckStatus
    detail: str = ""


@dataclass
class ChainVerificationReport:
    page_title: str
    checks: list[RecordCheck] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not any(c.status in FAILING for c in self.checks)

    @property
    def unverified(self) -> list[int]:
        return [c.revision_id for c in self.checks if c.status == CheckStatus.UNFINALIZED]


class ChainVerifier:
    """Checks metadata continuity, hash composition and Merkle anchoring.

    The signature and witness layers of a record commit its predecessor as
    it was at finalize time. A predecessor signed or anchored afterwards
    therefore matches either with or without its signature and witness.
    Explicit signature overrides passed to finalize are not reproduced.
    """

    def __init__(
        self,
        session: Session,
        composer: HashComposer | None = None,
        witness_anchor: WitnessAnchor | None = None,
        page_verification_repository: DBPageVerificationRepository | None = None,
    ):
        self.composer = composer or HashComposer()
        self.record_repo = page_verification_repository or DBPageVerificationRepository(session)
        self.witness_anchor = witness_anchor or WitnessAnchor(
            session, composer=self.composer, page_verification_repository=self.record_repo,
        )

    def verify_page(self, page_title: str) -> ChainVerificationReport:
        records = sorted(self.record_repo.find_by_title(page_title), key=lambda r: r.revision_id)
        report = ChainVerificationReport(page_title=page_title)
        previous = empty_record(page_title)
        for record in records:
            report.checks.append(self._check(record, previous))
            previous = record

        if not report.ok:
            logger.warning("Verification chain of %r is broken", page_title)
        return report

    def _check(self, record: PageVerificationRecord, previous: PageVerificationRecord) -> RecordCheck:
        if not record.is_finalized:
            return RecordCheck(record.revision_id, CheckStatus.UNFINALIZED)

        if record.hash_content and record.hash_metadata:
            metadata_hash = self.composer.metadata_hash(
                record.domain_id, record.time_stamp, previous.hash_verification,
            )
            if metadata_hash != record.hash_metadata:
                return RecordCheck(
                    record.revision_id, CheckStatus.BROKEN_CHAIN,
                    f"metadata hash does not commit revision {previous.revision_id}",
                )

            if record.hash_verification not in self._compositions(record, previous):
                return RecordCheck(
                    record.revision_id, CheckStatus.BAD_COMPOSITION,
                    "verification hash does not match its layers",
                )
            rederived = True
        else:
            rederived = False

        if record.witness_event_id is not None:
            event = self.witness_anchor.get_event(record.witness_event_id)
            if event is None:
                return RecordCheck(
                    record.revision_id, CheckStatus.BAD_ANCHOR,
                    f"witness event {record.witness_event_id} is missing",
                )
            proof = self.witness_anchor.build_proof(record.hash_verification, event.witness_event_id)
            if not self.witness_anchor.verify_proof(record.hash_verification, proof, event.merkle_root):
                return RecordCheck(
                    record.revision_id, CheckStatus.BAD_ANCHOR,
                    f"no Merkle path to root {event.merkle_root[:16]}",
                )

        if not rederived:
            return RecordCheck(record.revision_id, CheckStatus.NOT_REDERIVABLE, "imported without sub-hashes")
        return RecordCheck(record.revision_id, CheckStatus.VERIFIED)

    def _compositions(self, record: PageVerificationRecord, previous: PageVerificationRecord) -> set[str]:
        signature_hashes = {self.composer.signature_hash("", "")}
        if previous.signature or previous.public_key:
            signature_hashes.add(self.composer.signature_hash(previous.signature, previous.public_key))
        witness_hashes = {""}
        event = self.witness_anchor.get_event(previous.witness_event_id)
        if event is not None:
            witness_hashes.add(self.composer.witness_hash_for(event))
        return {
            self.composer.verification_hash(record.hash_content, record.hash_metadata, s, w)
            for s in signature_hashes
            for w in witness_hashes
        }
