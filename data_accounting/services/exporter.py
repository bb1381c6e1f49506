"""Export service: a page's verification history in portable form."""
from __future__ import annotations

import logging

from sqlmodel import Session

from data_accounting.db.repositories import DBPageVerificationRepository
from data_accounting.entities.verification import PageVerificationRecord
from data_accounting.schemas.payload_contracts import (
    ExportBundle, MerkleProofPair, PagePayload, VerificationPayload, WitnessPayload,
)
from data_accounting.services.witness import WitnessAnchor

logger = logging.getLogger(__name__)


class ChainExporter:
    def __init__(
        self,
        session: Session,
        witness_anchor: WitnessAnchor | None = None,
        page_verification_repository: DBPageVerificationRepository | None = None,
    ):
        self.record_repo = page_verification_repository or DBPageVerificationRepository(session)
        self.witness_anchor = witness_anchor or WitnessAnchor(
            session, page_verification_repository=self.record_repo,
        )

    def chain_height(self, page_title: str) -> int:
        """Number of verification records of the page. A strength signal, not a proof."""
        return self.record_repo.count_by_title(page_title)

    def export_chain(self, page_title: str) -> list[VerificationPayload]:
        records = self.record_repo.find_by_title(page_title)
        return [self._record_to_payload(r) for r in records]

    def export_page(self, page_title: str) -> PagePayload:
        verifications = self.export_chain(page_title)
        logger.info("Exported %d verification records of %r", len(verifications), page_title)
        return PagePayload(
            title=page_title,
            chain_height=len(verifications),
            verifications=verifications,
        )

    def export_pages(self, page_titles: list[str]) -> ExportBundle:
        return ExportBundle(pages=[self.export_page(t) for t in page_titles])

    def _record_to_payload(self, record: PageVerificationRecord) -> VerificationPayload:
        witness = None
        if record.witness_event_id is not None:
            witness = self._witness_payload(record)
        return VerificationPayload(
            domain_id=record.domain_id,
            rev_id=record.revision_id,
            verification_hash=record.hash_verification,
            time_stamp=record.time_stamp,
            witness_event_id=record.witness_event_id,
            signature=record.signature,
            public_key=record.public_key,
            wallet_address=record.wallet_address,
            witness=witness,
        )

    def _witness_payload(self, record: PageVerificationRecord) -> WitnessPayload | None:
        event = self.witness_anchor.get_event(record.witness_event_id)
        if event is None:
            logger.warning(
                "Revision %d points at missing witness event %s",
                record.revision_id, record.witness_event_id,
            )
            return None
        proof = self.witness_anchor.build_proof(record.hash_verification, event.witness_event_id)
        return WitnessPayload(
            domain_id=event.domain_id,
            page_manifest_title=event.page_manifest_title,
            witness_event_verification_hash=event.witness_event_verification_hash,
            witness_network=event.witness_network,
            smart_contract_address=event.smart_contract_address,
            page_manifest_verification_hash=event.page_manifest_verification_hash,
            merkle_root=event.merkle_root,
            witness_event_transaction_hash=event.witness_event_transaction_hash,
            sender_account_address=event.sender_account_address,
            structured_merkle_proof=[
                MerkleProofPair(left_leaf=p.left_leaf, right_leaf=p.right_leaf) for p in proof
            ],
        )
