"""Import service: attach foreign verification chains to locally imported revisions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import StrEnum

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from data_accounting.db.repositories import DBPageVerificationRepository
from data_accounting.db.unit_of_work import atomic
from data_accounting.entities.verification import (
    PageVerificationRecord, VerificationSource, WitnessEvent,
)
from data_accounting.errors import (
    DataAccountingError, ProofVerificationFailed, TitleCollisionUnresolved, WitnessEventConflict,
)
from data_accounting.merkle.tree import SiblingPair
from data_accounting.schemas.payload_contracts import (
    ExportBundle, PagePayload, VerificationPayload, WitnessPayload,
)
from data_accounting.services.exporter import ChainExporter
from data_accounting.services.interfaces.page_store import PageStore
from data_accounting.services.witness import WitnessAnchor

logger = logging.getLogger(__name__)

RENAME_REASON = "Resolving naming collision because imported page has longer verified chain height."


class ChainHeightAction(StrEnum):
    NO_LOCAL_CHAIN = "no_local_chain"
    RENAMED_LOCAL = "renamed_local"
    KEPT_LOCAL = "kept_local"


@dataclass
class ChainHeightDecision:
    action: ChainHeightAction
    local_height: int
    imported_height: int
    renamed_to: str | None = None


@dataclass
class RevisionImportResult:
    record: PageVerificationRecord
    proof_entries_added: int = 0
    rejected_anchor: str | None = None
    conflicting_fields: list[str] = field(default_factory=list)


@dataclass
class PageImportResult:
    title: str
    decision: ChainHeightDecision | None = None
    revisions: list[RevisionImportResult] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ImportReport:
    pages: list[PageImportResult] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def chain_height_title(page_title: str, local_height: int, now: datetime) -> str:
    return f"{page_title}_ChainHeight_{local_height}_{now.strftime('%Y-%m-%d-%H-%M-%S')}"


def witness_from_payload(payload: WitnessPayload) -> WitnessEvent:
    return WitnessEvent(
        domain_id=payload.domain_id,
        page_manifest_title=payload.page_manifest_title,
        witness_event_verification_hash=payload.witness_event_verification_hash,
        witness_network=payload.witness_network,
        smart_contract_address=payload.smart_contract_address,
        page_manifest_verification_hash=payload.page_manifest_verification_hash,
        merkle_root=payload.merkle_root,
        witness_event_transaction_hash=payload.witness_event_transaction_hash,
        sender_account_address=payload.sender_account_address,
        source=VerificationSource.IMPORTED,
    )


class ChainImporter:
    """Reconciles incoming verification chains with the local ledger.

    Imported ids (revision ids, witness event ids) are foreign and never
    written; local surrogate keys are authoritative.
    """

    def __init__(
        self,
        session: Session,
        page_store: PageStore,
        witness_anchor: WitnessAnchor | None = None,
        exporter: ChainExporter | None = None,
        page_verification_repository: DBPageVerificationRepository | None = None,
    ):
        self._session = session
        self.page_store = page_store
        self.record_repo = page_verification_repository or DBPageVerificationRepository(session)
        self.witness_anchor = witness_anchor or WitnessAnchor(
            session, page_verification_repository=self.record_repo,
        )
        self.exporter = exporter or ChainExporter(
            session, witness_anchor=self.witness_anchor, page_verification_repository=self.record_repo,
        )

    def import_revision_verification(
        self, imported: VerificationPayload, local_page_title: str,
    ) -> RevisionImportResult | None:
        """Write ``imported`` onto the newest local record of ``local_page_title``.

        Returns ``None`` when the page has no local record to attach to. The
        record's own hashes are always imported; its witness block is only
        accepted when the leaf provably hangs under the claimed merkle_root.
        A rejected or conflicting anchor is reported on the result.
        """
        with atomic(self._session):
            target = self.record_repo.latest_for_title(local_page_title)
            if target is None:
                logger.debug("No local revision of %r to attach verification to", local_page_title)
                return None

            result = RevisionImportResult(record=target)
            witness_event_id = target.witness_event_id
            if imported.witness is not None:
                try:
                    witness_event_id, result.proof_entries_added = self._import_witness(
                        imported.witness, imported.verification_hash,
                    )
                except ProofVerificationFailed as exc:
                    logger.warning("Rejected witness anchor on %r: %s", local_page_title, exc)
                    result.rejected_anchor = str(exc)
                except WitnessEventConflict as exc:
                    logger.warning("Kept local witness event for %r: %s", local_page_title, exc)
                    result.rejected_anchor = str(exc)
                    result.conflicting_fields = list(exc.fields)
                    if self.witness_anchor.is_anchored_under(imported.verification_hash, exc.existing_id):
                        witness_event_id = exc.existing_id

            result.record = replace(
                target,
                domain_id=imported.domain_id,
                time_stamp=imported.time_stamp or target.time_stamp,
                # Local sub-hashes cannot reproduce a foreign verification hash.
                hash_content="",
                hash_metadata="",
                hash_verification=imported.verification_hash,
                signature=imported.signature,
                public_key=imported.public_key,
                wallet_address=imported.wallet_address,
                witness_event_id=witness_event_id,
                source=VerificationSource.IMPORTED,
            )
            self.record_repo.update(result.record)

        logger.info(
            "Imported verification %s onto %r (local row %d)",
            imported.verification_hash[:16], local_page_title, result.record.page_verification_id,
        )
        return result

    def _import_witness(self, witness: WitnessPayload, leaf_hash: str) -> tuple[int, int]:
        proof = [
            SiblingPair(left_leaf=p.left_leaf, right_leaf=p.right_leaf)
            for p in witness.structured_merkle_proof
        ]
        if not self.witness_anchor.verify_proof(leaf_hash, proof, witness.merkle_root):
            proof = self._local_path(witness, leaf_hash)

        event_id = self.witness_anchor.record_event(witness_from_payload(witness))
        return event_id, self.witness_anchor.attach_proof(event_id, proof)

    def _local_path(self, witness: WitnessPayload, leaf_hash: str) -> list[SiblingPair]:
        """Path for ``leaf_hash`` already stored under the same event and root."""
        local = self.witness_anchor.event_repo.get_by_verification_hash(
            witness.witness_event_verification_hash,
        )
        if local is not None and witness.merkle_root and local.merkle_root == witness.merkle_root:
            path = self.witness_anchor.build_proof(leaf_hash, local.witness_event_id)
            if self.witness_anchor.verify_proof(leaf_hash, path, local.merkle_root):
                return path
        raise ProofVerificationFailed(leaf_hash, witness.merkle_root)

    def reconcile_chain_height(
        self, page_title: str, imported_height: int, now: datetime | None = None,
    ) -> ChainHeightDecision:
        """Longest verified chain wins the title.

        When the local chain is not longer than the incoming one, the local
        page is moved to ``<title>_ChainHeight_<height>_<timestamp>``. When it
        is longer, nothing changes here and the incoming page lands under
        another title through the revision store's own collision handling.
        """
        local_height = self.exporter.chain_height(page_title)
        if local_height == 0:
            return ChainHeightDecision(ChainHeightAction.NO_LOCAL_CHAIN, local_height, imported_height)
        if local_height > imported_height:
            logger.info(
                "Keeping local %r (height %d > imported %d)", page_title, local_height, imported_height,
            )
            return ChainHeightDecision(ChainHeightAction.KEPT_LOCAL, local_height, imported_height)

        new_title = chain_height_title(page_title, local_height, now or datetime.now(timezone.utc))
        if self.page_store.page_exists(new_title):
            raise TitleCollisionUnresolved(page_title, new_title)
        self.page_store.move_page(page_title, new_title, RENAME_REASON)
        logger.info(
            "Moved local %r to %r (height %d <= imported %d)",
            page_title, new_title, local_height, imported_height,
        )
        return ChainHeightDecision(
            ChainHeightAction.RENAMED_LOCAL, local_height, imported_height, renamed_to=new_title,
        )

    def import_page(self, page: PagePayload, now: datetime | None = None) -> PageImportResult:
        result = PageImportResult(title=page.title)
        if page.chain_height is not None:
            result.decision = self.reconcile_chain_height(page.title, page.chain_height, now)

        for verification in page.verifications:
            local_title = self.page_store.import_revision(page.title, verification)
            if local_title is None:
                result.skipped += 1
                continue
            revision = self.import_revision_verification(verification, local_title)
            if revision is None:
                result.skipped += 1
            else:
                result.revisions.append(revision)
        return result

    def import_bundle(self, bundle: ExportBundle, now: datetime | None = None) -> ImportReport:
        """Import every page; a failing page is reported and the rest proceed."""
        report = ImportReport()
        for page in bundle.pages:
            try:
                report.pages.append(self.import_page(page, now))
            except (DataAccountingError, SQLAlchemyError) as exc:
                logger.error("Import of page %r failed: %s", page.title, exc)
                report.failed[page.title] = str(exc)
        logger.info(
            "Imported %d pages, %d failed", len(report.pages), len(report.failed),
        )
        return report
