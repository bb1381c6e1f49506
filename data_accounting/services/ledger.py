"""Ledger service: one verification record per revision, chained by hash."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from sqlmodel import Session

from data_accounting.config.runtime import RuntimeSettings
from data_accounting.db.repositories import DBPageVerificationRepository
from data_accounting.db.unit_of_work import atomic
from data_accounting.entities.verification import (
    PageVerificationRecord, VerificationSource, empty_record,
)
from data_accounting.errors import ChainLookupAmbiguous, MissingContent, RevisionNotTracked
from data_accounting.hashing.hasher import HashComposer
from data_accounting.services.locks import PageLocks, page_locks
from data_accounting.services.witness import WitnessAnchor

logger = logging.getLogger(__name__)


def format_timestamp(timestamp: str | datetime) -> str:
    """Revision timestamps are hashed as 14-digit strings (YYYYMMDDHHMMSS)."""
    if isinstance(timestamp, datetime):
        return timestamp.strftime("%Y%m%d%H%M%S")
    return timestamp


class VerificationLedger:
    """Reacts to revision lifecycle events from the revision store.

    - on_revision_created(): placeholder row so every revision has one.
    - finalize(): compute all hash layers and fill the placeholder in place.
    - on_page_deleted() / on_page_renamed(): cascade deletes and retitles.
    - sign_revision(): store an externally produced signature.
    """

    def __init__(
        self,
        session: Session,
        domain_id: str,
        composer: HashComposer | None = None,
        witness_anchor: WitnessAnchor | None = None,
        page_verification_repository: DBPageVerificationRepository | None = None,
        locks: PageLocks | None = None,
    ):
        self._session = session
        self.domain_id = domain_id
        self.composer = composer or HashComposer()
        self.record_repo = page_verification_repository or DBPageVerificationRepository(session)
        self.witness_anchor = witness_anchor or WitnessAnchor(
            session, composer=self.composer, page_verification_repository=self.record_repo,
        )
        self._locks = locks if locks is not None else page_locks

    @classmethod
    def from_settings(
        cls, session: Session, settings: RuntimeSettings, locks: PageLocks | None = None,
    ) -> "VerificationLedger":
        """Ledger for this deployment's domain id and hash algorithm."""
        return cls(
            session,
            settings.domain_id,
            composer=HashComposer(settings.hash_algorithm),
            locks=locks,
        )

    def on_revision_created(
        self, revision_id: int, page_id: int, page_title: str, timestamp: str | datetime,
    ) -> PageVerificationRecord:
        with atomic(self._session):
            existing = self.record_repo.find_by_revision(revision_id)
            if existing:
                logger.debug("Revision %d already tracked, keeping its row", revision_id)
                return existing[0]
            record = self.record_repo.add(PageVerificationRecord(
                revision_id=revision_id,
                page_id=page_id,
                page_title=page_title,
                time_stamp=format_timestamp(timestamp),
            ))
        logger.debug("Placeholder for revision %d of %r", revision_id, page_title)
        return record

    def record_for_revision(self, revision_id: int) -> PageVerificationRecord:
        rows = self.record_repo.find_by_revision(revision_id)
        if not rows:
            raise RevisionNotTracked(revision_id)
        if len(rows) > 1:
            raise ChainLookupAmbiguous(rows[0].page_title, revision_id, len(rows))
        return rows[0]

    def previous_record(self, page_title: str, before_revision_id: int) -> PageVerificationRecord:
        """Nearest earlier record of the page, or the empty sentinel when there is none."""
        candidates = self.record_repo.find_immediately_before(page_title, before_revision_id)
        if not candidates:
            return empty_record(page_title)
        if len(candidates) > 1:
            raise ChainLookupAmbiguous(page_title, candidates[0].revision_id, len(candidates))
        return candidates[0]

    def finalize(
        self,
        revision_id: int,
        content: str | bytes | None,
        domain_id: str | None = None,
        signature: str | None = None,
        public_key: str | None = None,
    ) -> PageVerificationRecord:
        """Fill the placeholder row of ``revision_id`` with its verification hashes.

        The signature and witness layers commit the predecessor's stored
        signature and witness event; ``signature``/``public_key`` override the
        predecessor's values when given. The row is updated in place; on any
        failure it keeps its empty hash fields.
        """
        placeholder = self.record_for_revision(revision_id)
        if content is None:
            logger.warning("Revision %d has no content, left unverified", revision_id)
            raise MissingContent(revision_id)
        if not isinstance(content, (str, bytes)):
            logger.warning("Revision %d content is %s, left unverified", revision_id, type(content).__name__)
            raise MissingContent(revision_id, f"cannot serialize {type(content).__name__}")

        domain_id = self.domain_id if domain_id is None else domain_id

        with self._locks.hold(placeholder.page_id):
            with atomic(self._session):
                previous = self.previous_record(placeholder.page_title, revision_id)

                content_hash = self.composer.content_hash(content)
                metadata_hash = self.composer.metadata_hash(
                    domain_id, placeholder.time_stamp, previous.hash_verification,
                )
                signature_hash = self.composer.signature_hash(
                    previous.signature if signature is None else signature,
                    previous.public_key if public_key is None else public_key,
                )
                witness_hash = self.composer.witness_hash_for(
                    self.witness_anchor.get_event(previous.witness_event_id)
                )

                finalized = replace(
                    placeholder,
                    domain_id=domain_id,
                    hash_content=content_hash,
                    hash_metadata=metadata_hash,
                    hash_verification=self.composer.verification_hash(
                        content_hash, metadata_hash, signature_hash, witness_hash,
                    ),
                    signature="",
                    public_key="",
                    wallet_address="",
                    source=VerificationSource.DEFAULT,
                )
                self.record_repo.update(finalized)

        logger.info(
            "Finalized revision %d of %r: verification=%s previous=%s",
            revision_id, finalized.page_title,
            finalized.hash_verification[:16], previous.hash_verification[:16] or "-",
        )
        return finalized

    def sign_revision(
        self, revision_id: int, signature: str, public_key: str, wallet_address: str = "",
    ) -> PageVerificationRecord:
        """Attach a signature made elsewhere. Hashes are untouched; the next revision seals it."""
        with atomic(self._session):
            record = self.record_for_revision(revision_id)
            signed = replace(
                record, signature=signature, public_key=public_key, wallet_address=wallet_address,
            )
            self.record_repo.update(signed)
        logger.info("Signed revision %d with key %s", revision_id, public_key[:16])
        return signed

    def on_page_deleted(self, page_id: int) -> int:
        with self._locks.hold(page_id):
            with atomic(self._session):
                deleted = self.record_repo.delete_by_page_id(page_id)
        logger.info("Deleted %d verification records of page %d", deleted, page_id)
        return deleted

    def on_page_renamed(self, old_title: str, new_title: str, page_id: int) -> int:
        with self._locks.hold(page_id):
            with atomic(self._session):
                renamed = self.record_repo.rename(old_title, new_title, page_id)
        logger.info("Moved %d verification records from %r to %r", renamed, old_title, new_title)
        return renamed
