from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from data_accounting.db.tables import PageVerificationRow, WitnessEventRow, WitnessMerkleTreeRow
from data_accounting.entities.verification import (
    MerkleProofEntry, PageVerificationRecord, VerificationSource, WitnessEvent,
)


class DBPageVerificationRepository:
    def __init__(self, session: Session):
        self._session = session

    def add(self, record: PageVerificationRecord) -> PageVerificationRecord:
        row = self._domain_to_row(record)
        row.page_verification_id = None
        self._session.add(row)
        self._session.flush()
        return self._row_to_domain(row)

    def get(self, page_verification_id: int) -> PageVerificationRecord | None:
        row = self._session.get(PageVerificationRow, page_verification_id)
        return self._row_to_domain(row) if row else None

    def find_by_revision(self, revision_id: int) -> list[PageVerificationRecord]:
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.rev_id == revision_id)
            .order_by(PageVerificationRow.page_verification_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def find_immediately_before(
        self, page_title: str, before_revision_id: int,
    ) -> list[PageVerificationRecord]:
        """All rows sitting at the highest revision id below ``before_revision_id``.

        More than one result means the store handed out a duplicate revision id.
        """
        max_rev = self._session.exec(
            select(func.max(PageVerificationRow.rev_id))
            .where(PageVerificationRow.page_title == page_title)
            .where(PageVerificationRow.rev_id < before_revision_id)
        ).one()
        if max_rev is None:
            return []
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.page_title == page_title)
            .where(PageVerificationRow.rev_id == max_rev)
            .order_by(PageVerificationRow.page_verification_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def find_by_title(self, page_title: str) -> list[PageVerificationRecord]:
        """Chain history in local insertion order."""
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.page_title == page_title)
            .order_by(PageVerificationRow.page_verification_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def latest_for_title(self, page_title: str) -> PageVerificationRecord | None:
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.page_title == page_title)
            .order_by(PageVerificationRow.page_verification_id.desc())
            .limit(1)
        )
        row = self._session.exec(stmt).first()
        return self._row_to_domain(row) if row else None

    def count_by_title(self, page_title: str) -> int:
        stmt = (
            select(func.count())
            .select_from(PageVerificationRow)
            .where(PageVerificationRow.page_title == page_title)
        )
        return int(self._session.exec(stmt).one())

    def find_by_hash_verification(self, hashes: Iterable[str]) -> list[PageVerificationRecord]:
        hashes = [h for h in hashes if h]
        if not hashes:
            return []
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.hash_verification.in_(hashes))
            .order_by(PageVerificationRow.page_verification_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def update(self, record: PageVerificationRecord) -> None:
        """Overwrite every non-identity field of an existing row."""
        existing = self._session.get(PageVerificationRow, record.page_verification_id)
        if existing is None:
            raise LookupError(f"page_verification row {record.page_verification_id} not found")
        existing.domain_id = record.domain_id
        existing.page_title = record.page_title
        existing.time_stamp = record.time_stamp
        existing.hash_content = record.hash_content
        existing.hash_metadata = record.hash_metadata
        existing.hash_verification = record.hash_verification
        existing.signature = record.signature
        existing.public_key = record.public_key
        existing.wallet_address = record.wallet_address
        existing.witness_event_id = record.witness_event_id
        existing.source = str(record.source)
        self._session.add(existing)
        self._session.flush()

    def set_witness_event(self, page_verification_ids: list[int], witness_event_id: int) -> None:
        for pv_id in page_verification_ids:
            row = self._session.get(PageVerificationRow, pv_id)
            if row is not None:
                row.witness_event_id = witness_event_id
                self._session.add(row)
        self._session.flush()

    def delete_by_page_id(self, page_id: int) -> int:
        rows = self._session.exec(
            select(PageVerificationRow).where(PageVerificationRow.page_id == page_id)
        ).all()
        for row in rows:
            self._session.delete(row)
        self._session.flush()
        return len(rows)

    def rename(self, old_title: str, new_title: str, page_id: int) -> int:
        stmt = (
            select(PageVerificationRow)
            .where(PageVerificationRow.page_title == old_title)
            .where(PageVerificationRow.page_id == page_id)
        )
        rows = self._session.exec(stmt).all()
        for row in rows:
            row.page_title = new_title
            self._session.add(row)
        self._session.flush()
        return len(rows)

    @staticmethod
    def _row_to_domain(row: PageVerificationRow) -> PageVerificationRecord:
        return PageVerificationRecord(
            page_verification_id=row.page_verification_id,
            revision_id=row.rev_id,
            page_id=row.page_id,
            page_title=row.page_title,
            domain_id=row.domain_id,
            time_stamp=row.time_stamp,
            hash_content=row.hash_content,
            hash_metadata=row.hash_metadata,
            hash_verification=row.hash_verification,
            signature=row.signature,
            public_key=row.public_key,
            wallet_address=row.wallet_address,
            witness_event_id=row.witness_event_id,
            source=VerificationSource(row.source),
        )

    @staticmethod
    def _domain_to_row(record: PageVerificationRecord) -> PageVerificationRow:
        return PageVerificationRow(
            page_verification_id=record.page_verification_id,
            rev_id=record.revision_id,
            page_id=record.page_id,
            page_title=record.page_title,
            domain_id=record.domain_id,
            time_stamp=record.time_stamp,
            hash_content=record.hash_content,
            hash_metadata=record.hash_metadata,
            hash_verification=record.hash_verification,
            signature=record.signature,
            public_key=record.public_key,
            wallet_address=record.wallet_address,
            witness_event_id=record.witness_event_id,
            source=str(record.source),
        )


class DBWitnessEventRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, witness_event_id: int) -> WitnessEvent | None:
        row = self._session.get(WitnessEventRow, witness_event_id)
        return self._row_to_domain(row) if row else None

    def get_by_verification_hash(self, verification_hash: str) -> WitnessEvent | None:
        stmt = select(WitnessEventRow).where(
            WitnessEventRow.witness_event_verification_hash == verification_hash
        )
        row = self._session.exec(stmt).first()
        return self._row_to_domain(row) if row else None

    def try_insert(self, event: WitnessEvent) -> WitnessEvent | None:
        """Insert inside a savepoint. Returns ``None`` if the verification hash is taken."""
        row = self._domain_to_row(event)
        row.witness_event_id = None
        try:
            with self._session.begin_nested():
                self._session.add(row)
                self._session.flush()
        except IntegrityError:
            return None
        return self._row_to_domain(row)

    def count(self) -> int:
        return int(self._session.exec(select(func.count()).select_from(WitnessEventRow)).one())

    @staticmethod
    def _row_to_domain(row: WitnessEventRow) -> WitnessEvent:
        return WitnessEvent(
            witness_event_id=row.witness_event_id,
            domain_id=row.domain_id,
            page_manifest_title=row.page_manifest_title,
            witness_event_verification_hash=row.witness_event_verification_hash,
            witness_network=row.witness_network,
            smart_contract_address=row.smart_contract_address,
            page_manifest_verification_hash=row.page_manifest_verification_hash,
            merkle_root=row.merkle_root,
            witness_event_transaction_hash=row.witness_event_transaction_hash,
            sender_account_address=row.sender_account_address,
            source=VerificationSource(row.source),
        )

    @staticmethod
    def _domain_to_row(event: WitnessEvent) -> WitnessEventRow:
        return WitnessEventRow(
            witness_event_id=event.witness_event_id,
            domain_id=event.domain_id,
            page_manifest_title=event.page_manifest_title,
            witness_event_verification_hash=event.witness_event_verification_hash,
            witness_network=event.witness_network,
            smart_contract_address=event.smart_contract_address,
            page_manifest_verification_hash=event.page_manifest_verification_hash,
            merkle_root=event.merkle_root,
            witness_event_transaction_hash=event.witness_event_transaction_hash,
            sender_account_address=event.sender_account_address,
            source=str(event.source),
        )


class DBMerkleProofRepository:
    def __init__(self, session: Session):
        self._session = session

    def add(self, entry: MerkleProofEntry) -> None:
        self._session.add(WitnessMerkleTreeRow(
            witness_event_id=entry.witness_event_id,
            left_leaf=entry.left_leaf,
            right_leaf=entry.right_leaf,
        ))
        self._session.flush()

    def pair_exists(self, witness_event_id: int, left_leaf: str, right_leaf: str) -> bool:
        stmt = (
            select(WitnessMerkleTreeRow.witness_merkle_tree_id)
            .where(WitnessMerkleTreeRow.witness_event_id == witness_event_id)
            .where(WitnessMerkleTreeRow.left_leaf == left_leaf)
            .where(WitnessMerkleTreeRow.right_leaf == right_leaf)
            .limit(1)
        )
        return self._session.exec(stmt).first() is not None

    def find_containing(
        self, value: str, witness_event_id: int | None = None,
    ) -> list[MerkleProofEntry]:
        stmt = select(WitnessMerkleTreeRow).where(
            or_(WitnessMerkleTreeRow.left_leaf == value, WitnessMerkleTreeRow.right_leaf == value)
        )
        if witness_event_id is not None:
            stmt = stmt.where(WitnessMerkleTreeRow.witness_event_id == witness_event_id)
        stmt = stmt.order_by(WitnessMerkleTreeRow.witness_merkle_tree_id.asc())
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def find_by_event(self, witness_event_id: int) -> list[MerkleProofEntry]:
        stmt = (
            select(WitnessMerkleTreeRow)
            .where(WitnessMerkleTreeRow.witness_event_id == witness_event_id)
            .order_by(WitnessMerkleTreeRow.witness_merkle_tree_id.asc())
        )
        return [self._row_to_domain(r) for r in self._session.exec(stmt).all()]

    def count(self) -> int:
        return int(self._session.exec(select(func.count()).select_from(WitnessMerkleTreeRow)).one())

    @staticmethod
    def _row_to_domain(row: WitnessMerkleTreeRow) -> MerkleProofEntry:
        return MerkleProofEntry(
            witness_merkle_tree_id=row.witness_merkle_tree_id,
            witness_event_id=row.witness_event_id,
            left_leaf=row.left_leaf,
            right_leaf=row.right_leaf,
        )
