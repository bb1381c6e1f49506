"""Tests for VerificationLedger lifecycle handling and chain continuity."""
from __future__ import annotations

import hashlib
import tempfile
import threading
import unittest
from datetime import datetime

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from data_accounting.config.runtime import RuntimeSettings
from data_accounting.db.repositories import DBPageVerificationRepository
from data_accounting.db.tables import PageVerificationRow, WitnessEventRow, WitnessMerkleTreeRow
from data_accounting.db.unit_of_work import atomic
from data_accounting.entities.verification import PageVerificationRecord, WitnessEvent
from data_accounting.errors import ChainLookupAmbiguous, MissingContent, RevisionNotTracked
from data_accounting.hashing.hasher import HashComposer
from data_accounting.services.ledger import VerificationLedger, format_timestamp
from data_accounting.services.locks import PageLocks

TS = "2024-01-01T00:00:00Z"


def _h(value: str) -> str:
    return hashlib.sha3_512(value.encode("utf-8")).hexdigest()


def _make_engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINTs nest correctly.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    SQLModel.metadata.create_all(engine, tables=[
        WitnessEventRow.__table__, PageVerificationRow.__table__, WitnessMerkleTreeRow.__table__,
    ])
    return engine


class TestVerificationLedger(unittest.TestCase):
    def setUp(self):
        self.engine = _make_engine()
        self.session = Session(self.engine)
        self.ledger = VerificationLedger(self.session, domain_id="example.org", locks=PageLocks())
        self.repo = DBPageVerificationRepository(self.session)

    def tearDown(self):
        self.session.close()

    def _revision(self, rev_id, content, page_id=10, title="Hello", timestamp=TS):
        self.ledger.on_revision_created(rev_id, page_id, title, timestamp)
        return self.ledger.finalize(rev_id, content)

    def test_created_revision_gets_empty_placeholder(self):
        record = self.ledger.on_revision_created(1, 10, "Hello", TS)
        self.assertIsNotNone(record.page_verification_id)
        self.assertEqual(record.hash_verification, "")
        self.assertEqual(record.time_stamp, TS)
        self.assertFalse(record.is_finalized)

    def test_created_twice_keeps_one_row(self):
        first = self.ledger.on_revision_created(1, 10, "Hello", TS)
        second = self.ledger.on_revision_created(1, 10, "Hello", TS)
        self.assertEqual(first.page_verification_id, second.page_verification_id)
        self.assertEqual(self.repo.count_by_title("Hello"), 1)

    def test_datetime_timestamps_use_fourteen_digits(self):
        self.assertEqual(format_timestamp(datetime(2024, 1, 2, 3, 4, 5)), "20240102030405")
        record = self.ledger.on_revision_created(1, 10, "Hello", datetime(2024, 1, 2, 3, 4, 5))
        self.assertEqual(record.time_stamp, "20240102030405")

    def test_first_revision_hashes(self):
        record = self._revision(1, "hello")

        content_hash = _h("hello")
        metadata_hash = _h("example.org" + TS)
        signature_hash = _h("")
        self.assertEqual(record.hash_content, content_hash)
        self.assertEqual(record.hash_metadata, metadata_hash)
        self.assertEqual(record.hash_verification, _h(content_hash + metadata_hash + signature_hash))
        self.assertEqual(record.domain_id, "example.org")

    def test_finalize_updates_in_place(self):
        placeholder = self.ledger.on_revision_created(1, 10, "Hello", TS)
        finalized = self.ledger.finalize(1, "hello")
        self.assertEqual(finalized.page_verification_id, placeholder.page_verification_id)
        self.assertEqual(self.repo.count_by_title("Hello"), 1)
        stored = self.repo.get(placeholder.page_verification_id)
        self.assertEqual(stored.hash_verification, finalized.hash_verification)

    def test_second_revision_chains_to_first(self):
        first = self._revision(1, "hello")
        second = self._revision(2, "hello world")
        self.assertEqual(second.hash_metadata, _h("example.org" + TS + first.hash_verification))

    def test_chain_continuity_over_many_revisions(self):
        composer = HashComposer()
        for rev in range(1, 6):
            self._revision(rev, f"content {rev}", timestamp=f"2024010{rev}000000")

        records = self.repo.find_by_title("Hello")
        self.assertEqual(len(records), 5)
        for previous, current in zip(records, records[1:]):
            self.assertEqual(
                current.hash_metadata,
                composer.metadata_hash(current.domain_id, current.time_stamp, previous.hash_verification),
            )
            self.assertEqual(
                current.hash_verification,
                composer.verification_hash(
                    current.hash_content, current.hash_metadata,
                    composer.signature_hash("", ""), "",
                ),
            )

    def test_nonce_predecessor_treated_as_empty(self):
        self.repo.add(PageVerificationRecord(
            revision_id=1, page_id=10, page_title="Hello", time_stamp=TS, hash_verification="nonce",
        ))
        self.session.commit()
        second = self._revision(2, "hello")
        self.assertEqual(second.hash_metadata, _h("example.org" + TS))

    def test_pages_are_chained_independently(self):
        self._revision(1, "a", page_id=10, title="A")
        b = self._revision(2, "b", page_id=20, title="B")
        self.assertEqual(b.hash_metadata, _h("example.org" + TS))

    def test_missing_content_leaves_placeholder_unfinalized(self):
        self.ledger.on_revision_created(1, 10, "Hello", TS)
        with self.assertRaises(MissingContent):
            self.ledger.finalize(1, None)
        with self.assertRaises(MissingContent):
            self.ledger.finalize(1, {"not": "serializable"})
        record = self.ledger.record_for_revision(1)
        self.assertEqual(record.hash_verification, "")
        self.assertEqual(record.hash_content, "")

    def test_finalize_untracked_revision(self):
        with self.assertRaises(RevisionNotTracked):
            self.ledger.finalize(99, "hello")

    def test_previous_record_sentinel(self):
        previous = self.ledger.previous_record("Nothing", 5)
        self.assertEqual(previous.hash_verification, "")
        self.assertEqual(previous.signature, "")
        self.assertIsNone(previous.witness_event_id)

    def test_ambiguous_predecessor_aborts(self):
        for _ in range(2):
            self.repo.add(PageVerificationRecord(revision_id=3, page_id=10, page_title="Hello"))
        self.session.commit()
        self.ledger.on_revision_created(5, 10, "Hello", TS)

        with self.assertRaises(ChainLookupAmbiguous):
            self.ledger.previous_record("Hello", 5)
        with self.assertRaises(ChainLookupAmbiguous):
            self.ledger.finalize(5, "hello")
        self.assertFalse(self.ledger.record_for_revision(5).is_finalized)

    def test_signature_is_sealed_by_next_revision(self):
        first = self._revision(1, "hello")
        signed = self.ledger.sign_revision(1, "sig", "pk", "0xwallet")
        self.assertEqual(signed.hash_verification, first.hash_verification)
        self.assertEqual(signed.wallet_address, "0xwallet")

        second = self._revision(2, "hello world")
        self.assertEqual(
            second.hash_verification,
            _h(second.hash_content + second.hash_metadata + _h("sigpk")),
        )
        self.assertEqual(second.signature, "")

    def test_explicit_signature_overrides_predecessor(self):
        self._revision(1, "hello")
        self.ledger.on_revision_created(2, 10, "Hello", TS)
        second = self.ledger.finalize(2, "x", signature="s", public_key="k")
        self.assertEqual(second.hash_verification, _h(second.hash_content + second.hash_metadata + _h("sk")))

    def test_predecessor_witness_enters_witness_layer(self):
        first = self._revision(1, "hello")
        witness = WitnessEvent(
            witness_event_verification_hash="wevh",
            page_manifest_verification_hash="manifest",
            merkle_root=first.hash_verification,
            witness_network="goerli",
            witness_event_transaction_hash="0xtx",
        )
        event_id = self.ledger.witness_anchor.complete_round(witness, [first.hash_verification])
        self.assertEqual(self.ledger.record_for_revision(1).witness_event_id, event_id)

        second = self._revision(2, "hello world")
        witness_hash = _h("manifest" + first.hash_verification + "goerli" + "0xtx")
        self.assertEqual(
            second.hash_verification,
            _h(second.hash_content + second.hash_metadata + _h("") + witness_hash),
        )

    def test_rename_keeps_hashes(self):
        first = self._revision(1, "hello", title="Old")
        self._revision(2, "other", page_id=20, title="Old")
        renamed = self.ledger.on_page_renamed("Old", "New", 10)
        self.assertEqual(renamed, 1)
        moved = self.repo.find_by_title("New")
        self.assertEqual([r.hash_verification for r in moved], [first.hash_verification])
        self.assertEqual(self.repo.count_by_title("Old"), 1)

    def test_delete_cascades_to_page_only(self):
        self._revision(1, "a", page_id=10, title="A")
        self._revision(2, "a2", page_id=10, title="A")
        self._revision(3, "b", page_id=20, title="B")
        self.assertEqual(self.ledger.on_page_deleted(10), 2)
        self.assertEqual(self.repo.count_by_title("A"), 0)
        self.assertEqual(self.repo.count_by_title("B"), 1)


class TestAtomic(unittest.TestCase):
    def setUp(self):
        self.engine = _make_engine()
        self.session = Session(self.engine)
        self.repo = DBPageVerificationRepository(self.session)

    def tearDown(self):
        self.session.close()

    def test_failure_rolls_back_everything(self):
        with self.assertRaises(RuntimeError):
            with atomic(self.session):
                self.repo.add(PageVerificationRecord(revision_id=1, page_id=1, page_title="T"))
                raise RuntimeError("boom")
        self.assertEqual(self.repo.count_by_title("T"), 0)

    def test_nested_blocks_commit_once(self):
        with self.assertRaises(RuntimeError):
            with atomic(self.session):
                with atomic(self.session):
                    self.repo.add(PageVerificationRecord(revision_id=1, page_id=1, page_title="T"))
                raise RuntimeError("boom")
        self.assertEqual(self.repo.count_by_title("T"), 0)

        with atomic(self.session):
            with atomic(self.session):
                self.repo.add(PageVerificationRecord(revision_id=2, page_id=1, page_title="T"))
        self.assertEqual(self.repo.count_by_title("T"), 1)


class TestFromSettings(unittest.TestCase):
    def test_domain_and_algorithm_come_from_settings(self):
        session = Session(_make_engine())
        self.addCleanup(session.close)
        settings = RuntimeSettings(domain_id="wiki.example.org", hash_algorithm="sha256", log_level="INFO")
        ledger = VerificationLedger.from_settings(session, settings, locks=PageLocks())

        ledger.on_revision_created(1, 10, "Hello", TS)
        record = ledger.finalize(1, "hello")

        self.assertEqual(record.domain_id, "wiki.example.org")
        self.assertEqual(record.hash_content, hashlib.sha256(b"hello").hexdigest())
        self.assertEqual(
            record.hash_metadata, hashlib.sha256(("wiki.example.org" + TS).encode("utf-8")).hexdigest(),
        )


class TestPageLocks(unittest.TestCase):
    def _enter_in_thread(self, locks, key):
        entered = threading.Event()

        def _run():
            with locks.hold(key):
                entered.set()

        thread = threading.Thread(target=_run, daemon=True)
        thread.start()
        return entered, thread

    def test_same_page_waits_for_holder(self):
        locks = PageLocks()
        with locks.hold(10):
            entered, thread = self._enter_in_thread(locks, 10)
            self.assertFalse(entered.wait(0.2))
        thread.join(2)
        self.assertTrue(entered.is_set())

    def test_other_page_is_not_blocked(self):
        locks = PageLocks()
        with locks.hold(10):
            entered, thread = self._enter_in_thread(locks, 20)
            self.assertTrue(entered.wait(2))
        thread.join(2)

    def test_released_pages_are_forgotten(self):
        locks = PageLocks()
        with locks.hold(10):
            with locks.hold(20):
                self.assertEqual(len(locks), 2)
        self.assertEqual(len(locks), 0)

        with self.assertRaises(RuntimeError):
            with locks.hold(30):
                raise RuntimeError("boom")
        self.assertEqual(len(locks), 0)


class TestConcurrentFinalize(unittest.TestCase):
    """Each thread gets its own session on a shared SQLite file."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = create_engine(
            f"sqlite:///{self._tmp.name}/ledger.db", connect_args={"check_same_thread": False},
        )
        SQLModel.metadata.create_all(self.engine, tables=[
            WitnessEventRow.__table__, PageVerificationRow.__table__, WitnessMerkleTreeRow.__table__,
        ])
        self.locks = PageLocks()
        with Session(self.engine) as session:
            ledger = VerificationLedger(session, "example.org", locks=self.locks)
            for rev in (1, 2):
                ledger.on_revision_created(rev, 10, "Hello", TS)

    def tearDown(self):
        self.engine.dispose()
        self._tmp.cleanup()

    def _finalize_in_thread(self, revision_id, errors):
        def _run():
            try:
                with Session(self.engine) as session:
                    VerificationLedger(session, "example.org", locks=self.locks).finalize(
                        revision_id, f"text {revision_id}",
                    )
            except Exception as exc:  # checked by the caller
                errors.append(exc)

        thread = threading.Thread(target=_run, daemon=True)
        thread.start()
        return thread

    def _record(self, revision_id):
        with Session(self.engine) as session:
            return VerificationLedger(session, "example.org", locks=self.locks).record_for_revision(revision_id)

    def test_finalize_waits_for_page_lock(self):
        errors = []
        with self.locks.hold(10):
            thread = self._finalize_in_thread(1, errors)
            thread.join(0.2)
            self.assertTrue(thread.is_alive())
            self.assertFalse(self._record(1).is_finalized)
        thread.join(5)
        self.assertEqual(errors, [])
        self.assertTrue(self._record(1).is_finalized)

    def test_serialized_finalize_keeps_chain(self):
        errors = []
        first = self._finalize_in_thread(1, errors)
        first.join(5)
        second = self._finalize_in_thread(2, errors)
        second.join(5)

        self.assertEqual(errors, [])
        one, two = self._record(1), self._record(2)
        self.assertEqual(two.hash_metadata, _h("example.org" + TS + one.hash_verification))
        self.assertEqual(len(self.locks), 0)

    def test_pages_finalize_side_by_side(self):
        with Session(self.engine) as session:
            VerificationLedger(session, "example.org", locks=self.locks).on_revision_created(3, 20, "Other", TS)
        errors = []
        with self.locks.hold(10):
            thread = self._finalize_in_thread(3, errors)
            thread.join(5)
            self.assertFalse(thread.is_alive())
        self.assertEqual(errors, [])
        self.assertTrue(self._record(3).is_finalized)
