import os
import tempfile
import unittest
from pathlib import Path

from sqlmodel import Session

from data_accounting.cli.main import build_parser, main
from data_accounting.config.runtime import RuntimeSettings
from data_accounting.db.session import get_engine
from data_accounting.schemas.payload_contracts import ExportBundle
from data_accounting.services.ledger import VerificationLedger
from data_accounting.services.locks import PageLocks


class TestCliParser(unittest.TestCase):
    def test_export_accepts_many_titles(self):
        args = build_parser().parse_args(["export", "Main Page", "Other", "--output", "out.json"])
        self.assertEqual(args.command, "export")
        self.assertEqual(args.titles, ["Main Page", "Other"])
        self.assertEqual(args.output, "out.json")

    def test_missing_command_prints_help(self):
        self.assertEqual(main([]), 1)


class TestCliAgainstDatabase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self._previous_url = os.environ.get("DATABASE_URL")
        os.environ["DATABASE_URL"] = f"sqlite:///{self.tmp / 'ledger.db'}"
        get_engine.cache_clear()

    def tearDown(self):
        get_engine().dispose()
        get_engine.cache_clear()
        if self._previous_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = self._previous_url
        self._tmp.cleanup()

    def _seed(self, revisions: int) -> None:
        with Session(get_engine()) as session:
            ledger = VerificationLedger.from_settings(session, RuntimeSettings.from_env(), locks=PageLocks())
            for rev in range(1, revisions + 1):
                ledger.on_revision_created(rev, 1, "Main Page", f"2024010{rev}000000")
                ledger.finalize(rev, f"content {rev}")

    def test_init_db_then_export_and_verify(self):
        self.assertEqual(main(["init-db"]), 0)
        self._seed(2)

        output = self.tmp / "export.json"
        self.assertEqual(main(["export", "Main Page", "--output", str(output)]), 0)
        bundle = ExportBundle.from_json(output.read_text(encoding="utf-8"))
        self.assertEqual(bundle.pages[0].chain_height, 2)
        self.assertEqual([v.rev_id for v in bundle.pages[0].verifications], [1, 2])

        self.assertEqual(main(["verify", "Main Page"]), 0)
        self.assertEqual(main(["height", "Main Page"]), 0)

    def test_init_db_is_repeatable(self):
        self.assertEqual(main(["init-db"]), 0)
        self.assertEqual(main(["init-db"]), 0)
