from __future__ import annotations

import argparse
import logging
from pathlib import Path

from data_accounting.config.runtime import RuntimeSettings
from data_accounting.db.init_db import init_db
from data_accounting.db.session import create_session
from data_accounting.hashing.hasher import HashComposer
from data_accounting.services.exporter import ChainExporter
from data_accounting.services.verifier import ChainVerifier
from data_accounting.services.witness import WitnessAnchor
from data_accounting.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="data-accounting", description="Page verification chain tools")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create or migrate the verification tables")

    export_parser = subparsers.add_parser("export", help="Export verification chains as JSON")
    export_parser.add_argument("titles", nargs="+", help="Page titles to export")
    export_parser.add_argument("--output", help="Write to this file instead of stdout")

    verify_parser = subparsers.add_parser("verify", help="Re-derive and check a page's chain")
    verify_parser.add_argument("title", help="Page title")

    height_parser = subparsers.add_parser("height", help="Print a page's chain height")
    height_parser.add_argument("title", help="Page title")

    return parser


def run_export(settings: RuntimeSettings, titles: list[str], output: str | None) -> int:
    composer = HashComposer(settings.hash_algorithm)
    with create_session() as session:
        exporter = ChainExporter(session, witness_anchor=WitnessAnchor(session, composer=composer))
        payload = exporter.export_pages(titles).to_json()
    if output:
        Path(output).write_text(payload, encoding="utf-8")
        logger.info("Wrote %d pages to %s", len(titles), output)
    else:
        print(payload)
    return 0


def run_verify(settings: RuntimeSettings, title: str) -> int:
    with create_session() as session:
        report = ChainVerifier(session, composer=HashComposer(settings.hash_algorithm)).verify_page(title)
    for check in report.checks:
        line = f"{check.revision_id}\t{check.status}"
        if check.detail:
            line += f"\t{check.detail}"
        print(line)
    return 0 if report.ok else 1


def run_height(title: str) -> int:
    with create_session() as session:
        print(ChainExporter(session).chain_height(title))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = RuntimeSettings.from_env()
    setup_logging(settings.log_level)

    if args.command == "init-db":
        init_db()
        return 0
    if args.command == "export":
        return run_export(settings, args.titles, args.output)
    if args.command == "verify":
        return run_verify(settings, args.title)
    if args.command == "height":
        return run_height(args.title)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
