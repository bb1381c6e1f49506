from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

# Registers every table on SQLModel.metadata.
from data_accounting.db import tables  # noqa: F401
from data_accounting.db.session import get_engine

logger = logging.getLogger(__name__)


def _find_alembic_dir() -> Path | None:
    """Locate the Alembic migrations directory.

    Checks (in order):
      1. ``ALEMBIC_DIR`` env var (explicit override)
      2. Repo-root layout: ``<repo>/data_accounting/db/init_db.py`` → ``<repo>/alembic/``

    Returns ``None`` when no valid migrations directory is found, in which
    case callers fall back to ``SQLModel.metadata.create_all()``.
    """
    def _is_valid(p: Path) -> bool:
        return p.is_dir() and (p / "env.py").exists() and (p / "versions").is_dir()

    env_dir = os.getenv("ALEMBIC_DIR")
    if env_dir:
        p = Path(env_dir)
        if _is_valid(p):
            return p

    repo_dir = Path(__file__).resolve().parent.parent.parent / "alembic"
    if _is_valid(repo_dir):
        return repo_dir

    return None


def _run_alembic_upgrade(engine: Engine, alembic_dir: Path) -> None:
    from alembic.config import Config
    from alembic import command

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(alembic_dir))
    alembic_cfg.set_main_option("sqlalchemy.url", engine.url.render_as_string(hide_password=False))
    command.upgrade(alembic_cfg, "head")


def create_schema(engine: Engine) -> None:
    """Create the verification tables directly from SQLModel metadata."""
    SQLModel.metadata.create_all(engine)


def init_db(engine: Engine | None = None) -> None:
    """Bring the schema up to date. Safe to run on every boot, never drops data."""
    engine = engine or get_engine()
    alembic_dir = _find_alembic_dir()
    if alembic_dir is None:
        logger.info("No Alembic directory found, creating tables from metadata")
        create_schema(engine)
        return
    logger.info("Running Alembic migrations from %s", alembic_dir)
    _run_alembic_upgrade(engine, alembic_dir)
