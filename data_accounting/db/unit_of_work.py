"""Transaction boundary shared by every ledger, witness and import operation."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlmodel import Session

_DEPTH_KEY = "data_accounting.atomic_depth"


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit everything written inside the block, or nothing at all.

    Nested blocks join the outermost one; only the outermost commits or
    rolls back.
    """
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
