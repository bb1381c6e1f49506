import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname).1s | %(name)-30.30s | %(message)s"

# Chatty at INFO when echo is on; ledger output should stay readable.
_NOISY_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration")


def setup_logging(level: int | str = logging.INFO, stream=None) -> logging.Logger:
    """Route every data_accounting logger to a single stream handler.

    ``level`` accepts a logging constant or a name such as ``"DEBUG"``,
    matching DATA_ACCOUNTING_LOG_LEVEL.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level!r}")
        level = resolved

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root
