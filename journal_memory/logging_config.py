"""
Logging configuration for journal_memory.

Library output (HTTP clients, the Gemini SDK) is kept quiet unless
verbose mode is requested.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "google.genai")
OPS_LOG_NAME = "journal-memory-ops.log"


def configure_logging(verbose: bool = False) -> None:
    """Set up stderr logging for scripts.

    Args:
        verbose: If True, log DEBUG from this package and its libraries.
            Otherwise log INFO from this package and only errors from libraries.
    """
    root_logger = logging.getLogger()
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root_logger.addHandler(handler)

    if verbose:
        warnings.filterwarnings("default")
        root_logger.setLevel(logging.DEBUG)
        for name in ("journal_memory",) + NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG)
        return

    root_logger.setLevel(logging.WARNING)
    logging.getLogger("journal_memory").setLevel(logging.INFO)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def configure_ops_log(log_dir) -> RotatingFileHandler:
    """Attach a persistent operations log to the ``journal_memory`` logger.

    Writes to {log_dir}/journal-memory-ops.log (1MB max, 3 backups).
    Returns the handler so callers can remove it on shutdown.
    """
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(path / OPS_LOG_NAME),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    package_logger = logging.getLogger("journal_memory")
    package_logger.addHandler(handler)
    if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
        package_logger.setLevel(logging.INFO)
    return handler
