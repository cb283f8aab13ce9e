"""Console logging for the protovend CLI.

Log records go to stdout as ``(LEVEL) message``. In ``--json`` mode only
errors are logged, to stderr, so stdout stays machine-readable.

Idempotent per process: the handler installed by a previous call is replaced,
never stacked.
"""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "(%(levelname)s) %(message)s"

_CONSOLE_HANDLER: logging.Handler | None = None


def configure_cli_logging(level: int = logging.INFO, *, json_mode: bool = False) -> None:
    """Route ``protovend`` log records to the console at ``level``."""
    global _CONSOLE_HANDLER

    logger = logging.getLogger("protovend")
    if _CONSOLE_HANDLER is not None:
        logger.removeHandler(_CONSOLE_HANDLER)
        _CONSOLE_HANDLER.close()

    handler = logging.StreamHandler(sys.stderr if json_mode else sys.stdout)
    handler.setLevel(logging.ERROR if json_mode else level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    _CONSOLE_HANDLER = handler


def reset_cli_logging_for_tests() -> None:
    """Test-only: remove the installed handler."""
    global _CONSOLE_HANDLER
    logger = logging.getLogger("protovend")
    if _CONSOLE_HANDLER is not None:
        logger.removeHandler(_CONSOLE_HANDLER)
        _CONSOLE_HANDLER.close()
    _CONSOLE_HANDLER = None
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


__all__ = ["LOG_FORMAT", "configure_cli_logging", "reset_cli_logging_for_tests"]
