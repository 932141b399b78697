from __future__ import annotations

import logging

from rich.markup import escape

from . import console

LIBRARY_LOGGER = "runner_sshd"


class ConsoleHandler(logging.Handler):
    """Routes library log records to the CLI console helpers."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if record.levelno >= logging.ERROR:
                console.err(msg)
            elif record.levelno >= logging.WARNING:
                console.warn(msg)
            elif record.levelno >= logging.INFO:
                console.info(msg)
            else:
                console.print(f"[dim]{escape(msg)}[/]")
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    lib_logger = logging.getLogger(LIBRARY_LOGGER)
    lib_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    lib_logger.propagate = False
    if not any(isinstance(h, ConsoleHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(ConsoleHandler())

    # keep httpx quiet unless asked
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.DEBUG if verbose else logging.WARNING)
