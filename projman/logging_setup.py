from __future__ import annotations

import logging
import sys
from pathlib import Path


LOG_FILENAME = "app.log"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


class _ConsoleNoiseFilter(logging.Filter):
    """Keep projman warnings on the console, drop third-party chatter below ERROR."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "projman" or record.name.startswith("projman."):
            return True
        if record.name == "py.warnings":
            return record.levelno >= logging.ERROR
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int = logging.WARNING,
    file_level: int = logging.DEBUG,
    console: bool = True,
) -> Path:
    """Configure root logging once: full file log plus a filtered stderr handler.

    Returns the log file path.
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILENAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(console_level)
        ch.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        ch.addFilter(_ConsoleNoiseFilter())
        root.addHandler(ch)

    logging.captureWarnings(True)
    return log_file


def detach_console_handlers() -> None:
    """Drop stderr handlers while a full-screen app owns the terminal."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
