"""
Package-level logging configuration.

* Rich console output (colourised, nicely formatted).
* Rotating **JSON** log file under ``$INGESTOMATIC_LOG_DIR`` when set, else
  ``<log_root>/logs`` when a project root is known, else the package-local
  ``logs/`` folder.
* Optional plain-text mirror controlled via ``--save-logfile`` on the CLI.

The public helper :func:`setup_logging` wires everything and should be the
sole entry-point used by the CLI. Library modules only ever call
:func:`logging.getLogger`.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

import structlog
from rich.logging import RichHandler
from structlog.dev import ConsoleRenderer as StructlogConsoleRenderer
from structlog.stdlib import LoggerFactory

__all__ = ["setup_logging", "log_directory"]


def log_directory(log_root: Path | None = None) -> Path:
    """Return (and create) the directory receiving the rotating JSON log."""
    env_dir = os.environ.get("INGESTOMATIC_LOG_DIR")
    if env_dir:
        logdir = Path(env_dir).expanduser()
    elif log_root is not None:
        logdir = log_root / "logs"
    else:
        logdir = Path(__file__).resolve().parents[1] / "logs"
    logdir.mkdir(parents=True, exist_ok=True)
    return logdir


def _json_file_handler(log_root: Path | None, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=log_directory(log_root) / "ingestomatic.log",
        maxBytes=5_000_000,  # ~5 MB before rollover
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _plain_text_file_handler(path: Optional[Path], level: int) -> logging.Handler | None:
    """Return a plain-text file handler or *None* when *path* is *None*."""
    if path is None:
        return None

    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    atexit.register(handler.close)
    return handler


def setup_logging(
    *,
    log_root: Path | None = None,
    verbose: bool = False,
    debug: bool = False,
    extra_text_log: Optional[Path] = None,
) -> None:
    """Configure rich console logging and the file mirrors.

    Args:
        log_root: Project directory; the JSON log goes to ``<log_root>/logs``
            unless ``INGESTOMATIC_LOG_DIR`` is set.
        verbose: Emit INFO-level messages to the console.
        debug: Emit DEBUG-level messages and rich tracebacks.
        extra_text_log: Optional path for a plain-text mirror of console output.
    """
    console_lvl = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    file_lvl = logging.DEBUG if debug else logging.INFO

    handlers: list[logging.Handler] = [
        RichHandler(
            level=console_lvl,
            rich_tracebacks=debug,
            tracebacks_show_locals=False,
            markup=False,
        ),
        _json_file_handler(log_root, file_lvl),
    ]
    txt_handler = _plain_text_file_handler(extra_text_log, console_lvl)
    if txt_handler:
        handlers.append(txt_handler)

    logging.basicConfig(
        level=logging.DEBUG,  # root logger stays at DEBUG; handlers filter
        handlers=handlers,
        format="%(message)s",
        force=True,
    )
    # urllib3 logs every connection at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.DEBUG if debug else logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            (
                StructlogConsoleRenderer()
                if verbose or debug
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(console_lvl),
        logger_factory=LoggerFactory(),
    )
