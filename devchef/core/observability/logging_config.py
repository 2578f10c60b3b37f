"""
Logging configuration — set up once by the CLI at startup.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
this config. Level precedence:

    --debug / --verbose / --quiet  >  DEVCHEF_LOG_LEVEL  >  WARNING

A second, usually more verbose, copy can go to DEVCHEF_LOG_FILE at
DEVCHEF_LOG_FILE_LEVEL. Live docker/git output is not logged here; the
command runner echoes it straight to the terminal.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

LEVEL_ENV = "DEVCHEF_LOG_LEVEL"
FILE_ENV = "DEVCHEF_LOG_FILE"
FILE_LEVEL_ENV = "DEVCHEF_LOG_FILE_LEVEL"

# (most verbose level it applies to, format, date format); first match wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)
_FILE_FORMAT = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%Y-%m-%d %H:%M:%S")

# requests/urllib3 log every connection at DEBUG
_NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer")


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    quiet: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name for the given CLI flags and environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with devchef's console (and file) handlers.

    The root level is the most verbose of the handler levels so a DEBUG
    file still receives records while the console stays at WARNING.
    """
    console_level = _parse_level(level)
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_console_handler(console_level))

    levels = [console_level]
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root.addHandler(_file_handler(log_file, file_level))
        levels.append(file_level)
    root.setLevel(min(levels))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def setup_cli_logging(debug: bool, verbose: bool, quiet: bool, environ: Mapping[str, str] | None = None) -> str:
    """Configure logging for one CLI invocation; returns the console level used."""
    env = os.environ if environ is None else environ
    level = resolve_level(debug=debug, verbose=verbose, quiet=quiet, environ=env)
    setup_logging(
        level=level,
        log_file=env.get(FILE_ENV),
        log_file_level=env.get(FILE_LEVEL_ENV),
        quiet_third_party=not debug,
    )
    return level


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for limit, f, d in _CONSOLE_FORMATS if level <= limit)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    numeric = getattr(logging, (level or "").upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
