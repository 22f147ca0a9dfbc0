"""
Logging for Calibr.

Every subsystem logs under the ``calibr`` namespace (``calibr.merkle``,
``calibr.disclosure``, ``calibr.attestation``, ``calibr.chain``). Console
output is colored with colorlog; a plain-text file log is optional.

The initial level comes from ``CALIBR_LOG_LEVEL`` when set, so library users
get quiet defaults and the CLI can raise verbosity with ``--debug``.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog

ROOT_LOGGER = "calibr"
LOG_LEVEL_ENV = "CALIBR_LOG_LEVEL"
LOG_FILE_NAME = "calibr.log"

DATE_FORMAT = "%H:%M:%S"
CONSOLE_FORMAT = "%(log_color)s%(asctime)s %(levelname)-7s%(reset)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_COLORS = {
    "DEBUG": "blue",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def level_from_name(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Accept ``logging.DEBUG``, ``"debug"`` or ``"10"``; fall back to ``default``."""
    if level is None or level == "":
        return default
    if isinstance(level, int):
        return level
    text = str(level).strip()
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text.upper())
    return resolved if isinstance(resolved, int) else default


def short_hex(value: Union[str, bytes], width: int = 10) -> str:
    """Abbreviate a hash for log lines: ``0x1234abcd…``"""
    text = value if isinstance(value, str) else "0x" + value.hex()
    return text if len(text) <= width + 2 else f"{text[:width + 2]}…"


class CalibrLogger:
    """Owns the handlers attached to the ``calibr`` logger."""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Union[int, str, None] = None,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Attach console (and optionally file) handlers.

        Args:
            level: Level as int or name. None reads CALIBR_LOG_LEVEL, else INFO
            log_dir: Directory for calibr.log; defaults to ./logs
            log_to_file: Also write a plain-text log file
            force: Replace handlers from an earlier setup
        """
        if cls._initialized and not force:
            return

        if level is None:
            level = os.environ.get(LOG_LEVEL_ENV)
        level = level_from_name(level)

        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        console = colorlog.StreamHandler(sys.stderr)
        console.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        )
        root.addHandler(console)

        cls._log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(parents=True, exist_ok=True)
            cls._log_file = directory / LOG_FILE_NAME
            file_handler = logging.FileHandler(cls._log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def log_file(cls) -> Optional[Path]:
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._initialized:
            cls.setup()
        if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
            return logging.getLogger(name)
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger for a subsystem, e.g. ``get_logger("merkle")`` -> ``calibr.merkle``"""
    return CalibrLogger.get_logger(name)


def setup_logging(
    level: Union[int, str, None] = None,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
):
    """Reconfigure logging, replacing any earlier setup"""
    CalibrLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=True)
