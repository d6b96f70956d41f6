# common/logging_config.py
# -*- coding: utf-8 -*-
"""
Logging configuration for the bootstrap.

Console lines carry a per-level symbol (configurable through the settings'
``symbols`` map) and an optional prefix; the optional log file always gets
the detailed format so a failed unattended run can be diagnosed afterwards.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Union

from setup.config_models import SYMBOLS_DEFAULT

DETAILED_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"
SIMPLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER = (
    "{log_prefix}%(asctime)s - %(symbol)s %(message)s"
)
SIMPLE_LOG_FORMAT_NO_PREFIX = "%(asctime)s - %(symbol)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_SYMBOL_KEYS = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "critical",
}


class SymbolFormatter(logging.Formatter):
    """
    A formatter that exposes a level symbol as ``%(symbol)s``.
    """

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        style: str = "%",
        validate: bool = True,
        symbols: Optional[Dict[str, str]] = None,
    ):
        super().__init__(fmt, datefmt, style, validate)
        self.symbols = symbols or SYMBOLS_DEFAULT

    def format(self, record: logging.LogRecord) -> str:
        key = _LEVEL_SYMBOL_KEYS.get(record.levelno)
        record.symbol = self.symbols.get(key, "") if key else ""
        return super().format(record)


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    log_to_console: bool = True,
    log_prefix: Optional[str] = None,
    symbols: Optional[Dict[str, str]] = None,
) -> logging.Logger:
    """
    Configure the root logger for a bootstrap invocation.

    Existing root handlers are replaced so that calling this twice (the CLI
    re-configures once settings are loaded) does not duplicate output.

    Args:
        verbose: Log DEBUG messages when True, INFO otherwise.
        log_file: Optional file that receives the detailed format. Parent
            directories are created. A file that cannot be opened is reported
            on stderr and skipped.
        log_to_console: Whether to log to stdout.
        log_prefix: Optional prefix for console lines.
        symbols: Level symbol map, defaults to SYMBOLS_DEFAULT.

    Returns:
        The "machine_rites" logger used by the entry points.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = []

    actual_prefix = (
        (log_prefix.strip() + " ") if log_prefix and log_prefix.strip() else ""
    )
    console_format = (
        SIMPLE_LOG_FORMAT_WITH_PREFIX_PLACEHOLDER.format(log_prefix=actual_prefix)
        if actual_prefix
        else SIMPLE_LOG_FORMAT_NO_PREFIX
    )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            SymbolFormatter(fmt=console_format, datefmt=DATE_FORMAT, symbols=symbols)
        )
        handlers.append(console_handler)

    if log_file:
        try:
            log_file_path = Path(log_file)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode="a", encoding="utf-8")
            file_handler.setFormatter(
                logging.Formatter(DETAILED_LOG_FORMAT, datefmt=DATE_FORMAT)
            )
            handlers.append(file_handler)
        except OSError as e:
            print(
                f"Warning: Could not create file handler for log file {log_file}: {e}",
                file=sys.stderr,
            )

    if not handlers:  # pragma: no cover
        handlers.append(logging.NullHandler())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger("machine_rites")
    logger.debug(
        f"Logging configured. Level: {logging.getLevelName(log_level)}."
    )
    return logger
