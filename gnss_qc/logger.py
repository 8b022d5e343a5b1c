"""Logging configuration for gnss_qc"""

import logging
import sys
from typing import Optional

from gnss_qc.receiver import DiagnosticEvent

LOGGER_NAME = "gnss_qc"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str = LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Setup logger with specified configuration

    Parameters
    ----------
    name : str
        Logger name, module loggers of the package are its children
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_file : Optional[str]
        Log file path (if None, no file logging)
    console : bool
        Enable console output

    Returns
    -------
    logging.Logger
        Configured logger
    """
    logger = logging.getLogger(name)
    numeric_level = getattr(logging, level.upper())
    logger.setLevel(numeric_level)

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(file_handler)

    return logger


def report_events(events: list[DiagnosticEvent], logger: Optional[logging.Logger] = None):
    """
    Log diagnostic events, one line per station, stage and reason.

    Counts of repeated events are summed.
    """
    logger = logger or logging.getLogger(LOGGER_NAME)
    totals: dict[tuple[str, str, str], int] = {}
    for event in events:
        key = (event.station, event.stage, event.reason)
        totals[key] = totals.get(key, 0) + event.count
    for (station, stage, reason), count in totals.items():
        logger.info("%s %s: %s (%d)", station, stage, reason, count)
