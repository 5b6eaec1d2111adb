"""
Logging configuration for the curation tools.

Uses loguru. Resolution operations log through operation_logger(), which
binds the operation name and lesson ids; those records carry the context in
every sink and can also be written to a separate audit file.
"""

import os
import sys
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from curation.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line}"
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[operation]} {extra[lesson_ids]} - {message}"


def operation_logger(operation: str, lesson_ids: Iterable[str]):
    """Logger bound to one resolution operation and the lessons it touches."""
    return logger.bind(operation=operation, lesson_ids=",".join(str(i) for i in lesson_ids))


def is_audit_record(record) -> bool:
    return "operation" in record["extra"]


def _formatter(prefix: str, colored: bool):
    context = "<magenta>[{extra[operation]} {extra[lesson_ids]}]</magenta> " if colored else "[{extra[operation]} {extra[lesson_ids]}] "
    message = "<level>{message}</level>" if colored else "{message}"

    def format_record(record) -> str:
        if is_audit_record(record):
            return f"{prefix} - {context}{message}\n{{exception}}"
        return f"{prefix} - {message}\n{{exception}}"

    return format_record


def setup_logging(
    level: str | None = None,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "1 week",
    audit_file: Path | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for logging to file
        rotation: Log rotation setting (e.g., "10 MB", "1 day")
        retention: Log retention setting (e.g., "1 week", "10 files")
        audit_file: Optional file receiving only resolution operation records
    """
    level = level or settings.logging.log_level
    log_file = log_file or settings.logging.log_file
    audit_file = audit_file or settings.logging.audit_log_file

    logger.remove()

    logger.add(sys.stderr, level=level, format=_formatter(CONSOLE_FORMAT, colored=True), colorize=True)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=_formatter(FILE_FORMAT, colored=False),
            rotation=rotation,
            retention=retention,
            compression="gz",
        )

    # Archive, merge and dismissal decisions, kept longer than the debug log
    if audit_file:
        audit_file = Path(audit_file)
        audit_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            audit_file,
            level="INFO",
            format=AUDIT_FORMAT,
            filter=is_audit_record,
            rotation=rotation,
        )

    logger.info(f"Logging configured: level={level}")


# Only configure logging if not explicitly disabled
if os.environ.get("DISABLE_LOGGING") != "1":
    setup_logging()
