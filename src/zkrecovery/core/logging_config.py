"""
Structured JSON logging for zkrecovery.

Modules log through ``logging.getLogger(__name__)`` and tag records with
``extra={"event": "recovery.completed", ...}``. :func:`setup_logging` hangs
JSON handlers off the ``zkrecovery`` package logger, so every record becomes
one JSON object per line. Console output goes to stderr to keep stdout free
for command results; a rotating file is added when ``ZKR_LOG_FILE`` is set.
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from pythonjsonlogger import jsonlogger

from .config import Config

PACKAGE_LOGGER = "zkrecovery"
LOG_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class RecoveryJsonFormatter(jsonlogger.JsonFormatter):
    """Adds network context and a compact source location to every record."""

    def __init__(self, network: Optional[str] = None, chain_id: Optional[int] = None):
        super().__init__(fmt=LOG_FORMAT)
        self.network = network or Config.NETWORK_TYPE.value
        self.chain_id = chain_id if chain_id is not None else Config.CHAIN_ID

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            created = datetime.fromtimestamp(record.created, tz=timezone.utc)
            log_record["timestamp"] = created.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        log_record["level"] = record.levelname.lower()
        log_record["network"] = self.network
        log_record["chain_id"] = self.chain_id
        log_record["source"] = f"{record.module}:{record.lineno}"


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the ``zkrecovery`` package logger.

    Args:
        level: Level name; defaults to ``Config.LOG_LEVEL``
        log_file: Rotating JSON log file; defaults to ``Config.LOG_FILE``
        stream: Console stream; defaults to stderr

    Calling it again replaces the handlers installed by the previous call.
    """
    level_no = logging.getLevelName((level or Config.LOG_LEVEL).upper())
    if not isinstance(level_no, int):
        raise ValueError(f"Unknown log level: {level}")
    if log_file is None:
        log_file = Config.LOG_FILE or None

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level_no)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = RecoveryJsonFormatter()

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
            )
        except OSError as e:
            logger.warning(
                "Log file unavailable",
                extra={"event": "logging.file_unavailable", "path": log_file, "error": str(e)},
            )
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
