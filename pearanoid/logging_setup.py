"""Secure logging setup: no secrets in logs, rotation, OS-appropriate dir."""

from __future__ import annotations

import logging
import logging.handlers
import os
import platform
import re
from pathlib import Path

_BEARER = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_MAX_ARG_CHARS = 50

LOG_FILE_NAME = "pearanoid.log"


def _mask(arg):
    if isinstance(arg, (bytes, bytearray, memoryview)):
        return f"<{len(arg)} bytes>"
    if isinstance(arg, str) and len(arg) > _MAX_ARG_CHARS:
        return f"<{len(arg)} chars>"
    return arg


class SecureFormatter(logging.Formatter):
    """Masks binary and long arguments, and redacts bearer tokens in the output."""

    def format(self, record):
        if isinstance(record.args, dict):
            record.args = {k: _mask(v) for k, v in record.args.items()}
        elif record.args:
            record.args = tuple(_mask(a) for a in record.args)
        return _BEARER.sub(r"\1<redacted>", super().format(record))


def setup_secure_logging(log_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure the *pearanoid* logger with rotation and safe formatting.

    Idempotent: a second call only adjusts the level.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    if platform.system() != "Windows":
        try:
            os.chmod(log_dir, 0o700)
        except OSError:
            pass

    app_logger = logging.getLogger("pearanoid")
    app_logger.setLevel(level)
    app_logger.propagate = False
    if any(isinstance(h, logging.handlers.RotatingFileHandler) for h in app_logger.handlers):
        return app_logger

    log_file = log_dir / LOG_FILE_NAME
    handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    handler.setFormatter(
        SecureFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    app_logger.addHandler(handler)

    if platform.system() != "Windows":
        try:
            os.chmod(log_file, 0o600)
        except OSError:
            pass

    return app_logger
