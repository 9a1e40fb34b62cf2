"""Tests for the secure log formatter and logger setup."""

from __future__ import annotations

import logging
import platform

import pytest

from pearanoid.config import Config
from pearanoid.logging_setup import LOG_FILE_NAME, SecureFormatter, setup_secure_logging


def _record(msg, args):
    return logging.LogRecord("pearanoid.test", logging.INFO, __file__, 1, msg, args, None)


@pytest.fixture
def app_logger():
    lg = logging.getLogger("pearanoid")
    saved = (lg.handlers[:], lg.level, lg.propagate)
    lg.handlers = []
    yield lg
    for h in lg.handlers:
        h.close()
    lg.handlers, lg.level, lg.propagate = saved


class TestSecureFormatter:
    def test_masks_bytes(self):
        out = SecureFormatter("%(message)s").format(_record("blob %s", (b"\x00" * 44,)))
        assert out == "blob <44 bytes>"

    def test_masks_long_strings(self):
        out = SecureFormatter("%(message)s").format(_record("value %s", ("x" * 80,)))
        assert out == "value <80 chars>"

    def test_keeps_short_args(self):
        out = SecureFormatter("%(message)s").format(_record("%d entries in %s", (3, "Work")))
        assert out == "3 entries in Work"

    def test_redacts_bearer_token(self):
        out = SecureFormatter("%(message)s").format(
            _record("header was %s", ("Authorization: Bearer abc.def",))
        )
        assert "abc.def" not in out
        assert "Bearer <redacted>" in out


class TestSetup:
    def test_writes_log_file(self, tmp_path, app_logger):
        lg = setup_secure_logging(tmp_path / "logs")
        logging.getLogger("pearanoid.vault").info("Vault unlocked: %d entries", 2)
        for h in lg.handlers:
            h.flush()
        text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
        assert "Vault unlocked: 2 entries" in text
        if platform.system() != "Windows":
            assert (tmp_path / "logs").stat().st_mode & 0o777 == 0o700

    def test_idempotent(self, tmp_path, app_logger):
        setup_secure_logging(tmp_path)
        setup_secure_logging(tmp_path, logging.DEBUG)
        assert len(app_logger.handlers) == 1
        assert app_logger.level == logging.DEBUG


class TestLogLevel:
    def test_default(self, tmp_path):
        assert Config.get_log_level(tmp_path) == logging.INFO

    def test_from_config(self, tmp_path):
        (tmp_path / "config.ini").write_text("[logging]\nlevel = debug\n", encoding="utf-8")
        assert Config.get_log_level(tmp_path) == logging.DEBUG

    def test_unknown(self, tmp_path):
        (tmp_path / "config.ini").write_text("[logging]\nlevel = chatty\n", encoding="utf-8")
        assert Config.get_log_level(tmp_path) == logging.INFO
