"""
Unit tests for the calibr logging helpers.
"""

import logging

import pytest

from calibr.utils.logger import (
    LOG_LEVEL_ENV,
    CalibrLogger,
    get_logger,
    level_from_name,
    setup_logging,
    short_hex,
)


class TestLevels:
    @pytest.mark.parametrize("value,expected", [
        (logging.DEBUG, logging.DEBUG),
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("30", 30),
        (None, logging.INFO),
        ("", logging.INFO),
        ("nonsense", logging.INFO),
    ])
    def test_level_from_name(self, value, expected):
        assert level_from_name(value) == expected


class TestShortHex:
    def test_bytes_and_str(self):
        assert short_hex(b"\xab" * 32) == "0xabababababababababab…"
        assert short_hex("0x1234") == "0x1234"


class TestSetup:
    def test_subsystem_names(self):
        assert get_logger("merkle").name == "calibr.merkle"
        assert get_logger("calibr.chain").name == "calibr.chain"

    def test_env_level(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "error")
        setup_logging()
        assert logging.getLogger("calibr").level == logging.ERROR

    def test_reconfigure_replaces_handlers(self):
        setup_logging(level="INFO")
        setup_logging(level="DEBUG")
        root = logging.getLogger("calibr")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_file_log(self, tmp_path):
        setup_logging(level=logging.INFO, log_dir=str(tmp_path), log_to_file=True)
        get_logger("merkle").info("root built")
        for handler in logging.getLogger("calibr").handlers:
            handler.flush()
        assert CalibrLogger.log_file() == tmp_path / "calibr.log"
        assert "calibr.merkle: root built" in (tmp_path / "calibr.log").read_text()
        setup_logging(level=logging.WARNING)
