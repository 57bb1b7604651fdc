from __future__ import annotations

import logging

from synclink.utils.debug_logging import maybe_enable_debug_logger
from synclink.utils.env import env_flag_any, env_int, env_str


def test_env_str_strips_and_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SYNCLINK_TEST_STR", "  value ")
    monkeypatch.setenv("SYNCLINK_TEST_BLANK", "   ")

    assert env_str("SYNCLINK_TEST_STR") == "value"
    assert env_str("SYNCLINK_TEST_BLANK", "fallback") == "fallback"
    assert env_str("SYNCLINK_TEST_MISSING", "fallback") == "fallback"


def test_env_int_falls_back_on_garbage(monkeypatch) -> None:
    monkeypatch.setenv("SYNCLINK_TEST_INT", "250")
    monkeypatch.setenv("SYNCLINK_TEST_BAD_INT", "soon")

    assert env_int("SYNCLINK_TEST_INT", 0) == 250
    assert env_int("SYNCLINK_TEST_BAD_INT", 7) == 7
    assert env_int("SYNCLINK_TEST_MISSING", 7) == 7


def test_env_flag_any(monkeypatch) -> None:
    monkeypatch.delenv("SYNCLINK_TEST_A", raising=False)
    monkeypatch.setenv("SYNCLINK_TEST_B", "debug")

    assert env_flag_any("SYNCLINK_TEST_A", "SYNCLINK_TEST_B") is True
    assert env_flag_any("SYNCLINK_TEST_A") is False


def test_debug_logger_attaches_single_local_handler(monkeypatch) -> None:
    monkeypatch.setenv("SYNCLINK_TEST_DEBUG", "1")
    logger = logging.getLogger("synclink.tests.debug_logging")
    try:
        assert maybe_enable_debug_logger(logger, "SYNCLINK_TEST_DEBUG") is True
        assert maybe_enable_debug_logger(logger, "SYNCLINK_TEST_DEBUG") is True
        local = [h for h in logger.handlers if getattr(h, "_synclink_local", False)]
        assert len(local) == 1
        assert logger.level == logging.DEBUG
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


def test_debug_logger_off_without_flag(monkeypatch) -> None:
    monkeypatch.delenv("SYNCLINK_TEST_DEBUG", raising=False)
    logger = logging.getLogger("synclink.tests.debug_logging_off")

    assert maybe_enable_debug_logger(logger, "SYNCLINK_TEST_DEBUG") is False
    assert logger.handlers == []
