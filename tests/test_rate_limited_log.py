"""
Tests for rate-limited logging.
"""
import logging
import threading
from unittest.mock import MagicMock, patch

from cachetools import TTLCache

from bridge_e2e._rate_limited_log import rate_limited_log, reset_rate_limits


def test_same_message_logged_once():
    log = MagicMock()
    log.name = "test"
    assert rate_limited_log("waiting", logger_instance=log) is True
    assert rate_limited_log("waiting", logger_instance=log) is False
    log.info.assert_called_once_with("waiting")


def test_different_messages_and_levels_are_independent():
    log = MagicMock()
    log.name = "test"
    assert rate_limited_log("a", logger_instance=log)
    assert rate_limited_log("b", logger_instance=log)
    assert rate_limited_log("a", level="warning", logger_instance=log)
    assert log.info.call_count == 2
    log.warning.assert_called_once_with("a")


def test_intervals_use_separate_caches():
    log = MagicMock()
    log.name = "test"
    assert rate_limited_log("a", interval=10, logger_instance=log)
    assert rate_limited_log("a", interval=20, logger_instance=log)
    assert not rate_limited_log("a", interval=10, logger_instance=log)


def test_message_allowed_again_after_interval():
    log = MagicMock()
    log.name = "test"
    now = [1000.0]
    cache = TTLCache(maxsize=100, ttl=5, timer=lambda: now[0])
    with patch("bridge_e2e._rate_limited_log._cache_for", return_value=cache):
        assert rate_limited_log("tick", interval=5, logger_instance=log)
        assert not rate_limited_log("tick", interval=5, logger_instance=log)
        now[0] += 6
        assert rate_limited_log("tick", interval=5, logger_instance=log)
    assert log.info.call_count == 2


def test_reset_rate_limits():
    log = MagicMock()
    log.name = "test"
    rate_limited_log("a", logger_instance=log)
    reset_rate_limits()
    assert rate_limited_log("a", logger_instance=log)


def test_module_logger_used_by_default(caplog):
    with caplog.at_level(logging.INFO, logger="bridge_e2e._rate_limited_log"):
        rate_limited_log("from default logger")
    assert "from default logger" in caplog.text


def test_concurrent_callers_emit_once():
    log = MagicMock()
    log.name = "test"
    results = []

    def worker():
        results.append(rate_limited_log("busy", logger_instance=log))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    log.info.assert_called_once_with("busy")
