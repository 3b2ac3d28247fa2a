"""
Tests for level gating, quiet-mode tag filtering and tag styling in the logger.

Run with: python -m pytest tests/test_logger.py -v
"""

import pytest
from unittest.mock import patch

from concierge.core import logger as logger_module
from concierge.core.logger import Logger, get_logger, init_logger, set_quiet_mode


@pytest.fixture
def printed():
    with patch.object(logger_module.console, "print") as mock_print:
        yield mock_print


@pytest.fixture(autouse=True)
def restore_global_logger():
    saved = logger_module._global_logger
    yield
    logger_module._global_logger = saved


class TestLevels:
    """Test level gating."""

    def test_below_level_is_dropped(self, printed):
        Logger("WARNING").info("[ROUTER] route=web")
        printed.assert_not_called()

    def test_at_level_is_printed(self, printed):
        Logger("WARNING").error("handler blew up")
        printed.assert_called_once()
        assert "handler blew up" in printed.call_args[0][0].plain
        assert "[ERROR   ]" in printed.call_args[0][0].plain

    def test_unknown_level_falls_back_to_info(self):
        log = Logger("chatty")
        assert log.enabled_for("INFO") is True
        assert log.enabled_for("DEBUG") is False


class TestQuietMode:
    """Test quiet-mode filtering."""

    def test_noisy_tags_hidden(self, printed):
        log = Logger("DEBUG", quiet_mode=True)
        log.debug("[DETECT] web applies")
        log.debug("[FILTER] allowed=['web']")
        printed.assert_not_called()

    def test_decision_tags_kept(self, printed):
        Logger("DEBUG", quiet_mode=True).info("[ROUTER] route=web score=0.95")
        printed.assert_called_once()

    def test_set_quiet_mode_on_global_logger(self, printed):
        init_logger("DEBUG")
        set_quiet_mode(True)
        get_logger().debug("[LOOP] tick")
        printed.assert_not_called()

        set_quiet_mode(False)
        get_logger().debug("[LOOP] tick")
        printed.assert_called_once()


class TestTagStyling:
    """Test leading stage tag rendering."""

    def test_known_tag_gets_own_span(self, printed):
        Logger("INFO").info("[CONFIRM] pending-confirm for 2 item(s)")
        text = printed.call_args[0][0]
        assert text.plain.endswith("[CONFIRM] pending-confirm for 2 item(s)")
        assert any(span.style == "bold yellow" for span in text.spans)

    def test_unknown_tag_is_plain(self, printed):
        Logger("INFO").info("[WHATEVER] hello")
        text = printed.call_args[0][0]
        assert not any(span.style == "bold yellow" for span in text.spans)
