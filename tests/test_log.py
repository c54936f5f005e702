"""Unit tests for the logger factory."""

import logging

from legalhub.log import get_logger


class TestGetLogger:
    """Test logger configuration."""

    def test_level_and_single_handler(self):
        """The level is applied and repeated calls reuse one handler."""
        logger = get_logger("legalhub.tests.level", "debug")
        assert logger.level == logging.DEBUG
        get_logger("legalhub.tests.level", "debug")
        assert len(logger.handlers) == 1

    def test_unknown_level_means_info(self):
        """An unknown level name falls back to INFO."""
        assert get_logger("legalhub.tests.unknown", "LOUD").level == logging.INFO
        assert get_logger("legalhub.tests.default").level == logging.INFO

    def test_lines_are_key_value(self):
        """The line prefix uses the same key=value shape as the messages."""
        logger = get_logger("legalhub.tests.format")
        record = logger.makeRecord(
            logger.name, logging.WARNING, __file__, 1,
            "Rejected %s error=%s", ("action", "INVALID_ACTOR"), None,
        )
        line = logger.handlers[0].format(record)
        assert "level=WARNING logger=legalhub.tests.format Rejected action error=INVALID_ACTOR" in line
