"""
Unit tests for logging utilities.

Tests logger setup, namespacing and the pipeline milestone messages
of Fv1Logger.
"""

import logging
import os
import sys
import tempfile
from unittest.mock import Mock, patch

import pytest

from fv1block.utils.config import LoggingConfig
from fv1block.utils.exceptions import Diagnostic, Severity
from fv1block.utils.logging import (
    CONSOLE_FORMAT,
    CONSOLE_HANDLER,
    FILE_HANDLER,
    Fv1Logger,
    configure_logging,
    get_logger,
    setup_logging,
)


class TestLoggingSetup:
    """Test logging setup and configuration."""

    def teardown_method(self):
        setup_logging(level="INFO")

    def test_setup_logging_default(self):
        """Test default logging setup."""
        with patch.dict("os.environ", {}, clear=False):
            os.environ.pop("FV1BLOCK_LOG_LEVEL", None)
            setup_logging()

        logger = logging.getLogger("fv1block")
        assert logger.level == logging.INFO
        assert len(logger.handlers) > 0
        assert logger.propagate is False

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    def test_setup_logging_levels(self, level):
        """Test each standard level is applied."""
        setup_logging(level=level)
        assert logging.getLogger("fv1block").level == getattr(logging, level)

    def test_setup_logging_invalid_level(self):
        """Test logging setup with invalid level defaults to INFO."""
        setup_logging(level="INVALID")
        assert logging.getLogger("fv1block").level == logging.INFO

    def test_setup_logging_environment_variable(self):
        """Test logging setup with environment variable."""
        with patch.dict("os.environ", {"FV1BLOCK_LOG_LEVEL": "DEBUG"}):
            setup_logging()
            assert logging.getLogger("fv1block").level == logging.DEBUG

    def test_setup_logging_with_file(self):
        """Test logging setup with file output."""
        with tempfile.NamedTemporaryFile(suffix=".log", delete=False) as f:
            log_file = f.name

        try:
            setup_logging(log_file=log_file)
            logger = logging.getLogger("fv1block")

            handler_types = [type(h).__name__ for h in logger.handlers]
            assert "StreamHandler" in handler_types
            assert "FileHandler" in handler_types

            get_logger("test_file").info("Test message")
            for handler in logger.handlers:
                handler.flush()
            with open(log_file, "r") as f:
                content = f.read()
            assert "Test message" in content
            assert "fv1block.test_file" in content
        finally:
            setup_logging()
            if os.path.exists(log_file):
                os.unlink(log_file)

    def test_setup_logging_removes_existing_handlers(self):
        """Test that setup_logging replaces existing handlers."""
        logger = logging.getLogger("fv1block")
        dummy_handler = logging.StreamHandler()
        logger.addHandler(dummy_handler)

        setup_logging()

        assert dummy_handler not in logger.handlers
        assert len(logger.handlers) > 0

    def test_console_handler_writes_to_stderr(self):
        """Console output stays off stdout, which carries program output."""
        setup_logging()
        (handler,) = logging.getLogger("fv1block").handlers

        assert handler.get_name() == CONSOLE_HANDLER
        assert handler.stream is sys.stderr
        assert handler.formatter._fmt == CONSOLE_FORMAT

    def test_log_file_from_environment(self, tmp_path):
        """FV1BLOCK_LOG_FILE adds the named file handler."""
        log_file = tmp_path / "env.log"
        try:
            with patch.dict("os.environ", {"FV1BLOCK_LOG_FILE": str(log_file)}):
                setup_logging()
            names = [h.get_name() for h in logging.getLogger("fv1block").handlers]
            assert names == [CONSOLE_HANDLER, FILE_HANDLER]
        finally:
            setup_logging()

    def test_configure_logging_from_config(self, tmp_path):
        """The logging section of a configuration drives level and file output."""
        log_file = tmp_path / "cfg.log"
        try:
            configure_logging(LoggingConfig(level="WARNING", enable_file_logging=True, log_file=str(log_file)))
            logger = logging.getLogger("fv1block")
            assert logger.level == logging.WARNING

            get_logger("cfg").warning("resource check")
            for handler in logger.handlers:
                handler.flush()
            line = log_file.read_text().strip()
            assert line.endswith("resource check")
            assert "WARNING  fv1block.cfg [test_configure_logging_from_config:" in line
        finally:
            setup_logging()

    def test_configure_logging_without_file(self):
        configure_logging(LoggingConfig(level="ERROR", log_file="ignored.log"))
        names = [h.get_name() for h in logging.getLogger("fv1block").handlers]
        assert names == [CONSOLE_HANDLER]


class TestGetLogger:
    """Test logger namespacing."""

    def test_get_logger_prefixes_namespace(self):
        logger = get_logger("test_module")
        assert logger is get_logger("test_module")
        assert logger.name == "fv1block.test_module"

    def test_module_names_not_prefixed_twice(self):
        assert get_logger("fv1block.assembler").name == "fv1block.assembler"
        assert get_logger("fv1block").name == "fv1block"

    def test_hierarchy(self):
        parent = get_logger("parent")
        child = get_logger("parent.child")
        assert child.name == "fv1block.parent.child"
        assert child.parent is parent


class TestFv1Logger:
    """Test Fv1Logger milestone messages."""

    def test_creation(self):
        pipeline_log = Fv1Logger("test_component")
        assert pipeline_log.logger.name == "fv1block.test_component"

    @patch("fv1block.utils.logging.get_logger")
    def test_log_compile_start(self, mock_get_logger):
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        Fv1Logger("test").log_compile_start("chorus", 5, 4)

        mock_logger.info.assert_called_once_with("Compiling graph 'chorus' (5 blocks, 4 connections)")

    @patch("fv1block.utils.logging.get_logger")
    def test_log_schedule(self, mock_get_logger):
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        Fv1Logger("test").log_schedule(["adc1", "dac1"], ["c3"])

        assert mock_logger.debug.call_count == 2
        assert "adc1 -> dac1" in mock_logger.debug.call_args_list[0][0][0]
        assert "c3" in mock_logger.debug.call_args_list[1][0][0]

    @patch("fv1block.utils.logging.get_logger")
    def test_log_resource_usage(self, mock_get_logger):
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger

        Fv1Logger("test").log_resource_usage(3, 1000, 12)

        mock_logger.info.assert_called_once_with("Resources: registers=3, memory=1000, instructions=12")

    @patch("fv1block.utils.logging.get_logger")
    def test_log_assemble_summary_levels(self, mock_get_logger):
        """Summary is a warning only when fatal diagnostics exist."""
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger
        pipeline_log = Fv1Logger("test")

        pipeline_log.log_assemble_summary(10, 0, 1)
        mock_logger.info.assert_called_once_with("Assembled 10 instructions (0 errors, 1 warnings)")

        pipeline_log.log_assemble_summary(10, 2, 0)
        mock_logger.warning.assert_called_once_with("Assembled 10 instructions (2 errors, 0 warnings)")

    @patch("fv1block.utils.logging.get_logger")
    def test_log_diagnostic(self, mock_get_logger):
        mock_logger = Mock()
        mock_get_logger.return_value = mock_logger
        pipeline_log = Fv1Logger("test")

        pipeline_log.log_diagnostic(Diagnostic("bad", line=3))
        pipeline_log.log_diagnostic(Diagnostic("meh", Severity.WARNING, block_id="gain1"))

        mock_logger.error.assert_called_once_with("line 3: fatal: bad")
        mock_logger.warning.assert_called_once_with("block gain1: warning: meh")
