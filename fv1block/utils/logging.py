"""
Logging configuration and utilities.

All fv1block loggers hang below the ``fv1block`` logger. Console output
goes to stderr so that assembly and machine code written to stdout by
the command line tools stays clean.
"""

import logging
import os
import sys
from typing import Any, Optional

ROOT_LOGGER = "fv1block"
CONSOLE_HANDLER = "fv1block-console"
FILE_HANDLER = "fv1block-file"

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(funcName)s:%(lineno)d] %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure the fv1block logger hierarchy.

    Args:
        level: Logging level name; defaults to ``FV1BLOCK_LOG_LEVEL`` or INFO
        log_file: Optional file to mirror log output into; defaults to
            ``FV1BLOCK_LOG_FILE`` when that is set
    """
    if level is None:
        level = os.environ.get("FV1BLOCK_LOG_LEVEL", "INFO")
    if log_file is None:
        log_file = os.environ.get("FV1BLOCK_LOG_FILE") or None

    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name(CONSOLE_HANDLER)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.set_name(FILE_HANDLER)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False


def configure_logging(logging_config: Any) -> None:
    """Apply the ``logging`` section of an Fv1Config."""
    log_file = logging_config.log_file if logging_config.enable_file_logging else None
    setup_logging(logging_config.level, log_file)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger below the fv1block namespace.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class Fv1Logger:
    """
    Pipeline-level logging helpers.

    Wraps a module logger with one method per milestone of the
    compile and assemble pipelines so the message shapes stay uniform.
    """

    def __init__(self, name: str):
        self.logger = get_logger(name)

    def log_compile_start(self, graph_name: str, block_count: int, connection_count: int) -> None:
        """
        Log beginning of a graph compile.

        Args:
            graph_name: Name from the graph metadata
            block_count: Number of blocks in the graph
            connection_count: Number of connections in the graph
        """
        self.logger.info(
            f"Compiling graph '{graph_name}' ({block_count} blocks, {connection_count} connections)"
        )

    def log_schedule(self, order: list, feedback: list) -> None:
        """
        Log the computed block schedule.

        Args:
            order: Block ids in generation order
            feedback: Connection ids that close a loop through memory
        """
        self.logger.debug(f"Schedule: {' -> '.join(order)}")
        if feedback:
            self.logger.debug(f"Feedback connections: {feedback}")

    def log_resource_usage(self, registers: int, memory: int, instructions: int) -> None:
        """
        Log resources consumed by a compile.

        Args:
            registers: Registers allocated
            memory: Delay memory words allocated
            instructions: Instructions emitted
        """
        self.logger.info(
            f"Resources: registers={registers}, memory={memory}, instructions={instructions}"
        )

    def log_assemble_summary(self, instructions: int, fatal: int, warnings: int) -> None:
        """
        Log the result of an assemble call.

        Args:
            instructions: Instruction words produced before padding
            fatal: Number of fatal diagnostics
            warnings: Number of warning diagnostics
        """
        level = self.logger.warning if fatal else self.logger.info
        level(f"Assembled {instructions} instructions ({fatal} errors, {warnings} warnings)")

    def log_diagnostic(self, diagnostic) -> None:
        """
        Mirror a diagnostic into the log.

        Args:
            diagnostic: Diagnostic instance
        """
        if diagnostic.is_fatal:
            self.logger.error(str(diagnostic))
        else:
            self.logger.warning(str(diagnostic))


# Initialize logging on module import
setup_logging()
