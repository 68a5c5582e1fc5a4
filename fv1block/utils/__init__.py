"""
Utils package for fv1block.

Shared infrastructure: logging, the error and diagnostic taxonomy,
configuration, chip constants and fixed-point formats.
"""

from .exceptions import (
    AssemblyEncodingError,
    AssemblyError,
    AssemblySymbolError,
    AssemblySyntaxError,
    CycleError,
    Diagnostic,
    DiagnosticCollector,
    Fv1Error,
    GraphValidationError,
    ResourceExhaustionError,
    Severity,
    TemplateError,
    format_diagnostics,
)
from .constants import *

from .config import (
    AssemblerConfig,
    CompilationConfig,
    Fv1Config,
    LoggingConfig,
    get_config,
    load_config,
    set_config,
)

from .fixed_point import FORMATS, S1_9, S1_14, S4_6, S_10, S_15, FixedPointFormat, format_real
from .logging import Fv1Logger, configure_logging, get_logger, setup_logging

__all__ = [
    # Errors and diagnostics
    "Fv1Error",
    "GraphValidationError",
    "CycleError",
    "ResourceExhaustionError",
    "TemplateError",
    "AssemblyError",
    "AssemblySyntaxError",
    "AssemblySymbolError",
    "AssemblyEncodingError",
    "Diagnostic",
    "DiagnosticCollector",
    "Severity",
    "format_diagnostics",
    # Configuration
    "Fv1Config",
    "LoggingConfig",
    "CompilationConfig",
    "AssemblerConfig",
    "get_config",
    "set_config",
    "load_config",
    # Fixed point
    "FixedPointFormat",
    "FORMATS",
    "S1_14",
    "S_10",
    "S1_9",
    "S_15",
    "S4_6",
    "format_real",
    # Logging
    "Fv1Logger",
    "get_logger",
    "setup_logging",
    "configure_logging",
]
