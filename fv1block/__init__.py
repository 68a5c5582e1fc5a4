"""
fv1block: block-graph compiler and assembler for the FV-1 audio DSP.

A dataflow graph of DSP blocks is compiled into FV-1 assembly text, and
assembly text is assembled into the chip's 32-bit machine words.

Usage:
    import fv1block

    result = fv1block.compile_graph(graph_document)
    if result.success:
        program = fv1block.assemble(result.assembly_text)
        words = program.machine_code
"""

__version__ = "0.1.0"
__author__ = "fv1block Developers"
__email__ = "fv1block@example.com"

# Public API exports
from .utils.exceptions import (
    AssemblyError,
    CycleError,
    Diagnostic,
    Fv1Error,
    GraphValidationError,
    ResourceExhaustionError,
    Severity,
    TemplateError,
)

from .utils.config import Fv1Config, get_config

from .graph import BlockGraph, load_graph
from .blocks import BlockDefinition, BlockRegistry, get_registry
from .codegen import CompileOptions
from .compiler import CompileResult, GraphCompiler, compile_graph
from .assembler import Assembler, AssemblerOptions, AssemblyResult, assemble

__all__ = [
    "compile_graph",
    "GraphCompiler",
    "CompileOptions",
    "CompileResult",
    "assemble",
    "Assembler",
    "AssemblerOptions",
    "AssemblyResult",
    "BlockGraph",
    "load_graph",
    "BlockDefinition",
    "BlockRegistry",
    "get_registry",
    "Fv1Config",
    "get_config",
    "Fv1Error",
    "GraphValidationError",
    "CycleError",
    "ResourceExhaustionError",
    "TemplateError",
    "AssemblyError",
    "Diagnostic",
    "Severity",
]
