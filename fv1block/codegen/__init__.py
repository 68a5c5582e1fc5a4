"""
Code generation for fv1block: IR, the per-compile context, the template
engine, peephole optimization and program rendering.
"""

from .config import CompileOptions, create_default_options, options_from_config, options_from_dict
from .context import CodeGenContext, MemoryHandle, RegisterAllocation, sanitize_symbol
from .ir import IRNode, NodeKind, parse_line
from .optimization import CodeOptimizer, OptimizationStats
from .renderer import ProgramRenderer
from .template_engine import TemplateEngine, TemplateEnvironment, parse_expression

__all__ = [
    "CompileOptions",
    "create_default_options",
    "options_from_config",
    "options_from_dict",
    "CodeGenContext",
    "MemoryHandle",
    "RegisterAllocation",
    "sanitize_symbol",
    "IRNode",
    "NodeKind",
    "parse_line",
    "CodeOptimizer",
    "OptimizationStats",
    "ProgramRenderer",
    "TemplateEngine",
    "TemplateEnvironment",
    "parse_expression",
]
