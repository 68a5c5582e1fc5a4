"""
Graph-to-assembly compiler for fv1block.
"""

from .graph_compiler import CompileResult, GraphCompiler, compile_graph

__all__ = ["CompileResult", "GraphCompiler", "compile_graph"]
