"""
Graph data model and analysis for fv1block.
"""

from .analyzer import AnalysisResult, GraphValidator, TopologyAnalyzer, analyze_graph
from .graph_nodes import Block, BlockGraph, Connection, Endpoint, GraphMetadata, load_graph

__all__ = [
    "Block",
    "BlockGraph",
    "Connection",
    "Endpoint",
    "GraphMetadata",
    "load_graph",
    "AnalysisResult",
    "GraphValidator",
    "TopologyAnalyzer",
    "analyze_graph",
]
