"""
Graph Analysis for fv1block.

Two passes run before any code is generated:

- ``GraphValidator`` checks every block and connection and returns all
  problems at once instead of stopping at the first.
- ``TopologyAnalyzer`` orders blocks so that each one is generated after
  the blocks that drive its inputs.

Edges leaving a memory-bearing block (a delay) are "soft": the value on
them was written to delay memory in an earlier sample, so they may close
a loop. A loop made only of hard edges is a same-sample feedback path
the chip cannot execute and is rejected.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from ..utils.exceptions import CycleError, GraphValidationError, Severity
from ..utils.logging import get_logger
from .graph_nodes import Block, BlockGraph, Connection

logger = get_logger(__name__)


@dataclass
class AnalysisResult:
    """Result of graph analysis."""

    schedule: List[Block] = field(default_factory=list)
    feedback_connections: List[Connection] = field(default_factory=list)
    dependency_graph: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def order(self) -> List[str]:
        return [block.id for block in self.schedule]


class GraphValidator:
    """Batch validation of block types, connections and block instances."""

    def __init__(self, registry: Any):
        self.registry = registry

    def validate(self, graph: BlockGraph) -> List[GraphValidationError]:
        """
        Validate a graph.

        Args:
            graph: Graph to check

        Returns:
            Every problem found, fatal and warning, in discovery order
        """
        problems: List[GraphValidationError] = []
        definitions = {}

        if not graph.blocks:
            problems.append(GraphValidationError("Graph has no blocks", severity=Severity.WARNING))

        for block in graph.blocks:
            definition = self.registry.get(block.type)
            if definition is None:
                problems.append(GraphValidationError(f"Unknown block type '{block.type}'", block_id=block.id))
            else:
                definitions[block.id] = definition

        known_ids = {block.id for block in graph.blocks}
        drivers = Counter()
        for conn in graph.connections:
            problems.extend(self._check_connection(conn, known_ids, definitions))
            key = (conn.destination.block_id, conn.destination.port_id)
            drivers[key] += 1
            if drivers[key] == 2:
                problems.append(GraphValidationError(
                    f"Input '{conn.destination.port_id}' has more than one incoming connection",
                    block_id=conn.destination.block_id, connection_id=conn.id))

        for block in graph.blocks:
            definition = definitions.get(block.id)
            if definition is not None:
                problems.extend(definition.validate(block, graph))

        if graph.blocks:
            if not any(b.type.startswith("output.") for b in graph.blocks):
                problems.append(GraphValidationError("Graph has no output block", severity=Severity.WARNING))
            if not any(b.type.startswith("input.") for b in graph.blocks):
                problems.append(GraphValidationError("Graph has no input block", severity=Severity.WARNING))

        fatal = sum(1 for p in problems if p.severity is Severity.FATAL)
        logger.debug(f"Validation found {fatal} errors and {len(problems) - fatal} warnings")
        return problems

    def _check_connection(self, conn: Connection, known_ids: Set[str],
                          definitions: Dict[str, Any]) -> List[GraphValidationError]:
        problems = []
        src, dst = conn.source, conn.destination

        for end, label in ((src, "source"), (dst, "destination")):
            if end.block_id not in known_ids:
                problems.append(GraphValidationError(
                    f"Connection {label} block '{end.block_id}' does not exist", connection_id=conn.id))
        if problems:
            return problems

        src_def = definitions.get(src.block_id)
        dst_def = definitions.get(dst.block_id)
        if src_def is None or dst_def is None:
            # Unknown block type, already reported
            return problems

        out_port = src_def.get_output(src.port_id)
        in_port = dst_def.get_input(dst.port_id)
        if out_port is None:
            problems.append(GraphValidationError(
                f"Block type '{src_def.type}' has no output port '{src.port_id}'",
                block_id=src.block_id, connection_id=conn.id))
        if in_port is None:
            problems.append(GraphValidationError(
                f"Block type '{dst_def.type}' has no input port '{dst.port_id}'",
                block_id=dst.block_id, connection_id=conn.id))
        if out_port is not None and in_port is not None and out_port.kind is not in_port.kind:
            problems.append(GraphValidationError(
                f"Cannot connect {out_port.kind.value} output {src} to {in_port.kind.value} input {dst}",
                block_id=dst.block_id, connection_id=conn.id))
        return problems


class TopologyAnalyzer:
    """Analyzes graph topology and computes the generation schedule."""

    def __init__(self, registry: Any):
        self.registry = registry

    def _is_soft(self, graph: BlockGraph, conn: Connection) -> bool:
        source = graph.get_block(conn.source.block_id)
        definition = self.registry.get(source.type) if source is not None else None
        return bool(definition is not None and definition.memory_bearing)

    def analyze(self, graph: BlockGraph) -> AnalysisResult:
        """
        Compute the block schedule.

        Args:
            graph: A graph that passed validation

        Returns:
            AnalysisResult with the schedule and any feedback connections

        Raises:
            CycleError: If a loop contains no memory-bearing block
        """
        position = {block.id: i for i, block in enumerate(graph.blocks)}
        hard: Dict[str, Set[str]] = {b.id: set() for b in graph.blocks}
        soft: Dict[str, Set[str]] = {b.id: set() for b in graph.blocks}
        successors: Dict[str, Set[str]] = {b.id: set() for b in graph.blocks}

        for conn in graph.connections:
            src, dst = conn.source.block_id, conn.destination.block_id
            if src not in position or dst not in position:
                continue
            if self._is_soft(graph, conn):
                soft[dst].add(src)
            else:
                hard[dst].add(src)
                successors[src].add(dst)

        cycle = self._find_cycle(graph, successors)
        if cycle:
            raise CycleError(cycle)

        order = self._topological_sort(graph, hard, soft, successors, position)
        placed = {block_id: i for i, block_id in enumerate(order)}
        feedback = [
            conn for conn in graph.connections
            if conn.source.block_id in placed and conn.destination.block_id in placed
            and placed[conn.source.block_id] >= placed[conn.destination.block_id]
        ]

        dependency_graph = {
            block_id: sorted(hard[block_id] | soft[block_id], key=position.get) for block_id in order
        }
        result = AnalysisResult(
            schedule=[graph.get_block(block_id) for block_id in order],
            feedback_connections=feedback,
            dependency_graph=dependency_graph,
        )
        logger.debug(f"Schedule: {result.order}")
        return result

    def _topological_sort(self, graph: BlockGraph, hard: Dict[str, Set[str]], soft: Dict[str, Set[str]],
                          successors: Dict[str, Set[str]], position: Dict[str, int]) -> List[str]:
        """
        Kahn's algorithm over hard edges.

        Among ready blocks, the first in document order whose soft
        predecessors are already placed wins; otherwise the first ready
        block does, and its soft inputs become feedback.
        """
        in_degree = {block_id: len(preds) for block_id, preds in hard.items()}
        ready = [b.id for b in graph.blocks if in_degree[b.id] == 0]
        placed: Set[str] = set()
        order: List[str] = []

        while ready:
            current = next((b for b in ready if soft[b] - {b} <= placed), ready[0])
            ready.remove(current)
            order.append(current)
            placed.add(current)

            for succ in successors[current]:
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    ready.append(succ)
            ready.sort(key=position.get)

        return order

    def _find_cycle(self, graph: BlockGraph, successors: Dict[str, Set[str]]) -> Optional[List[str]]:
        """Depth-first search for a hard-edge cycle; returns its blocks in order."""
        white, grey, black = 0, 1, 2
        color = {b.id: white for b in graph.blocks}
        position = {b.id: i for i, b in enumerate(graph.blocks)}
        stack: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            color[node] = grey
            stack.append(node)
            for succ in sorted(successors[node], key=position.get):
                if color[succ] == grey:
                    return stack[stack.index(succ):]
                if color[succ] == white:
                    found = visit(succ)
                    if found:
                        return found
            stack.pop()
            color[node] = black
            return None

        for block in graph.blocks:
            if color[block.id] == white:
                found = visit(block.id)
                if found:
                    return list(found)
        return None


def analyze_graph(graph: BlockGraph, registry: Any) -> Tuple[List[GraphValidationError], Optional[AnalysisResult]]:
    """
    Validate and schedule a graph in one call.

    Returns:
        Tuple of (problems, result); ``result`` is None when validation
        found a fatal problem or the graph has a cycle (the CycleError is
        then the last problem)
    """
    problems = GraphValidator(registry).validate(graph)
    if any(p.severity is Severity.FATAL for p in problems):
        return problems, None
    try:
        return problems, TopologyAnalyzer(registry).analyze(graph)
    except CycleError as e:
        problems.append(e)
        return problems, None
