"""
Peephole optimization of generated IR.

Blocks are generated independently, so the seams between them carry
redundant work: a block stores its result and clears the accumulator,
then the next block immediately reloads the same register. These passes
clean such seams up without changing what the program computes.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

from ..utils.constants import Section
from ..utils.logging import get_logger
from .ir import IRNode, NodeKind

logger = get_logger(__name__)

# Sections executed once per sample, back to back
STRAIGHT_LINE = (Section.INPUT, Section.MAIN, Section.OUTPUT)

ZERO_SYMBOLS = ("k_zero",)
ONE_SYMBOLS = ("k_one",)


def _is_value(operand: str, value: float, symbols: Tuple[str, ...]) -> bool:
    if operand.lower() in symbols:
        return True
    try:
        return float(operand) == value
    except ValueError:
        return False


def _clears_accumulator(node: IRNode) -> bool:
    if node.op == "clr":
        return True
    if node.op in ("wrax", "wra", "wrap", "wrhx", "wrlx") and len(node.operands) == 2:
        return _is_value(node.operands[1], 0.0, ZERO_SYMBOLS)
    if node.op == "and" and node.operands:
        return _is_value(node.operands[0], 0.0, ZERO_SYMBOLS)
    return False


@dataclass
class OptimizationStats:
    """Counts of rewrites applied by each pass."""

    forwarded: int = 0
    clears_added: int = 0

    @property
    def total(self) -> int:
        return self.forwarded + self.clears_added


class CodeOptimizer:
    """Applies the IR peephole passes in a fixed order."""

    def optimize(self, sections: Dict[Section, List[IRNode]]) -> Tuple[Dict[Section, List[IRNode]], OptimizationStats]:
        """
        Optimize per-section IR.

        Args:
            sections: Section to node list mapping; not modified

        Returns:
            Tuple of (new sections, stats)
        """
        stats = OptimizationStats()
        result = {section: list(nodes) for section, nodes in sections.items()}
        # Clearing must run first: forwarding leaves a value in the accumulator
        stats.clears_added = self._clear_after_input(result)
        stats.forwarded = self._forward_accumulator(result)
        if stats.total:
            logger.debug(f"Optimizer: {stats.forwarded} reloads forwarded, {stats.clears_added} clears added")
        return result, stats

    def _clear_after_input(self, sections: Dict[Section, List[IRNode]]) -> int:
        """Make sure the main section starts with an empty accumulator."""
        instructions = [n for n in sections.get(Section.INPUT, []) if n.is_instruction]
        if not instructions or _clears_accumulator(instructions[-1]):
            return 0
        sections[Section.INPUT].append(IRNode.instruction(Section.INPUT, "clr"))
        return 1

    def _forward_accumulator(self, sections: Dict[Section, List[IRNode]]) -> int:
        """
        Rewrite ``wrax X, 0`` + ``rdax X, 1.0`` into ``wrax X, 1.0``.

        Comments between the pair are allowed; a label is not, since
        something may jump to it.
        """
        stream = [node for section in STRAIGHT_LINE for node in sections.get(section, [])]
        removed = set()
        replaced: Dict[int, IRNode] = {}
        count = 0

        last_store = None
        for index, node in enumerate(stream):
            if node.kind is NodeKind.LABEL:
                last_store = None
                continue
            if not node.is_instruction:
                continue
            if (last_store is not None and node.op == "rdax" and len(node.operands) == 2
                    and node.operands[0] == stream[last_store].operands[0]
                    and _is_value(node.operands[1], 1.0, ONE_SYMBOLS)):
                store = stream[last_store]
                replaced[last_store] = store.with_operands(store.operands[0], node.operands[1])
                removed.add(index)
                count += 1
                last_store = None
                continue
            if node.op == "wrax" and len(node.operands) == 2 and _is_value(node.operands[1], 0.0, ZERO_SYMBOLS):
                last_store = index
            else:
                last_store = None

        if not count:
            return 0

        for section in STRAIGHT_LINE:
            sections[section] = []
        for index, node in enumerate(stream):
            if index in removed:
                continue
            node = replaced.get(index, node)
            sections[node.section].append(node)
        return count
