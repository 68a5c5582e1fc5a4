"""
Intermediate Representation for generated assembly.

Blocks emit IR nodes rather than raw text so that later passes (the
optimizer, statistics, rendering) can reason about instructions,
labels and directives without re-parsing strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from ..utils.constants import Section


class NodeKind(Enum):
    """What an IR node renders as."""

    INSTRUCTION = "instruction"
    LABEL = "label"
    COMMENT = "comment"
    DIRECTIVE = "directive"
    BLANK = "blank"


DIRECTIVES = ("equ", "mem")

_LABEL_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*:(.*)$")


@dataclass(frozen=True)
class IRNode:
    """
    A single line of generated assembly.

    Attributes:
        kind: Node kind
        section: Section the node is emitted into
        op: Mnemonic, label name or directive name; empty for comments
        operands: Operand texts in order
        comment: Trailing comment (or the whole text of a comment node)
    """

    kind: NodeKind
    section: Section
    op: str = ""
    operands: Tuple[str, ...] = ()
    comment: Optional[str] = None

    @classmethod
    def instruction(cls, section: Section, mnemonic: str, *operands: str,
                    comment: Optional[str] = None) -> IRNode:
        return cls(NodeKind.INSTRUCTION, section, mnemonic.lower(), tuple(str(o) for o in operands), comment)

    @classmethod
    def label(cls, section: Section, name: str) -> IRNode:
        return cls(NodeKind.LABEL, section, name)

    @classmethod
    def note(cls, section: Section, text: str) -> IRNode:
        return cls(NodeKind.COMMENT, section, comment=text)

    @classmethod
    def directive(cls, section: Section, name: str, *operands: str) -> IRNode:
        return cls(NodeKind.DIRECTIVE, section, name.lower(), tuple(str(o) for o in operands))

    @classmethod
    def blank(cls, section: Section) -> IRNode:
        return cls(NodeKind.BLANK, section)

    @property
    def is_instruction(self) -> bool:
        return self.kind is NodeKind.INSTRUCTION

    def with_operands(self, *operands: str) -> IRNode:
        return replace(self, operands=tuple(operands))

    def in_section(self, section: Section) -> IRNode:
        return replace(self, section=section)

    def render(self) -> str:
        """Render this node as one line of assembly text."""
        if self.kind is NodeKind.BLANK:
            return ""
        if self.kind is NodeKind.COMMENT:
            return f"; {self.comment}" if self.comment else ";"
        if self.kind is NodeKind.LABEL:
            return f"{self.op}:"

        if self.kind is NodeKind.DIRECTIVE:
            text = f"{self.op:<7} " + " ".join(self.operands)
        elif self.operands:
            text = f"{self.op:<7} " + ", ".join(self.operands)
        else:
            text = self.op
        if self.comment:
            text = f"{text:<40}; {self.comment}"
        return text


def parse_line(text: str, section: Section) -> Tuple[IRNode, ...]:
    """
    Parse one line of assembly text into IR nodes.

    Accepts blank lines, ``; comments``, ``label:`` (optionally followed
    by an instruction), ``equ``/``mem`` directives and instructions with
    comma-separated operands and an optional trailing comment.

    Args:
        text: Source line
        section: Section to tag the nodes with

    Returns:
        Tuple of nodes (empty for blank input, two for label + instruction)
    """
    line = text.strip()
    if not line:
        return ()
    if line.startswith(";"):
        return (IRNode.note(section, line[1:].strip()),)

    comment = None
    if ";" in line:
        line, comment = line.split(";", 1)
        line = line.strip()
        comment = comment.strip() or None

    match = _LABEL_RE.match(line)
    if match:
        nodes = [IRNode.label(section, match.group(1))]
        rest = match.group(2).strip()
        if rest:
            nodes.extend(_parse_statement(rest, section, comment))
        return tuple(nodes)

    return tuple(_parse_statement(line, section, comment))


def _parse_statement(line: str, section: Section, comment: Optional[str]) -> Tuple[IRNode, ...]:
    parts = line.split(None, 1)
    op = parts[0].lower()
    rest = parts[1].strip() if len(parts) > 1 else ""

    if op in DIRECTIVES:
        return (IRNode(NodeKind.DIRECTIVE, section, op, tuple(rest.split()), comment),)

    operands = tuple(o.strip() for o in rest.split(",")) if rest else ()
    return (IRNode(NodeKind.INSTRUCTION, section, op, operands, comment),)
