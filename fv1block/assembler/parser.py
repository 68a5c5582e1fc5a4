"""
Source line parser of the assembler.

Turns program text into a list of ``Statement`` objects, one per label,
declaration or instruction, each carrying its 1-based source line.
Recognized line shapes (mnemonics and keywords are case-insensitive)::

    ; comment
    label:                      label definition, may precede an instruction
    EQU name value              symbol declaration
    name EQU value
    MEM name size               delay memory declaration
    name MEM size
    mnemonic op1, op2, ...      instruction

Parsing never stops at a bad line: syntax problems are recorded on the
statement (``error``) so the assembler can report them in line order
and keep addresses stable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..utils.exceptions import AssemblySyntaxError
from .expressions import Expression, parse_expression, split_operands

LABEL = "label"
EQU = "equ"
MEM = "mem"
INSTRUCTION = "instruction"

DECLARATION_KEYWORDS = ("EQU", "MEM")

_LABEL_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_.]*)\s*:(?!=)")
_WORD_RE = re.compile(r"^\s*(\S+)\s*(.*)$")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


@dataclass
class Statement:
    """One parsed unit of source."""

    kind: str
    line: int
    name: Optional[str] = None
    mnemonic: Optional[str] = None
    operands: List[Expression] = field(default_factory=list)
    value: Optional[Expression] = None
    text: str = ""
    error: Optional[AssemblySyntaxError] = None

    @property
    def is_instruction(self) -> bool:
        return self.kind == INSTRUCTION


def strip_comment(text: str) -> str:
    index = text.find(";")
    return text if index < 0 else text[:index]


def parse_source(source: str) -> List[Statement]:
    """Parse a whole program; line numbers start at 1."""
    statements: List[Statement] = []
    for number, raw in enumerate(source.splitlines(), start=1):
        statements.extend(parse_source_line(raw, number))
    return statements


def parse_source_line(raw: str, line: int) -> List[Statement]:
    text = strip_comment(raw).strip()
    statements: List[Statement] = []
    if not text:
        return statements

    match = _LABEL_RE.match(text)
    if match:
        statements.append(Statement(LABEL, line, name=match.group(1).upper(), text=text))
        text = text[match.end():].strip()
        if not text:
            return statements

    words = text.split(None, 2)
    if words[0].upper() in DECLARATION_KEYWORDS:
        # EQU name value
        rest = text[len(words[0]):].strip()
        statements.append(_declaration(words[0].upper(), rest, line, text))
    elif len(words) >= 2 and words[1].upper() in DECLARATION_KEYWORDS:
        # name EQU value
        rest = words[0] + " " + (words[2] if len(words) > 2 else "")
        statements.append(_declaration(words[1].upper(), rest, line, text))
    else:
        statements.append(_instruction(text, line))
    return statements


def _declaration(keyword: str, rest: str, line: int, text: str) -> Statement:
    kind = EQU if keyword == "EQU" else MEM
    statement = Statement(kind, line, text=text)
    parts = re.split(r"[\s,]+", rest.strip(), maxsplit=1)
    name = parts[0] if parts else ""
    if not _NAME_RE.match(name):
        statement.error = AssemblySyntaxError(f"{keyword} needs a symbol name, got '{name}'", line=line)
        return statement
    statement.name = name.upper()
    if len(parts) < 2 or not parts[1].strip():
        statement.error = AssemblySyntaxError(f"{keyword} {statement.name} is missing its value", line=line)
        return statement
    try:
        statement.value = parse_expression(parts[1], line)
    except AssemblySyntaxError as e:
        statement.error = e
    return statement


def _instruction(text: str, line: int) -> Statement:
    match = _WORD_RE.match(text)
    mnemonic, operand_text = match.group(1).upper(), match.group(2)
    statement = Statement(INSTRUCTION, line, mnemonic=mnemonic, text=text)
    try:
        statement.operands = split_operands(operand_text, line)
    except AssemblySyntaxError as e:
        statement.error = e
    return statement
