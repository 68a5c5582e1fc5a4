"""
Operand expressions of the assembler.

Operands are small arithmetic expressions over numeric literals and
symbols::

    1.0   -0.5   $7FFF   0x20   %1000_0000   delay# - 1   (REG0 | 1) << 2

Binary operators, loosest binding first: ``|``, ``^``, ``&``, shifts
(``<<``/``>>``, with ``<``/``>`` accepted as synonyms), ``+ -``,
``* /``. Unary ``- + ~ !`` bind tightest; ``~`` and ``!`` are bitwise
complement.

Every evaluation yields a ``Value``: the number and whether it is a raw
bit pattern. A lone hexadecimal or binary literal is raw; a real-operand
field takes a raw value as the field's bits instead of converting it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from ..utils.exceptions import AssemblySyntaxError

Number = Union[int, float]


@dataclass(frozen=True)
class Value:
    number: Number
    raw: bool = False

    @property
    def is_integer(self) -> bool:
        return isinstance(self.number, int) or float(self.number).is_integer()

    def as_int(self) -> int:
        return int(self.number)


# =============================================================================
# AST
# =============================================================================

@dataclass(frozen=True)
class Constant:
    value: Number
    raw: bool = False
    text: str = ""


@dataclass(frozen=True)
class Symbol:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: object


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: object
    right: object


Expression = Union[Constant, Symbol, UnaryOp, BinaryOp]


# =============================================================================
# Lexer
# =============================================================================

IDENTIFIER_RE = re.compile(r"[A-Z_][A-Z0-9_.]*[#^]?", re.IGNORECASE)

_TOKEN_RE = re.compile(r"""
    \s*(?:
        (?P<hex>(?:\$|0[xX])[0-9A-Fa-f_]+)
      | (?P<bin>%[01_]+)
      | (?P<real>\d+\.\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|\d+[eE][+-]?\d+)
      | (?P<int>\d+)
      | (?P<name>[A-Za-z_][A-Za-z0-9_.]*[#^]?)
      | (?P<op><<|>>|[-+*/|&^~!<>(),])
    )""", re.VERBOSE)


def tokenize(text: str, line: Optional[int] = None) -> List[Tuple[str, str]]:
    """Split operand text into (kind, text) tokens."""
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise AssemblySyntaxError(f"Unexpected character '{text[pos:].strip()[:1]}' in '{text.strip()}'", line=line)
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _literal(kind: str, text: str) -> Constant:
    if kind == "hex":
        digits = text[1:] if text.startswith("$") else text[2:]
        return Constant(int(digits.replace("_", ""), 16), raw=True, text=text)
    if kind == "bin":
        return Constant(int(text[1:].replace("_", ""), 2), raw=True, text=text)
    if kind == "int":
        return Constant(int(text), text=text)
    return Constant(float(text), text=text)


# =============================================================================
# Parser
# =============================================================================

_BINARY_LEVELS = (
    ("|",),
    ("^",),
    ("&",),
    ("<<", ">>", "<", ">"),
    ("+", "-"),
    ("*", "/"),
)

_SHIFT_SYNONYMS = {"<": "<<", ">": ">>"}

_VALUE_START = ("hex", "bin", "real", "int", "name")


class _Parser:
    def __init__(self, tokens: List[Tuple[str, str]], text: str, line: Optional[int]):
        self.tokens = tokens
        self.text = text
        self.line = line
        self.pos = 0

    def error(self, message: str) -> AssemblySyntaxError:
        return AssemblySyntaxError(f"{message} in '{self.text}'", line=self.line)

    def peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def accept(self, ops: Tuple[str, ...]) -> Optional[str]:
        token = self.peek()
        if token is not None and token[0] == "op" and token[1] in ops:
            self.pos += 1
            return token[1]
        return None

    def parse(self) -> Expression:
        if not self.tokens:
            raise self.error("Missing operand")
        node = self.binary(0)
        if self.pos != len(self.tokens):
            raise self.error(f"Unexpected '{self.tokens[self.pos][1]}'")
        return node

    def binary(self, level: int) -> Expression:
        if level == len(_BINARY_LEVELS):
            return self.unary()
        node = self.binary(level + 1)
        while True:
            op = self.accept(_BINARY_LEVELS[level])
            if op is None:
                return node
            node = BinaryOp(_SHIFT_SYNONYMS.get(op, op), node, self.binary(level + 1))

    def unary(self) -> Expression:
        op = self.accept(("-", "+", "~", "!"))
        if op == "+":
            return self.unary()
        if op is not None:
            return UnaryOp("~" if op == "!" else op, self.unary())
        return self.primary()

    def primary(self) -> Expression:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of operand")
        kind, text = token
        self.pos += 1
        if kind == "name":
            return Symbol(text.upper())
        if kind in ("hex", "bin", "real", "int"):
            return _literal(kind, text)
        if text == "(":
            node = self.binary(0)
            if self.accept((")",)) is None:
                raise self.error("Missing ')'")
            return node
        raise self.error(f"Unexpected '{text}'")


def parse_expression(text: str, line: Optional[int] = None) -> Expression:
    """Parse one operand expression."""
    return _Parser(tokenize(text, line), text.strip(), line).parse()


def split_operands(text: str, line: Optional[int] = None) -> List[Expression]:
    """
    Parse an operand list.

    Operands are separated by commas. Whitespace also separates two
    operands when one value directly follows another, so ``rdax adcl 1.0``
    reads the same as ``rdax adcl, 1.0``.
    """
    tokens = tokenize(text, line)
    if not tokens:
        return []

    groups: List[List[Tuple[str, str]]] = [[]]
    depth = 0
    for token in tokens:
        kind, value = token
        if kind == "op" and value == "," and depth == 0:
            groups.append([])
            continue
        if kind == "op" and value == "(":
            depth += 1
        elif kind == "op" and value == ")":
            depth -= 1
        current = groups[-1]
        if depth == 0 and current and kind in _VALUE_START and _ends_value(current[-1]):
            groups.append([token])
            continue
        current.append(token)

    operands = []
    for group in groups:
        source = " ".join(value for _, value in group)
        if not group:
            raise AssemblySyntaxError(f"Empty operand in '{text.strip()}'", line=line)
        operands.append(_Parser(group, source, line).parse())
    return operands


def _ends_value(token: Tuple[str, str]) -> bool:
    kind, value = token
    return kind in _VALUE_START or (kind == "op" and value == ")")


# =============================================================================
# Evaluation
# =============================================================================

def evaluate(node: Expression, lookup: Callable[[str], Value], line: Optional[int] = None) -> Value:
    """
    Evaluate an expression.

    Args:
        node: Parsed expression
        lookup: Resolves a symbol name to its Value; raises for unknown names
        line: Source line for error attribution

    Returns:
        The resulting Value; only bare literals and symbols keep ``raw``
    """
    if isinstance(node, Constant):
        return Value(node.value, node.raw)
    if isinstance(node, Symbol):
        return lookup(node.name)
    if isinstance(node, UnaryOp):
        operand = evaluate(node.operand, lookup, line).number
        if node.op == "-":
            return Value(-operand)
        return Value(~_integer(operand, node.op, line))
    if isinstance(node, BinaryOp):
        left = evaluate(node.left, lookup, line).number
        right = evaluate(node.right, lookup, line).number
        return Value(_apply(node.op, left, right, line))
    raise TypeError(f"Not an expression node: {node!r}")


def _integer(number: Number, op: str, line: Optional[int]) -> int:
    if isinstance(number, float):
        if not number.is_integer():
            raise AssemblySyntaxError(f"Operator '{op}' needs integer operands, got {number}", line=line)
        return int(number)
    return number


def _apply(op: str, left: Number, right: Number, line: Optional[int]) -> Number:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        if right == 0:
            raise AssemblySyntaxError("Division by zero", line=line)
        if isinstance(left, int) and isinstance(right, int) and left % right == 0:
            return left // right
        return left / right

    a, b = _integer(left, op, line), _integer(right, op, line)
    if op == "|":
        return a | b
    if op == "&":
        return a & b
    if op == "^":
        return a ^ b
    if b < 0:
        raise AssemblySyntaxError(f"Negative shift count {b}", line=line)
    if op == "<<":
        return (a << b) & 0xFFFFFFFF
    return (a & 0xFFFFFFFF) >> b
