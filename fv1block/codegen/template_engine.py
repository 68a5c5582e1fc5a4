"""
Template expansion engine.

Template blocks carry an assembly body with ``${...}`` placeholders and
``@`` directives. Placeholders hold expressions in a small typed
language, parsed into an AST and evaluated against an explicit
environment: the block's parameters, its port register bindings, its
internal registers, memories and labels. Anything malformed surfaces
as a ``TemplateError`` attributed to the block rather than as wrong
output text.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..utils.constants import Section
from ..utils.exceptions import TemplateError
from ..utils.fixed_point import S1_9, S1_14, S_10, S_15, FixedPointFormat, format_real
from ..utils.logging import get_logger
from .ir import IRNode, parse_line

logger = get_logger(__name__)

NAMESPACES = ("input", "output", "reg", "mem", "label", "param")


# =============================================================================
# Expression AST
# =============================================================================

@dataclass(frozen=True)
class Literal:
    value: Union[float, int, str]


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Ref:
    namespace: str
    name: str


@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple[Any, ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: Any


@dataclass(frozen=True)
class Binary:
    op: str
    left: Any
    right: Any


class ExpressionSyntaxError(ValueError):
    """Raised by the parser; converted to TemplateError by callers."""


_TOKEN_RE = re.compile(r"""
    \s*(?:
        (?P<number>\d+\.\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|\d+(?:[eE][+-]?\d+)?)
      | (?P<string>'[^']*'|"[^"]*")
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<op>==|!=|<=|>=|[-+*/(),.<>!])
    )""", re.VERBOSE)


def tokenize(text: str) -> List[Tuple[str, str]]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ExpressionSyntaxError(f"unexpected character {text[pos:].strip()[:1]!r} in '{text}'")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class ExpressionParser:
    """
    Recursive-descent parser for placeholder expressions.

    Grammar, loosest binding first::

        expr    := and ('or' and)*
        and     := not ('and' not)*
        not     := ('not' | '!') not | compare
        compare := sum (('=='|'!='|'<'|'<='|'>'|'>=') sum)?
        sum     := product (('+'|'-') product)*
        product := unary (('*'|'/') unary)*
        unary   := '-' unary | primary
        primary := NUMBER | STRING | NAME '.' NAME | NAME '(' args ')' | NAME | '(' expr ')'
    """

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0

    def parse(self) -> Any:
        if not self.tokens:
            raise ExpressionSyntaxError("empty expression")
        node = self._or()
        if self.pos != len(self.tokens):
            raise ExpressionSyntaxError(f"unexpected '{self.tokens[self.pos][1]}' in '{self.text}'")
        return node

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _accept(self, *values: str) -> Optional[str]:
        token = self._peek()
        if token is not None and token[1] in values and token[0] in ("op", "name"):
            self.pos += 1
            return token[1]
        return None

    def _expect(self, value: str) -> None:
        if self._accept(value) is None:
            found = self._peek()
            raise ExpressionSyntaxError(
                f"expected '{value}' but found {repr(found[1]) if found else 'end of expression'} in '{self.text}'")

    def _or(self) -> Any:
        node = self._and()
        while self._accept("or"):
            node = Binary("or", node, self._and())
        return node

    def _and(self) -> Any:
        node = self._not()
        while self._accept("and"):
            node = Binary("and", node, self._not())
        return node

    def _not(self) -> Any:
        if self._accept("not", "!"):
            return Unary("not", self._not())
        return self._compare()

    def _compare(self) -> Any:
        node = self._sum()
        op = self._accept("==", "!=", "<=", ">=", "<", ">")
        if op:
            node = Binary(op, node, self._sum())
        return node

    def _sum(self) -> Any:
        node = self._product()
        while True:
            op = self._accept("+", "-")
            if not op:
                return node
            node = Binary(op, node, self._product())

    def _product(self) -> Any:
        node = self._unary()
        while True:
            op = self._accept("*", "/")
            if not op:
                return node
            node = Binary(op, node, self._unary())

    def _unary(self) -> Any:
        if self._accept("-"):
            return Unary("-", self._unary())
        if self._accept("+"):
            return self._unary()
        return self._primary()

    def _primary(self) -> Any:
        token = self._peek()
        if token is None:
            raise ExpressionSyntaxError(f"unexpected end of expression '{self.text}'")
        kind, value = token

        if kind == "number":
            self.pos += 1
            number = float(value)
            return Literal(int(number) if re.fullmatch(r"\d+", value) else number)
        if kind == "string":
            self.pos += 1
            return Literal(value[1:-1])
        if kind == "op" and value == "(":
            self.pos += 1
            node = self._or()
            self._expect(")")
            return node
        if kind == "name" and value not in ("and", "or", "not"):
            self.pos += 1
            if self._accept("."):
                member = self._peek()
                if member is None or member[0] != "name":
                    raise ExpressionSyntaxError(f"expected a name after '{value}.' in '{self.text}'")
                self.pos += 1
                return Ref(value, member[1])
            if self._accept("("):
                args = []
                if not self._accept(")"):
                    args.append(self._or())
                    while self._accept(","):
                        args.append(self._or())
                    self._expect(")")
                return Call(value, tuple(args))
            return Name(value)
        raise ExpressionSyntaxError(f"unexpected '{value}' in '{self.text}'")


def parse_expression(text: str) -> Any:
    """Parse expression text into an AST."""
    return ExpressionParser(text).parse()


def find_placeholders(line: str) -> List[Tuple[int, int, str]]:
    """
    Locate ``${...}`` placeholders in a line.

    Returns:
        List of (start, end, expression) with ``end`` exclusive

    Raises:
        ExpressionSyntaxError: For an unterminated placeholder
    """
    found = []
    pos = 0
    while True:
        start = line.find("${", pos)
        if start < 0:
            return found
        end = line.find("}", start + 2)
        if end < 0:
            raise ExpressionSyntaxError(f"unterminated placeholder in '{line.strip()}'")
        found.append((start, end + 1, line[start + 2:end].strip()))
        pos = end + 1


def check_references(node: Any, known: Dict[str, Tuple[str, ...]]) -> List[str]:
    """Return problems with namespace references that can be found without a block instance."""
    problems = []
    if isinstance(node, Ref):
        if node.namespace not in NAMESPACES:
            problems.append(f"unknown namespace '{node.namespace}'")
        elif node.namespace != "label" and node.name not in known.get(node.namespace, ()):
            problems.append(f"unknown {node.namespace} '{node.name}'")
    elif isinstance(node, Call):
        if node.func not in FUNCTIONS and node.func not in FIXED_FUNCTIONS and node.func not in BUILTINS:
            problems.append(f"unknown function '{node.func}'")
        for arg in node.args:
            problems.extend(check_references(arg, known))
    elif isinstance(node, Unary):
        problems.extend(check_references(node.operand, known))
    elif isinstance(node, Binary):
        problems.extend(check_references(node.left, known))
        problems.extend(check_references(node.right, known))
    return problems


# =============================================================================
# Evaluation
# =============================================================================

def _number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"{what} needs a finite number, got {value}")
        return value
    raise TypeError(f"{what} needs a number, got {value!r}")


def _scale(in_lo, in_hi, out_lo, out_hi) -> float:
    span = in_hi - in_lo
    if span == 0:
        raise ZeroDivisionError("input range is empty")
    return (out_hi - out_lo) / span


FUNCTIONS: Dict[str, Tuple[int, Callable[..., Any]]] = {
    "min": (-1, min),
    "max": (-1, max),
    "abs": (1, abs),
    "int": (1, lambda x: int(x)),
    "round": (1, lambda x: int(round(x))),
    "clamp": (3, lambda x, lo, hi: max(lo, min(hi, x))),
    "dblevel": (1, lambda db: 10.0 ** (db / 20.0)),
}

# Functions that quantize into a chip format
FIXED_FUNCTIONS: Dict[str, FixedPointFormat] = {
    "s1_14": S1_14,
    "s_10": S_10,
    "s1_9": S1_9,
    "s_15": S_15,
}

# Functions evaluated by the environment itself
BUILTINS = ("connected", "scale", "offset", "logfreq", "sinlfofreq", "samples")


class TemplateEnvironment:
    """
    Evaluation environment for one block instance.

    Resolves namespace references through the code generation context
    so that register and memory allocation happen exactly when a
    template uses them.
    """

    def __init__(self, definition: Any, block: Any, context: Any, memories: Dict[str, Any]):
        self.definition = definition
        self.block = block
        self.context = context
        self.memories = memories
        self.section = Section.MAIN

    def error(self, message: str) -> TemplateError:
        return TemplateError(message, block_id=self.block.id, template=self.definition.source)

    def evaluate(self, node: Any) -> Any:
        try:
            value = self._eval(node)
        except (TypeError, ValueError, ArithmeticError) as e:
            raise self.error(f"cannot evaluate expression: {e}")
        if isinstance(value, float) and not math.isfinite(value):
            raise self.error(f"expression evaluates to {value}")
        return value

    def _eval(self, node: Any) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Ref):
            return self._resolve(node)
        if isinstance(node, Name):
            raise self.error(f"bare name '{node.name}' (use one of {', '.join(NAMESPACES)})")
        if isinstance(node, Unary):
            value = self._eval(node.operand)
            if node.op == "not":
                return not value
            return -_number(value, "negation")
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Call):
            return self._call(node)
        raise self.error(f"unsupported expression node {node!r}")

    def _binary(self, node: Binary) -> Any:
        if node.op == "and":
            return bool(self._eval(node.left)) and bool(self._eval(node.right))
        if node.op == "or":
            return bool(self._eval(node.left)) or bool(self._eval(node.right))

        left = self._eval(node.left)
        right = self._eval(node.right)
        if node.op == "==":
            return left == right
        if node.op == "!=":
            return left != right

        a = _number(left, f"'{node.op}'")
        b = _number(right, f"'{node.op}'")
        if node.op == "+":
            return a + b
        if node.op == "-":
            return a - b
        if node.op == "*":
            return a * b
        if node.op == "/":
            return a / b
        if node.op == "<":
            return a < b
        if node.op == "<=":
            return a <= b
        if node.op == ">":
            return a > b
        return a >= b

    def _resolve(self, ref: Ref) -> Any:
        ns, name = ref.namespace, ref.name
        definition = self.definition
        if ns == "input":
            if definition.get_input(name) is None:
                raise self.error(f"unknown input port '{name}'")
            register = self.context.get_input_register(self.block.id, name)
            if register is None:
                raise self.error(f"input port '{name}' is not connected (guard it with @if connected({name}))")
            return register
        if ns == "output":
            if definition.get_output(name) is None:
                raise self.error(f"unknown output port '{name}'")
            return self.context.allocate_register(self.block.id, name)
        if ns == "reg":
            if name not in definition.registers:
                raise self.error(f"undeclared register '{name}'")
            return self.context.allocate_register(self.block.id, f"local_{name}")
        if ns == "mem":
            if name not in self.memories:
                raise self.error(f"undeclared memory '{name}'")
            return self.memories[name].name
        if ns == "label":
            return self.context.unique_label(self.block.id, name)
        if ns == "param":
            if definition.get_parameter(name) is None:
                raise self.error(f"unknown parameter '{name}'")
            return self.context.get_code_value(self.block, name)
        raise self.error(f"unknown namespace '{ns}'")

    def _call(self, call: Call) -> Any:
        if call.func == "connected":
            return self._connected(call)

        args = [self._eval(arg) for arg in call.args]
        sample_rate = self.context.options.sample_rate

        if call.func in FIXED_FUNCTIONS:
            self._arity(call, 1)
            return self.quantize(_number(args[0], call.func), FIXED_FUNCTIONS[call.func], call.func)
        if call.func == "scale":
            self._arity(call, 4)
            value = _scale(*[_number(a, "scale") for a in args])
            return self.quantize(value, S1_14, "scale")
        if call.func == "offset":
            self._arity(call, 4)
            in_lo, in_hi, out_lo, out_hi = [_number(a, "offset") for a in args]
            value = out_lo - in_lo * _scale(in_lo, in_hi, out_lo, out_hi)
            return self.quantize(value, S_10, "offset")
        if call.func == "logfreq":
            self._arity(call, 1)
            return 1.0 - math.exp(-2.0 * math.pi * _number(args[0], "logfreq") / sample_rate)
        if call.func == "sinlfofreq":
            self._arity(call, 1)
            return int(round((1 << 17) * 2.0 * math.pi * _number(args[0], "sinlfofreq") / sample_rate))
        if call.func == "samples":
            self._arity(call, 1)
            return int(round(_number(args[0], "samples") / 1000.0 * sample_rate))

        if call.func not in FUNCTIONS:
            raise self.error(f"unknown function '{call.func}'")
        arity, func = FUNCTIONS[call.func]
        if arity >= 0:
            self._arity(call, arity)
        elif not args:
            raise self.error(f"{call.func}() needs at least one argument")
        return func(*[_number(a, call.func) for a in args])

    def _connected(self, call: Call) -> bool:
        self._arity(call, 1)
        arg = call.args[0]
        if isinstance(arg, Name):
            port = arg.name
        elif isinstance(arg, Ref) and arg.namespace in ("input", "output"):
            port = arg.name
        elif isinstance(arg, Literal) and isinstance(arg.value, str):
            port = arg.value
        else:
            raise self.error("connected() takes a port name")
        if self.definition.get_input(port) is None and self.definition.get_output(port) is None:
            raise self.error(f"unknown port '{port}'")
        return self.context.is_connected(self.block.id, port)

    def _arity(self, call: Call, count: int) -> None:
        if len(call.args) != count:
            raise self.error(f"{call.func}() takes {count} argument(s), got {len(call.args)}")

    def quantize(self, value: float, fmt: FixedPointFormat, what: str) -> float:
        quantized, clamped = fmt.quantize(value)
        if clamped:
            self.context.warn(
                f"{what}({value:g}) outside {fmt.name} range [{fmt.minimum:g}, {fmt.maximum:g}], "
                f"clamped to {format_real(quantized)}",
                section=self.section,
            )
        return quantized


def render_value(value: Any) -> str:
    """Render an evaluated placeholder as assembly text."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format_real(value)
    return str(value)


# =============================================================================
# Body expansion
# =============================================================================

@dataclass
class _IfFrame:
    parent_active: bool
    taken: bool
    active: bool
    seen_else: bool = False
    line: int = 0


class TemplateEngine:
    """
    Expands a template body for one block instance.

    Supported directives: ``@section <name>``, ``@if <expr>``, ``@else``,
    ``@endif`` and ``@comment <text>``. All other non-blank lines are
    assembly with placeholders.
    """

    def __init__(self, definition: Any):
        self.definition = definition

    def check(self) -> None:
        """
        Statically check the body: directive nesting, placeholder syntax
        and references to declared ports, parameters, registers and memory.

        Raises:
            TemplateError: Naming the template file and line
        """
        known = {
            "input": tuple(p.id for p in self.definition.inputs),
            "output": tuple(p.id for p in self.definition.outputs),
            "reg": tuple(self.definition.registers),
            "mem": tuple(m for m, _ in self.definition.memory),
            "param": tuple(p.id for p in self.definition.parameters),
        }
        depth = 0
        for number, line in enumerate(self.definition.body.splitlines(), start=1):
            stripped = line.strip()
            try:
                if stripped.startswith("@"):
                    directive, _, argument = stripped[1:].partition(" ")
                    directive = directive.lower()
                    if directive == "if":
                        depth += 1
                        self._check_expression(argument, known)
                    elif directive == "else":
                        if depth == 0:
                            raise ExpressionSyntaxError("@else without @if")
                    elif directive == "endif":
                        if depth == 0:
                            raise ExpressionSyntaxError("@endif without @if")
                        depth -= 1
                    elif directive == "section":
                        Section.parse(argument)
                    elif directive != "comment":
                        raise ExpressionSyntaxError(f"unknown directive '@{directive}'")
                    continue
                for _, _, expression in find_placeholders(line):
                    self._check_expression(expression, known)
            except (ExpressionSyntaxError, ValueError) as e:
                raise TemplateError(f"line {number}: {e}", template=self.definition.source)
        if depth:
            raise TemplateError("unterminated @if block", template=self.definition.source)
        for mem_id, size in self.definition.memory:
            if isinstance(size, str):
                try:
                    self._check_expression(size, known)
                except ExpressionSyntaxError as e:
                    raise TemplateError(f"memory '{mem_id}' size: {e}", template=self.definition.source)

    @staticmethod
    def _check_expression(text: str, known: Dict[str, Tuple[str, ...]]) -> None:
        problems = check_references(parse_expression(text), known)
        if problems:
            raise ExpressionSyntaxError("; ".join(problems))

    def expand(self, block: Any, context: Any) -> None:
        """
        Expand the body for ``block``, emitting IR through ``context``.

        Raises:
            TemplateError: Attributed to the block id
        """
        memories = self._allocate_memory(block, context)
        env = TemplateEnvironment(self.definition, block, context, memories)
        stack: List[_IfFrame] = []
        section = Section.MAIN

        for number, line in enumerate(self.definition.body.splitlines(), start=1):
            stripped = line.strip()
            if not stripped:
                continue
            active = all(frame.active for frame in stack)
            env.section = section

            if stripped.startswith("@"):
                directive, _, argument = stripped[1:].partition(" ")
                directive = directive.lower()
                argument = argument.strip()

                if directive == "if":
                    taken = bool(self._evaluate(env, argument, number)) if active else False
                    stack.append(_IfFrame(active, taken, active and taken, line=number))
                elif directive == "else":
                    if not stack or stack[-1].seen_else:
                        raise env.error(f"line {number}: @else without matching @if")
                    frame = stack[-1]
                    frame.seen_else = True
                    frame.active = frame.parent_active and not frame.taken
                elif directive == "endif":
                    if not stack:
                        raise env.error(f"line {number}: @endif without matching @if")
                    stack.pop()
                elif not active:
                    continue
                elif directive == "section":
                    try:
                        section = Section.parse(argument)
                    except ValueError as e:
                        raise env.error(f"line {number}: {e}")
                elif directive == "comment":
                    context.emit(IRNode.note(section, self._substitute(env, argument, number)))
                else:
                    raise env.error(f"line {number}: unknown directive '@{directive}'")
                continue

            if not active:
                continue
            for node in parse_line(self._substitute(env, line, number), section):
                context.emit(node)

        if stack:
            raise env.error(f"line {stack[-1].line}: @if is never closed with @endif")

    def _allocate_memory(self, block: Any, context: Any) -> Dict[str, Any]:
        env = TemplateEnvironment(self.definition, block, context, {})
        memories = {}
        for mem_id, size in self.definition.memory:
            if isinstance(size, str):
                size = self._evaluate(env, size, 0)
            try:
                words = int(_number(size, f"memory '{mem_id}' size"))
            except (TypeError, ValueError) as e:
                raise env.error(str(e))
            memories[mem_id] = context.allocate_memory(mem_id, words, block_id=block.id)
        return memories

    def _evaluate(self, env: TemplateEnvironment, text: str, number: int) -> Any:
        try:
            node = parse_expression(text)
        except ExpressionSyntaxError as e:
            raise env.error(f"line {number}: {e}" if number else str(e))
        return env.evaluate(node)

    def _substitute(self, env: TemplateEnvironment, line: str, number: int) -> str:
        try:
            placeholders = find_placeholders(line)
        except ExpressionSyntaxError as e:
            raise env.error(f"line {number}: {e}")

        parts = []
        pos = 0
        for start, end, expression in placeholders:
            parts.append(line[pos:start])
            parts.append(render_value(self._evaluate(env, expression, number)))
            pos = end
        parts.append(line[pos:])
        return "".join(parts)
