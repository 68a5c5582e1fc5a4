"""
Code generation context.

One ``CodeGenContext`` exists per compile call. It owns every piece of
mutable state the blocks touch while generating code: the register
table, the delay-memory arena, the interned constants and the per-section
IR accumulators.
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..utils.constants import MAX_SYMBOL_LENGTH, SECTION_ORDER, STANDARD_CONSTANTS, Section
from ..utils.exceptions import (
    Diagnostic,
    GraphValidationError,
    ResourceExhaustionError,
    Severity,
    TemplateError,
)
from ..utils.fixed_point import WIDE, FixedPointFormat, format_real
from ..utils.logging import get_logger
from .config import CompileOptions
from .ir import IRNode, parse_line

logger = get_logger(__name__)

_NON_IDENT = re.compile(r"[^a-z0-9_]")


def sanitize_symbol(text: str) -> str:
    """Lowercase a name and replace anything that is not an identifier character."""
    name = _NON_IDENT.sub("_", text.lower())
    if not name or name[0].isdigit():
        name = f"_{name}"
    return name[:MAX_SYMBOL_LENGTH]


@dataclass(frozen=True)
class RegisterAllocation:
    """A general purpose register bound to a producing (block, port)."""

    index: int
    alias: str
    block_id: str
    port_id: str

    @property
    def register(self) -> str:
        return f"REG{self.index}"


@dataclass(frozen=True)
class MemoryHandle:
    """A named span of delay memory."""

    name: str
    offset: int
    size: int
    block_id: Optional[str] = None

    @property
    def end(self) -> str:
        return f"{self.name}#"

    @property
    def middle(self) -> str:
        return f"{self.name}^"


class _BlockScope:
    """Buffers the nodes one block emits until it finishes successfully."""

    def __init__(self, block: Any, definition: Any):
        self.block = block
        self.definition = definition
        self.nodes: List[IRNode] = []


class CodeGenContext:
    """
    Per-compile resource allocator and IR accumulator.

    Registers are handed out from REG0 upward and never reused. Memory is
    bump-allocated. Both raise ``ResourceExhaustionError`` when the
    configured ceiling is crossed.
    """

    def __init__(self, graph: Any, options: CompileOptions, registry: Any):
        """
        Initialize the context.

        Args:
            graph: BlockGraph being compiled
            options: Resource ceilings and switches
            registry: Block registry used to look up parameter specs
        """
        self.graph = graph
        self.options = options
        self.registry = registry

        self._registers: Dict[Tuple[str, str], RegisterAllocation] = {}
        self._memories: Dict[str, MemoryHandle] = {}
        self._memory_cursor = 0
        self._constants: Dict[float, str] = {}
        self._sections: Dict[Section, List[IRNode]] = {s: [] for s in SECTION_ORDER}
        self._short_names: Dict[str, str] = {}
        self._type_counters: Dict[str, int] = {}
        self._labels: set = set()
        self._scope: Optional[_BlockScope] = None
        self.diagnostics: List[Diagnostic] = []

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def short_name(self, block_id: str) -> str:
        """
        Return a stable, readable symbol prefix for a block.

        Names are ``<type base><n>`` with ``n`` counting blocks of the same
        type base in the order they are first named.
        """
        if block_id not in self._short_names:
            block = self.graph.get_block(block_id)
            type_id = block.type if block is not None else block_id
            base = sanitize_symbol(type_id.split(".")[-1])
            count = self._type_counters.get(base, 0) + 1
            self._type_counters[base] = count
            self._short_names[block_id] = f"{base}{count}"
        return self._short_names[block_id]

    def unique_label(self, block_id: str, name: str) -> str:
        """Return a label name unique to this block and compile."""
        label = sanitize_symbol(f"{self.short_name(block_id)}_{name}")
        self._labels.add(label)
        return label

    # ------------------------------------------------------------------
    # Registers
    # ------------------------------------------------------------------

    def allocate_register(self, block_id: str, port_id: str) -> str:
        """
        Allocate (or look up) the register written by a block port.

        Args:
            block_id: Producing block
            port_id: Output port, or an internal register name

        Returns:
            Register alias symbol

        Raises:
            ResourceExhaustionError: If the register ceiling is exceeded
        """
        key = (block_id, port_id)
        existing = self._registers.get(key)
        if existing is not None:
            return existing.alias

        index = len(self._registers)
        if index >= self.options.register_count:
            raise ResourceExhaustionError("registers", index + 1, self.options.register_count, block_id=block_id)

        alias = sanitize_symbol(f"{self.short_name(block_id)}_{port_id}")
        allocation = RegisterAllocation(index, alias, block_id, port_id)
        self._registers[key] = allocation
        logger.debug(f"Allocated {allocation.register} as {alias} for {block_id}.{port_id}")
        return alias

    def get_input_register(self, block_id: str, port_id: str) -> Optional[str]:
        """
        Resolve the register driving an input port.

        The driver's register is allocated on demand, so a block scheduled
        before its driver (feedback through memory) still resolves.

        Returns:
            Register alias, or None when the input is unconnected
        """
        driver = self.graph.driver_of(block_id, port_id)
        if driver is None:
            return None
        return self.allocate_register(driver.block_id, driver.port_id)

    def is_connected(self, block_id: str, port_id: str) -> bool:
        return self.graph.is_connected(block_id, port_id)

    @property
    def register_allocations(self) -> List[RegisterAllocation]:
        return sorted(self._registers.values(), key=lambda a: a.index)

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    def allocate_memory(self, name: str, size: int, block_id: Optional[str] = None) -> MemoryHandle:
        """
        Bump-allocate a span of delay memory.

        Args:
            name: Memory name; prefixed with the block's short name when
                ``block_id`` is given
            size: Number of sample words
            block_id: Owning block

        Returns:
            MemoryHandle for the span

        Raises:
            ResourceExhaustionError: If the arena would overflow
        """
        size = int(size)
        if size < 1:
            raise TemplateError(f"Memory '{name}' must have a positive size, got {size}", block_id=block_id)

        full_name = sanitize_symbol(f"{self.short_name(block_id)}_{name}" if block_id else name)
        if full_name in self._memories:
            return self._memories[full_name]

        footprint = size + 1 if self.options.legacy_memory_layout else size
        requested = self._memory_cursor + footprint
        if requested > self.options.memory_size:
            raise ResourceExhaustionError("memory", requested, self.options.memory_size, block_id=block_id)

        handle = MemoryHandle(full_name, self._memory_cursor, size, block_id)
        self._memories[full_name] = handle
        self._memory_cursor = requested
        logger.debug(f"Allocated memory {full_name} [{handle.offset}, {handle.offset + size}) for {block_id}")
        return handle

    @property
    def memory_allocations(self) -> List[MemoryHandle]:
        return list(self._memories.values())

    # ------------------------------------------------------------------
    # Constants and numeric formatting
    # ------------------------------------------------------------------

    def get_standard_constant(self, value: float) -> str:
        """Return the interned symbol for a common constant, or a literal."""
        key = float(value)
        name = STANDARD_CONSTANTS.get(key)
        if name is None:
            return format_real(key)
        self._constants[key] = name
        return name

    @property
    def used_constants(self) -> List[Tuple[str, float]]:
        return sorted(((name, value) for value, name in self._constants.items()), key=lambda item: item[0])

    def fixed(self, value: float, fmt: FixedPointFormat = WIDE, what: str = "value",
              section: Section = Section.MAIN) -> str:
        """
        Quantize a value into a fixed-point format and render it.

        Out-of-range values are clamped; the clamp is reported as a warning
        diagnostic and a warning comment in ``section``.
        """
        quantized, clamped = fmt.quantize(float(value))
        if clamped:
            message = (f"{what} {float(value):g} outside {fmt.name} range "
                       f"[{fmt.minimum:g}, {fmt.maximum:g}], clamped to {format_real(quantized)}")
            self.warn(message, section=section)
        return format_real(quantized)

    def warn(self, message: str, section: Optional[Section] = Section.MAIN) -> None:
        """Record a warning against the current block, optionally as an IR comment."""
        block_id = self._scope.block.id if self._scope else None
        self.diagnostics.append(Diagnostic(message, Severity.WARNING, "template", block_id=block_id))
        if section is not None:
            self.emit(IRNode.note(section, f"WARNING: {message}"))

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def get_parameter(self, block: Any, param_id: str, default: Any = None) -> Any:
        """Return a block parameter in display units, falling back to the definition default."""
        if param_id in block.parameters:
            return block.parameters[param_id]
        definition = self.registry.get(block.type)
        spec = definition.get_parameter(param_id) if definition is not None else None
        if spec is not None:
            return spec.default
        return default

    def get_code_value(self, block: Any, param_id: str) -> Any:
        """Return a block parameter converted to the value code generation needs."""
        definition = self.registry.get(block.type)
        spec = definition.get_parameter(param_id) if definition is not None else None
        value = self.get_parameter(block, param_id)
        if spec is None:
            return value
        try:
            return spec.to_code_value(value, self.options.sample_rate)
        except ValueError as e:
            raise GraphValidationError(str(e), block_id=block.id)

    # ------------------------------------------------------------------
    # IR accumulation
    # ------------------------------------------------------------------

    @contextmanager
    def block_scope(self, block: Any, definition: Any) -> Iterator[List[IRNode]]:
        """
        Collect the nodes emitted while generating one block.

        Nodes are committed to the sections only when the block finishes
        without raising, so a failed block leaves no partial output.
        """
        scope = _BlockScope(block, definition)
        self._scope = scope
        try:
            yield scope.nodes
        finally:
            self._scope = None
        self._commit(scope)

    def _commit(self, scope: _BlockScope) -> None:
        seen = set()
        for node in scope.nodes:
            if node.section not in seen:
                seen.add(node.section)
                title = f"{scope.definition.name} ({scope.block.id})"
                self._sections[node.section].append(IRNode.note(node.section, title))
            self._sections[node.section].append(node)

    def emit(self, node: IRNode) -> None:
        """Append a node to its section (or to the current block's buffer)."""
        if self._scope is not None:
            self._scope.nodes.append(node)
        else:
            self._sections[node.section].append(node)

    def push(self, section: Section, line: Union[str, IRNode]) -> None:
        """Append one line of assembly text (or a prebuilt node) to a section."""
        if isinstance(line, IRNode):
            self.emit(line.in_section(section))
            return
        for node in parse_line(line, section):
            self.emit(node)

    def push_header(self, line: Union[str, IRNode]) -> None:
        self.push(Section.HEADER, line)

    def push_init(self, line: Union[str, IRNode]) -> None:
        self.push(Section.INIT, line)

    def push_input(self, line: Union[str, IRNode]) -> None:
        self.push(Section.INPUT, line)

    def push_main(self, line: Union[str, IRNode]) -> None:
        self.push(Section.MAIN, line)

    def push_output(self, line: Union[str, IRNode]) -> None:
        self.push(Section.OUTPUT, line)

    def section_nodes(self, section: Section) -> List[IRNode]:
        return list(self._sections[section])

    def sections(self) -> Dict[Section, List[IRNode]]:
        return {section: list(nodes) for section, nodes in self._sections.items()}

    def declaration_nodes(self) -> List[IRNode]:
        """EQU and MEM directives for everything allocated during the compile."""
        nodes = [IRNode.directive(Section.HEADER, "equ", name, format_real(value))
                 for name, value in self.used_constants]
        nodes.extend(IRNode.directive(Section.HEADER, "equ", a.alias, a.register)
                     for a in self.register_allocations)
        nodes.extend(IRNode.directive(Section.HEADER, "mem", m.name, str(m.size))
                     for m in self.memory_allocations)
        return nodes

    def statistics(self) -> Dict[str, int]:
        instructions = sum(1 for nodes in self._sections.values() for n in nodes if n.is_instruction)
        return {
            "registers_used": len(self._registers),
            "register_count": self.options.register_count,
            "memory_used": self._memory_cursor,
            "memory_size": self.options.memory_size,
            "instructions": instructions,
        }
