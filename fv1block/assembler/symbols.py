"""
Assembler symbol table.

Holds predefined chip symbols, ``EQU`` definitions, labels and delay
memory blocks. ``EQU`` values are kept as expressions and resolved on
first use, so a declaration may refer to symbols defined further down;
a definition that depends on itself is reported instead of looping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from ..utils.constants import MEMORY_SIZE, REGISTER_COUNT
from ..utils.exceptions import AssemblySymbolError, AssemblySyntaxError
from .expressions import Expression, Value, evaluate
from .instruction_set import predefined_symbols


@dataclass
class MemoryBlock:
    """A named delay memory region."""

    name: str
    size: int
    start: int
    line: int
    legacy_layout: bool = True

    @property
    def end(self) -> int:
        """Address of ``name#``."""
        return self.start + self.size - (0 if self.legacy_layout else 1)

    @property
    def middle(self) -> int:
        """Address of ``name^``."""
        if self.size % 2:
            return self.start + (self.size - 1) // 2 - 1
        return self.start + self.size // 2

    @property
    def footprint(self) -> int:
        """Words consumed from the delay RAM."""
        return self.size + (1 if self.legacy_layout else 0)

    def to_dict(self) -> dict:
        return {"name": self.name, "size": self.size, "start": self.start,
                "middle": self.middle, "end": self.end, "line": self.line}


@dataclass
class _Equ:
    expression: Expression
    line: int


class SymbolTable:
    """
    Symbols of one assembly run.

    Args:
        register_count: Number of ``REGn`` symbols to predefine
        legacy_memory_layout: Reproduce the reference assembler's memory
            layout, where every block takes one extra word and ``name#``
            addresses that word
    """

    def __init__(self, register_count: int = REGISTER_COUNT, legacy_memory_layout: bool = True):
        self.predefined = predefined_symbols(register_count)
        self.legacy_memory_layout = legacy_memory_layout
        self.labels: Dict[str, Tuple[int, int]] = {}
        self.memories: List[MemoryBlock] = []
        self._equs: Dict[str, _Equ] = {}
        self._resolved: Dict[str, Value] = {}
        self._resolving: Set[str] = set()
        self._definition_lines: Dict[str, int] = {}

    # -- definitions --------------------------------------------------------

    def is_predefined(self, name: str) -> bool:
        return name.upper() in self.predefined

    def _claim(self, name: str, line: int) -> None:
        if name in self._definition_lines:
            raise AssemblySymbolError(
                f"Symbol '{name}' already defined on line {self._definition_lines[name]}", name, line=line)
        self._definition_lines[name] = line

    def define_equ(self, name: str, expression: Expression, line: int) -> None:
        name = name.upper()
        self._claim(name, line)
        self._equs[name] = _Equ(expression, line)

    def define_label(self, name: str, address: int, line: int) -> None:
        name = name.upper()
        self._claim(name, line)
        self.labels[name] = (address, line)

    def declare_memory(self, name: str, line: int) -> None:
        """Reserve a memory name; its size is resolved by ``layout_memory``."""
        self._claim(name.upper(), line)

    def layout_memory(self, declarations: List[Tuple[str, Expression, int]],
                      memory_size: int = MEMORY_SIZE) -> List[AssemblySymbolError]:
        """
        Place memory blocks one after another from address 0.

        Args:
            declarations: (name, size expression, line) in source order
            memory_size: Delay RAM size in words

        Returns:
            Problems found; blocks with an invalid size are skipped
        """
        problems = []
        next_address = 0
        for name, expression, line in declarations:
            name = name.upper()
            try:
                value = self.evaluate(expression, line)
            except (AssemblySymbolError, AssemblySyntaxError) as e:
                problems.append(e)
                continue
            if not value.is_integer or value.as_int() < 1:
                problems.append(AssemblySymbolError(
                    f"Memory '{name}' size must be a positive integer, got {value.number}", name, line=line))
                continue
            block = MemoryBlock(name, value.as_int(), next_address, line, self.legacy_memory_layout)
            if next_address + block.footprint > memory_size:
                problems.append(AssemblySymbolError(
                    f"Memory '{name}' does not fit: {next_address + block.footprint} words required, "
                    f"{memory_size} available", name, line=line))
                continue
            self.memories.append(block)
            next_address += block.footprint
        return problems

    @property
    def memory_used(self) -> int:
        return sum(block.footprint for block in self.memories)

    # -- lookup -------------------------------------------------------------

    def label_address(self, name: str) -> Optional[int]:
        entry = self.labels.get(name.upper())
        return entry[0] if entry else None

    def find_memory(self, name: str) -> Optional[MemoryBlock]:
        name = name.upper().rstrip("#^")
        for block in self.memories:
            if block.name == name:
                return block
        return None

    def lookup(self, name: str, line: Optional[int] = None) -> Value:
        """Resolve a symbol; raises AssemblySymbolError when it is unknown."""
        name = name.upper()
        if name in self._resolved:
            return self._resolved[name]

        if name in self._equs:
            value = self._resolve_equ(name, line)
        elif name in self.labels:
            value = Value(self.labels[name][0])
        elif self.find_memory(name) is not None:
            block = self.find_memory(name)
            if name.endswith("#"):
                value = Value(block.end)
            elif name.endswith("^"):
                value = Value(block.middle)
            else:
                value = Value(block.start)
        elif name in self.predefined:
            value = Value(self.predefined[name])
        else:
            raise AssemblySymbolError(f"Undefined symbol '{name}'", name, line=line)
        self._resolved[name] = value
        return value

    def _resolve_equ(self, name: str, line: Optional[int]) -> Value:
        if name in self._resolving:
            raise AssemblySymbolError(f"Symbol '{name}' is defined in terms of itself", name, line=line)
        equ = self._equs[name]
        self._resolving.add(name)
        try:
            return evaluate(equ.expression, lambda n: self.lookup(n, equ.line), equ.line)
        finally:
            self._resolving.discard(name)

    def evaluate(self, expression: Expression, line: Optional[int] = None) -> Value:
        return evaluate(expression, lambda n: self.lookup(n, line), line)

    def user_symbols(self) -> Dict[str, Value]:
        """EQU symbols that resolve, by name."""
        values = {}
        for name in self._equs:
            try:
                values[name] = self.lookup(name)
            except (AssemblySymbolError, AssemblySyntaxError):
                continue
        return values
