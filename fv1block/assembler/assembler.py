"""
Two-pass FV-1 assembler.

Pass 1 walks the parsed statements, assigns addresses to labels,
records ``EQU`` and ``MEM`` declarations and lays out delay memory.
Pass 2 encodes every instruction line into a 32-bit word.

Problems never stop the run. Each one becomes a diagnostic attributed
to its 1-based source line; a line that cannot be encoded still takes
one (NOP) word so the addresses of later lines do not move. The result
is usable exactly when no fatal diagnostic was produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from ..utils.config import Fv1Config, get_config
from ..utils.constants import MEMORY_SIZE, NOP_WORD, PROGRAM_SIZE, REGISTER_COUNT
from ..utils.exceptions import (
    AssemblyError,
    AssemblySymbolError,
    AssemblySyntaxError,
    Diagnostic,
    DiagnosticCollector,
)
from ..utils.fixed_point import ROUNDING_MODES
from ..utils.logging import Fv1Logger, get_logger
from .encoder import InstructionEncoder
from .instruction_set import get_instruction
from .parser import EQU, LABEL, MEM, Statement, parse_source
from .symbols import MemoryBlock, SymbolTable

logger = get_logger(__name__)
pipeline_log = Fv1Logger(__name__)


@dataclass(frozen=True)
class AssemblerOptions:
    """Settings for one assemble call."""

    legacy_memory_layout: bool = True
    clamp_reals: bool = True
    strict: bool = False
    rounding: str = "nearest"
    register_count: int = REGISTER_COUNT
    program_size: int = PROGRAM_SIZE
    memory_size: int = MEMORY_SIZE

    def __post_init__(self):
        if self.rounding not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode '{self.rounding}'")

    def with_overrides(self, **overrides: Any) -> AssemblerOptions:
        return replace(self, **overrides)

    @classmethod
    def from_config(cls, config: Optional[Fv1Config] = None) -> AssemblerOptions:
        """Build options from a configuration (the global one by default)."""
        config = config or get_config()
        asm, comp = config.assembler, config.compilation
        return cls(
            legacy_memory_layout=asm.legacy_memory_layout,
            clamp_reals=asm.clamp_reals,
            strict=asm.strict,
            rounding=asm.rounding,
            register_count=comp.register_count,
            program_size=comp.program_size,
            memory_size=comp.memory_size,
        )

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> AssemblerOptions:
        """Build options from a mapping; editor-style camelCase keys are accepted."""
        aliases = {
            "fv1AsmMemBug": "legacy_memory_layout",
            "clampReals": "clamp_reals",
            "regCount": "register_count",
            "progSize": "program_size",
            "delaySize": "memory_size",
        }
        known = set(cls.__dataclass_fields__)
        kwargs = {}
        for key, value in options.items():
            name = aliases.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class AssemblyResult:
    """Output of one assemble call."""

    machine_code: List[int]
    problems: List[Diagnostic]
    program_length: int
    labels: Dict[str, int] = field(default_factory=dict)
    symbols: Dict[str, float] = field(default_factory=dict)
    memories: List[MemoryBlock] = field(default_factory=list)
    line_map: Dict[int, int] = field(default_factory=dict)
    registers_used: int = 0

    @property
    def has_fatal(self) -> bool:
        return any(p.is_fatal for p in self.problems)

    @property
    def success(self) -> bool:
        return not self.has_fatal

    @property
    def errors(self) -> List[Diagnostic]:
        return [p for p in self.problems if p.is_fatal]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [p for p in self.problems if not p.is_fatal]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machineCode": list(self.machine_code),
            "problems": [p.to_dict() for p in self.problems],
            "programLength": self.program_length,
            "labels": dict(self.labels),
            "symbols": dict(self.symbols),
            "memories": [m.to_dict() for m in self.memories],
            "lineMap": dict(self.line_map),
            "registersUsed": self.registers_used,
        }


class Assembler:
    """
    FV-1 assembler.

    An instance only holds its options; all per-run state lives in the
    ``assemble`` call, so one assembler can be shared freely.
    """

    def __init__(self, options: Optional[AssemblerOptions] = None):
        self.options = options or AssemblerOptions()

    def assemble(self, source: str) -> AssemblyResult:
        """
        Assemble program text.

        Args:
            source: Assembly source

        Returns:
            AssemblyResult with ``machine_code`` padded with NOP words to
            ``program_size`` (left unpadded when the program overflows)
        """
        collector = DiagnosticCollector()
        symbols = SymbolTable(self.options.register_count, self.options.legacy_memory_layout)
        statements = parse_source(source)

        instructions = self._collect_symbols(statements, symbols, collector)
        code, line_map, registers = self._encode(instructions, symbols, collector)

        program_length = len(code)
        if program_length > self.options.program_size:
            overflow_line = instructions[self.options.program_size].line
            collector.add(AssemblyError(
                f"Program has {program_length} instructions, {self.options.program_size} available",
                line=overflow_line))
        else:
            code.extend([NOP_WORD] * (self.options.program_size - program_length))

        problems = collector.sorted_by_line()
        pipeline_log.log_assemble_summary(program_length, len(collector.errors), len(collector.warnings))
        for problem in problems:
            pipeline_log.log_diagnostic(problem)

        return AssemblyResult(
            machine_code=code,
            problems=problems,
            program_length=program_length,
            labels={name: address for name, (address, _) in symbols.labels.items()},
            symbols={name: value.number for name, value in symbols.user_symbols().items()},
            memories=list(symbols.memories),
            line_map=line_map,
            registers_used=len(registers),
        )

    def _collect_symbols(self, statements: List[Statement], symbols: SymbolTable,
                         collector: DiagnosticCollector) -> List[Statement]:
        """Pass 1: labels, declarations and memory layout. Returns the instruction statements."""
        instructions: List[Statement] = []
        memory_declarations = []
        equ_lines = []

        for statement in statements:
            if statement.kind == LABEL:
                try:
                    symbols.define_label(statement.name, len(instructions), statement.line)
                except AssemblySymbolError as e:
                    collector.add(e)
                continue
            if statement.is_instruction:
                instructions.append(statement)
                continue

            if statement.error is not None:
                collector.add(statement.error)
                continue
            try:
                if statement.kind == EQU:
                    symbols.define_equ(statement.name, statement.value, statement.line)
                    equ_lines.append((statement.name, statement.line))
                elif statement.kind == MEM:
                    symbols.declare_memory(statement.name, statement.line)
                    memory_declarations.append((statement.name, statement.value, statement.line))
            except AssemblySymbolError as e:
                collector.add(e)
                continue
            if symbols.is_predefined(statement.name):
                collector.warn(f"'{statement.name}' shadows a predefined symbol",
                               kind="symbol", line=statement.line)

        collector.extend(symbols.layout_memory(memory_declarations, self.options.memory_size))
        for name, line in equ_lines:
            try:
                symbols.lookup(name, line)
            except (AssemblySymbolError, AssemblySyntaxError) as e:
                collector.add(e)
        return instructions

    def _encode(self, instructions: List[Statement], symbols: SymbolTable,
                collector: DiagnosticCollector):
        """Pass 2: one word per instruction statement."""
        encoder = InstructionEncoder(symbols, self.options)
        code: List[int] = []
        line_map: Dict[int, int] = {}

        for statement in instructions:
            pc = len(code)
            line_map[pc] = statement.line
            try:
                if statement.error is not None:
                    raise statement.error
                spec = get_instruction(statement.mnemonic)
                if spec is None:
                    raise AssemblySyntaxError(f"Unknown instruction '{statement.mnemonic}'", line=statement.line)
                word = encoder.encode(spec, statement.operands, pc, statement.line)
            except AssemblyError as e:
                if e.line is None:
                    e.line = statement.line
                collector.add(e)
                word = NOP_WORD
            collector.extend(encoder.take_warnings())
            code.append(word)

        return code, line_map, encoder.registers_used


def assemble(source: str, options: Optional[AssemblerOptions] = None) -> AssemblyResult:
    """Assemble program text with a one-off assembler."""
    return Assembler(options).assemble(source)
