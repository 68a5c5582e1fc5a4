"""
Instruction word encoder.

Packs one parsed instruction into its 32-bit machine word. Operand
fields are checked against their width; real operands are converted
through the fixed-point formats shared with the code generator.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Set

from ..utils.exceptions import AssemblyEncodingError, AssemblySyntaxError, Diagnostic, Severity
from ..utils.fixed_point import S1_9, S1_14, S4_6, S_10, S_15, FixedPointFormat
from .expressions import Expression, Symbol, Value
from .instruction_set import CHO_MODES, GENERAL_REGISTER_BASE, InstructionSpec
from .symbols import SymbolTable

WLDR_AMPLITUDES = {512: 3, 1024: 2, 2048: 1, 4096: 0}
RDAL_SELECTORS = (0, 1, 2, 3, 8, 9)
SKIP_RANGE = 0b111111


class InstructionEncoder:
    """
    Encodes instructions against a populated symbol table.

    Args:
        symbols: Symbol table after pass 1
        options: AssemblerOptions controlling real-operand handling
    """

    def __init__(self, symbols: SymbolTable, options):
        self.symbols = symbols
        self.options = options
        self.registers_used: Set[int] = set()
        self._forms: Dict[str, Callable[[InstructionSpec, List[Expression]], int]] = {
            "delay": self._delay,
            "rmpa": self._rmpa,
            "register": self._register_coeff,
            "ldax": self._register_only,
            "mulx": self._register_only,
            "scale": self._scale,
            "log": self._log,
            "mask": self._mask,
            "skip": self._skip,
            "jump": self._skip,
            "wlds": self._wlds,
            "wldr": self._wldr,
            "jam": self._jam,
            "cho": self._cho,
        }
        self._line: Optional[int] = None
        self._pc = 0
        self._warnings: List[Diagnostic] = []

    def encode(self, spec: InstructionSpec, operands: List[Expression], pc: int, line: int) -> int:
        """
        Encode one instruction.

        Args:
            spec: Instruction description
            operands: Parsed operand expressions
            pc: Address of this instruction
            line: Source line

        Returns:
            The machine word

        Raises:
            AssemblyError: for any problem that prevents encoding
        """
        self._line, self._pc = line, pc
        if len(operands) not in spec.operand_counts:
            raise AssemblySyntaxError(
                f"{spec.mnemonic} takes {spec.operand_hint} operand(s), got {len(operands)}", line=line)
        if spec.word is not None:
            return spec.word
        return self._forms[spec.form](spec, operands) & 0xFFFFFFFF

    def take_warnings(self) -> List[Diagnostic]:
        warnings, self._warnings = self._warnings, []
        return warnings

    # -- operand fields -----------------------------------------------------

    def _value(self, node: Expression) -> Value:
        return self.symbols.evaluate(node, self._line)

    def _error(self, message: str) -> AssemblyEncodingError:
        return AssemblyEncodingError(message, line=self._line)

    def _unsigned(self, node: Expression, bits: int, what: str) -> int:
        value = self._value(node)
        if not value.is_integer:
            raise self._error(f"{what} must be an integer, got {value.number}")
        number = value.as_int()
        if not 0 <= number < (1 << bits):
            raise self._error(f"{what} {number} does not fit in {bits} bits")
        return number

    def _bits(self, node: Expression, bits: int, what: str) -> int:
        """Integer field that also accepts negative values in two's complement."""
        value = self._value(node)
        if not value.is_integer:
            raise self._error(f"{what} must be an integer, got {value.number}")
        number = value.as_int()
        if not -(1 << (bits - 1)) <= number < (1 << bits):
            raise self._error(f"{what} {number} does not fit in {bits} bits")
        return number & ((1 << bits) - 1)

    def _real(self, node: Expression, fmt: FixedPointFormat, what: str) -> int:
        value = self._value(node)
        if value.raw and 0 <= value.as_int() <= fmt.mask:
            return value.as_int()

        bits, clamped = fmt.encode(float(value.number), self.options.rounding)
        if clamped:
            message = (f"{what} {value.number} is outside the {fmt.name} range "
                       f"[{fmt.minimum}, {fmt.maximum}]")
            if self.options.strict or not self.options.clamp_reals:
                raise self._error(message)
            self._warnings.append(Diagnostic(f"{message}; clamped", Severity.WARNING, kind="encoding",
                                             line=self._line))
        return bits

    def _register(self, node: Expression) -> int:
        address = self._unsigned(node, 6, "register address")
        if address >= GENERAL_REGISTER_BASE:
            index = address - GENERAL_REGISTER_BASE
            if index >= self.options.register_count:
                raise self._error(f"REG{index} exceeds the {self.options.register_count} available registers")
            self.registers_used.add(index)
        return address

    def _address(self, node: Expression) -> int:
        address = self._unsigned(node, 16, "delay address")
        if address >= self.options.memory_size:
            raise self._error(f"Delay address {address} is beyond the {self.options.memory_size}-word memory")
        return address

    def _lfo(self, node: Expression, allowed, what: str) -> int:
        value = self._value(node)
        if not value.is_integer or value.as_int() not in allowed:
            raise self._error(f"Invalid {what} selector {value.number}")
        return value.as_int()

    # -- forms --------------------------------------------------------------

    def _delay(self, spec, ops) -> int:
        address = self._address(ops[0])
        coeff = self._real(ops[1], S1_9, "coefficient")
        return coeff << 21 | address << 5 | spec.opcode

    def _rmpa(self, spec, ops) -> int:
        return self._real(ops[0], S1_9, "coefficient") << 21 | spec.opcode

    def _register_coeff(self, spec, ops) -> int:
        address = self._register(ops[0])
        coeff = self._real(ops[1], S1_14, "coefficient")
        return coeff << 16 | address << 5 | spec.opcode

    def _register_only(self, spec, ops) -> int:
        return self._register(ops[0]) << 5 | spec.opcode

    def _scale(self, spec, ops) -> int:
        coeff = self._real(ops[0], S1_14, "coefficient")
        offset = self._real(ops[1], S_10, "offset")
        return coeff << 16 | offset << 5 | spec.opcode

    def _log(self, spec, ops) -> int:
        coeff = self._real(ops[0], S1_14, "coefficient")
        offset = self._real(ops[1], S4_6, "offset")
        return coeff << 16 | offset << 5 | spec.opcode

    def _mask(self, spec, ops) -> int:
        return self._bits(ops[0], 24, "mask") << 8 | spec.opcode

    def _skip(self, spec, ops) -> int:
        flags = 0
        if spec.form == "skip":
            flags = self._bits(ops[0], 32, "condition flags")
            if flags & 0x07FFFFFF:
                raise self._error(f"Condition flags {flags:#010x} use bits outside 31..27")
        target = ops[-1]
        if isinstance(target, Symbol) and self.symbols.label_address(target.name) is not None:
            offset = self.symbols.label_address(target.name) - self._pc - 1
            if not 0 <= offset <= SKIP_RANGE:
                raise self._error(f"{spec.mnemonic} target '{target.name}' is {offset} instructions away "
                                  f"(must be 0..{SKIP_RANGE} ahead)")
        else:
            offset = self._unsigned(target, 6, "skip count")
        return flags | offset << 21 | spec.opcode

    def _wlds(self, spec, ops) -> int:
        lfo = self._lfo(ops[0], (0, 1), "sine LFO")
        freq = self._unsigned(ops[1], 9, "frequency")
        amplitude = self._unsigned(ops[2], 15, "amplitude")
        return lfo << 29 | freq << 20 | amplitude << 5 | spec.opcode

    def _wldr(self, spec, ops) -> int:
        lfo = self._lfo(ops[0], (0, 1, 2, 3), "ramp LFO") & 1
        value = self._value(ops[1])
        if not value.is_integer or not -16384 <= value.as_int() <= 32767:
            raise self._error(f"Ramp frequency {value.number} is outside -16384..32767")
        amplitude = self._value(ops[2])
        if not amplitude.is_integer or amplitude.as_int() not in WLDR_AMPLITUDES:
            raise self._error(f"Ramp amplitude {amplitude.number} must be one of 512, 1024, 2048, 4096")
        return (1 << 30 | lfo << 29 | (value.as_int() & 0xFFFF) << 13
                | WLDR_AMPLITUDES[amplitude.as_int()] << 5 | spec.opcode)

    def _jam(self, spec, ops) -> int:
        lfo = self._lfo(ops[0], (0, 1, 2, 3), "ramp LFO") & 1
        return lfo << 6 | 0x80 | spec.opcode

    def _cho(self, spec, ops) -> int:
        mode = self._lfo(ops[0], CHO_MODES.values(), "CHO mode")
        if mode == CHO_MODES["RDAL"]:
            if len(ops) != 2:
                raise AssemblySyntaxError(f"CHO RDAL takes 2 operands, got {len(ops)}", line=self._line)
            lfo = self._lfo(ops[1], RDAL_SELECTORS, "LFO")
            return mode << 30 | 1 << 25 | lfo << 21 | spec.opcode

        if len(ops) != 4:
            raise AssemblySyntaxError(f"CHO RDA and CHO SOF take 4 operands, got {len(ops)}", line=self._line)
        lfo = self._lfo(ops[1], (0, 1, 2, 3), "LFO")
        flags = self._unsigned(ops[2], 6, "CHO flags")
        if mode == CHO_MODES["SOF"]:
            field = self._real(ops[3], S_15, "offset")
        else:
            field = self._address(ops[3])
        return mode << 30 | flags << 24 | lfo << 21 | field << 5 | spec.opcode
