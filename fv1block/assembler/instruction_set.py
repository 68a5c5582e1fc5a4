"""
FV-1 instruction set tables.

Every mnemonic maps to an ``InstructionSpec`` naming its 5-bit opcode,
its encoding form and the operand counts it accepts. The encoder
dispatches on ``form``; the assembler checks operand counts before
encoding. Predefined symbols (chip registers, LFO selectors, CHO modes
and flags, SKP conditions) are also defined here.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..utils.constants import NOP_WORD, REGISTER_COUNT


@dataclass(frozen=True)
class InstructionSpec:
    """Static description of one mnemonic."""

    mnemonic: str
    opcode: int
    form: str
    operand_counts: Tuple[int, ...]
    word: Optional[int] = None  # fixed encoding of operand-less aliases

    @property
    def operand_hint(self) -> str:
        return " or ".join(str(n) for n in self.operand_counts)


def _spec(mnemonic: str, opcode: int, form: str, *counts: int, word: Optional[int] = None) -> InstructionSpec:
    return InstructionSpec(mnemonic, opcode, form, tuple(counts), word)


# form names:
#   delay     CCCCCCCCCCCAAAAAAAAAAAAAAAAooooo  (S1.9 coeff, memory address)
#   rmpa      CCCCCCCCCCC000000000000000ooooo
#   register  CCCCCCCCCCCCCCCC00000AAAAAAooooo  (S1.14 coeff, register)
#   ldax      000000000000000000000AAAAAAooooo
#   mulx      000000000000000000000AAAAAAooooo
#   scale     CCCCCCCCCCCCCCCCDDDDDDDDDDDooooo  (S1.14 coeff, S.10 offset)
#   log       CCCCCCCCCCCCCCCCDDDDDDDDDDDooooo  (S1.14 coeff, S4.6 offset)
#   mask      MMMMMMMMMMMMMMMMMMMMMMMM000ooooo
#   skip      CCCCCNNNNNN000000000000000ooooo
#   jump      00000NNNNNN000000000000000ooooo
#   wlds      00NFFFFFFFFFAAAAAAAAAAAAAAAooooo
#   wldr      01NFFFFFFFFFFFFFFFF000000AAooooo
#   jam       0000000000000000000000001N0ooooo
#   cho       MMCCCCCC0NNAAAAAAAAAAAAAAAAooooo
#   fixed     operand-less alias with a fixed word
INSTRUCTIONS: Dict[str, InstructionSpec] = {s.mnemonic: s for s in (
    _spec("RDA", 0b00000, "delay", 2),
    _spec("RMPA", 0b00001, "rmpa", 1),
    _spec("WRA", 0b00010, "delay", 2),
    _spec("WRAP", 0b00011, "delay", 2),
    _spec("RDAX", 0b00100, "register", 2),
    _spec("RDFX", 0b00101, "register", 2),
    _spec("LDAX", 0b00101, "ldax", 1),
    _spec("WRAX", 0b00110, "register", 2),
    _spec("WRHX", 0b00111, "register", 2),
    _spec("WRLX", 0b01000, "register", 2),
    _spec("MAXX", 0b01001, "register", 2),
    _spec("ABSA", 0b01001, "fixed", 0, word=0b01001),
    _spec("MULX", 0b01010, "mulx", 1),
    _spec("LOG", 0b01011, "log", 2),
    _spec("EXP", 0b01100, "scale", 2),
    _spec("SOF", 0b01101, "scale", 2),
    _spec("AND", 0b01110, "mask", 1),
    _spec("CLR", 0b01110, "fixed", 0, word=0b01110),
    _spec("OR", 0b01111, "mask", 1),
    _spec("XOR", 0b10000, "mask", 1),
    _spec("NOT", 0b10000, "fixed", 0, word=0xFFFFFF10),
    _spec("SKP", 0b10001, "skip", 2),
    _spec("JMP", 0b10001, "jump", 1),
    _spec("NOP", 0b10001, "fixed", 0, word=NOP_WORD),
    _spec("WLDS", 0b10010, "wlds", 3),
    _spec("WLDR", 0b10010, "wldr", 3),
    _spec("JAM", 0b10011, "jam", 1),
    _spec("CHO", 0b10100, "cho", 2, 4),
)}


def get_instruction(mnemonic: str) -> Optional[InstructionSpec]:
    return INSTRUCTIONS.get(mnemonic.upper())


# =============================================================================
# Predefined Symbols
# =============================================================================

CHIP_REGISTERS = {
    "SIN0_RATE": 0x00, "SIN0_RANGE": 0x01,
    "SIN1_RATE": 0x02, "SIN1_RANGE": 0x03,
    "RMP0_RATE": 0x04, "RMP0_RANGE": 0x05,
    "RMP1_RATE": 0x06, "RMP1_RANGE": 0x07,
    "POT0": 0x10, "POT1": 0x11, "POT2": 0x12,
    "ADCL": 0x14, "ADCR": 0x15,
    "DACL": 0x16, "DACR": 0x17,
    "ADDR_PTR": 0x18,
}

GENERAL_REGISTER_BASE = 0x20

LFO_SELECTORS = {
    "SIN0": 0, "SIN1": 1,
    "RMP0": 2, "RMP1": 3,
    "COS0": 8, "COS1": 9,
}

CHO_MODES = {"RDA": 0b00, "SOF": 0b10, "RDAL": 0b11}

CHO_FLAGS = {
    "SIN": 0x00, "COS": 0x01, "REG": 0x02,
    "COMPC": 0x04, "COMPA": 0x08,
    "RPTR2": 0x10, "NA": 0x20,
}

# Already positioned in bits 31..27 of the SKP word
SKP_CONDITIONS = {
    "RUN": 0x80000000,
    "ZRC": 0x40000000,
    "ZRO": 0x20000000,
    "GEZ": 0x10000000,
    "NEG": 0x08000000,
}


def predefined_symbols(register_count: int = REGISTER_COUNT) -> Dict[str, int]:
    """All symbols known before any source line is read."""
    symbols: Dict[str, int] = {}
    for table in (CHIP_REGISTERS, LFO_SELECTORS, CHO_MODES, CHO_FLAGS, SKP_CONDITIONS):
        symbols.update(table)
    for index in range(register_count):
        symbols[f"REG{index}"] = GENERAL_REGISTER_BASE + index
    return symbols
