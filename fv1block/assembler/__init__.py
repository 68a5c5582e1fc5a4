"""
Two-pass FV-1 assembler and machine code output helpers.
"""

from .assembler import Assembler, AssemblerOptions, AssemblyResult, assemble
from .encoder import InstructionEncoder
from .expressions import Value, evaluate, parse_expression, split_operands
from .instruction_set import INSTRUCTIONS, InstructionSpec, get_instruction, predefined_symbols
from .output import format_listing, slot_address, to_bytes, to_intel_hex
from .parser import Statement, parse_source
from .symbols import MemoryBlock, SymbolTable

__all__ = [
    "Assembler",
    "AssemblerOptions",
    "AssemblyResult",
    "assemble",
    "InstructionEncoder",
    "Value",
    "evaluate",
    "parse_expression",
    "split_operands",
    "INSTRUCTIONS",
    "InstructionSpec",
    "get_instruction",
    "predefined_symbols",
    "format_listing",
    "slot_address",
    "to_bytes",
    "to_intel_hex",
    "Statement",
    "parse_source",
    "MemoryBlock",
    "SymbolTable",
]
