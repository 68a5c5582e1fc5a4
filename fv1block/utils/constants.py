"""
Constants and Enumerations for fv1block.

This module consolidates the constant definitions shared by the graph
compiler and the assembler: chip limits, section names, signal kinds,
parameter types and configuration file names.
"""

from __future__ import annotations

from enum import Enum


# =============================================================================
# Chip Limits
# =============================================================================

SAMPLE_RATE = 32768
REGISTER_COUNT = 32
PROGRAM_SIZE = 128
MEMORY_SIZE = 32768

# Encoded SKP 0,0: the padding word
NOP_WORD = 0x00000011

# Bytes per program slot in the 4 KB program EEPROM
EEPROM_SLOT_SIZE = 512
EEPROM_SLOT_COUNT = 8


# =============================================================================
# Code Generation Constants
# =============================================================================

class Section(Enum):
    """Program sections, in rendering order."""

    HEADER = "header"
    INIT = "init"
    INPUT = "input"
    MAIN = "main"
    OUTPUT = "output"

    @classmethod
    def parse(cls, name: str) -> "Section":
        """Look up a section by name, case-insensitively."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown section '{name}' (expected one of: {valid})")


SECTION_ORDER = (Section.HEADER, Section.INIT, Section.INPUT, Section.MAIN, Section.OUTPUT)


class SignalKind(Enum):
    """Kinds of signal carried by a port."""

    AUDIO = "audio"
    CONTROL = "control"


class ParameterType(Enum):
    """Value types a block parameter may hold."""

    NUMBER = "number"
    SELECT = "select"
    BOOLEAN = "boolean"
    STRING = "string"


class Conversion(Enum):
    """Display-unit to code-value transforms for parameters."""

    LOGFREQ = "LOGFREQ"
    SINLFOFREQ = "SINLFOFREQ"
    DBLEVEL = "DBLEVEL"
    LENGTHTOTIME = "LENGTHTOTIME"


# Interned constants emitted once as EQU symbols
STANDARD_CONSTANTS = {
    0.0: "k_zero",
    1.0: "k_one",
    -1.0: "k_neg_one",
    0.5: "k_half",
    -0.5: "k_neg_half",
}

INIT_SKIP_LABEL = "start"
MAX_SYMBOL_LENGTH = 32


# =============================================================================
# Configuration Constants
# =============================================================================

CONFIG_FILE_NAMES = ["fv1block.yaml", "fv1block.yml", "fv1block.json"]
TEMPLATE_FILE_SUFFIX = ".atl"
TEMPLATE_DELIMITER = "---"
