"""
Signed fixed-point formats of the FV-1 operand fields.

A format ``S<i>.<f>`` has one sign bit, ``i`` integer bits and ``f``
fractional bits and is stored in two's complement. Both the template
engine (when formatting parameter values) and the assembler (when
packing real operands) go through the same quantize-and-clamp rules
defined here.
"""

import math
from dataclasses import dataclass
from typing import Tuple

ROUNDING_MODES = ("nearest", "truncate")


@dataclass(frozen=True)
class FixedPointFormat:
    """A signed two's complement fixed-point field layout."""

    name: str
    int_bits: int
    frac_bits: int

    @property
    def width(self) -> int:
        return 1 + self.int_bits + self.frac_bits

    @property
    def mask(self) -> int:
        return (1 << self.width) - 1

    @property
    def scale(self) -> int:
        return 1 << self.frac_bits

    @property
    def lsb(self) -> float:
        return 1.0 / self.scale

    @property
    def minimum(self) -> float:
        return -float(1 << self.int_bits)

    @property
    def maximum(self) -> float:
        return float(1 << self.int_bits) - self.lsb

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum

    def to_steps(self, value: float, rounding: str = "nearest") -> Tuple[int, bool]:
        """
        Convert a real value to an integer count of LSBs.

        Args:
            value: Real value to convert
            rounding: ``nearest`` (ties to even) or ``truncate`` (toward zero)

        Returns:
            Tuple of (steps, clamped) where ``clamped`` reports whether the
            input lay outside the representable range
        """
        if rounding not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode '{rounding}'")

        clamped = False
        if value < self.minimum:
            value, clamped = self.minimum, True
        elif value > self.maximum:
            value, clamped = self.maximum, True

        scaled = value * self.scale
        steps = round(scaled) if rounding == "nearest" else math.trunc(scaled)
        return int(steps), clamped

    def quantize(self, value: float, rounding: str = "nearest") -> Tuple[float, bool]:
        """Snap a value onto the format grid, returning (value, clamped)."""
        steps, clamped = self.to_steps(value, rounding)
        return steps / self.scale, clamped

    def encode(self, value: float, rounding: str = "nearest") -> Tuple[int, bool]:
        """Encode a value as a two's complement bit pattern, returning (bits, clamped)."""
        steps, clamped = self.to_steps(value, rounding)
        return steps & self.mask, clamped

    def decode(self, bits: int) -> float:
        bits &= self.mask
        if bits & (1 << (self.width - 1)):
            bits -= 1 << self.width
        return bits / self.scale


S1_14 = FixedPointFormat("S1.14", 1, 14)
S_10 = FixedPointFormat("S.10", 0, 10)
S1_9 = FixedPointFormat("S1.9", 1, 9)
S_15 = FixedPointFormat("S.15", 0, 15)
S4_6 = FixedPointFormat("S4.6", 4, 6)

# Wide gain format and narrow offset format used by template formatting
WIDE = S1_14
NARROW = S_10

FORMATS = {fmt.name: fmt for fmt in (S1_14, S_10, S1_9, S_15, S4_6)}


def format_real(value: float) -> str:
    """
    Render a real as assembly text.

    Grid points of every format above are dyadic rationals, so ``repr``
    yields their exact decimal expansion.
    """
    value = float(value) + 0.0
    text = repr(value)
    if "e" in text or "E" in text:
        text = f"{value:.17f}".rstrip("0")
        if text.endswith("."):
            text += "0"
    return text
