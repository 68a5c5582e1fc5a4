"""
Machine code output formats.

Programs are written as a text listing, as raw big-endian bytes or as
Intel HEX. The FV-1 program EEPROM holds eight 512-byte programs, so
Intel HEX output can be placed at a program slot.
"""

from typing import Iterable, List

from ..utils.constants import EEPROM_SLOT_COUNT, EEPROM_SLOT_SIZE

HEX_RECORD_SIZE = 16
DATA_RECORD = 0x00
EOF_RECORD = ":00000001FF"


def format_listing(words: Iterable[int]) -> str:
    """One ``address<TAB>word`` line per instruction word."""
    return "\n".join(f"{address:04d}\t{word & 0xFFFFFFFF:08X}" for address, word in enumerate(words))


def to_bytes(words: Iterable[int]) -> bytes:
    return b"".join((word & 0xFFFFFFFF).to_bytes(4, "big") for word in words)


def slot_address(slot: int) -> int:
    """Byte address of a program slot in the EEPROM."""
    if not 0 <= slot < EEPROM_SLOT_COUNT:
        raise ValueError(f"Program slot must be 0..{EEPROM_SLOT_COUNT - 1}, got {slot}")
    return slot * EEPROM_SLOT_SIZE


def _record(address: int, record_type: int, data: bytes) -> str:
    body = bytes([len(data), (address >> 8) & 0xFF, address & 0xFF, record_type]) + data
    checksum = (256 - (sum(body) & 0xFF)) & 0xFF
    return ":" + body.hex().upper() + f"{checksum:02X}"


def to_intel_hex(words: Iterable[int], base_address: int = 0) -> str:
    """
    Encode machine code as Intel HEX.

    Args:
        words: Machine words
        base_address: Byte address of the first word, see ``slot_address``

    Returns:
        HEX text with 16-byte data records and an end-of-file record
    """
    data = to_bytes(words)
    if base_address < 0 or base_address + len(data) > 0x10000:
        raise ValueError(f"Data at {base_address:#x} does not fit a 16-bit address space")
    lines: List[str] = []
    for offset in range(0, len(data), HEX_RECORD_SIZE):
        lines.append(_record(base_address + offset, DATA_RECORD, data[offset:offset + HEX_RECORD_SIZE]))
    lines.append(EOF_RECORD)
    return "\n".join(lines) + "\n"
