"""
Compile option management.

``CompileOptions`` is the immutable per-call settings value handed to the
graph compiler and threaded through the code generation context. It can
be built from defaults, from the global configuration or from a plain
mapping using either snake_case or the camelCase keys of graph tools.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from ..utils.config import Fv1Config, get_config
from ..utils.constants import MEMORY_SIZE, PROGRAM_SIZE, REGISTER_COUNT, SAMPLE_RATE


@dataclass(frozen=True)
class CompileOptions:
    """Resource ceilings and switches for one compile call."""

    register_count: int = REGISTER_COUNT
    program_size: int = PROGRAM_SIZE
    memory_size: int = MEMORY_SIZE
    sample_rate: int = SAMPLE_RATE
    optimize: bool = True
    # One spare word after every memory block, as in the assembler's legacy layout
    legacy_memory_layout: bool = True

    def __post_init__(self):
        for name in ("register_count", "program_size", "memory_size", "sample_rate"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    def with_overrides(self, **overrides: Any) -> CompileOptions:
        return replace(self, **overrides)


_ALIASES = {
    "registerCount": "register_count",
    "programSize": "program_size",
    "memorySize": "memory_size",
    "sampleRate": "sample_rate",
    "legacyMemoryLayout": "legacy_memory_layout",
}


def create_default_options() -> CompileOptions:
    """Create compile options with the chip's native limits."""
    return CompileOptions()


def options_from_config(config: Optional[Fv1Config] = None) -> CompileOptions:
    """Create compile options from a configuration (the global one by default)."""
    config = config or get_config()
    comp = config.compilation
    return CompileOptions(
        register_count=comp.register_count,
        program_size=comp.program_size,
        memory_size=comp.memory_size,
        sample_rate=comp.sample_rate,
        optimize=comp.optimize,
        legacy_memory_layout=config.assembler.legacy_memory_layout,
    )


def options_from_dict(options_dict: Dict[str, Any]) -> CompileOptions:
    """Create compile options from a mapping, ignoring unknown keys."""
    kwargs = {}
    for key, value in options_dict.items():
        name = _ALIASES.get(key, key)
        if name in ("register_count", "program_size", "memory_size", "sample_rate"):
            kwargs[name] = int(value)
        elif name in ("optimize", "legacy_memory_layout"):
            kwargs[name] = bool(value)
    return CompileOptions(**kwargs)
