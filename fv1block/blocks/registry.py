"""
Block Registry.

A read-only mapping from block type id to ``BlockDefinition``. The
process-wide default registry is built once, on first use, from the
built-in fixed-logic blocks and the bundled template files, and is never
mutated afterwards. Extra template directories produce a new registry
instead of modifying the shared one.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional, Union

from ..utils.exceptions import Fv1Error
from ..utils.logging import get_logger
from .base import BlockDefinition
from .effects import DelayBlock
from .io_blocks import AdcBlock, DacBlock, PotBlock
from .math_blocks import GainBlock, MixerBlock
from .template import BUILTIN_TEMPLATE_DIR, load_template_dir

logger = get_logger(__name__)

FIXED_LOGIC_BLOCKS = (AdcBlock, PotBlock, DacBlock, GainBlock, MixerBlock, DelayBlock)


class BlockRegistry(Mapping):
    """
    Immutable registry of block definitions.

    Behaves as a read-only ``Mapping[str, BlockDefinition]``.
    """

    def __init__(self, definitions: Iterable[BlockDefinition] = ()):
        """
        Build a registry.

        Args:
            definitions: Block definitions; type ids must be unique

        Raises:
            Fv1Error: On a duplicate type id
        """
        table: Dict[str, BlockDefinition] = {}
        for definition in definitions:
            if definition.type in table:
                raise Fv1Error(f"Block type '{definition.type}' is registered twice",
                               {"type": definition.type})
            table[definition.type] = definition
        self._definitions = MappingProxyType(table)

    def __getitem__(self, type_id: str) -> BlockDefinition:
        return self._definitions[type_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, type_id: str, default: Optional[BlockDefinition] = None) -> Optional[BlockDefinition]:
        return self._definitions.get(type_id, default)

    def extended(self, definitions: Iterable[BlockDefinition]) -> BlockRegistry:
        """Return a new registry with extra definitions added."""
        return BlockRegistry(list(self._definitions.values()) + list(definitions))

    def with_template_dirs(self, directories: Iterable[Union[str, Path]]) -> BlockRegistry:
        """Return a new registry that also holds the templates found in ``directories``."""
        extra: List[BlockDefinition] = []
        for directory in directories:
            extra.extend(load_template_dir(directory))
        return self.extended(extra) if extra else self

    def by_category(self) -> Dict[str, List[BlockDefinition]]:
        grouped: Dict[str, List[BlockDefinition]] = {}
        for definition in self._definitions.values():
            grouped.setdefault(definition.category, []).append(definition)
        return grouped


def build_default_registry() -> BlockRegistry:
    """Build a registry of the built-in fixed-logic and template blocks."""
    definitions: List[BlockDefinition] = [cls() for cls in FIXED_LOGIC_BLOCKS]
    definitions.extend(load_template_dir(BUILTIN_TEMPLATE_DIR))
    registry = BlockRegistry(definitions)
    logger.debug(f"Registered {len(registry)} block types")
    return registry


_default_registry: Optional[BlockRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> BlockRegistry:
    """Get the process-wide default registry, building it on first use."""
    global _default_registry
    if _default_registry is None:
        with _registry_lock:
            if _default_registry is None:
                _default_registry = build_default_registry()
    return _default_registry


def get_block_definition(type_id: str) -> Optional[BlockDefinition]:
    """Look up a block type in the default registry."""
    return get_registry().get(type_id)


def list_block_types() -> List[str]:
    """Sorted list of block type ids in the default registry."""
    return sorted(get_registry())
