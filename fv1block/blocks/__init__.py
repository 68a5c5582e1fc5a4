"""
Block definitions for fv1block.

Fixed-logic blocks are Python classes; template blocks are loaded from
``.atl`` files. Both satisfy the same ``BlockDefinition`` contract and
are looked up through the immutable ``BlockRegistry``.
"""

from .base import BlockDefinition, FixedLogicBlock, ParameterSpec, PortSpec
from .effects import DelayBlock
from .io_blocks import AdcBlock, DacBlock, PotBlock
from .math_blocks import GainBlock, MixerBlock
from .registry import (
    BlockRegistry,
    build_default_registry,
    get_block_definition,
    get_registry,
    list_block_types,
)
from .template import TemplateBlock, load_template_dir, load_template_file, parse_template_text

__all__ = [
    "BlockDefinition",
    "FixedLogicBlock",
    "ParameterSpec",
    "PortSpec",
    "AdcBlock",
    "PotBlock",
    "DacBlock",
    "GainBlock",
    "MixerBlock",
    "DelayBlock",
    "TemplateBlock",
    "BlockRegistry",
    "build_default_registry",
    "get_registry",
    "get_block_definition",
    "list_block_types",
    "load_template_file",
    "load_template_dir",
    "parse_template_text",
]
