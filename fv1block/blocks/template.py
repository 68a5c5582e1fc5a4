"""
Template block definitions.

A template file is a metadata mapping (YAML or JSON) between two
``---`` delimiter lines, followed by an assembly body with placeholders::

    ---
    type: filter.lpf1p
    name: Low Pass
    inputs:  [{id: in, type: audio, required: true}]
    outputs: [{id: out, type: audio}]
    parameters: [{id: freq, default: 800, conversion: LOGFREQ}]
    registers: [state]
    ---
    rdax ${input.in}, 1.0
    ...

This is the sole format produced by external template converters.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..codegen.template_engine import TemplateEngine
from ..utils.constants import TEMPLATE_DELIMITER, TEMPLATE_FILE_SUFFIX
from ..utils.exceptions import TemplateError
from ..utils.logging import get_logger
from .base import BlockDefinition, ParameterSpec, PortSpec

logger = get_logger(__name__)


class TemplateBlock(BlockDefinition):
    """A block type defined by metadata plus a template body."""

    def __init__(self, metadata: Dict[str, Any], body: str, source: Optional[str] = None):
        """
        Build a template block from parsed metadata.

        Args:
            metadata: Metadata mapping from the file header
            body: Template body text
            source: File the template came from, used in error messages

        Raises:
            TemplateError: If the metadata is incomplete or malformed
        """
        self.source = source or "<template>"
        if not isinstance(metadata, dict):
            raise TemplateError("template metadata must be a mapping", template=self.source)
        for key in ("type", "name"):
            if not metadata.get(key):
                raise TemplateError(f"template metadata is missing '{key}'", template=self.source)

        self.type = str(metadata["type"])
        self.name = str(metadata["name"])
        self.category = str(metadata.get("category", "Template"))
        self.subcategory = str(metadata.get("subcategory", ""))
        self.description = str(metadata.get("description", ""))
        self.color = str(metadata.get("color", "#607D8B"))
        self.width = int(metadata.get("width", 160))

        try:
            self.inputs = tuple(PortSpec.from_dict(p) for p in metadata.get("inputs") or ())
            self.outputs = tuple(PortSpec.from_dict(p) for p in metadata.get("outputs") or ())
            self.parameters = tuple(ParameterSpec.from_dict(p) for p in metadata.get("parameters") or ())
        except (ValueError, TypeError, AttributeError) as e:
            raise TemplateError(f"invalid port or parameter: {e}", template=self.source)

        self.registers: Tuple[str, ...] = tuple(str(r) for r in metadata.get("registers") or ())
        self.memory: Tuple[Tuple[str, Union[int, str]], ...] = self._parse_memory(metadata.get("memory") or ())
        self.memory_bearing = bool(self.memory)
        self.body = body

        ids = [p.id for p in self.inputs + self.outputs]
        if len(ids) != len(set(ids)):
            raise TemplateError("port ids must be unique across inputs and outputs", template=self.source)

        self.engine = TemplateEngine(self)
        self.engine.check()

    def _parse_memory(self, entries: Any) -> Tuple[Tuple[str, Union[int, str]], ...]:
        memory = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id") or "size" not in entry:
                raise TemplateError("memory entries need an id and a size", template=self.source)
            size = entry["size"]
            if isinstance(size, bool) or not isinstance(size, (int, str)):
                raise TemplateError(f"memory '{entry['id']}' size must be an integer or expression",
                                    template=self.source)
            memory.append((str(entry["id"]), size))
        return tuple(memory)

    def _emit(self, block, context):
        self.engine.expand(block, context)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.registers:
            data["registers"] = list(self.registers)
        if self.memory:
            data["memory"] = [{"id": m, "size": s} for m, s in self.memory]
        return data


def parse_template_text(text: str, source: str = "<string>") -> TemplateBlock:
    """
    Parse the contents of a template file.

    Args:
        text: Complete file contents
        source: Name used in error messages

    Returns:
        TemplateBlock instance

    Raises:
        TemplateError: If the delimiters or metadata are malformed
    """
    lines = text.splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines or lines[0].strip() != TEMPLATE_DELIMITER:
        raise TemplateError(f"template must start with a '{TEMPLATE_DELIMITER}' line", template=source)
    try:
        end = next(i for i in range(1, len(lines)) if lines[i].strip() == TEMPLATE_DELIMITER)
    except StopIteration:
        raise TemplateError(f"metadata is not closed with a '{TEMPLATE_DELIMITER}' line", template=source)

    try:
        metadata = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as e:
        raise TemplateError(f"invalid metadata: {e}", template=source)

    body = "\n".join(lines[end + 1:])
    return TemplateBlock(metadata, body, source)


def load_template_file(path: Union[str, Path]) -> TemplateBlock:
    """Load one ``.atl`` template file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"cannot read template: {e}", template=str(path))
    definition = parse_template_text(text, str(path))
    logger.debug(f"Loaded template {definition.type} from {path}")
    return definition


def load_template_dir(directory: Union[str, Path]) -> List[TemplateBlock]:
    """Load every template file in a directory, in file name order."""
    directory = Path(directory)
    if not directory.is_dir():
        raise TemplateError("template directory does not exist", template=str(directory))
    return [load_template_file(p) for p in sorted(directory.glob(f"*{TEMPLATE_FILE_SUFFIX}"))]


BUILTIN_TEMPLATE_DIR = Path(__file__).parent / "templates"
