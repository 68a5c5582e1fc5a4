"""
Block definition contract.

Every block type, whether hand-written or loaded from a template file,
is a ``BlockDefinition``: ports and parameters plus a code-generation
operation. Definitions are immutable once built and shared by every
compile through the registry.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..utils.constants import STANDARD_CONSTANTS, Conversion, ParameterType, Section, SignalKind
from ..utils.exceptions import GraphValidationError, Severity
from ..utils.fixed_point import WIDE, FixedPointFormat
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PortSpec:
    """An input or output port of a block type."""

    id: str
    name: str
    kind: SignalKind = SignalKind.AUDIO
    required: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PortSpec:
        """
        Build a port from its document form.

        Raises:
            ValueError: If the id is missing or the kind is unknown
        """
        if not data.get("id"):
            raise ValueError("port is missing an id")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            kind=SignalKind(str(data.get("type", "audio")).lower()),
            required=bool(data.get("required", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.kind.value, "required": self.required}


@dataclass(frozen=True)
class ParameterSpec:
    """
    A user-editable block parameter.

    Values are stored in display units (Hz, dB, ms, plain gain); the
    optional ``conversion`` maps them to the value code generation needs.
    """

    id: str
    name: str
    type: ParameterType = ParameterType.NUMBER
    default: Any = 0.0
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    step: Optional[float] = None
    options: Tuple[Any, ...] = ()
    description: str = ""
    conversion: Optional[Conversion] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ParameterSpec:
        """
        Build a parameter from its document form.

        Raises:
            ValueError: If the id is missing or the type or conversion is unknown
        """
        if not data.get("id"):
            raise ValueError("parameter is missing an id")
        conversion = data.get("conversion")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", data["id"])),
            type=ParameterType(str(data.get("type", "number")).lower()),
            default=data.get("default", 0.0),
            minimum=data.get("min"),
            maximum=data.get("max"),
            step=data.get("step"),
            options=tuple(data.get("options") or ()),
            description=str(data.get("description", "")),
            conversion=Conversion(str(conversion).upper()) if conversion else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "name": self.name, "type": self.type.value, "default": self.default}
        if self.minimum is not None:
            data["min"] = self.minimum
        if self.maximum is not None:
            data["max"] = self.maximum
        if self.step is not None:
            data["step"] = self.step
        if self.options:
            data["options"] = list(self.options)
        if self.conversion is not None:
            data["conversion"] = self.conversion.value
        return data

    def option_values(self) -> List[Any]:
        """Selectable values; options may be plain values or {label, value} mappings."""
        return [opt.get("value") if isinstance(opt, dict) else opt for opt in self.options]

    def check(self, value: Any) -> Optional[str]:
        """Return a problem description for an unusable value, or None."""
        if self.type is ParameterType.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return f"parameter '{self.id}' must be a number, got {value!r}"
            if math.isnan(value) or math.isinf(value):
                return f"parameter '{self.id}' must be finite"
        elif self.type is ParameterType.BOOLEAN:
            if not isinstance(value, bool):
                return f"parameter '{self.id}' must be true or false, got {value!r}"
        elif self.type is ParameterType.SELECT:
            if self.options and value not in self.option_values():
                return f"parameter '{self.id}' must be one of {self.option_values()}, got {value!r}"
        return None

    def out_of_range(self, value: Any) -> bool:
        if self.type is not ParameterType.NUMBER or isinstance(value, bool):
            return False
        if self.minimum is not None and value < self.minimum:
            return True
        return self.maximum is not None and value > self.maximum

    def to_code_value(self, value: Any, sample_rate: int) -> Any:
        """
        Apply the display transform.

        Args:
            value: Value in display units
            sample_rate: Chip sample rate in Hz

        Returns:
            Converted value (unchanged when no conversion is declared)

        Raises:
            ValueError: If the value has no finite converted form
        """
        if self.conversion is None:
            return value
        try:
            result = self._convert(float(value), sample_rate)
        except (OverflowError, ValueError, TypeError):
            result = math.nan
        if isinstance(result, float) and not math.isfinite(result):
            raise ValueError(f"parameter '{self.id}' value {value!r} is out of range for {self.conversion.value}")
        return result

    def _convert(self, value: float, sample_rate: int) -> Any:
        if self.conversion is Conversion.LOGFREQ:
            return 1.0 - math.exp(-2.0 * math.pi * value / sample_rate)
        if self.conversion is Conversion.SINLFOFREQ:
            return int(round((1 << 17) * 2.0 * math.pi * value / sample_rate))
        if self.conversion is Conversion.DBLEVEL:
            return 10.0 ** (value / 20.0)
        return int(round(value / 1000.0 * sample_rate))


class BlockDefinition(ABC):
    """
    Base class for block types.

    Subclasses describe ports and parameters and implement ``_emit`` to
    append IR through the context. ``generate_code`` wraps that in a block
    scope so failed blocks leave no partial output.
    """

    type: str = ""
    category: str = "General"
    subcategory: str = ""
    name: str = ""
    description: str = ""
    color: str = "#607D8B"
    width: int = 160

    # True when the block's output comes from delay memory, so it may
    # legally close a feedback loop.
    memory_bearing: bool = False

    inputs: Tuple[PortSpec, ...] = ()
    outputs: Tuple[PortSpec, ...] = ()
    parameters: Tuple[ParameterSpec, ...] = ()

    @property
    def type_base(self) -> str:
        return self.type.split(".")[-1]

    def get_input(self, port_id: str) -> Optional[PortSpec]:
        return next((p for p in self.inputs if p.id == port_id), None)

    def get_output(self, port_id: str) -> Optional[PortSpec]:
        return next((p for p in self.outputs if p.id == port_id), None)

    def get_parameter(self, param_id: str) -> Optional[ParameterSpec]:
        return next((p for p in self.parameters if p.id == param_id), None)

    def validate(self, block: Any, graph: Any) -> List[GraphValidationError]:
        """
        Check a block instance against this definition.

        Args:
            block: Block instance
            graph: BlockGraph the block belongs to

        Returns:
            List of problems (fatal and warning); empty when valid
        """
        problems = []
        for port in self.inputs:
            if port.required and graph.driver_of(block.id, port.id) is None:
                problems.append(GraphValidationError(
                    f"Required input '{port.id}' of {self.name} is not connected", block_id=block.id))

        for param_id, value in block.parameters.items():
            spec = self.get_parameter(param_id)
            if spec is None:
                problems.append(GraphValidationError(
                    f"Unknown parameter '{param_id}' for {self.type}", block_id=block.id,
                    severity=Severity.WARNING))
                continue
            issue = spec.check(value)
            if issue:
                problems.append(GraphValidationError(issue, block_id=block.id))
            elif spec.out_of_range(value):
                problems.append(GraphValidationError(
                    f"parameter '{param_id}' value {value} outside [{spec.minimum}, {spec.maximum}]",
                    block_id=block.id, severity=Severity.WARNING))
        return problems

    def generate_code(self, block: Any, context: Any) -> list:
        """
        Generate IR for one block instance.

        Args:
            block: Block instance
            context: CodeGenContext for the current compile

        Returns:
            The IR nodes emitted for this block, in emission order
        """
        with context.block_scope(block, self) as nodes:
            self._emit(block, context)
        return list(nodes)

    @abstractmethod
    def _emit(self, block: Any, context: Any) -> None:
        """Append this block's code through the context's section operations."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category,
            "subcategory": self.subcategory,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "width": self.width,
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
            "parameters": [p.to_dict() for p in self.parameters],
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type!r})"


class FixedLogicBlock(BlockDefinition):
    """A block whose code generation is written directly in Python."""

    def coefficient(self, context: Any, value: Any, what: str, fmt: FixedPointFormat = WIDE,
                    section: Section = Section.MAIN) -> str:
        """
        Render a coefficient operand.

        Common values come back as interned constant symbols; anything
        else is quantized into ``fmt`` (S1.14 by default).
        """
        value = float(value)
        if value in STANDARD_CONSTANTS and fmt.contains(value):
            return context.get_standard_constant(value)
        return context.fixed(value, fmt, what=f"{self.name} {what}", section=section)
