"""
Custom exception definitions.

This module defines the exception hierarchy for fv1block errors and the
diagnostic records they turn into. Both engines catch these errors at
their boundary and report them as diagnostics; nothing escapes a
compile or assemble call as an unstructured crash.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Union

from .logging import get_logger

logger = get_logger(__name__)


class Severity(Enum):
    """Diagnostic severity."""

    FATAL = "fatal"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single reported problem.

    Exactly one of ``block_id`` (graph compiler) or ``line`` (assembler,
    1-based) is normally set; both may be None for graph-wide problems.
    """

    message: str
    severity: Severity = Severity.FATAL
    kind: str = "error"
    block_id: Optional[str] = None
    line: Optional[int] = None

    @property
    def location(self) -> Optional[Union[str, int]]:
        """Return the line number or block id this diagnostic points at."""
        if self.line is not None:
            return self.line
        return self.block_id

    @property
    def is_fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def __str__(self) -> str:
        if self.line is not None:
            prefix = f"line {self.line}: "
        elif self.block_id is not None:
            prefix = f"block {self.block_id}: "
        else:
            prefix = ""
        return f"{prefix}{self.severity.value}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "kind": self.kind,
            "block_id": self.block_id,
            "line": self.line,
        }


class Fv1Error(Exception):
    """
    Base exception for all fv1block errors.

    Carries a human-readable message, an optional details mapping and the
    location (block id or source line) the problem is attributed to.
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        block_id: Optional[str] = None,
        line: Optional[int] = None,
        severity: Severity = Severity.FATAL,
    ):
        """
        Initialize fv1block error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            block_id: Graph block the error is attributed to
            line: 1-based assembly source line the error is attributed to
            severity: Severity used when reported as a diagnostic
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.block_id = block_id
        self.line = line
        self.severity = severity

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def to_diagnostic(self) -> Diagnostic:
        """Convert this error into a diagnostic record."""
        return Diagnostic(
            message=self.message,
            severity=self.severity,
            kind=self.kind,
            block_id=self.block_id,
            line=self.line,
        )


class GraphValidationError(Fv1Error):
    """
    Raised for structural problems in a block graph.

    Covers unknown block types, dangling block or port references,
    signal-kind mismatches, multiply driven inputs, missing required
    inputs and invalid parameter values.
    """

    kind = "graph"

    def __init__(
        self,
        message: str,
        block_id: Optional[str] = None,
        connection_id: Optional[str] = None,
        severity: Severity = Severity.FATAL,
    ):
        details = {}
        if connection_id is not None:
            details["connection"] = connection_id
        super().__init__(message, details, block_id=block_id, severity=severity)
        self.connection_id = connection_id


class CycleError(GraphValidationError):
    """Raised when blocks form a same-sample feedback loop."""

    kind = "cycle"

    def __init__(self, blocks: List[str]):
        path = " -> ".join(list(blocks) + blocks[:1])
        super().__init__(
            f"Dataflow cycle detected without a memory block: {path}",
            block_id=blocks[0] if blocks else None,
        )
        self.blocks = list(blocks)


class ResourceExhaustionError(Fv1Error):
    """
    Raised when a chip resource ceiling is exceeded.

    The ``resource`` attribute is one of ``registers``, ``memory`` or
    ``program``.
    """

    kind = "resource"

    def __init__(self, resource: str, requested: int, limit: int, block_id: Optional[str] = None):
        message = f"Out of {resource}: {requested} required, {limit} available"
        super().__init__(
            message,
            {"resource": resource, "requested": requested, "limit": limit},
            block_id=block_id,
        )
        self.resource = resource
        self.requested = requested
        self.limit = limit


class TemplateError(Fv1Error):
    """
    Raised for malformed template definitions or bodies.

    Errors found while expanding a body are attributed to the block
    instance; errors found while loading a file name the file.
    """

    kind = "template"

    def __init__(self, message: str, block_id: Optional[str] = None, template: Optional[str] = None):
        details = {"template": template} if template else {}
        super().__init__(message, details, block_id=block_id)
        self.template = template


class AssemblyError(Fv1Error):
    """Base class for assembler diagnostics."""

    kind = "assembly"

    def __init__(self, message: str, line: Optional[int] = None, severity: Severity = Severity.FATAL):
        super().__init__(message, line=line, severity=severity)


class AssemblySyntaxError(AssemblyError):
    """Raised for unparsable lines or operands with the wrong shape."""

    kind = "syntax"


class AssemblySymbolError(AssemblyError):
    """Raised for undefined, duplicate or circular symbols."""

    kind = "symbol"

    def __init__(self, message: str, symbol: str, line: Optional[int] = None):
        super().__init__(message, line=line)
        self.symbol = symbol


class AssemblyEncodingError(AssemblyError):
    """Raised when an operand cannot be represented in its bit field."""

    kind = "encoding"


class DiagnosticCollector:
    """
    Accumulates diagnostics for one compile or assemble call.

    Never fails on the first error: callers keep adding and decide
    success from ``has_fatal`` at the end.
    """

    def __init__(self):
        self._diagnostics: List[Diagnostic] = []

    def add(self, item: Union[Diagnostic, Fv1Error]) -> Diagnostic:
        """
        Record a diagnostic or an error.

        Args:
            item: Diagnostic or Fv1Error instance

        Returns:
            The recorded diagnostic
        """
        diagnostic = item.to_diagnostic() if isinstance(item, Fv1Error) else item
        self._diagnostics.append(diagnostic)
        if diagnostic.is_fatal:
            logger.debug(f"Recorded error: {diagnostic}")
        else:
            logger.debug(f"Recorded warning: {diagnostic}")
        return diagnostic

    def extend(self, items: Iterable[Union[Diagnostic, Fv1Error]]) -> None:
        for item in items:
            self.add(item)

    def warn(self, message: str, kind: str = "warning", block_id: Optional[str] = None,
             line: Optional[int] = None) -> Diagnostic:
        return self.add(Diagnostic(message, Severity.WARNING, kind, block_id, line))

    @property
    def has_fatal(self) -> bool:
        return any(d.is_fatal for d in self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.is_fatal]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._diagnostics if not d.is_fatal]

    def sorted_by_line(self) -> List[Diagnostic]:
        """Return diagnostics ordered by source line, stable for equal lines."""
        return sorted(self._diagnostics, key=lambda d: d.line if d.line is not None else 0)

    def __len__(self) -> int:
        return len(self._diagnostics)

    def __iter__(self):
        return iter(self._diagnostics)


def format_diagnostics(diagnostics: Iterable[Any]) -> str:
    """Render diagnostics one per line."""
    return "\n".join(str(d) for d in diagnostics)
