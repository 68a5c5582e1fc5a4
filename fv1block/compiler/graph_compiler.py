"""
Graph Compiler.

Drives the whole graph-to-assembly pipeline:

1. validation (batched, every problem reported together)
2. scheduling (dependency order, feedback only through delay memory)
3. generation (each block's code through a fresh CodeGenContext)
4. optimization and rendering to assembly text

Every failure is returned as a diagnostic in the ``CompileResult``;
``compile`` itself does not raise for bad graphs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from ..blocks.registry import BlockRegistry, get_registry
from ..codegen.config import CompileOptions, options_from_config, options_from_dict
from ..codegen.context import CodeGenContext
from ..codegen.ir import IRNode
from ..codegen.optimization import CodeOptimizer
from ..codegen.renderer import ProgramRenderer
from ..graph.analyzer import analyze_graph
from ..graph.graph_nodes import BlockGraph
from ..utils.config import get_config
from ..utils.constants import INIT_SKIP_LABEL, SECTION_ORDER, Section
from ..utils.exceptions import (
    Diagnostic,
    DiagnosticCollector,
    Fv1Error,
    ResourceExhaustionError,
)
from ..utils.logging import Fv1Logger, get_logger

logger = get_logger(__name__)
pipeline_log = Fv1Logger(__name__)


@dataclass
class CompileResult:
    """Outcome of one compile call."""

    success: bool
    assembly_text: Optional[str] = None
    errors: List[Diagnostic] = field(default_factory=list)
    warnings: List[Diagnostic] = field(default_factory=list)
    statistics: Dict[str, int] = field(default_factory=dict)
    schedule: List[str] = field(default_factory=list)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.errors + self.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "assemblyText": self.assembly_text,
            "errors": [d.to_dict() for d in self.errors],
            "warnings": [d.to_dict() for d in self.warnings],
            "statistics": dict(self.statistics),
            "schedule": list(self.schedule),
        }


class GraphCompiler:
    """
    Compiles block graphs to FV-1 assembly.

    A compiler holds only read-only collaborators, so one instance can
    serve any number of compile calls, including concurrent ones.
    """

    def __init__(self, registry: Optional[BlockRegistry] = None,
                 renderer: Optional[ProgramRenderer] = None,
                 optimizer: Optional[CodeOptimizer] = None):
        if registry is None:
            registry = get_registry()
            template_dirs = get_config().compilation.template_dirs
            if template_dirs:
                registry = registry.with_template_dirs(template_dirs)
        self.registry = registry
        self.renderer = renderer or ProgramRenderer()
        self.optimizer = optimizer or CodeOptimizer()

    def compile(self, graph: Union[BlockGraph, Mapping[str, Any]],
                options: Union[CompileOptions, Mapping[str, Any], None] = None) -> CompileResult:
        """
        Compile a graph.

        Args:
            graph: BlockGraph or its document form
            options: CompileOptions, a mapping of option values, or None for
                the configured defaults

        Returns:
            CompileResult; ``success`` is False iff a fatal diagnostic exists
        """
        collector = DiagnosticCollector()
        try:
            if not isinstance(graph, BlockGraph):
                graph = BlockGraph.from_dict(graph)
            options = self._resolve_options(options)
            return self._compile(graph, options, collector)
        except Fv1Error as e:
            collector.add(e)
            return self._failure(collector)

    def _resolve_options(self, options: Any) -> CompileOptions:
        if options is None:
            return options_from_config()
        if isinstance(options, CompileOptions):
            return options
        try:
            return options_from_dict(dict(options))
        except (TypeError, ValueError) as e:
            raise Fv1Error(f"Invalid compile options: {e}")

    def _compile(self, graph: BlockGraph, options: CompileOptions,
                 collector: DiagnosticCollector) -> CompileResult:
        pipeline_log.log_compile_start(graph.metadata.name, len(graph.blocks), len(graph.connections))

        problems, analysis = analyze_graph(graph, self.registry)
        collector.extend(problems)
        if analysis is None:
            return self._failure(collector)

        pipeline_log.log_schedule(analysis.order, [c.id for c in analysis.feedback_connections])
        for conn in analysis.feedback_connections:
            collector.warn(
                f"Connection {conn.source} -> {conn.destination} closes a loop through delay memory "
                f"and carries the previous sample's value",
                kind="feedback", block_id=conn.destination.block_id)

        context = CodeGenContext(graph, options, self.registry)
        try:
            for block in analysis.schedule:
                definition = self.registry[block.type]
                try:
                    definition.generate_code(block, context)
                except ResourceExhaustionError:
                    raise
                except Fv1Error as e:
                    if e.block_id is None:
                        e.block_id = block.id
                    collector.add(e)
                except Exception as e:
                    logger.debug(f"Code generation for {block.id} raised", exc_info=True)
                    collector.add(Fv1Error(
                        f"Code generation failed for {definition.type}: {type(e).__name__}: {e}",
                        block_id=block.id))
        except ResourceExhaustionError as e:
            collector.add(e)
        collector.extend(context.diagnostics)
        if collector.has_fatal:
            return self._failure(collector, analysis.order)

        sections = context.sections()
        if options.optimize:
            sections, _ = self.optimizer.optimize(sections)
        sections[Section.INIT] = self._wrap_init(sections[Section.INIT])

        instructions = sum(1 for s in SECTION_ORDER for node in sections[s] if node.is_instruction)
        if instructions > options.program_size:
            collector.add(ResourceExhaustionError("program", instructions, options.program_size))
            return self._failure(collector, analysis.order)

        statistics = context.statistics()
        statistics.update(instructions=instructions, program_size=options.program_size,
                          blocks=len(analysis.schedule))
        pipeline_log.log_resource_usage(statistics["registers_used"], statistics["memory_used"], instructions)

        text = self.renderer.render(graph.metadata, context.declaration_nodes(), sections,
                                    statistics, _package_version())
        for warning in collector.warnings:
            pipeline_log.log_diagnostic(warning)
        return CompileResult(
            success=True,
            assembly_text=text,
            warnings=collector.warnings,
            statistics=statistics,
            schedule=analysis.order,
        )

    @staticmethod
    def _wrap_init(nodes: List[IRNode]) -> List[IRNode]:
        """Guard one-time setup code so it only runs on the first sample."""
        if not any(node.is_instruction for node in nodes):
            return nodes
        return ([IRNode.instruction(Section.INIT, "skp", "run", INIT_SKIP_LABEL)]
                + nodes
                + [IRNode.label(Section.INIT, INIT_SKIP_LABEL)])

    @staticmethod
    def _failure(collector: DiagnosticCollector, schedule: Optional[List[str]] = None) -> CompileResult:
        for diagnostic in collector:
            pipeline_log.log_diagnostic(diagnostic)
        return CompileResult(
            success=False,
            errors=collector.errors,
            warnings=collector.warnings,
            schedule=list(schedule or []),
        )


def _package_version() -> str:
    from .. import __version__
    return __version__


def compile_graph(graph: Union[BlockGraph, Mapping[str, Any]],
                  options: Union[CompileOptions, Mapping[str, Any], None] = None,
                  registry: Optional[BlockRegistry] = None) -> CompileResult:
    """Compile a graph with a default-configured compiler."""
    return GraphCompiler(registry=registry).compile(graph, options)
