"""
Program Rendering Engine.

Turns per-section IR into the final assembly text using a Jinja2
template. Everything that reaches the template is already ordered, so
the output is a pure function of its inputs.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError

from ..utils.constants import SECTION_ORDER, Section
from ..utils.exceptions import Fv1Error
from .ir import IRNode

PROGRAM_TEMPLATE = "program.spn.j2"


class ProgramRenderer:
    """Jinja2-based renderer for FV-1 assembly programs."""

    def __init__(self, template_dir: Optional[str] = None):
        """Initialize the renderer."""
        if template_dir is None:
            template_dir = os.path.join(os.path.dirname(__file__), "templates")

        self._template_dir = Path(template_dir)
        self._env = Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._setup_custom_filters()

    def _setup_custom_filters(self) -> None:
        """Set up custom Jinja2 filters for assembly output."""

        def asm_filter(node: IRNode) -> str:
            """Render one IR node as an assembly line."""
            return node.render()

        def comment_filter(text: str) -> str:
            """Prefix every line of text with an assembly comment marker."""
            lines = str(text).splitlines() or [""]
            return "\n".join(f"; {line}".rstrip() for line in lines)

        self._env.filters["asm"] = asm_filter
        self._env.filters["comment"] = comment_filter

    def render(self, metadata: Any, declarations: List[IRNode], sections: Dict[Section, List[IRNode]],
               statistics: Dict[str, int], version: str) -> str:
        """
        Render a complete program.

        Args:
            metadata: GraphMetadata for the banner
            declarations: EQU and MEM directive nodes
            sections: Section to node list mapping
            statistics: Resource usage figures for the banner
            version: Package version for the banner

        Returns:
            Assembly program text
        """
        context = {
            "metadata": metadata,
            "declarations": declarations,
            "sections": [(section.value, sections.get(section, [])) for section in SECTION_ORDER],
            "stats": statistics,
            "version": version,
        }
        try:
            template = self._env.get_template(PROGRAM_TEMPLATE)
            return template.render(**context)
        except TemplateError as e:
            raise Fv1Error(f"Program rendering failed: {e}", {"template": PROGRAM_TEMPLATE})

    def list_templates(self) -> List[str]:
        return self._env.list_templates()
