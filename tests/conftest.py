"""
Pytest configuration and shared fixtures for fv1block tests.

This module provides common graph documents, registries, options and
small helpers used across the test suite.
"""

import shutil
import tempfile
from typing import Any, Dict, List, Optional

import pytest

from fv1block.blocks.registry import build_default_registry
from fv1block.codegen.config import CompileOptions
from fv1block.codegen.context import CodeGenContext
from fv1block.compiler import GraphCompiler
from fv1block.graph import BlockGraph
from fv1block.utils.config import set_config


def make_graph(blocks: List[Dict[str, Any]], connections: List[tuple],
               name: str = "Test Graph") -> Dict[str, Any]:
    """
    Build a graph document.

    Args:
        blocks: Block dicts with id, type and optional parameters
        connections: (src_block, src_port, dst_block, dst_port) tuples
        name: Graph name for the metadata
    """
    return {
        "metadata": {"name": name, "author": "Test Author"},
        "blocks": [dict(block, parameters=block.get("parameters", {})) for block in blocks],
        "connections": [
            {"from": {"blockId": s, "portId": sp}, "to": {"blockId": d, "portId": dp}}
            for s, sp, d, dp in connections
        ],
    }


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep tests independent of any configuration file in the working directory."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture(scope="session")
def temp_test_dir():
    """Create temporary directory for test artifacts."""
    temp_dir = tempfile.mkdtemp(prefix="fv1block_test_")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope="session")
def registry():
    """A fresh registry of the built-in blocks."""
    return build_default_registry()


@pytest.fixture
def default_options():
    return CompileOptions()


@pytest.fixture
def compiler(registry):
    return GraphCompiler(registry=registry)


@pytest.fixture
def passthrough_graph():
    """ADC -> unity gain -> DAC."""
    return make_graph(
        [
            {"id": "adc1", "type": "input.adc"},
            {"id": "gain1", "type": "math.gain", "parameters": {"gain": 1.0}},
            {"id": "dac1", "type": "output.dac"},
        ],
        [("adc1", "out", "gain1", "in"), ("gain1", "out", "dac1", "in")],
        name="Pass Through",
    )


@pytest.fixture
def feedback_delay_graph():
    """ADC -> mixer -> delay, with the delay output fed back into the mixer."""
    return make_graph(
        [
            {"id": "adc1", "type": "input.adc"},
            {"id": "mix1", "type": "math.mixer2"},
            {"id": "delay1", "type": "fx.delay", "parameters": {"time": 100.0}},
            {"id": "dac1", "type": "output.dac"},
        ],
        [
            ("adc1", "out", "mix1", "in1"),
            ("delay1", "out", "mix1", "in2"),
            ("mix1", "out", "delay1", "in"),
            ("delay1", "out", "dac1", "in"),
        ],
        name="Echo",
    )


@pytest.fixture
def audio_cycle_graph():
    """A mixer and a gain feeding each other with no memory in the loop."""
    return make_graph(
        [
            {"id": "adc1", "type": "input.adc"},
            {"id": "mix1", "type": "math.mixer2"},
            {"id": "gain1", "type": "math.gain"},
            {"id": "dac1", "type": "output.dac"},
        ],
        [
            ("adc1", "out", "mix1", "in1"),
            ("mix1", "out", "gain1", "in"),
            ("gain1", "out", "mix1", "in2"),
            ("gain1", "out", "dac1", "in"),
        ],
    )


@pytest.fixture
def make_context(registry):
    """Factory for a CodeGenContext over a graph document."""

    def _make(document: Dict[str, Any], options: Optional[CompileOptions] = None) -> CodeGenContext:
        return CodeGenContext(BlockGraph.from_dict(document), options or CompileOptions(), registry)

    return _make


def instruction_lines(asm: str) -> List[str]:
    """Instruction lines of a program, without comments, labels or declarations."""
    lines = []
    for raw in asm.splitlines():
        line = raw.split(";", 1)[0].strip()
        if not line or line.endswith(":") or line.split()[0].lower() in ("equ", "mem"):
            continue
        lines.append(line)
    return lines


@pytest.fixture
def build_graph():
    """The ``make_graph`` helper as a fixture."""
    return make_graph


@pytest.fixture
def asm_instructions():
    """The ``instruction_lines`` helper as a fixture."""
    return instruction_lines
