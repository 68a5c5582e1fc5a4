"""
Integration tests for the graph-to-machine-code pipeline.

These tests drive ``compile_graph`` and ``assemble`` together on small
but complete graphs and check the program, its resources and its
diagnostics end to end.
"""

import pytest

from fv1block import assemble, compile_graph
from fv1block.assembler import AssemblerOptions
from fv1block.blocks.math_blocks import GainBlock
from fv1block.codegen import CompileOptions
from fv1block.compiler import GraphCompiler
from fv1block.utils.exceptions import Severity


class _RaisingGainBlock(GainBlock):
    type = "math.raising_gain"

    def _emit(self, block, context):
        context.allocate_register(block.id, "out")
        raise RuntimeError("coefficient table missing")


class TestPassThroughPipeline:
    """ADC -> gain -> DAC compiled and assembled."""

    def test_compiles_successfully(self, passthrough_graph):
        result = compile_graph(passthrough_graph, CompileOptions())

        assert result.success
        assert result.errors == []
        assert result.schedule == ["adc1", "gain1", "dac1"]

    def test_optimized_instruction_stream(self, passthrough_graph, asm_instructions):
        result = compile_graph(passthrough_graph, CompileOptions())

        assert asm_instructions(result.assembly_text) == [
            "rdax    ADCL, k_one",
            "wrax    adc1_out, k_one",
            "wrax    gain1_out, k_one",
            "wrax    DACL, k_zero",
        ]
        assert result.statistics["instructions"] == 4

    def test_unoptimized_keeps_every_transfer(self, passthrough_graph, asm_instructions):
        result = compile_graph(passthrough_graph, CompileOptions(optimize=False))

        lines = asm_instructions(result.assembly_text)
        assert len(lines) == 6
        assert lines[1] == "wrax    adc1_out, k_zero"
        assert lines[2] == "rdax    adc1_out, k_one"

    def test_assembles_to_expected_words(self, passthrough_graph):
        result = compile_graph(passthrough_graph, CompileOptions())
        program = assemble(result.assembly_text)

        assert program.success, program.problems
        assert program.machine_code[:4] == [0x40000284, 0x40000406, 0x40000426, 0x000002C6]
        assert len(program.machine_code) == 128
        assert all(word == 0x00000011 for word in program.machine_code[4:])

    def test_statistics(self, passthrough_graph):
        result = compile_graph(passthrough_graph, CompileOptions())

        stats = result.statistics
        assert stats["registers_used"] == 2
        assert stats["register_count"] == 32
        assert stats["memory_used"] == 0
        assert stats["blocks"] == 3
        assert stats["program_size"] == 128

    def test_options_as_mapping(self, passthrough_graph):
        result = compile_graph(passthrough_graph, {"optimize": False})

        assert result.success
        assert result.statistics["instructions"] == 6


class TestFailingGraphs:
    """Graphs that must not produce a program."""

    def test_audio_cycle(self, audio_cycle_graph):
        result = compile_graph(audio_cycle_graph, CompileOptions())

        assert not result.success
        assert result.assembly_text is None
        messages = [e.message for e in result.errors]
        assert any("mix1 -> gain1 -> mix1" in m for m in messages)

    def test_register_ceiling(self, passthrough_graph):
        result = compile_graph(passthrough_graph, CompileOptions(register_count=1))

        assert not result.success
        error = result.errors[0]
        assert error.message == "Out of registers: 2 required, 1 available"
        assert error.block_id == "gain1"
        assert error.severity == Severity.FATAL

    def test_unknown_block_type(self, build_graph):
        document = build_graph([{"id": "x1", "type": "fx.nonexistent"}], [])

        result = compile_graph(document, CompileOptions())

        assert not result.success
        assert result.errors[0].block_id == "x1"

    def test_validation_errors_are_batched(self, build_graph):
        document = build_graph(
            [
                {"id": "g1", "type": "math.gain"},
                {"id": "g2", "type": "math.gain"},
                {"id": "dac1", "type": "output.dac"},
            ],
            [("g1", "out", "dac1", "in"), ("g2", "nope", "dac1", "in")],
        )

        result = compile_graph(document, CompileOptions())

        assert not result.success
        assert len(result.errors) >= 2

    def test_malformed_document(self):
        result = compile_graph({"blocks": {"a": 1}}, CompileOptions())

        assert not result.success
        assert result.errors

    def test_invalid_option_mapping(self, passthrough_graph):
        result = compile_graph(passthrough_graph, {"registerCount": "many"})

        assert not result.success
        assert "Invalid compile options" in result.errors[0].message

    def test_program_size_ceiling(self, passthrough_graph):
        result = compile_graph(passthrough_graph, CompileOptions(program_size=2))

        assert not result.success
        assert result.assembly_text is None
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.kind == "resource"
        assert error.severity == Severity.FATAL
        assert error.message == "Out of program: 4 required, 2 available"

    def test_unexpected_block_failure_is_reported(self, registry, passthrough_graph):
        broken = GraphCompiler(registry=registry.extended([_RaisingGainBlock()]))
        passthrough_graph["blocks"][1]["type"] = "math.raising_gain"

        result = broken.compile(passthrough_graph, CompileOptions())

        assert not result.success
        failures = [e for e in result.errors if e.block_id == "gain1"]
        assert len(failures) == 1
        assert "RuntimeError: coefficient table missing" in failures[0].message
        assert failures[0].severity == Severity.FATAL


class TestFeedbackDelay:
    """A delay line feeding back into its own input mixer."""

    def test_compiles_with_feedback_warning(self, feedback_delay_graph):
        result = compile_graph(feedback_delay_graph, CompileOptions())

        assert result.success
        assert result.schedule == ["adc1", "mix1", "delay1", "dac1"]
        feedback = [w for w in result.warnings if w.kind == "feedback"]
        assert len(feedback) == 1
        assert feedback[0].block_id == "mix1"

    def test_delay_memory_reserved(self, feedback_delay_graph):
        result = compile_graph(feedback_delay_graph, CompileOptions())

        assert result.statistics["memory_used"] == 3278
        assert "mem     delay1_mem 3277" in result.assembly_text

    def test_assembles(self, feedback_delay_graph):
        result = compile_graph(feedback_delay_graph, CompileOptions())
        program = assemble(result.assembly_text)

        assert program.success, program.problems
        memory = program.memories[0]
        assert memory.name == "delay1_mem"
        assert memory.start == 0
        assert memory.size == 3277

    def test_assembles_packed_layout(self, feedback_delay_graph):
        result = compile_graph(feedback_delay_graph, CompileOptions(legacy_memory_layout=False))
        program = assemble(result.assembly_text, AssemblerOptions(legacy_memory_layout=False))

        assert result.statistics["memory_used"] == 3277
        assert program.success, program.problems


class TestMemoryAccounting:
    """Compiler memory accounting agrees with the assembler."""

    @staticmethod
    def _two_delays(build_graph, time_ms):
        return build_graph(
            [
                {"id": "adc1", "type": "input.adc"},
                {"id": "d1", "type": "fx.delay", "parameters": {"time": time_ms}},
                {"id": "d2", "type": "fx.delay", "parameters": {"time": time_ms}},
                {"id": "dac1", "type": "output.dac"},
            ],
            [("adc1", "out", "d1", "in"), ("d1", "out", "d2", "in"), ("d2", "out", "dac1", "in")],
        )

    def test_full_memory_rejected_at_compile_time(self, build_graph):
        result = compile_graph(self._two_delays(build_graph, 500.0), CompileOptions())

        assert not result.success
        assert [e.kind for e in result.errors] == ["resource"]
        assert "memory" in result.errors[0].message

    def test_packed_layout_fits_and_assembles(self, build_graph):
        result = compile_graph(self._two_delays(build_graph, 500.0), CompileOptions(legacy_memory_layout=False))

        assert result.success, result.errors
        assert result.statistics["memory_used"] == 32768
        program = assemble(result.assembly_text, AssemblerOptions(legacy_memory_layout=False))
        assert program.success, program.problems

    def test_compiled_program_always_assembles(self, build_graph):
        result = compile_graph(self._two_delays(build_graph, 400.0), CompileOptions())

        assert result.success, result.errors
        program = assemble(result.assembly_text)
        assert program.success, program.problems
        assert sum(m.size + 1 for m in program.memories) == result.statistics["memory_used"]


class TestTemplatePipeline:
    """Template-driven blocks through the full pipeline."""

    def test_tremolo_init_is_guarded(self, build_graph, asm_instructions):
        document = build_graph(
            [
                {"id": "adc1", "type": "input.adc"},
                {"id": "trem", "type": "modulation.tremolo", "parameters": {"rate": 4.0}},
                {"id": "dac1", "type": "output.dac"},
            ],
            [("adc1", "out", "trem", "in"), ("trem", "out", "dac1", "in")],
        )

        result = compile_graph(document, CompileOptions())

        assert result.success, result.errors
        lines = asm_instructions(result.assembly_text)
        assert lines[0] == "skp     run, start"
        assert lines[1].startswith("wlds    sin0, 101")
        assert "\nstart:" in result.assembly_text

        program = assemble(result.assembly_text)
        assert program.success, program.problems
        assert program.machine_code[0] == 0x80200011

    def test_lowpass_template(self, build_graph):
        document = build_graph(
            [
                {"id": "adc1", "type": "input.adc"},
                {"id": "lp", "type": "filter.lpf1p"},
                {"id": "dac1", "type": "output.dac"},
            ],
            [("adc1", "out", "lp", "in"), ("lp", "out", "dac1", "in")],
        )

        result = compile_graph(document, CompileOptions())

        assert result.success, result.errors
        assert assemble(result.assembly_text).success


class TestDeterminism:
    """The same graph always compiles to the same text."""

    def test_repeated_compiles_match(self, feedback_delay_graph):
        compiler = GraphCompiler()

        first = compiler.compile(feedback_delay_graph, CompileOptions())
        second = compiler.compile(feedback_delay_graph, CompileOptions())

        assert first.assembly_text == second.assembly_text

    def test_block_order_in_document_does_not_matter(self, passthrough_graph):
        shuffled = dict(passthrough_graph, blocks=list(reversed(passthrough_graph["blocks"])))

        first = compile_graph(passthrough_graph, CompileOptions())
        second = compile_graph(shuffled, CompileOptions())

        assert first.schedule == second.schedule
        assert first.statistics == second.statistics

    def test_to_dict(self, passthrough_graph):
        data = compile_graph(passthrough_graph, CompileOptions()).to_dict()

        assert data["success"] is True
        assert data["errors"] == []
        assert data["schedule"] == ["adc1", "gain1", "dac1"]
        assert data["assemblyText"].startswith("; ")


@pytest.mark.parametrize("register_count", [2, 8, 32])
def test_register_count_is_respected(passthrough_graph, register_count):
    result = compile_graph(passthrough_graph, CompileOptions(register_count=register_count))

    assert result.success
    assert result.statistics["register_count"] == register_count
