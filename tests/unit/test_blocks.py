"""
Unit tests for block definitions and the registry.

Tests port and parameter specs, display-unit conversions, the code
emitted by each fixed-logic block and registry behaviour.
"""

import math

import pytest

from fv1block import compile_graph
from fv1block.blocks import BlockRegistry, GainBlock, ParameterSpec, PortSpec, list_block_types
from fv1block.codegen.config import CompileOptions
from fv1block.utils.constants import Conversion, ParameterType, Section, SignalKind
from fv1block.utils.exceptions import Fv1Error, ResourceExhaustionError, Severity


def _emit(context, registry, block_id):
    """Generate one block and return its rendered instruction lines."""
    block = context.graph.get_block(block_id)
    nodes = registry[block.type].generate_code(block, context)
    return [node.render() for node in nodes]


class TestPortAndParameterSpecs:
    """Test spec parsing and checks."""

    def test_port_from_dict(self):
        port = PortSpec.from_dict({"id": "cv", "type": "control", "required": True})
        assert port == PortSpec("cv", "cv", SignalKind.CONTROL, True)
        assert port.to_dict()["type"] == "control"

    @pytest.mark.parametrize("data", [{}, {"id": "x", "type": "voltage"}])
    def test_port_from_dict_invalid(self, data):
        with pytest.raises(ValueError):
            PortSpec.from_dict(data)

    def test_parameter_from_dict(self):
        spec = ParameterSpec.from_dict({"id": "freq", "default": 800, "min": 20, "max": 5000,
                                        "conversion": "logfreq"})
        assert spec.type is ParameterType.NUMBER
        assert spec.conversion is Conversion.LOGFREQ
        assert spec.to_dict()["conversion"] == "LOGFREQ"

    def test_select_options_with_labels(self):
        spec = ParameterSpec.from_dict({"id": "mode", "type": "select",
                                        "options": [{"label": "A", "value": 1}, 2]})
        assert spec.option_values() == [1, 2]
        assert spec.check(3) is not None
        assert spec.check(1) is None

    def test_number_checks(self):
        spec = ParameterSpec("gain", "Gain", minimum=0.0, maximum=1.0)
        assert spec.check(True) is not None
        assert spec.check(float("nan")) == "parameter 'gain' must be finite"
        assert spec.out_of_range(1.5)
        assert not spec.out_of_range(0.5)

    def test_boolean_check(self):
        spec = ParameterSpec("invert", "Invert", ParameterType.BOOLEAN, False)
        assert spec.check("yes") is not None
        assert spec.check(True) is None


class TestConversions:
    """Test display-unit to code-value transforms."""

    @staticmethod
    def _convert(conversion, value):
        return ParameterSpec("p", "P", conversion=conversion).to_code_value(value, 32768)

    def test_logfreq(self):
        expected = 1.0 - math.exp(-2.0 * math.pi * 1000 / 32768)
        assert self._convert(Conversion.LOGFREQ, 1000) == pytest.approx(expected)

    def test_sinlfofreq(self):
        assert self._convert(Conversion.SINLFOFREQ, 4.0) == 101

    def test_dblevel(self):
        assert self._convert(Conversion.DBLEVEL, -6.0) == pytest.approx(0.501187, rel=1e-5)

    def test_lengthtotime(self):
        assert self._convert(Conversion.LENGTHTOTIME, 100.0) == 3277

    def test_no_conversion(self):
        assert ParameterSpec("p", "P").to_code_value(0.25, 32768) == 0.25

    @pytest.mark.parametrize("conversion, value", [
        (Conversion.LENGTHTOTIME, 1e308),
        (Conversion.LOGFREQ, -1e7),
        (Conversion.DBLEVEL, 1e7),
        (Conversion.SINLFOFREQ, 1e308),
    ])
    def test_unrepresentable_value_rejected(self, conversion, value):
        with pytest.raises(ValueError, match="out of range"):
            self._convert(conversion, value)


class TestUnrepresentableParameters:
    """Extreme parameter values fail the compile instead of raising."""

    def _compile_single(self, build_graph, block_type, parameters):
        document = build_graph(
            [
                {"id": "adc1", "type": "input.adc"},
                {"id": "b1", "type": block_type, "parameters": parameters},
                {"id": "dac1", "type": "output.dac"},
            ],
            [("adc1", "out", "b1", "in"), ("b1", "out", "dac1", "in")],
        )
        return compile_graph(document, CompileOptions())

    def test_huge_delay_time(self, build_graph):
        result = self._compile_single(build_graph, "fx.delay", {"time": 1e308})

        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].block_id == "b1"
        assert "out of range" in result.errors[0].message

    def test_negative_cutoff_in_template(self, build_graph):
        result = self._compile_single(build_graph, "filter.lpf1p", {"freq": -1e7})

        assert not result.success
        assert [e.block_id for e in result.errors] == ["b1"]
        assert result.errors[0].severity == Severity.FATAL

    def test_range_warning_is_kept(self, build_graph):
        result = self._compile_single(build_graph, "fx.delay", {"time": 1e308})

        assert any(w.block_id == "b1" and "outside" in w.message for w in result.warnings)


class TestFixedLogicBlocks:
    """Test code emitted by the built-in blocks."""

    def test_adc(self, make_context, registry, passthrough_graph):
        context = make_context(passthrough_graph)
        assert _emit(context, registry, "adc1") == ["rdax    ADCL, k_one", "wrax    adc1_out, k_zero"]
        assert context.section_nodes(Section.INPUT)[0].render() == "; ADC Input (adc1)"

    def test_adc_right_channel_with_gain(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "adc1", "type": "input.adc", "parameters": {"channel": "right", "gain": 0.5}}], []))
        assert _emit(context, registry, "adc1")[0] == "rdax    ADCR, k_half"

    def test_gain_quantizes_coefficient(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "adc1", "type": "input.adc"},
             {"id": "gain1", "type": "math.gain", "parameters": {"gain": 0.3}}],
            [("adc1", "out", "gain1", "in")],
        ))
        assert _emit(context, registry, "gain1") == ["rdax    adc1_out, 0.29998779296875",
                                                     "wrax    gain1_out, k_zero"]

    def test_gain_with_control(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "adc1", "type": "input.adc"}, {"id": "pot1", "type": "input.pot"},
             {"id": "gain1", "type": "math.gain"}],
            [("adc1", "out", "gain1", "in"), ("pot1", "out", "gain1", "gain_ctrl")],
        ))
        lines = _emit(context, registry, "gain1")
        assert lines[1] == "mulx    pot1_out"

    def test_pot_invert(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "pot1", "type": "input.pot", "parameters": {"pot": 1, "invert": True}}], []))
        lines = _emit(context, registry, "pot1")
        assert lines[0] == "rdax    POT1, k_one"
        assert lines[1].startswith("sof     k_neg_one, 0.9990234375")
        assert lines[2] == "wrax    pot1_out, k_zero"

    def test_dac_with_gain(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "adc1", "type": "input.adc"},
             {"id": "dac1", "type": "output.dac", "parameters": {"channel": "right", "gain": 0.5}}],
            [("adc1", "out", "dac1", "in")],
        ))
        assert _emit(context, registry, "dac1") == [
            "rdax    adc1_out, k_one", "sof     k_half, k_zero", "wrax    DACR, k_zero"]

    def test_unconnected_dac_outputs_silence(self, make_context, registry, build_graph):
        context = make_context(build_graph([{"id": "dac1", "type": "output.dac"}], []))
        lines = _emit(context, registry, "dac1")
        assert lines[0].startswith("clr")
        assert lines[1] == "wrax    DACL, k_zero"

    def test_mixer_skips_unconnected_input(self, make_context, registry, build_graph):
        context = make_context(build_graph(
            [{"id": "adc1", "type": "input.adc"}, {"id": "mix1", "type": "math.mixer2"}],
            [("adc1", "out", "mix1", "in2")],
        ))
        assert _emit(context, registry, "mix1") == ["rdax    adc1_out, k_half", "wrax    mixer21_out, k_zero"]

    def test_mixer_without_inputs_warns(self, registry, build_graph):
        from fv1block.graph import BlockGraph

        graph = BlockGraph.from_dict(build_graph([{"id": "mix1", "type": "math.mixer2"}], []))
        problems = registry["math.mixer2"].validate(graph.get_block("mix1"), graph)
        assert [p.message for p in problems] == ["Mixer has no connected inputs and will output silence"]

    def test_delay(self, make_context, registry, feedback_delay_graph):
        context = make_context(feedback_delay_graph)
        _emit(context, registry, "mix1")
        lines = _emit(context, registry, "delay1")

        assert lines == [
            "; 3277 samples in delay1_mem",
            "rda     delay1_mem#, k_half",
            "rdax    mixer21_out, k_one",
            "wra     delay1_mem, k_zero",
            "rda     delay1_mem#, k_half",
            "rdax    mixer21_out, k_half",
            "wrax    delay1_out, k_zero",
        ]
        assert context.memory_allocations[0].size == 3277

    def test_delay_memory_ceiling(self, make_context, registry, feedback_delay_graph):
        context = make_context(feedback_delay_graph, CompileOptions(memory_size=1000))
        with pytest.raises(ResourceExhaustionError) as exc:
            _emit(context, registry, "delay1")
        assert exc.value.resource == "memory"
        assert exc.value.block_id == "delay1"

    def test_failed_block_leaves_no_output(self, make_context, registry, feedback_delay_graph):
        context = make_context(feedback_delay_graph, CompileOptions(memory_size=1000))
        with pytest.raises(ResourceExhaustionError):
            _emit(context, registry, "delay1")
        assert context.section_nodes(Section.MAIN) == []


class TestBlockRegistry:
    """Test the block registry."""

    def test_default_types(self, registry):
        assert set(registry) >= {
            "input.adc", "input.pot", "output.dac", "math.gain", "math.mixer2", "fx.delay",
            "filter.lpf1p", "control.scale_offset", "modulation.tremolo",
        }
        assert list_block_types() == sorted(list_block_types())

    def test_read_only(self, registry):
        with pytest.raises(TypeError):
            registry["math.gain"] = GainBlock()

    def test_duplicate_type_rejected(self):
        with pytest.raises(Fv1Error, match="registered twice"):
            BlockRegistry([GainBlock(), GainBlock()])

    def test_extended_returns_new_registry(self, registry):
        small = BlockRegistry([GainBlock()])
        assert len(small) == 1
        assert small.with_template_dirs([]) is small
        assert "math.gain" in registry

    def test_by_category(self, registry):
        categories = registry.by_category()
        assert {d.type for d in categories["Input"]} == {"input.adc", "input.pot"}
        assert [d.type for d in categories["Effects"]] == ["fx.delay"]
        assert {"math.gain", "math.mixer2", "math.mixer3", "math.mixer4"} <= {d.type for d in categories["Math"]}
        assert {d.type for d in categories["Filter"]} == {"filter.lpf1p", "filter.hpf1p"}

    def test_definition_to_dict(self, registry):
        data = registry["fx.delay"].to_dict()
        assert data["name"] == "Delay"
        assert [p["id"] for p in data["parameters"]] == ["time", "feedback", "mix"]
        assert data["parameters"][0]["conversion"] == "LENGTHTOTIME"
