"""
Unit tests for the graph data model and analysis.

Tests document parsing, batched validation, scheduling and cycle
detection.
"""

import json

import pytest

from fv1block.graph import BlockGraph, GraphValidator, TopologyAnalyzer, analyze_graph, load_graph
from fv1block.utils.exceptions import CycleError, GraphValidationError, Severity


def _messages(problems, severity=None):
    return [p.message for p in problems if severity is None or p.severity is severity]


class TestBlockGraph:
    """Test the graph document model."""

    def test_from_dict(self, passthrough_graph):
        graph = BlockGraph.from_dict(passthrough_graph)

        assert [b.id for b in graph.blocks] == ["adc1", "gain1", "dac1"]
        assert graph.metadata.name == "Pass Through"
        assert graph.metadata.author == "Test Author"
        assert graph.connections[0].id == "c0"
        assert str(graph.connections[0].source) == "adc1.out"

    def test_driver_and_connectivity(self, passthrough_graph):
        graph = BlockGraph.from_dict(passthrough_graph)

        assert graph.driver_of("dac1", "in").block_id == "gain1"
        assert graph.driver_of("adc1", "out") is None
        assert graph.is_connected("gain1", "out")
        assert not graph.is_connected("gain1", "gain_ctrl")
        assert [c.id for c in graph.incoming("gain1")] == ["c0"]
        assert [c.id for c in graph.outgoing("gain1")] == ["c1"]

    def test_round_trip_document(self, passthrough_graph):
        graph = BlockGraph.from_dict(passthrough_graph)
        assert BlockGraph.from_dict(graph.to_dict()) == graph

    def test_snake_case_endpoints(self):
        graph = BlockGraph.from_dict({
            "blocks": [{"id": "a", "type": "input.adc"}, {"id": "b", "type": "output.dac"}],
            "connections": [{"id": "w", "from": {"block_id": "a", "port_id": "out"},
                             "to": {"block_id": "b", "port_id": "in"}}],
        })
        assert graph.driver_of("b", "in").block_id == "a"

    def test_duplicate_block_id(self):
        with pytest.raises(GraphValidationError, match="Duplicate block id 'x'"):
            BlockGraph.from_dict({"blocks": [{"id": "x", "type": "input.adc"},
                                             {"id": "x", "type": "output.dac"}]})

    @pytest.mark.parametrize("document", [
        [],
        {"blocks": {"a": 1}},
        {"blocks": [{"id": "a"}]},
        {"blocks": [{"id": "a", "type": "input.adc", "parameters": [1]}]},
        {"blocks": [], "connections": [{"from": {"blockId": "a"}, "to": {"blockId": "b", "portId": "in"}}]},
    ])
    def test_malformed_documents(self, document):
        with pytest.raises(GraphValidationError):
            BlockGraph.from_dict(document)

    def test_load_graph_json_and_yaml(self, tmp_path, passthrough_graph):
        json_path = tmp_path / "g.json"
        json_path.write_text(json.dumps(passthrough_graph))
        yaml_path = tmp_path / "g.yaml"
        yaml_path.write_text(
            "metadata: {name: Yaml}\n"
            "blocks:\n"
            "  - {id: adc1, type: input.adc}\n"
            "  - {id: dac1, type: output.dac}\n"
            "connections:\n"
            "  - {from: {blockId: adc1, portId: out}, to: {blockId: dac1, portId: in}}\n"
        )

        assert len(load_graph(str(json_path)).blocks) == 3
        assert load_graph(str(yaml_path)).metadata.name == "Yaml"

    def test_load_graph_missing_file(self, tmp_path):
        with pytest.raises(GraphValidationError, match="Cannot read graph file"):
            load_graph(str(tmp_path / "missing.json"))


class TestGraphValidator:
    """Test batched graph validation."""

    @pytest.fixture(autouse=True)
    def _setup(self, registry, build_graph):
        """Setup test fixtures."""
        self.validator = GraphValidator(registry)
        self.make_graph = build_graph

    def _validate(self, blocks, connections):
        return self.validator.validate(BlockGraph.from_dict(self.make_graph(blocks, connections)))

    def test_valid_graph(self, passthrough_graph):
        assert self.validator.validate(BlockGraph.from_dict(passthrough_graph)) == []

    def test_reports_all_problems_together(self):
        problems = self._validate(
            [{"id": "adc1", "type": "input.adc"}, {"id": "x1", "type": "nope.nothing"},
             {"id": "dac1", "type": "output.dac"}],
            [("adc1", "out", "ghost", "in"), ("adc1", "bogus", "dac1", "in")],
        )
        fatal = _messages(problems, Severity.FATAL)
        assert "Unknown block type 'nope.nothing'" in fatal
        assert "Connection destination block 'ghost' does not exist" in fatal
        assert "Block type 'input.adc' has no output port 'bogus'" in fatal

    def test_signal_kind_mismatch(self):
        problems = self._validate(
            [{"id": "pot1", "type": "input.pot"}, {"id": "gain1", "type": "math.gain"},
             {"id": "adc1", "type": "input.adc"}, {"id": "dac1", "type": "output.dac"}],
            [("pot1", "out", "gain1", "in"), ("gain1", "out", "dac1", "in")],
        )
        assert _messages(problems, Severity.FATAL) == [
            "Cannot connect control output pot1.out to audio input gain1.in"]
        assert problems[0].connection_id == "c0"

    def test_multiply_driven_input(self):
        problems = self._validate(
            [{"id": "adc1", "type": "input.adc"}, {"id": "adc2", "type": "input.adc"},
             {"id": "dac1", "type": "output.dac"}],
            [("adc1", "out", "dac1", "in"), ("adc2", "out", "dac1", "in")],
        )
        assert _messages(problems) == ["Input 'in' has more than one incoming connection"]

    def test_missing_required_input(self):
        problems = self._validate([{"id": "adc1", "type": "input.adc"},
                                   {"id": "dac1", "type": "output.dac"}], [])
        assert problems[0].message == "Required input 'in' of DAC Output is not connected"
        assert problems[0].block_id == "dac1"

    def test_parameter_checks(self):
        problems = self._validate(
            [{"id": "adc1", "type": "input.adc", "parameters": {"gain": "loud", "colour": 1}},
             {"id": "gain1", "type": "math.gain", "parameters": {"gain": 5.0}},
             {"id": "dac1", "type": "output.dac"}],
            [("adc1", "out", "gain1", "in"), ("gain1", "out", "dac1", "in")],
        )
        assert _messages(problems, Severity.FATAL) == ["parameter 'gain' must be a number, got 'loud'"]
        warnings = _messages(problems, Severity.WARNING)
        assert "Unknown parameter 'colour' for input.adc" in warnings
        assert any("outside" in w for w in warnings)

    def test_select_parameter(self):
        problems = self._validate(
            [{"id": "adc1", "type": "input.adc", "parameters": {"channel": "middle"}},
             {"id": "dac1", "type": "output.dac"}],
            [("adc1", "out", "dac1", "in")],
        )
        assert "must be one of" in problems[0].message

    def test_structure_warnings(self):
        problems = self.validator.validate(BlockGraph.from_dict({"blocks": []}))
        assert _messages(problems, Severity.WARNING) == ["Graph has no blocks"]

        problems = self._validate([{"id": "gain1", "type": "math.gain"}], [])
        warnings = _messages(problems, Severity.WARNING)
        assert "Graph has no output block" in warnings
        assert "Graph has no input block" in warnings


class TestTopologyAnalyzer:
    """Test scheduling."""

    @pytest.fixture(autouse=True)
    def _setup(self, registry, build_graph):
        """Setup test fixtures."""
        self.analyzer = TopologyAnalyzer(registry)
        self.make_graph = build_graph

    def test_passthrough_order(self, passthrough_graph):
        result = self.analyzer.analyze(BlockGraph.from_dict(passthrough_graph))
        assert result.order == ["adc1", "gain1", "dac1"]
        assert result.feedback_connections == []
        assert result.dependency_graph["dac1"] == ["gain1"]

    def test_dependencies_before_document_order(self):
        graph = BlockGraph.from_dict(self.make_graph(
            [{"id": "dac1", "type": "output.dac"}, {"id": "gain1", "type": "math.gain"},
             {"id": "adc1", "type": "input.adc"}],
            [("adc1", "out", "gain1", "in"), ("gain1", "out", "dac1", "in")],
        ))
        assert self.analyzer.analyze(graph).order == ["adc1", "gain1", "dac1"]

    def test_independent_blocks_keep_document_order(self):
        graph = BlockGraph.from_dict(self.make_graph(
            [{"id": "adc2", "type": "input.adc"}, {"id": "adc1", "type": "input.adc"}], []))
        assert self.analyzer.analyze(graph).order == ["adc2", "adc1"]

    def test_feedback_through_delay(self, feedback_delay_graph):
        result = self.analyzer.analyze(BlockGraph.from_dict(feedback_delay_graph))
        assert result.order == ["adc1", "mix1", "delay1", "dac1"]
        assert [(str(c.source), str(c.destination)) for c in result.feedback_connections] == [
            ("delay1.out", "mix1.in2")]

    def test_cycle_without_memory(self, audio_cycle_graph):
        with pytest.raises(CycleError) as exc:
            self.analyzer.analyze(BlockGraph.from_dict(audio_cycle_graph))
        assert exc.value.blocks == ["mix1", "gain1"]
        assert "mix1 -> gain1 -> mix1" in exc.value.message


class TestAnalyzeGraph:
    """Test the combined validate-and-schedule entry point."""

    def test_fatal_validation_skips_scheduling(self, registry, build_graph):
        graph = BlockGraph.from_dict(build_graph([{"id": "x", "type": "bad.type"}], []))
        problems, result = analyze_graph(graph, registry)
        assert result is None
        assert any(p.severity is Severity.FATAL for p in problems)

    def test_cycle_reported_as_problem(self, registry, audio_cycle_graph):
        problems, result = analyze_graph(BlockGraph.from_dict(audio_cycle_graph), registry)
        assert result is None
        assert isinstance(problems[-1], CycleError)
