"""
Arithmetic blocks: gain and two-input mixer.
"""

from ..codegen.ir import IRNode
from ..utils.constants import Section, SignalKind
from ..utils.exceptions import GraphValidationError, Severity
from .base import FixedLogicBlock, ParameterSpec, PortSpec
from .io_blocks import GAIN_MAX


class GainBlock(FixedLogicBlock):
    """Scales its input by a fixed gain and, when connected, a control signal."""

    type = "math.gain"
    category = "Math"
    name = "Gain"
    description = "Multiply a signal by a constant, optionally modulated by a control input"
    color = "#9C27B0"

    inputs = (
        PortSpec("in", "Input", SignalKind.AUDIO, required=True),
        PortSpec("gain_ctrl", "Gain CV", SignalKind.CONTROL),
    )
    outputs = (PortSpec("out", "Output", SignalKind.AUDIO),)
    parameters = (
        ParameterSpec("gain", "Gain", default=1.0, minimum=-2.0, maximum=GAIN_MAX, step=0.01),
    )

    def _emit(self, block, context):
        zero = context.get_standard_constant(0.0)
        source = context.get_input_register(block.id, "in")
        control = context.get_input_register(block.id, "gain_ctrl")
        out = context.allocate_register(block.id, "out")

        if source is None:
            context.push_main(IRNode.instruction(Section.MAIN, "clr", comment="input not connected"))
        else:
            gain = self.coefficient(context, context.get_code_value(block, "gain"), "gain")
            context.push_main(IRNode.instruction(Section.MAIN, "rdax", source, gain))
            if control is not None:
                context.push_main(IRNode.instruction(Section.MAIN, "mulx", control))
        context.push_main(IRNode.instruction(Section.MAIN, "wrax", out, zero))


class MixerBlock(FixedLogicBlock):
    """Sums two inputs, each with its own gain. Unconnected inputs are skipped."""

    type = "math.mixer2"
    category = "Math"
    name = "Mixer"
    description = "Two-input mixer"
    color = "#9C27B0"

    inputs = (
        PortSpec("in1", "Input 1", SignalKind.AUDIO),
        PortSpec("in2", "Input 2", SignalKind.AUDIO),
    )
    outputs = (PortSpec("out", "Output", SignalKind.AUDIO),)
    parameters = (
        ParameterSpec("gain1", "Gain 1", default=0.5, minimum=-2.0, maximum=GAIN_MAX, step=0.01),
        ParameterSpec("gain2", "Gain 2", default=0.5, minimum=-2.0, maximum=GAIN_MAX, step=0.01),
    )

    def validate(self, block, graph):
        problems = super().validate(block, graph)
        if all(graph.driver_of(block.id, port.id) is None for port in self.inputs):
            problems.append(GraphValidationError(
                "Mixer has no connected inputs and will output silence",
                block_id=block.id, severity=Severity.WARNING))
        return problems

    def _emit(self, block, context):
        zero = context.get_standard_constant(0.0)
        out = context.allocate_register(block.id, "out")

        summed = 0
        for index, port in enumerate(self.inputs, start=1):
            source = context.get_input_register(block.id, port.id)
            if source is None:
                continue
            gain = self.coefficient(context, context.get_code_value(block, f"gain{index}"), f"gain {index}")
            context.push_main(IRNode.instruction(Section.MAIN, "rdax", source, gain))
            summed += 1

        if not summed:
            context.push_main(IRNode.instruction(Section.MAIN, "clr", comment="no inputs connected"))
        context.push_main(IRNode.instruction(Section.MAIN, "wrax", out, zero))
