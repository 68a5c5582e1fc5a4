"""
Physical input and output blocks.

ADC and pot blocks read chip input registers in the input section; DAC
blocks write the chip output registers in the output section.
"""

from ..codegen.ir import IRNode
from ..utils.constants import ParameterType, Section, SignalKind
from ..utils.fixed_point import NARROW
from .base import FixedLogicBlock, ParameterSpec, PortSpec

GAIN_MAX = 1.99993896484375


class AdcBlock(FixedLogicBlock):
    """Reads one ADC channel, scaled by a gain, into its output register."""

    type = "input.adc"
    category = "Input"
    name = "ADC Input"
    description = "Audio input from the left or right ADC"
    color = "#2196F3"

    outputs = (PortSpec("out", "Output", SignalKind.AUDIO),)
    parameters = (
        ParameterSpec("channel", "Channel", ParameterType.SELECT, "left", options=("left", "right")),
        ParameterSpec("gain", "Gain", default=1.0, minimum=-2.0, maximum=GAIN_MAX, step=0.01,
                      description="Input gain"),
    )

    def _emit(self, block, context):
        source = "ADCR" if context.get_parameter(block, "channel") == "right" else "ADCL"
        gain = self.coefficient(context, context.get_code_value(block, "gain"), "gain", section=Section.INPUT)
        out = context.allocate_register(block.id, "out")

        context.push_input(IRNode.instruction(Section.INPUT, "rdax", source, gain))
        context.push_input(IRNode.instruction(Section.INPUT, "wrax", out, context.get_standard_constant(0.0)))


class PotBlock(FixedLogicBlock):
    """Reads a potentiometer into a control register, optionally inverted."""

    type = "input.pot"
    category = "Input"
    name = "Potentiometer"
    description = "Control value from POT0, POT1 or POT2"
    color = "#FF9800"

    outputs = (PortSpec("out", "Value", SignalKind.CONTROL),)
    parameters = (
        ParameterSpec("pot", "Pot", ParameterType.SELECT, 0, options=(0, 1, 2)),
        ParameterSpec("invert", "Invert", ParameterType.BOOLEAN, False,
                      description="Map 0..1 to 1..0"),
    )

    def _emit(self, block, context):
        pot = int(context.get_parameter(block, "pot"))
        out = context.allocate_register(block.id, "out")

        context.push_input(IRNode.instruction(Section.INPUT, "rdax", f"POT{pot}", context.get_standard_constant(1.0)))
        if context.get_parameter(block, "invert"):
            offset = context.fixed(NARROW.maximum, NARROW)
            context.push_input(IRNode.instruction(
                Section.INPUT, "sof", context.get_standard_constant(-1.0), offset, comment="invert"))
        context.push_input(IRNode.instruction(Section.INPUT, "wrax", out, context.get_standard_constant(0.0)))


class DacBlock(FixedLogicBlock):
    """Writes its input to one DAC channel, optionally rescaled."""

    type = "output.dac"
    category = "Output"
    name = "DAC Output"
    description = "Audio output to the left or right DAC"
    color = "#F44336"

    inputs = (PortSpec("in", "Input", SignalKind.AUDIO, required=True),)
    parameters = (
        ParameterSpec("channel", "Channel", ParameterType.SELECT, "left", options=("left", "right")),
        ParameterSpec("gain", "Gain", default=1.0, minimum=-2.0, maximum=GAIN_MAX, step=0.01,
                      description="Output gain"),
    )

    def _emit(self, block, context):
        target = "DACR" if context.get_parameter(block, "channel") == "right" else "DACL"
        zero = context.get_standard_constant(0.0)
        source = context.get_input_register(block.id, "in")

        if source is None:
            context.push_output(IRNode.instruction(Section.OUTPUT, "clr", comment="input not connected"))
        else:
            context.push_output(IRNode.instruction(Section.OUTPUT, "rdax", source, context.get_standard_constant(1.0)))
            gain = float(context.get_code_value(block, "gain"))
            if gain != 1.0:
                scale = self.coefficient(context, gain, "gain", section=Section.OUTPUT)
                context.push_output(IRNode.instruction(Section.OUTPUT, "sof", scale, zero))
        context.push_output(IRNode.instruction(Section.OUTPUT, "wrax", target, zero))
