"""
Delay-memory effects.
"""

from ..codegen.ir import IRNode
from ..utils.constants import Conversion, Section, SignalKind
from ..utils.fixed_point import S1_9
from .base import FixedLogicBlock, ParameterSpec, PortSpec


class DelayBlock(FixedLogicBlock):
    """
    Feedback delay line with wet/dry mix.

    The wet path reads the oldest sample of the line, so the output is
    available before this sample's input is known; that is what makes the
    block safe inside a feedback loop.
    """

    type = "fx.delay"
    category = "Effects"
    name = "Delay"
    description = "Simple delay with feedback"
    color = "#4CAF50"
    width = 180
    memory_bearing = True

    inputs = (PortSpec("in", "Input", SignalKind.AUDIO, required=True),)
    outputs = (PortSpec("out", "Output", SignalKind.AUDIO),)
    parameters = (
        ParameterSpec("time", "Delay Time", default=250.0, minimum=1.0, maximum=999.0, step=1.0,
                      description="Delay time in milliseconds", conversion=Conversion.LENGTHTOTIME),
        ParameterSpec("feedback", "Feedback", default=0.5, minimum=0.0, maximum=0.99, step=0.01),
        ParameterSpec("mix", "Mix", default=0.5, minimum=0.0, maximum=1.0, step=0.01,
                      description="0.0 = dry, 1.0 = wet"),
    )

    def _emit(self, block, context):
        zero = context.get_standard_constant(0.0)
        one = context.get_standard_constant(1.0)
        samples = max(1, int(context.get_code_value(block, "time")))
        feedback = float(context.get_code_value(block, "feedback"))
        mix = float(context.get_code_value(block, "mix"))

        source = context.get_input_register(block.id, "in")
        out = context.allocate_register(block.id, "out")
        memory = context.allocate_memory("mem", samples, block_id=block.id)

        fb = self.coefficient(context, feedback, "feedback", fmt=S1_9)
        wet = self.coefficient(context, mix, "mix", fmt=S1_9)
        dry = self.coefficient(context, 1.0 - mix, "dry mix")

        context.push_main(IRNode.note(Section.MAIN, f"{samples} samples in {memory.name}"))
        context.push_main(IRNode.instruction(Section.MAIN, "rda", memory.end, fb))
        if source is not None:
            context.push_main(IRNode.instruction(Section.MAIN, "rdax", source, one))
        context.push_main(IRNode.instruction(Section.MAIN, "wra", memory.name, zero))
        context.push_main(IRNode.instruction(Section.MAIN, "rda", memory.end, wet))
        if source is not None:
            context.push_main(IRNode.instruction(Section.MAIN, "rdax", source, dry))
        context.push_main(IRNode.instruction(Section.MAIN, "wrax", out, zero))
