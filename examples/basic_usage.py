#!/usr/bin/env python3
"""
Basic usage example for fv1block.

Compiles the echo graph next to this file, prints the generated
assembly and diagnostics, then assembles it into machine words.
"""

import os
import sys

import fv1block
from fv1block.assembler.output import format_listing


def main():
    """Compile and assemble the example echo graph."""
    print("fv1block - Basic Usage Example")
    print("=" * 60)

    graph_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "echo.yaml")
    graph = fv1block.load_graph(graph_path)
    print(f"Graph: {graph.metadata.name} ({len(graph.blocks)} blocks, {len(graph.connections)} connections)")

    print("\n1. Compiling graph...")
    result = fv1block.compile_graph(graph)
    for diagnostic in result.diagnostics:
        print(f"   {diagnostic}")
    if not result.success:
        print("ERROR: compilation failed")
        return 1
    print(f"✓ Schedule: {' -> '.join(result.schedule)}")
    print(f"✓ {result.statistics['instructions']} instructions, "
          f"{result.statistics['registers_used']} registers, "
          f"{result.statistics['memory_used']} words of delay memory")

    print("\n2. Generated assembly:")
    print(result.assembly_text)

    print("3. Assembling...")
    program = fv1block.assemble(result.assembly_text)
    for problem in program.problems:
        print(f"   {problem}")
    if not program.success:
        print("ERROR: assembly failed")
        return 1

    used = len(program.line_map)
    print(f"✓ {used} words of machine code:")
    print(format_listing(program.machine_code[:used]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
