"""
Command-line entry points.

``fv1block-compile`` turns a graph document into assembly (and
optionally machine code); ``fv1block-asm`` assembles a source file.
Both print diagnostics one per line and exit with status 1 when any of
them is fatal.
"""

import argparse
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from .assembler import AssemblerOptions, AssemblyResult, assemble
from .assembler.output import format_listing, slot_address, to_bytes, to_intel_hex
from .codegen.config import options_from_config
from .compiler import compile_graph
from .graph import load_graph
from .utils.config import get_config, load_config, set_config
from .utils.exceptions import Fv1Error
from .utils.logging import configure_logging, get_logger, setup_logging

logger = get_logger(__name__)


def _report(diagnostics: Iterable) -> None:
    for diagnostic in diagnostics:
        print(str(diagnostic), file=sys.stderr)


def _write(path: Optional[str], data) -> None:
    if path is None:
        sys.stdout.write(data if isinstance(data, str) else data.hex() + "\n")
        return
    target = Path(path)
    if isinstance(data, bytes):
        target.write_bytes(data)
    else:
        target.write_text(data, encoding="utf-8")
    logger.info(f"Wrote {target}")


def _render_machine_code(result: AssemblyResult, fmt: str, slot: int):
    if fmt == "bin":
        return to_bytes(result.machine_code)
    if fmt == "hex":
        return to_intel_hex(result.machine_code, slot_address(slot))
    return format_listing(result.machine_code) + "\n"


def _common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", help="configuration file (YAML or JSON)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")


def _apply_common(args: argparse.Namespace) -> None:
    if args.config:
        config = load_config(args.config)
        set_config(config)
        configure_logging(config.logging)
    if args.verbose:
        setup_logging("DEBUG")


def compile_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for fv1block-compile."""
    parser = argparse.ArgumentParser(prog="fv1block-compile", description="Compile a block graph to FV-1 assembly")
    parser.add_argument("graph", help="graph document (.json, .yaml)")
    parser.add_argument("-o", "--output", help="assembly output file (default: stdout)")
    parser.add_argument("--no-optimize", action="store_true", help="disable peephole optimization")
    parser.add_argument("--register-count", type=int, help="number of general registers available")
    parser.add_argument("--assemble", action="store_true", help="also assemble the generated program")
    parser.add_argument("--hex", metavar="OUT", help="write the assembled program as Intel HEX")
    parser.add_argument("--slot", type=int, default=0, help="EEPROM program slot for --hex (0-7)")
    _common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        _apply_common(args)
        graph = load_graph(args.graph)
        options = options_from_config()
        if args.no_optimize:
            options = options.with_overrides(optimize=False)
        if args.register_count is not None:
            options = options.with_overrides(register_count=args.register_count)
    except (Fv1Error, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    result = compile_graph(graph, options)
    _report(result.diagnostics)
    if not result.success:
        return 1
    _write(args.output, result.assembly_text)

    if args.assemble or args.hex:
        program = assemble(result.assembly_text, AssemblerOptions.from_config())
        _report(program.problems)
        if not program.success:
            return 1
        if args.hex:
            _write(args.hex, to_intel_hex(program.machine_code, slot_address(args.slot)))
        else:
            print(format_listing(program.machine_code))
    return 0


def assemble_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for fv1block-asm."""
    parser = argparse.ArgumentParser(prog="fv1block-asm", description="Assemble FV-1 source to machine code")
    parser.add_argument("source", help="assembly source file")
    parser.add_argument("-o", "--output", help="output file (default: stdout)")
    parser.add_argument("--format", choices=("hex", "bin", "listing"), default="listing",
                        help="output format (default: listing)")
    parser.add_argument("--slot", type=int, default=0, help="EEPROM program slot for hex output (0-7)")
    parser.add_argument("--strict", action="store_true", help="treat out-of-range operands as errors")
    parser.add_argument("--no-legacy-mem", action="store_true",
                        help="do not reproduce the reference assembler's delay memory layout")
    _common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        _apply_common(args)
        source = Path(args.source).read_text(encoding="utf-8")
        options = AssemblerOptions.from_config(get_config())
        if args.strict:
            options = options.with_overrides(strict=True)
        if args.no_legacy_mem:
            options = options.with_overrides(legacy_memory_layout=False)
        slot_address(args.slot)
    except (Fv1Error, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    result = assemble(source, options)
    _report(result.problems)
    if not result.success:
        return 1
    _write(args.output, _render_machine_code(result, args.format, args.slot))
    return 0


if __name__ == "__main__":
    sys.exit(compile_main())
