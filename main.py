#!/usr/bin/env python3
"""Synacor VM Command Line Interface.

Run program images interactively, or list them.

Usage:
    python main.py run challenge.bin
    python main.py run challenge.bin --script walkthrough.txt
    python main.py disasm challenge.bin --start 0 --end 200
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from synacor_vm import SynacorVM, WaitingForInput, Halted, disassemble
from synacor_vm.image import read_image


def run_session(args) -> int:
    vm = SynacorVM(max_cycles=args.max_cycles, record_trace=args.trace)
    vm.load_file(args.image)

    if not args.quiet:
        print(f"Loading `{args.image}`...")

    # Scripted lines are queued before the first run
    lines = []
    if args.script:
        lines.extend(Path(args.script).read_text().splitlines())
    lines.extend(args.command or [])
    try:
        for line in lines:
            vm.add_input_line(line)
    except ValueError as e:
        print(f"Error: Bad scripted input: {e}")
        return 1

    state = vm.run()
    while isinstance(state, WaitingForInput):
        print(vm.get_output(), end="")
        print("> ", end="", flush=True)

        line = sys.stdin.readline()
        if not line:
            # EOF ends the session while the machine waits
            print()
            break
        try:
            vm.add_input_line(line.rstrip("\r\n"))
        except ValueError as e:
            print(f"Bad input: {e}")
            continue
        state = vm.run()

    print(vm.get_output(), end="")

    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        print()
        summary = vm.get_summary()
        print(f"ENDING STATE: {summary['state']}  CYCLES: {summary['cycles']}")
        print(f"Registers: {summary['registers']}")

    return 0 if isinstance(state, (Halted, WaitingForInput)) else 1


def run_disasm(args) -> int:
    image = read_image(args.image)
    for line in disassemble(image, start=args.start, end=args.end):
        print(line)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Synacor VM: run or disassemble program images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Play interactively
    python main.py run challenge.bin

    # Replay a walkthrough, then continue interactively
    python main.py run challenge.bin --script walkthrough.txt

    # Feed individual lines
    python main.py run challenge.bin -c "take tablet" -c "use tablet"

    # List the first instructions
    python main.py disasm challenge.bin --end 100
        """
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for VM diagnostics. Default: WARNING"
    )
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    run_parser = subparsers.add_parser("run", help="Run an image interactively")
    run_parser.add_argument("image", type=str, help="Path to program image (.bin)")
    run_parser.add_argument(
        "--script", "-s",
        type=str,
        help="File of input lines queued before the first run"
    )
    run_parser.add_argument(
        "--command", "-c",
        action="append",
        help="Input line queued before the first run (repeatable)"
    )
    run_parser.add_argument(
        "--max-cycles",
        type=int,
        default=SynacorVM.DEFAULT_MAX_CYCLES,
        help=f"Maximum execution cycles (safety limit). Default: {SynacorVM.DEFAULT_MAX_CYCLES}"
    )
    run_parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Record and print the full execution trace"
    )
    run_parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Program output only"
    )
    run_parser.set_defaults(handler=run_session)

    disasm_parser = subparsers.add_parser("disasm", help="Print an instruction listing")
    disasm_parser.add_argument("image", type=str, help="Path to program image (.bin)")
    disasm_parser.add_argument("--start", type=int, default=0, help="First address. Default: 0")
    disasm_parser.add_argument("--end", type=int, default=None, help="Stop address. Default: end of image")
    disasm_parser.set_defaults(handler=run_disasm)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if not Path(args.image).exists():
        print(f"Error: Image file not found: {args.image}")
        return 1

    script = getattr(args, "script", None)
    if script and not Path(script).exists():
        print(f"Error: Script file not found: {script}")
        return 1

    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
