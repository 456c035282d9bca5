#!/usr/bin/env python3
"""CHIP-8 Command Line Interface.

Run a CHIP-8 ROM headless for a number of frames and print the screen.

Usage:
    python main.py --rom roms/IBM.ch8
    python main.py --rom roms/PONG.ch8 --frames 120 --keys 1,c --seed 7
"""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8, Chip8Error
from chip8_vm.display import render_text


TICKS_PER_FRAME = 5
MAX_TRACE = 1000


def parse_keys(spec: str) -> list:
    """Parse "1,c,0xF" into key indices."""
    return [int(token, 16) for token in filter(None, (t.strip() for t in spec.split(",")))]


def main():
    parser = argparse.ArgumentParser(
        description="CHIP-8 virtual machine (headless)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for one second of emulated time
    python main.py --rom roms/IBM.ch8 --frames 60

    # Hold keys 1 and C down, fixed random seed
    python main.py --rom roms/PONG.ch8 --keys 1,c --seed 7

    # Print the execution trace
    python main.py --rom roms/test.ch8 --frames 2 --trace
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        required=True,
        help="Path to the ROM file"
    )
    parser.add_argument(
        "--frames", "-f",
        type=int,
        default=60,
        help="Number of 60 Hz frames to emulate. Default: 60"
    )
    parser.add_argument(
        "--ticks-per-frame",
        type=int,
        default=TICKS_PER_FRAME,
        help=f"CPU cycles per frame. Default: {TICKS_PER_FRAME}"
    )
    parser.add_argument(
        "--keys", "-k",
        type=str,
        default="",
        help="Comma-separated keys held down for the whole run (hex digits)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the random number instruction"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--max-trace",
        type=int,
        default=MAX_TRACE,
        help=f"Most recent trace entries kept with --trace. Default: {MAX_TRACE}"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (screen only)"
    )

    args = parser.parse_args()

    if args.frames < 0 or args.ticks_per_frame < 1:
        parser.error("--frames must be >= 0 and --ticks-per-frame >= 1")
    if args.max_trace < 1:
        parser.error("--max-trace must be >= 1")

    rom_path = Path(args.rom)
    if not rom_path.exists():
        print(f"Error: ROM file not found: {args.rom}")
        return 1

    try:
        keys = parse_keys(args.keys)
    except ValueError as e:
        parser.error(f"Invalid --keys value: {e}")

    vm = Chip8(seed=args.seed, trace=args.trace, max_trace=args.max_trace)

    rom = rom_path.read_bytes()
    try:
        vm.load(rom)
        for key in keys:
            vm.keypress(key, True)
    except Chip8Error as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print(f"Loaded ROM: {args.rom} ({len(rom)} bytes)")
        print("-" * 64)

    exit_code = 0
    try:
        for _ in range(args.frames):
            for _ in range(args.ticks_per_frame):
                vm.tick()
            vm.tick_timers()
    except Chip8Error as e:
        print(f"Execution error: {e}")
        exit_code = 1

    if args.trace:
        vm.print_trace()

    print(render_text(vm.get_display()))

    if not args.quiet:
        summary = vm.get_summary()
        print("-" * 64)
        print(f"Cycles: {summary['cycles']}")
        print(f"PC: 0x{summary['pc']:04X}  I: 0x{summary['index']:04X}  SP: {summary['sp']}")
        print(f"Registers: {summary['registers']}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
