"""Chip8: the CHIP-8 interpreter orchestrator.

This module ties the pipeline together:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

An external driver calls tick() once per emulated CPU cycle and
tick_timers() at a fixed rate (normally 60 Hz). Every other operation is
a synchronous accessor that does not advance the machine.

A call either applies its whole effect or raises before anything is
mutated; a failing tick() also restores the program counter it advanced
during fetch.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import random

from .decode import DecodeResult, decode, disassemble
from .errors import Chip8Error, DataTooLarge, ProgramCounterOutOfBounds, ProgramSizeZero
from .registry import Chip8Registry
from .state import (
    Chip8State,
    RAM_SIZE,
    START_ADDR,
    check_byte,
    check_word,
)


# Emulator key layout: left four columns of a QWERTY keyboard
#     1 2 3 4        1 2 3 C
#     Q W E R   ->   4 5 6 D
#     A S D F        7 8 9 E
#     Z X C V        A 0 B F
KEYMAP: Dict[str, int] = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}


# Stands in for the decoded instruction when fetch itself fails
FETCH_FAILED = DecodeResult("OP_FETCH", valid=False, error="fetch failed")


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number before the instruction ran
        pc: Address the opcode was fetched from
        opcode: Raw instruction word
        key: Decoded operation key
        params: Decoded operands
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
        error: Error message if execution failed
    """
    cycle: int
    pc: int
    opcode: int
    key: str
    params: Dict[str, Any] = field(default_factory=dict)
    pre_state: dict = field(default_factory=dict)
    post_state: dict = field(default_factory=dict)
    error: Optional[str] = None


class Chip8:
    """CHIP-8 virtual machine.

    Attributes:
        state: Machine state, owned exclusively by this instance
        registry: Instruction handlers
        rng: Random source used by CXNN
        trace_enabled: Whether tick() records trace entries
        max_trace: Number of most recent entries kept (None keeps all)
        trace: Recorded trace entries
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        trace: bool = False,
        max_trace: Optional[int] = None,
    ):
        """Initialize the VM with the fontset loaded and PC at 0x200.

        Args:
            seed: Seed for the default random source (ignored if rng given)
            rng: Random source for CXNN; anything with getrandbits(8)
            trace: Record an ExecutionTraceEntry per tick
            max_trace: Drop the oldest entries beyond this many
        """
        if max_trace is not None and max_trace < 1:
            raise ValueError(f"max_trace must be positive: {max_trace}")
        self.rng = rng if rng is not None else random.Random(seed)
        self.state = Chip8State()
        self.registry = Chip8Registry(self.rng)
        self.trace_enabled = trace
        self.max_trace = max_trace
        self.trace: List[ExecutionTraceEntry] = []

    def reset(self) -> None:
        """Restore the power-on state. The loaded program stays in memory."""
        self.state.reset()
        self.trace = []

    def load(self, data: Sequence[int]) -> None:
        """Copy a program into memory at 0x200.

        Raises:
            DataTooLarge: If the program would extend past address 4095
        """
        data = bytes(data)
        end = START_ADDR + len(data)
        if end > RAM_SIZE:
            raise DataTooLarge(len(data), RAM_SIZE - START_ADDR)
        self.state.memory[START_ADDR:end] = data
        self.state.program_size = len(data)

    # =========================================================================
    # Execution
    # =========================================================================

    def fetch(self) -> int:
        """Read the big-endian opcode at PC and advance PC by 2.

        Raises:
            ProgramCounterOutOfBounds: If fewer than two bytes remain at PC
        """
        pc = self.state.pc
        if pc + 1 >= RAM_SIZE:
            raise ProgramCounterOutOfBounds(pc)
        memory = self.state.memory
        opcode = (memory[pc] << 8) | memory[pc + 1]
        self.state.pc = pc + 2
        return opcode

    def tick(self) -> DecodeResult:
        """Run one fetch-decode-execute cycle.

        Returns:
            The decoded instruction that was executed

        Raises:
            Chip8Error: If fetch or the instruction fails; state is unchanged
        """
        pc = self.state.pc
        pre_state = self.state.snapshot() if self.trace_enabled else {}
        try:
            opcode = self.fetch()
        except ProgramCounterOutOfBounds as e:
            self._record(pc, FETCH_FAILED, pre_state, error=str(e))
            raise
        decoded = decode(opcode)

        try:
            self.registry.execute(self.state, decoded)
        except Chip8Error as e:
            self.state.pc = pc
            self._record(pc, decoded, pre_state, error=str(e))
            raise

        self._record(pc, decoded, pre_state)
        return decoded

    def tick_timers(self) -> None:
        """Decrement the delay and sound timers, stopping at zero.

        The sound timer reaching zero from one is where a driver would
        stop its tone; the interpreter has no audio output.
        """
        if self.state.delay_timer > 0:
            self.state.delay_timer -= 1
        if self.state.sound_timer > 0:
            self.state.sound_timer -= 1

    def run(self) -> None:
        """Execute as many instructions as the loaded program has bytes.

        The run is all-or-nothing: if any tick fails, the whole machine
        state and the trace are rolled back to where they were before the
        call, and the error is re-raised.

        Raises:
            ProgramSizeZero: If no program has been loaded
            ProgramCounterOutOfBounds: If PC reaches the last memory byte
            Chip8Error: Whatever a tick rejects
        """
        if self.state.program_size == 0:
            raise ProgramSizeZero()

        saved = deepcopy(self.state)
        saved_trace = list(self.trace)
        try:
            for _ in range(self.state.program_size):
                self.tick()
        except Chip8Error:
            self.state.restore(saved)
            self.trace[:] = saved_trace
            raise

    def _record(
        self,
        pc: int,
        decoded: DecodeResult,
        pre_state: dict,
        error: Optional[str] = None,
    ) -> None:
        if not self.trace_enabled:
            return
        self.trace.append(ExecutionTraceEntry(
            cycle=pre_state.get("cycle_count", 0),
            pc=pc,
            opcode=decoded.opcode,
            key=decoded.key,
            params=dict(decoded.params),
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        ))
        if self.max_trace is not None and len(self.trace) > self.max_trace:
            del self.trace[:len(self.trace) - self.max_trace]

    # =========================================================================
    # Frontend
    # =========================================================================

    def keypress(self, index: int, pressed: bool) -> None:
        """Set the pressed state of key 0-F.

        Raises:
            InvalidKeyIndex: If index >= 16
        """
        self.state.set_key(index, pressed)

    def get_key(self, index: int) -> bool:
        return self.state.get_key(index)

    def get_display(self) -> List[bool]:
        """Copy of the 64x32 framebuffer, row-major (index = y * 64 + x)."""
        return list(self.state.screen)

    def is_display_cleared(self) -> bool:
        return not any(self.state.screen)

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_pc(self) -> int:
        return self.state.pc

    def set_pc(self, value: int) -> None:
        self.state.set_pc(value)

    def get_ram_value(self, index: int) -> int:
        return self.state.read_byte(index)

    def set_ram_value(self, index: int, value: int) -> None:
        self.state.write_byte(index, value)

    def get_register(self, index: int) -> int:
        return self.state.get_register(index)

    def set_register(self, index: int, value: int) -> None:
        self.state.set_register(index, value)

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_index_register(self) -> int:
        return self.state.index

    def set_index_register(self, value: int) -> None:
        self.state.index = check_word(value)

    def get_sp(self) -> int:
        return self.state.sp

    def set_sp(self, value: int) -> None:
        self.state.set_sp(value)

    def get_stack_value(self, index: int) -> int:
        return self.state.get_stack_value(index)

    def set_stack_value(self, index: int, value: int) -> None:
        self.state.set_stack_value(index, value)

    def get_delay_timer(self) -> int:
        return self.state.delay_timer

    def set_delay_timer(self, value: int) -> None:
        self.state.delay_timer = check_byte(value)

    def get_sound_timer(self) -> int:
        return self.state.sound_timer

    def set_sound_timer(self, value: int) -> None:
        self.state.sound_timer = check_byte(value)

    def get_screen_pixel(self, index: int) -> bool:
        return self.state.get_pixel(index)

    def set_screen_pixel(self, index: int, value: bool) -> None:
        self.state.set_pixel(index, value)

    def get_program_size(self) -> int:
        return self.state.program_size

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            if entry.key == FETCH_FAILED.key:
                print(f"  {entry.pc:04X}: <no opcode>")
                continue
            print(f"  {entry.pc:04X}: {entry.opcode:04X}  {disassemble(entry.opcode)}")

            pre_regs = entry.pre_state.get("registers", [])
            post_regs = entry.post_state.get("registers", [])
            changes = [
                f"V{i:X}: {before:02X} → {after:02X}"
                for i, (before, after) in enumerate(zip(pre_regs, post_regs))
                if before != after
            ]
            pre_index = entry.pre_state.get("index")
            post_index = entry.post_state.get("index")
            if pre_index != post_index:
                changes.append(f"I: {pre_index:04X} → {post_index:04X}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            next_pc = entry.post_state.get("pc", entry.pc)
            if next_pc != entry.pc + 2:
                print(f"  PC: {entry.pc:04X} → {next_pc:04X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict[str, Any]:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.state.cycle_count,
            "pc": self.state.pc,
            "index": self.state.index,
            "sp": self.state.sp,
            "registers": self.dump_registers(),
            "delay_timer": self.state.delay_timer,
            "sound_timer": self.state.sound_timer,
            "program_size": self.state.program_size,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
