"""Chip8State: the flat data model of the CHIP-8 virtual machine.

State Components:
    - Memory: 4096 bytes, the lowest 80 holding the hexadecimal fontset
    - Registers: V0-VF (16 unsigned 8-bit values, VF doubling as flag output)
    - Index register I: 16-bit address pointer
    - PC: Program counter (programs start at 0x200)
    - Stack: 16 slots of 16-bit return addresses plus a stack pointer
    - Keys: 16 logical keys, pressed or released
    - Delay/sound timers: unsigned 8-bit countdowns
    - Screen: 64x32 monochrome framebuffer, row-major

Every field is a fixed-length sequence mutated in place. The state is
owned by one Chip8 instance and handed by reference to the registry
handlers.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .errors import (
    InvalidKeyIndex,
    MemoryIndexOutOfBounds,
    ProgramCounterOutOfBounds,
    RegisterIndexOutOfBounds,
    ScreenIndexOutOfBounds,
    StackIndexOutOfBounds,
    StackOverflow,
    StackUnderflow,
)


SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SCREEN_SIZE = SCREEN_WIDTH * SCREEN_HEIGHT

RAM_SIZE = 4096
NUM_REGS = 16
STACK_SIZE = 16
NUM_KEYS = 16

START_ADDR = 0x200

FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])
FONTSET_SIZE = len(FONTSET)
FONT_GLYPH_SIZE = 5


def _fresh_memory() -> bytearray:
    ram = bytearray(RAM_SIZE)
    ram[:FONTSET_SIZE] = FONTSET
    return ram


@dataclass
class Chip8State:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4KB RAM with the fontset at 0..79
        registers: V0..VF
        index: Index register I
        pc: Program counter
        stack: Return address slots
        sp: Stack pointer (number of occupied slots)
        keys: Pressed state of keys 0..F
        delay_timer: Delay timer
        sound_timer: Sound timer
        screen: Framebuffer, index = y * 64 + x
        program_size: Length of the last loaded program
        cycle_count: Number of instructions executed
    """
    memory: bytearray = field(default_factory=_fresh_memory)
    registers: bytearray = field(default_factory=lambda: bytearray(NUM_REGS))
    index: int = 0
    pc: int = START_ADDR
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)
    sp: int = 0
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    delay_timer: int = 0
    sound_timer: int = 0
    screen: List[bool] = field(default_factory=lambda: [False] * SCREEN_SIZE)
    program_size: int = 0
    cycle_count: int = 0

    def reset(self) -> None:
        """Restore the power-on state in place.

        Registers, stack, keys, timers and screen are cleared and the
        fontset is copied back. Program bytes above the fontset and the
        recorded program size are kept so a loaded ROM can be restarted.
        """
        self.pc = START_ADDR
        self.screen[:] = [False] * SCREEN_SIZE
        self.registers[:] = bytes(NUM_REGS)
        self.index = 0
        self.sp = 0
        self.stack[:] = [0] * STACK_SIZE
        self.keys[:] = [False] * NUM_KEYS
        self.delay_timer = 0
        self.sound_timer = 0
        self.cycle_count = 0
        self.memory[:FONTSET_SIZE] = FONTSET

    def restore(self, saved: "Chip8State") -> None:
        """Copy every field of a saved state back into this one in place."""
        self.memory[:] = saved.memory
        self.registers[:] = saved.registers
        self.stack[:] = saved.stack
        self.keys[:] = saved.keys
        self.screen[:] = saved.screen
        self.index = saved.index
        self.pc = saved.pc
        self.sp = saved.sp
        self.delay_timer = saved.delay_timer
        self.sound_timer = saved.sound_timer
        self.program_size = saved.program_size
        self.cycle_count = saved.cycle_count

    # =========================================================================
    # Stack
    # =========================================================================

    def push(self, value: int) -> None:
        if self.sp >= STACK_SIZE:
            raise StackOverflow("Stack overflow")
        self.stack[self.sp] = value & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        if self.sp == 0:
            raise StackUnderflow("Stack underflow")
        self.sp -= 1
        return self.stack[self.sp]

    # =========================================================================
    # Bounds-checked accessors
    # =========================================================================

    def read_byte(self, address: int) -> int:
        check_index(address, RAM_SIZE, MemoryIndexOutOfBounds)
        return self.memory[address]

    def write_byte(self, address: int, value: int) -> None:
        check_index(address, RAM_SIZE, MemoryIndexOutOfBounds)
        self.memory[address] = check_byte(value)

    def check_memory_range(self, start: int, length: int) -> None:
        """Raise unless memory[start:start + length] is addressable."""
        if length <= 0:
            return
        check_index(start, RAM_SIZE, MemoryIndexOutOfBounds)
        check_index(start + length - 1, RAM_SIZE, MemoryIndexOutOfBounds)

    def get_register(self, index: int) -> int:
        check_index(index, NUM_REGS, RegisterIndexOutOfBounds)
        return self.registers[index]

    def set_register(self, index: int, value: int) -> None:
        check_index(index, NUM_REGS, RegisterIndexOutOfBounds)
        self.registers[index] = check_byte(value)

    def get_stack_value(self, index: int) -> int:
        check_index(index, STACK_SIZE, StackIndexOutOfBounds)
        return self.stack[index]

    def set_stack_value(self, index: int, value: int) -> None:
        check_index(index, STACK_SIZE, StackIndexOutOfBounds)
        self.stack[index] = check_word(value)

    def set_sp(self, value: int) -> None:
        # sp counts occupied slots, so STACK_SIZE itself is valid
        check_index(value, STACK_SIZE + 1, StackIndexOutOfBounds)
        self.sp = value

    def set_pc(self, value: int) -> None:
        if not 0 <= value < RAM_SIZE:
            raise ProgramCounterOutOfBounds(value)
        self.pc = value

    def get_key(self, index: int) -> bool:
        if not 0 <= index < NUM_KEYS:
            raise InvalidKeyIndex(index)
        return self.keys[index]

    def set_key(self, index: int, pressed: bool) -> None:
        if not 0 <= index < NUM_KEYS:
            raise InvalidKeyIndex(index)
        self.keys[index] = bool(pressed)

    def get_pixel(self, index: int) -> bool:
        check_index(index, SCREEN_SIZE, ScreenIndexOutOfBounds)
        return self.screen[index]

    def set_pixel(self, index: int, value: bool) -> None:
        check_index(index, SCREEN_SIZE, ScreenIndexOutOfBounds)
        self.screen[index] = bool(value)

    # =========================================================================
    # Tracing
    # =========================================================================

    def snapshot(self) -> dict:
        """Create a copy of the CPU-visible state for tracing.

        Memory and screen are excluded; they are large and reachable
        through the VM accessors.
        """
        return {
            "pc": self.pc,
            "registers": list(self.registers),
            "index": self.index,
            "sp": self.sp,
            "stack": list(self.stack[:self.sp]),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "cycle_count": self.cycle_count,
        }

    def validate(self) -> bool:
        """Check that every field is within its representable range."""
        if len(self.memory) != RAM_SIZE or len(self.registers) != NUM_REGS:
            return False
        if len(self.stack) != STACK_SIZE or len(self.keys) != NUM_KEYS:
            return False
        if len(self.screen) != SCREEN_SIZE:
            return False
        if bytes(self.memory[:FONTSET_SIZE]) != FONTSET:
            return False
        if not 0 <= self.sp <= STACK_SIZE:
            return False
        if not 0 <= self.pc <= 0xFFFF or not 0 <= self.index <= 0xFFFF:
            return False
        if any(not 0 <= slot <= 0xFFFF for slot in self.stack):
            return False
        if not 0 <= self.delay_timer <= 0xFF or not 0 <= self.sound_timer <= 0xFF:
            return False
        return True

    def dump_registers(self) -> Dict[str, int]:
        """Get register values keyed by name (V0..VF)."""
        return {f"V{i:X}": value for i, value in enumerate(self.registers)}

    def __str__(self) -> str:
        regs = " ".join(f"{name}={value:02X}" for name, value in self.dump_registers().items())
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:04X} I={self.index:04X} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer} {regs}"
        )


def check_index(index: int, limit: int, error: type) -> None:
    if not 0 <= index < limit:
        raise error(index, limit)


def check_byte(value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"Byte value out of range: {value}")
    return value


def check_word(value: int) -> int:
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"16-bit value out of range: {value}")
    return value
