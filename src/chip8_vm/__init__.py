"""chip8_vm: a CHIP-8 virtual machine.

A fetch-decode-execute interpreter over 4KB of memory, sixteen 8-bit
registers, a 16-level call stack, a 64x32 monochrome framebuffer,
16 logical keys and two countdown timers.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |            |
          [PC-based] [nibbles] [OP_*]  [frozen]    [in-place]

The interpreter only exposes state queries and a deterministic step
function. Rendering, audio, keyboard mapping and ROM loading belong to
the driver (see main.py and demo/gradio_app.py).

Modules:
    state: Chip8State and machine constants
    decode: Opcode to operation key decoding
    display: Sprite blit and text rendering
    registry: Instruction handlers keyed by operation
    vm: Main Chip8 orchestrator
    errors: Exception hierarchy
"""

__version__ = "0.1.0"

from .errors import (
    Chip8Error,
    DataTooLarge,
    IndexOutOfBounds,
    InvalidKeyIndex,
    MemoryIndexOutOfBounds,
    ProgramCounterOutOfBounds,
    ProgramSizeZero,
    RegisterIndexOutOfBounds,
    ScreenIndexOutOfBounds,
    StackIndexOutOfBounds,
    StackOverflow,
    StackUnderflow,
    UnimplementedOpcode,
)
from .state import Chip8State
from .decode import DecodeResult, decode
from .registry import Chip8Registry
from .vm import Chip8, ExecutionTraceEntry, KEYMAP

__all__ = [
    "Chip8",
    "Chip8State",
    "Chip8Registry",
    "DecodeResult",
    "ExecutionTraceEntry",
    "KEYMAP",
    "decode",
    "Chip8Error",
    "DataTooLarge",
    "IndexOutOfBounds",
    "InvalidKeyIndex",
    "MemoryIndexOutOfBounds",
    "ProgramCounterOutOfBounds",
    "ProgramSizeZero",
    "RegisterIndexOutOfBounds",
    "ScreenIndexOutOfBounds",
    "StackIndexOutOfBounds",
    "StackOverflow",
    "StackUnderflow",
    "UnimplementedOpcode",
]
