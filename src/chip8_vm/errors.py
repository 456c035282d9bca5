"""Exception hierarchy for the CHIP-8 interpreter.

Every rejected operation raises a subclass of Chip8Error. Index-style
failures also derive from IndexError and size failures from ValueError,
so callers can catch either the interpreter-specific or builtin type.
"""

from typing import Optional


class Chip8Error(Exception):
    """Base class for all interpreter failures."""


class ProgramCounterOutOfBounds(Chip8Error, IndexError):
    """Fetch would read past the end of memory."""

    def __init__(self, pc: int):
        super().__init__(f"Program counter out of bounds: 0x{pc:04X}")
        self.pc = pc


class StackOverflow(Chip8Error):
    """Push onto a full stack."""


class StackUnderflow(Chip8Error):
    """Pop from an empty stack."""


class InvalidKeyIndex(Chip8Error, IndexError):
    """A key index >= 16 was referenced."""

    def __init__(self, index: int):
        super().__init__(f"Invalid key index: {index}")
        self.index = index


class IndexOutOfBounds(Chip8Error, IndexError):
    """An accessor was given an index outside its entity's range."""

    entity = "Index"

    def __init__(self, index: int, limit: int):
        super().__init__(f"{self.entity} index out of bounds: {index} (limit {limit})")
        self.index = index
        self.limit = limit


class MemoryIndexOutOfBounds(IndexOutOfBounds):
    entity = "RAM"


class RegisterIndexOutOfBounds(IndexOutOfBounds):
    entity = "V register"


class StackIndexOutOfBounds(IndexOutOfBounds):
    entity = "Stack"


class ScreenIndexOutOfBounds(IndexOutOfBounds):
    entity = "Screen"


class DataTooLarge(Chip8Error, ValueError):
    """Program data does not fit in memory above the load address."""

    def __init__(self, size: int, capacity: int):
        super().__init__(f"Data too large to fit in RAM: {size} bytes (capacity {capacity})")
        self.size = size
        self.capacity = capacity


class UnimplementedOpcode(Chip8Error):
    """Decode found no instruction form for the opcode."""

    def __init__(self, opcode: int, reason: Optional[str] = None):
        message = f"Opcode not implemented: 0x{opcode:04X}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.opcode = opcode


class ProgramSizeZero(Chip8Error):
    """run() was called before any program was loaded."""

    def __init__(self):
        super().__init__("Program size is 0")
