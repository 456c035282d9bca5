"""Instruction decoder for the CHIP-8 interpreter.

Splits a 16-bit opcode into four nibbles and maps it to an operation key
plus operand parameters:

    opcode -> (digit1, digit2, digit3, digit4) -> (key, params) -> Registry

Operand fields follow the usual naming: x = digit2, y = digit3,
n = digit4, nn = low byte, nnn = low 12 bits. Every 16-bit word decodes
to exactly one result; words with no instruction form decode to
OP_INVALID with valid=False.
"""

from dataclasses import dataclass, field
from typing import Dict, Set, Tuple


@dataclass
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key (e.g., "OP_ADD_REG")
        params: Operand fields used by the instruction
        valid: Whether decode succeeded
        error: Error message if decode failed
        opcode: Original instruction word
    """
    key: str
    params: Dict[str, int] = field(default_factory=dict)
    valid: bool = True
    error: str = ""
    opcode: int = 0


VALID_KEYS: Set[str] = {
    "OP_NOP",
    "OP_CLS",
    "OP_RET",
    "OP_JMP",
    "OP_CALL",
    "OP_SKIP_EQ_IMM",
    "OP_SKIP_NE_IMM",
    "OP_SKIP_EQ_REG",
    "OP_LD_IMM",
    "OP_ADD_IMM",
    "OP_LD_REG",
    "OP_OR",
    "OP_AND",
    "OP_XOR",
    "OP_ADD_REG",
    "OP_SUB",
    "OP_SHR",
    "OP_SUBN",
    "OP_SHL",
    "OP_SKIP_NE_REG",
    "OP_LD_I",
    "OP_JMP_V0",
    "OP_RND",
    "OP_DRW",
    "OP_SKIP_KEY",
    "OP_SKIP_NOT_KEY",
    "OP_LD_REG_DT",
    "OP_WAIT_KEY",
    "OP_LD_DT_REG",
    "OP_LD_ST_REG",
    "OP_ADD_I",
    "OP_LD_FONT",
    "OP_BCD",
    "OP_STORE_REGS",
    "OP_LOAD_REGS",
}

# 8XYN arithmetic/logic forms, keyed by digit4
_ALU_KEYS = {
    0x0: "OP_LD_REG",
    0x1: "OP_OR",
    0x2: "OP_AND",
    0x3: "OP_XOR",
    0x4: "OP_ADD_REG",
    0x5: "OP_SUB",
    0x6: "OP_SHR",
    0x7: "OP_SUBN",
    0xE: "OP_SHL",
}

# FX?? forms, keyed by the low byte
_MISC_KEYS = {
    0x07: "OP_LD_REG_DT",
    0x0A: "OP_WAIT_KEY",
    0x15: "OP_LD_DT_REG",
    0x18: "OP_LD_ST_REG",
    0x1E: "OP_ADD_I",
    0x29: "OP_LD_FONT",
    0x33: "OP_BCD",
    0x55: "OP_STORE_REGS",
    0x65: "OP_LOAD_REGS",
}


def split_nibbles(opcode: int) -> Tuple[int, int, int, int]:
    """Split an opcode into (digit1, digit2, digit3, digit4), high to low."""
    return (
        (opcode & 0xF000) >> 12,
        (opcode & 0x0F00) >> 8,
        (opcode & 0x00F0) >> 4,
        opcode & 0x000F,
    )


def decode(opcode: int) -> DecodeResult:
    """Decode a 16-bit instruction word.

    Args:
        opcode: Instruction word (0x0000-0xFFFF)

    Returns:
        DecodeResult with operation key and operand parameters
    """
    # 0000 is a no-op and is recognised before looking at nibbles
    if opcode == 0x0000:
        return DecodeResult("OP_NOP", {}, opcode=opcode)

    digit1, digit2, digit3, digit4 = split_nibbles(opcode)
    x = digit2
    y = digit3
    nn = opcode & 0x00FF
    nnn = opcode & 0x0FFF

    if opcode == 0x00E0:
        return DecodeResult("OP_CLS", {}, opcode=opcode)
    if opcode == 0x00EE:
        return DecodeResult("OP_RET", {}, opcode=opcode)

    if digit1 == 0x1:
        return DecodeResult("OP_JMP", {"nnn": nnn}, opcode=opcode)
    if digit1 == 0x2:
        return DecodeResult("OP_CALL", {"nnn": nnn}, opcode=opcode)
    if digit1 == 0x3:
        return DecodeResult("OP_SKIP_EQ_IMM", {"x": x, "nn": nn}, opcode=opcode)
    if digit1 == 0x4:
        return DecodeResult("OP_SKIP_NE_IMM", {"x": x, "nn": nn}, opcode=opcode)
    if digit1 == 0x5 and digit4 == 0x0:
        return DecodeResult("OP_SKIP_EQ_REG", {"x": x, "y": y}, opcode=opcode)
    if digit1 == 0x6:
        return DecodeResult("OP_LD_IMM", {"x": x, "nn": nn}, opcode=opcode)
    if digit1 == 0x7:
        return DecodeResult("OP_ADD_IMM", {"x": x, "nn": nn}, opcode=opcode)
    if digit1 == 0x8 and digit4 in _ALU_KEYS:
        return DecodeResult(_ALU_KEYS[digit4], {"x": x, "y": y}, opcode=opcode)
    if digit1 == 0x9 and digit4 == 0x0:
        return DecodeResult("OP_SKIP_NE_REG", {"x": x, "y": y}, opcode=opcode)
    if digit1 == 0xA:
        return DecodeResult("OP_LD_I", {"nnn": nnn}, opcode=opcode)
    if digit1 == 0xB:
        return DecodeResult("OP_JMP_V0", {"nnn": nnn}, opcode=opcode)
    if digit1 == 0xC:
        return DecodeResult("OP_RND", {"x": x, "nn": nn}, opcode=opcode)
    if digit1 == 0xD:
        return DecodeResult("OP_DRW", {"x": x, "y": y, "n": digit4}, opcode=opcode)
    if digit1 == 0xE and nn == 0x9E:
        return DecodeResult("OP_SKIP_KEY", {"x": x}, opcode=opcode)
    if digit1 == 0xE and nn == 0xA1:
        return DecodeResult("OP_SKIP_NOT_KEY", {"x": x}, opcode=opcode)
    if digit1 == 0xF and nn in _MISC_KEYS:
        return DecodeResult(_MISC_KEYS[nn], {"x": x}, opcode=opcode)

    return DecodeResult(
        "OP_INVALID",
        {"raw": opcode},
        valid=False,
        error=f"Opcode not implemented: 0x{opcode:04X}",
        opcode=opcode,
    )


def disassemble(opcode: int) -> str:
    """Render an opcode as a short mnemonic for traces (e.g. "ADD_REG x=0 y=1")."""
    result = decode(opcode)
    name = result.key[3:] if result.key.startswith("OP_") else result.key
    if not result.valid:
        return f"{name} 0x{opcode:04X}"
    operands = " ".join(
        f"{k}=0x{v:03X}" if k == "nnn" else f"{k}={v:X}"
        for k, v in result.params.items()
    )
    return f"{name} {operands}".rstrip()
