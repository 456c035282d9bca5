"""Chip8Registry: instruction handlers for the CHIP-8 interpreter.

Each decoded operation key maps to one handler that mutates the machine
state in place. The registry is frozen once built so no handler can be
swapped at runtime.

Registry Keys:
    OP_NOP, OP_CLS, OP_RET: 0000, 00E0, 00EE
    OP_JMP, OP_CALL, OP_JMP_V0: 1NNN, 2NNN, BNNN
    OP_SKIP_*: 3XNN, 4XNN, 5XY0, 9XY0, EX9E, EXA1
    OP_LD_IMM, OP_ADD_IMM: 6XNN, 7XNN
    OP_LD_REG .. OP_SHL: 8XY0-8XY7, 8XYE
    OP_LD_I, OP_RND, OP_DRW: ANNN, CXNN, DXYN
    OP_LD_REG_DT .. OP_LOAD_REGS: FX07-FX65
    OP_INVALID: any word with no instruction form

Handlers that touch memory through I check the whole range first, so a
failing instruction leaves memory and registers as they were.
"""

from typing import Any, Callable, Dict, Set
import random

from .decode import DecodeResult
from .display import clear_screen, draw_sprite
from .errors import InvalidKeyIndex, UnimplementedOpcode
from .state import Chip8State, NUM_KEYS, FONT_GLYPH_SIZE


Handler = Callable[[Chip8State, Dict[str, Any]], None]

VF = 0xF


class Chip8Registry:
    """Frozen table of instruction handlers.

    Attributes:
        rng: Random source for CXNN (needs getrandbits)
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self, rng: random.Random):
        self.rng = rng
        self._primitives: Dict[str, Handler] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        # Flow control
        self.register("OP_NOP", self._op_nop)
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JMP", self._op_jmp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JMP_V0", self._op_jmp_v0)

        # Conditional skips
        self.register("OP_SKIP_EQ_IMM", self._op_skip_eq_imm)
        self.register("OP_SKIP_NE_IMM", self._op_skip_ne_imm)
        self.register("OP_SKIP_EQ_REG", self._op_skip_eq_reg)
        self.register("OP_SKIP_NE_REG", self._op_skip_ne_reg)
        self.register("OP_SKIP_KEY", self._op_skip_key)
        self.register("OP_SKIP_NOT_KEY", self._op_skip_not_key)

        # Register arithmetic
        self.register("OP_LD_IMM", self._op_ld_imm)
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_LD_REG", self._op_ld_reg)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHL", self._op_shl)
        self.register("OP_RND", self._op_rnd)

        # Index register, timers and memory
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I", self._op_add_i)
        self.register("OP_LD_FONT", self._op_ld_font)
        self.register("OP_LD_REG_DT", self._op_ld_reg_dt)
        self.register("OP_LD_DT_REG", self._op_ld_dt_reg)
        self.register("OP_LD_ST_REG", self._op_ld_st_reg)
        self.register("OP_BCD", self._op_bcd)
        self.register("OP_STORE_REGS", self._op_store_regs)
        self.register("OP_LOAD_REGS", self._op_load_regs)

        # Display and input
        self.register("OP_DRW", self._op_drw)
        self.register("OP_WAIT_KEY", self._op_wait_key)

        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Handler) -> None:
        """Register an instruction handler.

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> Set[str]:
        return set(self._primitives.keys())

    def execute(self, state: Chip8State, decoded: DecodeResult) -> None:
        """Run the handler for a decoded instruction.

        The cycle count only advances when the handler completes.

        Raises:
            KeyError: If the key has no handler
            Chip8Error: Whatever the instruction itself rejects
        """
        if decoded.key not in self._primitives:
            raise KeyError(f"Unknown operation key: {decoded.key}")

        self._primitives[decoded.key](state, decoded.params)
        state.cycle_count += 1

    # =========================================================================
    # Flow control
    # =========================================================================

    def _op_nop(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """0000 - No operation."""

    def _op_cls(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """00E0 - Clear the display."""
        clear_screen(state)

    def _op_ret(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """00EE - Return from subroutine: PC = popped address."""
        state.pc = state.pop()

    def _op_jmp(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """1NNN - Jump: PC = NNN."""
        state.pc = params["nnn"]

    def _op_call(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """2NNN - Call: push PC, then PC = NNN."""
        state.push(state.pc)
        state.pc = params["nnn"]

    def _op_jmp_v0(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """BNNN - PC = V0 + NNN.

        The target may land past the end of memory; the next fetch
        rejects it.
        """
        state.pc = state.registers[0] + params["nnn"]

    # =========================================================================
    # Conditional skips
    # =========================================================================

    def _skip_if(self, state: Chip8State, condition: bool) -> None:
        if condition:
            state.pc = (state.pc + 2) & 0xFFFF

    def _op_skip_eq_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """3XNN - Skip next instruction if VX == NN."""
        self._skip_if(state, state.registers[params["x"]] == params["nn"])

    def _op_skip_ne_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """4XNN - Skip next instruction if VX != NN."""
        self._skip_if(state, state.registers[params["x"]] != params["nn"])

    def _op_skip_eq_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """5XY0 - Skip next instruction if VX == VY."""
        v = state.registers
        self._skip_if(state, v[params["x"]] == v[params["y"]])

    def _op_skip_ne_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """9XY0 - Skip next instruction if VX != VY."""
        v = state.registers
        self._skip_if(state, v[params["x"]] != v[params["y"]])

    def _key_from_register(self, state: Chip8State, x: int) -> int:
        key = state.registers[x]
        if key >= NUM_KEYS:
            raise InvalidKeyIndex(key)
        return key

    def _op_skip_key(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """EX9E - Skip next instruction if key VX is pressed."""
        key = self._key_from_register(state, params["x"])
        self._skip_if(state, state.keys[key])

    def _op_skip_not_key(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """EXA1 - Skip next instruction if key VX is not pressed."""
        key = self._key_from_register(state, params["x"])
        self._skip_if(state, not state.keys[key])

    # =========================================================================
    # Register arithmetic
    # =========================================================================

    def _op_ld_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """6XNN - VX = NN."""
        state.registers[params["x"]] = params["nn"]

    def _op_add_imm(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """7XNN - VX += NN, wrapping, VF untouched."""
        x = params["x"]
        state.registers[x] = (state.registers[x] + params["nn"]) & 0xFF

    def _op_ld_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY0 - VX = VY."""
        state.registers[params["x"]] = state.registers[params["y"]]

    def _op_or(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY1 - VX |= VY."""
        state.registers[params["x"]] |= state.registers[params["y"]]

    def _op_and(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY2 - VX &= VY."""
        state.registers[params["x"]] &= state.registers[params["y"]]

    def _op_xor(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY3 - VX ^= VY."""
        state.registers[params["x"]] ^= state.registers[params["y"]]

    # The flag is written before the result, so when X is F the result
    # overwrites the flag.

    def _op_add_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY4 - VX += VY, VF = carry."""
        v = state.registers
        x, y = params["x"], params["y"]
        total = v[x] + v[y]
        v[VF] = 1 if total > 0xFF else 0
        v[x] = total & 0xFF

    def _op_sub(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY5 - VX -= VY, VF = 1 when no borrow (VX >= VY)."""
        v = state.registers
        x, y = params["x"], params["y"]
        v[VF] = 1 if v[x] >= v[y] else 0
        v[x] = (v[x] - v[y]) & 0xFF

    def _op_shr(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY6 - VF = VX & 1, VX >>= 1. VY is ignored."""
        v = state.registers
        x = params["x"]
        v[VF] = v[x] & 0x1
        v[x] >>= 1

    def _op_subn(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XY7 - VX = VY - VX, VF = 1 when VY >= VX."""
        v = state.registers
        x, y = params["x"], params["y"]
        v[VF] = 1 if v[y] >= v[x] else 0
        v[x] = (v[y] - v[x]) & 0xFF

    def _op_shl(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """8XYE - VF = bit 7 of VX, VX <<= 1. VY is ignored."""
        v = state.registers
        x = params["x"]
        v[VF] = (v[x] >> 7) & 0x1
        v[x] = (v[x] << 1) & 0xFF

    def _op_rnd(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """CXNN - VX = random byte & NN."""
        state.registers[params["x"]] = self.rng.getrandbits(8) & params["nn"]

    # =========================================================================
    # Index register, timers and memory
    # =========================================================================

    def _op_ld_i(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """ANNN - I = NNN."""
        state.index = params["nnn"]

    def _op_add_i(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX1E - I += VX, wrapping at 16 bits, VF untouched."""
        state.index = (state.index + state.registers[params["x"]]) & 0xFFFF

    def _op_ld_font(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX29 - I = address of the font glyph for digit VX."""
        state.index = state.registers[params["x"]] * FONT_GLYPH_SIZE

    def _op_ld_reg_dt(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX07 - VX = delay timer."""
        state.registers[params["x"]] = state.delay_timer

    def _op_ld_dt_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX15 - Delay timer = VX."""
        state.delay_timer = state.registers[params["x"]]

    def _op_ld_st_reg(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX18 - Sound timer = VX."""
        state.sound_timer = state.registers[params["x"]]

    def _op_bcd(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX33 - hundreds, tens and units of VX at I, I+1, I+2."""
        value = state.registers[params["x"]]
        i = state.index
        state.check_memory_range(i, 3)
        state.memory[i] = value // 100
        state.memory[i + 1] = (value // 10) % 10
        state.memory[i + 2] = value % 10

    def _op_store_regs(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX55 - copy V0..VX (inclusive) to memory at I. I is unchanged."""
        count = params["x"] + 1
        i = state.index
        state.check_memory_range(i, count)
        state.memory[i:i + count] = state.registers[:count]

    def _op_load_regs(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX65 - copy memory at I into V0..VX (inclusive). I is unchanged."""
        count = params["x"] + 1
        i = state.index
        state.check_memory_range(i, count)
        state.registers[:count] = state.memory[i:i + count]

    # =========================================================================
    # Display and input
    # =========================================================================

    def _op_drw(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """DXYN - draw N rows from I at (VX, VY).

        VF is set only when a pixel goes from set to unset, which is
        narrower than the usual any-overlap collision rule. The blit checks
        the sprite rows against memory before touching the screen, and VF
        is written after it, so a rejected draw leaves VF as it was.
        """
        v = state.registers
        erased = draw_sprite(state, v[params["x"]], v[params["y"]], params["n"])
        v[VF] = 1 if erased else 0

    def _op_wait_key(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """FX0A - store the lowest pressed key in VX, or replay this opcode.

        With no key down the PC is rewound over the fetch so the next
        tick executes FX0A again.
        """
        for key, pressed in enumerate(state.keys):
            if pressed:
                state.registers[params["x"]] = key
                return
        state.pc -= 2

    def _op_invalid(self, state: Chip8State, params: Dict[str, Any]) -> None:
        """Reject a word with no instruction form."""
        raise UnimplementedOpcode(params.get("raw", 0))
