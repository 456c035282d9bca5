"""Tests for instruction handlers, one class per instruction group."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import random

import pytest
from chip8_vm import Chip8
from chip8_vm.decode import DecodeResult
from chip8_vm.errors import (
    InvalidKeyIndex,
    MemoryIndexOutOfBounds,
    StackOverflow,
    StackUnderflow,
    UnimplementedOpcode,
)
from chip8_vm.registry import Chip8Registry
from chip8_vm.state import START_ADDR


def execute(vm: Chip8, opcode: int) -> None:
    """Place one opcode at PC and tick it."""
    pc = vm.get_pc()
    vm.set_ram_value(pc, opcode >> 8)
    vm.set_ram_value(pc + 1, opcode & 0xFF)
    vm.tick()


@pytest.fixture
def vm():
    return Chip8(seed=1234)


class TestRegistryFrozen:
    """Test registry lifecycle."""

    def test_frozen_after_init(self):
        registry = Chip8Registry(random.Random(0))
        assert registry.is_frozen() is True

    def test_register_after_freeze_fails(self):
        registry = Chip8Registry(random.Random(0))
        with pytest.raises(RuntimeError):
            registry.register("OP_NEW", lambda state, params: None)

    def test_every_handler_documented(self):
        """Each handler names the instruction form it implements."""
        registry = Chip8Registry(random.Random(0))
        for key in registry.get_valid_keys():
            handler = registry._primitives[key]
            assert handler.__doc__, key

    def test_unknown_key(self, vm):
        with pytest.raises(KeyError):
            vm.registry.execute(vm.state, DecodeResult("OP_MISSING"))


class TestFlowControl:
    """00E0, 00EE, 1NNN, 2NNN, BNNN and 0000."""

    def test_nop_advances_pc(self, vm):
        execute(vm, 0x0000)
        assert vm.get_pc() == START_ADDR + 2

    def test_cls(self, vm):
        vm.set_screen_pixel(0, True)
        vm.set_screen_pixel(2047, True)
        execute(vm, 0x00E0)
        assert vm.is_display_cleared()

    def test_jmp(self, vm):
        execute(vm, 0x1345)
        assert vm.get_pc() == 0x345

    def test_call_pushes_return_address(self, vm):
        execute(vm, 0x2345)
        assert vm.get_pc() == 0x345
        assert vm.get_sp() == 1
        assert vm.get_stack_value(0) == START_ADDR + 2

    def test_call_then_ret(self, vm):
        execute(vm, 0x2300)
        execute(vm, 0x00EE)
        assert vm.get_pc() == START_ADDR + 2
        assert vm.get_sp() == 0

    def test_ret_empty_stack(self, vm):
        with pytest.raises(StackUnderflow):
            execute(vm, 0x00EE)
        assert vm.get_pc() == START_ADDR

    def test_call_full_stack(self, vm):
        vm.set_sp(16)
        with pytest.raises(StackOverflow):
            execute(vm, 0x2300)
        assert vm.get_pc() == START_ADDR
        assert vm.get_sp() == 16

    def test_jmp_v0(self, vm):
        vm.set_register(0, 0x10)
        execute(vm, 0xB300)
        assert vm.get_pc() == 0x310


class TestSkips:
    """3XNN, 4XNN, 5XY0, 9XY0."""

    @pytest.mark.parametrize("opcode,value,skipped", [
        (0x3142, 0x42, True),
        (0x3142, 0x41, False),
        (0x4142, 0x42, False),
        (0x4142, 0x41, True),
    ])
    def test_immediate(self, vm, opcode, value, skipped):
        vm.set_register(1, value)
        execute(vm, opcode)
        assert vm.get_pc() == START_ADDR + (4 if skipped else 2)

    @pytest.mark.parametrize("opcode,vy,skipped", [
        (0x5120, 7, True),
        (0x5120, 8, False),
        (0x9120, 7, False),
        (0x9120, 8, True),
    ])
    def test_register(self, vm, opcode, vy, skipped):
        vm.set_register(1, 7)
        vm.set_register(2, vy)
        execute(vm, opcode)
        assert vm.get_pc() == START_ADDR + (4 if skipped else 2)


class TestKeySkips:
    """EX9E and EXA1."""

    def test_skip_if_pressed(self, vm):
        vm.set_register(4, 0xA)
        vm.keypress(0xA, True)
        execute(vm, 0xE49E)
        assert vm.get_pc() == START_ADDR + 4

    def test_no_skip_if_released(self, vm):
        vm.set_register(4, 0xA)
        execute(vm, 0xE49E)
        assert vm.get_pc() == START_ADDR + 2

    def test_skip_if_not_pressed(self, vm):
        vm.set_register(4, 0xA)
        execute(vm, 0xE4A1)
        assert vm.get_pc() == START_ADDR + 4

    def test_no_skip_if_not_pressed_but_pressed(self, vm):
        vm.set_register(4, 0xA)
        vm.keypress(0xA, True)
        execute(vm, 0xE4A1)
        assert vm.get_pc() == START_ADDR + 2

    @pytest.mark.parametrize("opcode", [0xE49E, 0xE4A1])
    def test_register_value_not_a_key(self, vm, opcode):
        vm.set_register(4, 16)
        with pytest.raises(InvalidKeyIndex):
            execute(vm, opcode)
        assert vm.get_pc() == START_ADDR


class TestArithmetic:
    """6XNN, 7XNN and the 8XY? group."""

    def test_ld_imm(self, vm):
        execute(vm, 0x6A42)
        assert vm.get_register(0xA) == 0x42

    def test_add_imm_wraps_without_flag(self, vm):
        vm.set_register(0, 0xFF)
        vm.set_register(0xF, 0x5)
        execute(vm, 0x7002)
        assert vm.get_register(0) == 0x01
        assert vm.get_register(0xF) == 0x5

    @pytest.mark.parametrize("opcode,vx,vy,expected", [
        (0x8120, 0x0F, 0xF0, 0xF0),
        (0x8121, 0x0F, 0xF0, 0xFF),
        (0x8122, 0x3C, 0x0F, 0x0C),
        (0x8123, 0xFF, 0x0F, 0xF0),
    ])
    def test_logic(self, vm, opcode, vx, vy, expected):
        vm.set_register(1, vx)
        vm.set_register(2, vy)
        execute(vm, opcode)
        assert vm.get_register(1) == expected
        assert vm.get_register(2) == vy

    def test_add_carry(self, vm):
        vm.set_register(1, 0xFF)
        vm.set_register(2, 0x01)
        execute(vm, 0x8124)
        assert vm.get_register(1) == 0x00
        assert vm.get_register(0xF) == 1

    def test_add_no_carry(self, vm):
        vm.set_register(1, 0xFE)
        vm.set_register(2, 0x01)
        vm.set_register(0xF, 1)
        execute(vm, 0x8124)
        assert vm.get_register(1) == 0xFF
        assert vm.get_register(0xF) == 0

    def test_add_into_vf_keeps_sum(self, vm):
        """When X is F the sum overwrites the carry."""
        vm.set_register(0xF, 0xFF)
        vm.set_register(2, 0x03)
        execute(vm, 0x8F24)
        assert vm.get_register(0xF) == 0x02

    def test_sub_borrow(self, vm):
        vm.set_register(1, 0x01)
        vm.set_register(2, 0x02)
        execute(vm, 0x8125)
        assert vm.get_register(1) == 0xFF
        assert vm.get_register(0xF) == 0

    def test_sub_equal_no_borrow(self, vm):
        vm.set_register(1, 0x05)
        vm.set_register(2, 0x05)
        execute(vm, 0x8125)
        assert vm.get_register(1) == 0x00
        assert vm.get_register(0xF) == 1

    def test_shr(self, vm):
        vm.set_register(1, 0x01)
        vm.set_register(2, 0xFF)
        execute(vm, 0x8126)
        assert vm.get_register(1) == 0x00
        assert vm.get_register(0xF) == 1

    def test_shr_even(self, vm):
        vm.set_register(1, 0x80)
        execute(vm, 0x8126)
        assert vm.get_register(1) == 0x40
        assert vm.get_register(0xF) == 0

    def test_subn(self, vm):
        vm.set_register(1, 0x02)
        vm.set_register(2, 0x07)
        execute(vm, 0x8127)
        assert vm.get_register(1) == 0x05
        assert vm.get_register(0xF) == 1

    def test_subn_borrow(self, vm):
        vm.set_register(1, 0x07)
        vm.set_register(2, 0x02)
        execute(vm, 0x8127)
        assert vm.get_register(1) == 0xFB
        assert vm.get_register(0xF) == 0

    def test_shl(self, vm):
        vm.set_register(1, 0x81)
        execute(vm, 0x812E)
        assert vm.get_register(1) == 0x02
        assert vm.get_register(0xF) == 1

    def test_shl_no_flag(self, vm):
        vm.set_register(1, 0x41)
        execute(vm, 0x812E)
        assert vm.get_register(1) == 0x82
        assert vm.get_register(0xF) == 0


class TestRandom:
    """CXNN with an injected generator."""

    def test_masked(self, vm):
        execute(vm, 0xC10F)
        assert vm.get_register(1) & 0xF0 == 0

    def test_mask_zero(self, vm):
        execute(vm, 0xC100)
        assert vm.get_register(1) == 0

    def test_seed_is_deterministic(self):
        a = Chip8(seed=99)
        b = Chip8(seed=99)
        values_a, values_b = [], []
        for _ in range(8):
            a.set_pc(START_ADDR)
            b.set_pc(START_ADDR)
            execute(a, 0xC1FF)
            execute(b, 0xC1FF)
            values_a.append(a.get_register(1))
            values_b.append(b.get_register(1))
        assert values_a == values_b

    def test_injected_generator(self):
        class FixedBits:
            def getrandbits(self, k):
                return 0xA5

        vm = Chip8(rng=FixedBits())
        execute(vm, 0xC30F)
        assert vm.get_register(3) == 0x05


class TestIndexAndTimers:
    """ANNN, FX07, FX15, FX18, FX1E, FX29."""

    def test_ld_i(self, vm):
        execute(vm, 0xA123)
        assert vm.get_index_register() == 0x123

    def test_add_i(self, vm):
        vm.set_index_register(0x100)
        vm.set_register(2, 0x20)
        execute(vm, 0xF21E)
        assert vm.get_index_register() == 0x120
        assert vm.get_register(0xF) == 0

    def test_add_i_wraps_16_bits(self, vm):
        vm.set_index_register(0xFFFF)
        vm.set_register(2, 0x02)
        execute(vm, 0xF21E)
        assert vm.get_index_register() == 0x0001

    def test_font_address(self, vm):
        vm.set_register(3, 0xA)
        execute(vm, 0xF329)
        assert vm.get_index_register() == 50

    def test_delay_timer_roundtrip(self, vm):
        vm.set_register(1, 30)
        execute(vm, 0xF115)
        assert vm.get_delay_timer() == 30
        execute(vm, 0xF207)
        assert vm.get_register(2) == 30

    def test_sound_timer(self, vm):
        vm.set_register(1, 9)
        execute(vm, 0xF118)
        assert vm.get_sound_timer() == 9


class TestMemory:
    """FX33, FX55, FX65."""

    def test_bcd(self, vm):
        vm.set_register(5, 254)
        vm.set_index_register(0x300)
        execute(vm, 0xF533)
        assert [vm.get_ram_value(0x300 + i) for i in range(3)] == [2, 5, 4]

    def test_bcd_small(self, vm):
        vm.set_register(5, 7)
        vm.set_index_register(0x300)
        execute(vm, 0xF533)
        assert [vm.get_ram_value(0x300 + i) for i in range(3)] == [0, 0, 7]

    def test_bcd_past_end_of_memory(self, vm):
        vm.set_index_register(0xFFE)
        with pytest.raises(MemoryIndexOutOfBounds):
            execute(vm, 0xF533)
        assert vm.get_ram_value(0xFFE) == 0
        assert vm.get_pc() == START_ADDR

    def test_store_regs_inclusive(self, vm):
        for i in range(4):
            vm.set_register(i, 0x10 + i)
        vm.set_index_register(0x300)
        execute(vm, 0xF255)
        assert [vm.get_ram_value(0x300 + i) for i in range(4)] == [0x10, 0x11, 0x12, 0x00]
        assert vm.get_index_register() == 0x300

    def test_load_regs_inclusive(self, vm):
        for i in range(4):
            vm.set_ram_value(0x300 + i, 0x20 + i)
        vm.set_index_register(0x300)
        execute(vm, 0xF265)
        assert [vm.get_register(i) for i in range(4)] == [0x20, 0x21, 0x22, 0x00]

    def test_store_all_registers(self, vm):
        for i in range(16):
            vm.set_register(i, i * 3)
        vm.set_index_register(0x400)
        execute(vm, 0xFF55)
        assert [vm.get_ram_value(0x400 + i) for i in range(16)] == [i * 3 for i in range(16)]

    def test_store_past_end_is_atomic(self, vm):
        for i in range(16):
            vm.set_register(i, 0xEE)
        vm.set_index_register(0xFF8)
        with pytest.raises(MemoryIndexOutOfBounds):
            execute(vm, 0xFF55)
        assert all(vm.get_ram_value(a) == 0 for a in range(0xFF8, 0x1000))

    def test_load_past_end_is_atomic(self, vm):
        vm.set_index_register(0xFFF)
        vm.set_register(0, 0x42)
        with pytest.raises(MemoryIndexOutOfBounds):
            execute(vm, 0xF165)
        assert vm.get_register(0) == 0x42


class TestWaitKey:
    """FX0A busy-wait replay."""

    def test_no_key_rewinds(self, vm):
        vm.load([0xF5, 0x0A])
        vm.set_register(5, 0x77)
        for _ in range(3):
            vm.tick()
            assert vm.get_pc() == START_ADDR
        assert vm.get_register(5) == 0x77

    def test_lowest_key_wins(self, vm):
        vm.load([0xF5, 0x0A])
        vm.keypress(9, True)
        vm.keypress(3, True)
        vm.tick()
        assert vm.get_register(5) == 3
        assert vm.get_pc() == START_ADDR + 2


class TestUnimplemented:
    """Words with no instruction form."""

    def test_raises_with_opcode(self, vm):
        with pytest.raises(UnimplementedOpcode) as excinfo:
            execute(vm, 0x8AB8)
        assert excinfo.value.opcode == 0x8AB8

    def test_state_untouched(self, vm):
        with pytest.raises(UnimplementedOpcode):
            execute(vm, 0xFFFF)
        assert vm.get_pc() == START_ADDR
        assert vm.get_cycle_count() == 0
