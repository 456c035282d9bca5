"""Framebuffer operations: clear, sprite blit and text rendering."""

from typing import Sequence

from .state import Chip8State, SCREEN_WIDTH, SCREEN_HEIGHT, SCREEN_SIZE


def clear_screen(state: Chip8State) -> None:
    state.screen[:] = [False] * SCREEN_SIZE


def draw_sprite(state: Chip8State, x: int, y: int, height: int) -> bool:
    """XOR an 8-pixel-wide sprite from memory[I:I + height] onto the screen.

    The origin is taken modulo the screen size and every pixel wraps
    independently on both axes. Bits are read most significant first.

    Args:
        state: Machine state; sprite rows are read at state.index
        x: Horizontal origin (register value, any byte)
        y: Vertical origin (register value, any byte)
        height: Number of sprite rows (0-15)

    Returns:
        True if any pixel went from set to unset

    Raises:
        MemoryIndexOutOfBounds: If the sprite rows extend past memory,
            raised before the screen is touched
    """
    state.check_memory_range(state.index, height)

    x %= SCREEN_WIDTH
    y %= SCREEN_HEIGHT
    erased = False

    for row in range(height):
        sprite_byte = state.memory[state.index + row]
        screen_y = (y + row) % SCREEN_HEIGHT
        for col in range(8):
            sprite_pixel = (sprite_byte >> (7 - col)) & 0x1
            screen_x = (x + col) % SCREEN_WIDTH
            idx = screen_y * SCREEN_WIDTH + screen_x

            before = state.screen[idx]
            after = before != bool(sprite_pixel)
            if before and not after:
                erased = True
            state.screen[idx] = after

    return erased


def render_text(display: Sequence[bool], on: str = "#", off: str = ".") -> str:
    """Render a 64x32 row-major framebuffer as lines of text."""
    if len(display) != SCREEN_SIZE:
        raise ValueError(f"Expected {SCREEN_SIZE} pixels, got {len(display)}")
    rows = []
    for y in range(SCREEN_HEIGHT):
        line = display[y * SCREEN_WIDTH:(y + 1) * SCREEN_WIDTH]
        rows.append("".join(on if pixel else off for pixel in line))
    return "\n".join(rows)
