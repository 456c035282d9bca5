"""CHIP-8 Interactive Demo.

A Gradio web interface that drives the CHIP-8 interpreter and renders
its framebuffer.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Upload a ROM or pick a built-in example
    - Hold any of the 16 keys while the machine runs
    - Run a number of 60 Hz frames and see the screen
    - Inspect registers, timers and the execution trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
import numpy as np
from chip8_vm import Chip8, Chip8Error, KEYMAP
from chip8_vm.decode import disassemble
from chip8_vm.state import SCREEN_WIDTH, SCREEN_HEIGHT


SCALE = 10
TICKS_PER_FRAME = 5


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    # Draws the font glyphs 0-7 across the top row
    "Hex digits": bytes([
        0x60, 0x00,  # V0 = 0        digit
        0x61, 0x01,  # V1 = 1        x
        0x62, 0x01,  # V2 = 1        y
        0xF0, 0x29,  # I = glyph(V0)
        0xD1, 0x25,  # draw 8x5 at (V1, V2)
        0x70, 0x01,  # V0 += 1
        0x71, 0x08,  # V1 += 8
        0x30, 0x08,  # skip if V0 == 8
        0x12, 0x06,  # jump 0x206
        0x12, 0x12,  # halt loop
    ]),
    # Shows the pressed key's glyph; FX0A replays until a key is down
    "Echo key": bytes([
        0x00, 0xE0,  # clear
        0xF3, 0x0A,  # V3 = wait for key
        0xF3, 0x29,  # I = glyph(V3)
        0x64, 0x1C,  # V4 = 28
        0x65, 0x0D,  # V5 = 13
        0xD4, 0x55,  # draw at (V4, V5)
        0x12, 0x0C,  # halt loop
    ]),
    # Stores the BCD of 123 at 0x300 and draws the three digits
    "BCD digits": bytes([
        0x60, 0x7B,  # V0 = 123
        0xA3, 0x00,  # I = 0x300
        0xF0, 0x33,  # BCD V0
        0xF2, 0x65,  # V0..V2 = mem[I..I+2]
        0x63, 0x10,  # V3 = 16   x
        0x64, 0x0C,  # V4 = 12   y
        0xF0, 0x29,  # I = glyph(V0)
        0xD3, 0x45,  # draw
        0x73, 0x06,  # V3 += 6
        0xF1, 0x29,  # I = glyph(V1)
        0xD3, 0x45,  # draw
        0x73, 0x06,  # V3 += 6
        0xF2, 0x29,  # I = glyph(V2)
        0xD3, 0x45,  # draw
        0x12, 0x1C,  # halt loop
    ]),
}


# =============================================================================
# Execution Functions
# =============================================================================

def render_display(display: list) -> np.ndarray:
    """Scale the framebuffer into an RGB image."""
    pixels = np.array(display, dtype=np.uint8).reshape(SCREEN_HEIGHT, SCREEN_WIDTH) * 255
    pixels = np.kron(pixels, np.ones((SCALE, SCALE), dtype=np.uint8))
    return np.stack([pixels] * 3, axis=-1)


def run_program(rom_file, example: str, held_keys: list, frames: int, seed: float) -> tuple:
    """Load a ROM, hold the selected keys and run for some frames.

    Returns:
        Tuple of (image, summary_text, trace_text, registers_text)
    """
    blank = render_display([False] * (SCREEN_WIDTH * SCREEN_HEIGHT))

    if rom_file is not None:
        rom = Path(rom_file if isinstance(rom_file, str) else rom_file.name).read_bytes()
    else:
        rom = EXAMPLE_PROGRAMS.get(example, b"")
    if not rom:
        return blank, "Error: No program provided", "", ""

    vm = Chip8(seed=int(seed), trace=True)
    error_msg = None
    try:
        vm.load(rom)
        for label in held_keys:
            vm.keypress(KEYMAP[label.split()[0].lower()], True)
        for _ in range(int(frames)):
            for _ in range(TICKS_PER_FRAME):
                vm.tick()
            vm.tick_timers()
    except Chip8Error as e:
        error_msg = str(e)

    summary = vm.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"ROM size: {summary['program_size']} bytes",
        f"Cycles: {summary['cycles']}",
        f"PC: 0x{summary['pc']:04X}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    summary_text = "\n".join(summary_lines)

    trace_lines = ["EXECUTION TRACE", "=" * 60]
    recent = vm.trace[-100:]  # Limit to the last 100 entries
    if len(vm.trace) > len(recent):
        trace_lines.append(f"... ({len(vm.trace) - len(recent)} earlier entries)")
    for entry in recent:
        line = f"[{entry.cycle:>6}] {entry.pc:04X}: {entry.opcode:04X}  {disassemble(entry.opcode)}"
        if entry.error:
            line += f"  ERROR: {entry.error}"
        trace_lines.append(line)
    trace_text = "\n".join(trace_lines)

    reg_lines = ["REGISTERS", "=" * 30]
    for name, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {name}: 0x{value:02X} ({value:>3}){marker}")
    reg_lines.append("")
    reg_lines.append(f"  I:  0x{summary['index']:04X}")
    reg_lines.append(f"  SP: {summary['sp']}")
    reg_lines.append(f"  DT: {summary['delay_timer']}")
    reg_lines.append(f"  ST: {summary['sound_timer']}")
    registers_text = "\n".join(reg_lines)

    return render_display(vm.get_display()), summary_text, trace_text, registers_text


def key_labels() -> list:
    """Checkbox labels such as "Q (4)" in keypad order."""
    return [f"{k.upper()} ({v:X})" for k, v in KEYMAP.items()]


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP-8 Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP-8 Virtual Machine

        A fetch-decode-execute interpreter with 4KB memory, sixteen registers,
        a 16-level stack and a 64x32 monochrome display.

        **Pipeline**: `fetch -> decode -> key -> registry -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex digits",
                    label="Built-in Example"
                )
                rom_input = gr.File(label="ROM file (overrides example)")

                gr.Markdown("### Settings")

                held_keys = gr.CheckboxGroup(
                    choices=key_labels(),
                    label="Held keys",
                    info="Keyboard key (CHIP-8 key)"
                )
                with gr.Row():
                    frames = gr.Slider(
                        minimum=1,
                        maximum=600,
                        value=60,
                        step=1,
                        label="Frames (60 Hz)"
                    )
                    seed = gr.Number(value=0, precision=0, label="Random seed")

                run_button = gr.Button("Run", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Image(label="Display", type="numpy", interactive=False)
                with gr.Row():
                    summary_output = gr.Textbox(label="Summary", lines=8, interactive=False)
                    registers_output = gr.Textbox(label="Registers", lines=8, interactive=False)
                trace_output = gr.Textbox(label="Execution Trace", lines=20, interactive=False)

        with gr.Accordion("Keypad layout", open=False):
            gr.Markdown("""
            | Keyboard | CHIP-8 |
            |----------|--------|
            | `1 2 3 4` | `1 2 3 C` |
            | `Q W E R` | `4 5 6 D` |
            | `A S D F` | `7 8 9 E` |
            | `Z X C V` | `A 0 B F` |
            """)

        run_button.click(
            fn=run_program,
            inputs=[rom_input, example_dropdown, held_keys, frames, seed],
            outputs=[screen_output, summary_output, trace_output, registers_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
