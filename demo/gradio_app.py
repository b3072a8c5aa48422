"""Synacor VM Interactive Demo.

A Gradio web interface for playing a program image in the browser.

Usage:
    cd /path/to/synacor-vm
    python demo/gradio_app.py

Features:
    - Upload a program image (.bin)
    - Type input lines; output appears after each input wait
    - See registers, stack depth, cycle count and machine state
    - Disassembly listing of the loaded image
"""

import sys
from pathlib import Path
from typing import Optional, Tuple

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from synacor_vm import SynacorVM, WaitingForInput, disassemble
from synacor_vm.image import read_image


LISTING_LIMIT = 500


# =============================================================================
# Session Functions
# =============================================================================

def format_status(vm: Optional[SynacorVM]) -> str:
    """Render machine state and registers for the status panel."""
    if vm is None or vm.state is None:
        return "No image loaded"

    summary = vm.get_summary()
    lines = [
        "MACHINE STATE",
        "=" * 30,
        f"State:  {summary['state']}",
        f"Cycles: {summary['cycles']}",
        f"IP:     {summary['ip']}",
        f"Stack:  {summary['stack_depth']} words",
        "",
        "REGISTERS",
        "-" * 30,
    ]
    for reg, value in summary["registers"].items():
        marker = " *" if value != 0 else ""
        lines.append(f"  {reg}: {value:>6}{marker}")
    return "\n".join(lines)


def create_session(image_path: str, max_cycles: int = SynacorVM.DEFAULT_MAX_CYCLES) -> Tuple[SynacorVM, str]:
    """Load an image and run it up to the first input wait.

    Returns:
        Tuple of (vm, output so far)
    """
    vm = SynacorVM(max_cycles=int(max_cycles))
    vm.load_file(image_path)
    vm.run()
    return vm, vm.get_output()


def submit_line(vm: Optional[SynacorVM], line: str) -> Tuple[Optional[SynacorVM], str]:
    """Feed one input line and resume the machine.

    Returns:
        Tuple of (vm, new output); a finished machine only reports its state
    """
    if vm is None or vm.state is None:
        return vm, "Error: No image loaded\n"

    if not isinstance(vm.get_state(), WaitingForInput):
        return vm, f"[machine is {vm.get_state()}]\n"

    try:
        vm.add_input_line(line)
    except ValueError as e:
        return vm, f"Bad input: {e}\n"
    vm.run()
    output = vm.get_output()
    if vm.is_terminal():
        output += f"\n[machine is {vm.get_state()}]\n"
    return vm, output


def list_image(image_path: str) -> str:
    """Disassemble the first LISTING_LIMIT instructions of an image."""
    lines = []
    for line in disassemble(read_image(image_path)):
        lines.append(line)
        if len(lines) >= LISTING_LIMIT:
            lines.append("...")
            break
    return "\n".join(lines)


# =============================================================================
# Gradio Handlers
# =============================================================================

def on_load(image_file, max_cycles):
    if image_file is None:
        return None, "Error: No image provided", "No image loaded", ""
    path = image_file if isinstance(image_file, str) else image_file.name
    try:
        vm, output = create_session(path, max_cycles)
    except (OSError, ValueError) as e:
        return None, f"Error: {e}", "No image loaded", ""
    return vm, output, format_status(vm), list_image(path)


def on_submit(vm, line, transcript):
    vm, output = submit_line(vm, line)
    transcript = (transcript or "") + f"> {line}\n" + output
    return vm, transcript, format_status(vm), ""


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="Synacor VM Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # Synacor VM

        A 16-bit virtual machine with 8 registers, 32768 words of memory,
        an unbounded stack and character I/O. Upload a program image, then
        type commands whenever the machine waits for input.
        """)

        session = gr.State(None)

        with gr.Row():
            with gr.Column(scale=1):
                image_input = gr.File(label="Program Image (.bin)", type="filepath")
                max_cycles = gr.Slider(
                    minimum=10_000,
                    maximum=50_000_000,
                    value=SynacorVM.DEFAULT_MAX_CYCLES,
                    step=10_000,
                    label="Max Cycles"
                )
                load_button = gr.Button("Load & Run", variant="primary")
                status_output = gr.Textbox(
                    label="Status",
                    lines=16,
                    interactive=False
                )

            with gr.Column(scale=3):
                transcript = gr.Textbox(
                    label="Output",
                    lines=24,
                    max_lines=40,
                    interactive=False
                )
                command_input = gr.Textbox(
                    label="Input",
                    placeholder="Type a line and press Enter..."
                )

        with gr.Accordion("Disassembly", open=False):
            listing_output = gr.Textbox(label="Listing", lines=20, interactive=False)

        load_button.click(
            fn=on_load,
            inputs=[image_input, max_cycles],
            outputs=[session, transcript, status_output, listing_output]
        )

        command_input.submit(
            fn=on_submit,
            inputs=[session, command_input, transcript],
            outputs=[session, transcript, status_output, command_input]
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
