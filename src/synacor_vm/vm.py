"""SynacorVM: Run loop and lifecycle for the Synacor virtual machine.

This module implements the fetch-decode-execute pipeline:
    MEMORY → FETCH → DECODE → INSTRUCTION → REGISTRY → EXECUTE → STATE

and the lifecycle that drives it:

    Initialized ──run()──► Running ──halt / ret on empty stack──► Halted
                              │  ▲
              in, no input    │  │ run() after add_input()
                              ▼  │
                         WaitingForInput

    Running ──fault / cycle ceiling──► Errored(message)

Halted and Errored are terminal: run() on a terminal machine executes
nothing and returns the terminal state unchanged.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .decoder import Decoder, Instruction
from .disassembler import format_instruction
from .image import parse_image, read_image
from .registry import OpcodeRegistry, get_registry
from .state import (
    MAX_CYCLES,
    MAX_WORD,
    Errored,
    ExecutionState,
    Halted,
    Initialized,
    MachineState,
    Running,
    create_initial_state,
)


logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number after the instruction executed
        instruction: Decoded instruction (None if decode failed)
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
        error: Error message if the cycle faulted
    """
    cycle: int
    instruction: Optional[Instruction]
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class SynacorVM:
    """Synacor virtual machine.

    Attributes:
        decoder: Decoder instance for instruction fetch
        registry: OpcodeRegistry with the verified primitives
        state: Current machine state (None until an image is loaded)
        execution_state: Current lifecycle state
        trace: Execution trace entries (only filled when record_trace is set)
        max_cycles: Instructions allowed before the machine is errored
        record_trace: Whether step() records trace entries
    """

    DEFAULT_MAX_CYCLES = MAX_CYCLES

    def __init__(self, max_cycles: int = DEFAULT_MAX_CYCLES, record_trace: bool = False):
        """Initialize the VM.

        Args:
            max_cycles: Cycle ceiling (safety limit)
            record_trace: Keep a trace entry per executed cycle
        """
        self.decoder = Decoder()
        self.registry: OpcodeRegistry = get_registry()
        self.state: Optional[MachineState] = None
        self.execution_state: ExecutionState = Initialized()
        self.trace: List[ExecutionTraceEntry] = []
        self.max_cycles = max_cycles
        self.record_trace = record_trace

    # =========================================================================
    # Loading
    # =========================================================================

    def load_image(self, image: Sequence[int]) -> None:
        """Load a program image from a word sequence.

        Args:
            image: Words to place at address 0 onwards
        """
        self.state = create_initial_state(image)
        self.execution_state = Initialized()
        self.trace = []
        logger.debug("Loaded image of %d words", len(image))

    def load_bytes(self, data: bytes) -> None:
        """Load a program image from raw little-endian bytes."""
        self.load_image(parse_image(data))

    def load_file(self, path: Union[str, Path]) -> None:
        """Load a program image from a file."""
        self.load_image(read_image(path))

    # =========================================================================
    # Execution
    # =========================================================================

    def run(self) -> ExecutionState:
        """Run until the machine halts, errors, or waits for input.

        Returns:
            The resulting execution state

        Raises:
            RuntimeError: If no image loaded
        """
        if self.state is None:
            raise RuntimeError("No program loaded")

        if self.execution_state.is_terminal:
            logger.warning("run() called on a %s machine; nothing executed", self.execution_state.name)
            return self.execution_state

        self._transition(Running())
        while isinstance(self.execution_state, Running):
            self.step()

        return self.execution_state

    def step(self) -> ExecutionState:
        """Execute a single instruction cycle.

        Performs: CEILING CHECK → DECODE → COUNT → EXECUTE

        Returns:
            The execution state after the cycle

        Raises:
            RuntimeError: If no image loaded
        """
        if self.state is None:
            raise RuntimeError("No program loaded")

        if self.execution_state.is_terminal:
            return self.execution_state

        state = self.state
        pre_state = state.snapshot() if self.record_trace else None

        # Safety limit: the pending instruction does not execute
        if state.cycle_count >= self.max_cycles:
            self._fault("reached max cycles", pre_state)
            return self.execution_state

        # DECODE
        result = self.decoder.decode(state.memory, state.ip)
        if not result.valid:
            self._fault(result.error, pre_state)
            return self.execution_state

        # EXECUTE
        state.ip = result.next_ip
        state.cycle_count += 1
        outcome = self.registry.execute(state, result.instruction)

        error = None
        if outcome is not None:
            if isinstance(outcome, Errored):
                error = outcome.message
            self._transition(outcome)
        elif not isinstance(self.execution_state, Running):
            # Single-stepping outside run()
            self._transition(Running())

        if self.record_trace:
            self.trace.append(ExecutionTraceEntry(
                cycle=state.cycle_count,
                instruction=result.instruction,
                pre_state=pre_state,
                post_state=state.snapshot(),
                error=error,
            ))

        return self.execution_state

    def _fault(self, message: str, pre_state: Optional[dict]) -> None:
        self._transition(Errored(message))
        if self.record_trace:
            self.trace.append(ExecutionTraceEntry(
                cycle=self.state.cycle_count,
                instruction=None,
                pre_state=pre_state,
                post_state=self.state.snapshot(),
                error=message,
            ))

    def _transition(self, new_state: ExecutionState) -> None:
        if new_state == self.execution_state:
            return
        if isinstance(new_state, Errored):
            logger.info("Machine errored at ip=%d after %d cycles: %s",
                        self.state.ip, self.state.cycle_count, new_state.message)
        else:
            logger.debug("%s -> %s (ip=%d, cycles=%d)", self.execution_state.name,
                         new_state.name, self.state.ip, self.state.cycle_count)
        self.execution_state = new_state

    # =========================================================================
    # I/O
    # =========================================================================

    def add_input(self, word: int) -> None:
        """Queue one input word for the `in` opcode.

        Raises:
            RuntimeError: If no image loaded
            ValueError: If the word is not a 15-bit value
        """
        if self.state is None:
            raise RuntimeError("No program loaded")
        if not 0 <= word <= MAX_WORD:
            raise ValueError(f"Input word out of range: {word}")
        self.state.input_queue.append(word)

    def add_input_line(self, line: str) -> None:
        """Queue a line of text: one word per character, then a newline.

        The whole line is checked first; a rejected line queues nothing.

        Raises:
            RuntimeError: If no image loaded
            ValueError: If a character's code is not a 15-bit value
        """
        if self.state is None:
            raise RuntimeError("No program loaded")
        words = [ord(char) for char in line + "\n"]
        for char, word in zip(line, words):
            if word > MAX_WORD:
                raise ValueError(f"Input character out of range: {char!r} ({word})")
        self.state.input_queue.extend(words)

    def get_output(self) -> str:
        """Drain pending output.

        Returns:
            Output produced since the last call (cleared on read)
        """
        if self.state is None:
            return ""
        text = "".join(self.state.output)
        self.state.output.clear()
        return text

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_state(self) -> ExecutionState:
        return self.execution_state

    def get_cycle_count(self) -> int:
        """Get number of executed cycles."""
        if self.state is None:
            return 0
        return self.state.cycle_count

    def get_ip(self) -> int:
        """Get current instruction pointer."""
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.ip

    def get_register(self, index: int) -> int:
        """Get value of a register.

        Args:
            index: Register index (0-7)
        """
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        """Get all register values keyed R0-R7."""
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.dump_registers()

    def read_memory(self, address: int) -> int:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.read_memory(address)

    def get_stack(self) -> List[int]:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return list(self.state.stack)

    def is_halted(self) -> bool:
        return isinstance(self.execution_state, Halted)

    def is_terminal(self) -> bool:
        return self.execution_state.is_terminal

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("SYNACOR VM EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            if entry.instruction is not None:
                print(f"  Instruction: {format_instruction(entry.instruction)}")

            pre_regs = entry.pre_state.get("registers", {})
            post_regs = entry.post_state.get("registers", {})
            changes = []
            for reg in pre_regs:
                if pre_regs[reg] != post_regs.get(reg, pre_regs[reg]):
                    changes.append(f"{reg}: {pre_regs[reg]} → {post_regs[reg]}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            pre_ip = entry.pre_state.get("ip", 0)
            post_ip = entry.post_state.get("ip", 0)
            if post_ip != pre_ip + (entry.instruction.size if entry.instruction else 0):
                print(f"  IP: {pre_ip} → {post_ip}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        if self.state:
            print(f"  Registers: {self.dump_registers()}")
            print(f"  Stack depth: {len(self.state.stack)}")
            print(f"  IP: {self.get_ip()}")
            print(f"  Cycles: {self.get_cycle_count()}")
            print(f"  State: {self.execution_state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "state": str(self.execution_state),
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "registers": self.dump_registers() if self.state else {},
            "stack_depth": len(self.state.stack) if self.state else 0,
            "ip": self.get_ip() if self.state else 0,
            "pending_input": len(self.state.input_queue) if self.state else 0,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
