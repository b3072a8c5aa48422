"""MachineState: Mutable machine state for the Synacor VM.

This module defines the storage the executor operates on, plus the
lifecycle values that drive the run loop.

State Components:
    - Memory: 32768 words, addresses 0-32767 (image first, zero-filled after)
    - Registers: R0-R7 (8 general-purpose 15-bit words)
    - Stack: Unbounded LIFO of words
    - IP: Instruction pointer
    - Cycle count: Total executed instructions
    - Input queue: FIFO of words waiting for the `in` opcode
    - Output: Characters waiting to be drained by the caller

Unlike an immutable snapshot design, the state is updated in place: the
address space is 32768 words and programs run for millions of cycles.
snapshot() still provides cheap copies for the execution trace.
"""

from collections import deque
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence


# Word arithmetic
MODULUS = 32768
MAX_WORD = MODULUS - 1  # 0x7FFF, the 15-bit mask

# Address space
MEMORY_SIZE = 32768

# Operand words 32768..32775 name registers 0..7
REGISTER_COUNT = 8
REGISTER_BASE = MODULUS
REGISTER_LIMIT = REGISTER_BASE + REGISTER_COUNT

# Safety ceiling on executed instructions
MAX_CYCLES = 5_000_000

# Largest value a raw 16-bit image word can hold
MAX_RAW_WORD = 0xFFFF


# =============================================================================
# Execution States
# =============================================================================

@dataclass(frozen=True)
class ExecutionState:
    """Base class for the run loop's lifecycle states."""

    @property
    def is_terminal(self) -> bool:
        return False

    @property
    def name(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Initialized(ExecutionState):
    """Image loaded, nothing executed yet."""


@dataclass(frozen=True)
class Running(ExecutionState):
    """Inside the run loop."""


@dataclass(frozen=True)
class WaitingForInput(ExecutionState):
    """Blocked on `in` with an empty input queue; resumable."""


@dataclass(frozen=True)
class Halted(ExecutionState):
    """Normal completion (halt, or ret with an empty stack)."""

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Errored(ExecutionState):
    """Machine fault.

    Attributes:
        message: Human-readable reason for the fault
    """
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"Errored({self.message})"


# =============================================================================
# Machine State
# =============================================================================

@dataclass
class MachineState:
    """Complete mutable state of one machine.

    Attributes:
        memory: Flat word-addressable memory, always MEMORY_SIZE words
        registers: 8 register words
        stack: LIFO stack of words (top is the last element)
        ip: Instruction pointer
        cycle_count: Number of executed instructions
        input_queue: Pending input words
        output: Pending output characters
    """
    memory: List[int] = field(default_factory=lambda: [0] * MEMORY_SIZE)
    registers: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)
    stack: List[int] = field(default_factory=list)
    ip: int = 0
    cycle_count: int = 0
    input_queue: Deque[int] = field(default_factory=deque)
    output: List[str] = field(default_factory=list)

    # -------------------------------------------------------------------------
    # Registers
    # -------------------------------------------------------------------------

    def get_register(self, index: int) -> int:
        """Get value of a register.

        Args:
            index: Register index (0-7)

        Returns:
            Register value

        Raises:
            IndexError: If the register doesn't exist
        """
        if not 0 <= index < REGISTER_COUNT:
            raise IndexError(f"invalid register: {index}")
        return self.registers[index]

    def set_register(self, index: int, value: int) -> None:
        """Store a value in a register.

        Raises:
            IndexError: If the register doesn't exist
        """
        if not 0 <= index < REGISTER_COUNT:
            raise IndexError(f"invalid register: {index}")
        self.registers[index] = value

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed R0-R7."""
        return {f"R{i}": value for i, value in enumerate(self.registers)}

    # -------------------------------------------------------------------------
    # Memory
    # -------------------------------------------------------------------------

    def read_memory(self, address: int) -> int:
        if not 0 <= address < MEMORY_SIZE:
            raise IndexError(f"memory address out of range: {address}")
        return self.memory[address]

    def write_memory(self, address: int, value: int) -> None:
        if not 0 <= address < MEMORY_SIZE:
            raise IndexError(f"memory address out of range: {address}")
        self.memory[address] = value

    # -------------------------------------------------------------------------
    # Stack
    # -------------------------------------------------------------------------

    def push(self, value: int) -> None:
        self.stack.append(value)

    def pop(self) -> Optional[int]:
        """Pop the top of the stack, or None when it is empty."""
        if not self.stack:
            return None
        return self.stack.pop()

    # -------------------------------------------------------------------------
    # Tracing & validation
    # -------------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Create a copy of the current state for tracing.

        Returns:
            Dictionary with copies of registers, stack, ip and cycle count
        """
        return {
            "registers": self.dump_registers(),
            "stack": deepcopy(self.stack),
            "ip": self.ip,
            "cycle_count": self.cycle_count,
            # Memory excluded: 32768 words per entry is too much to keep
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory is exactly MEMORY_SIZE words
            - Exactly 8 registers, each holding a 16-bit word
            - IP lies inside memory
            - Cycle count is non-negative

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False

        if len(self.registers) != REGISTER_COUNT:
            return False
        for value in self.registers:
            if not isinstance(value, int) or not 0 <= value <= MAX_RAW_WORD:
                return False

        if not 0 <= self.ip < MEMORY_SIZE:
            return False

        if self.cycle_count < 0:
            return False

        return True

    def __str__(self) -> str:
        regs = " ".join(f"{k}={v}" for k, v in self.dump_registers().items())
        return f"[Cycle {self.cycle_count}] IP={self.ip} {regs} SP={len(self.stack)}"


def create_initial_state(image: Sequence[int]) -> MachineState:
    """Create initial machine state with a program image loaded at address 0.

    Args:
        image: Sequence of raw 16-bit words

    Returns:
        Fresh MachineState; addresses past the image are zero

    Raises:
        ValueError: If the image does not fit in memory or holds a word
            outside 0-65535
    """
    if len(image) > MEMORY_SIZE:
        raise ValueError(
            f"Image too large: {len(image)} words (memory holds {MEMORY_SIZE})"
        )

    memory = [0] * MEMORY_SIZE
    for address, word in enumerate(image):
        if not 0 <= word <= MAX_RAW_WORD:
            raise ValueError(f"Invalid image word at {address}: {word}")
        memory[address] = word

    return MachineState(memory=memory)
