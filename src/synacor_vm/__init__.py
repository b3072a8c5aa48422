"""synacor-vm: Fetch-decode-execute engine for the Synacor virtual architecture.

The machine has 8 registers, an unbounded stack, 32768 words of memory,
a blocking character input queue and an append-only output stream.
Words are 15-bit values; operand words 32768-32775 name registers.

Architecture:
    MEMORY -> FETCH -> DECODE -> INSTRUCTION -> REGISTRY -> EXECUTE -> STATE
               |         |           |             |           |
              [IP]   [Decoder]  [Literal/     [Verified]  [Running/Waiting/
                                 Register]    Primitives   Halted/Errored]

Modules:
    state: MachineState and the ExecutionState lifecycle values
    decoder: Opcode table, operand classification, Decoder
    registry: Verified opcode primitives (OpcodeRegistry)
    image: Little-endian program image loading
    vm: Main SynacorVM run loop
    disassembler: Offline instruction listing
"""

__version__ = "0.1.0"

from .state import (
    MachineState,
    ExecutionState,
    Initialized,
    Running,
    WaitingForInput,
    Errored,
    Halted,
)
from .decoder import Decoder, Instruction, Literal, Register
from .registry import OpcodeRegistry
from .vm import SynacorVM
from .disassembler import disassemble

__all__ = [
    "MachineState",
    "ExecutionState",
    "Initialized",
    "Running",
    "WaitingForInput",
    "Errored",
    "Halted",
    "Decoder",
    "Instruction",
    "Literal",
    "Register",
    "OpcodeRegistry",
    "SynacorVM",
    "disassemble",
]
