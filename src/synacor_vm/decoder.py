"""Decoder: Instruction fetch and operand classification for the Synacor VM.

Architecture:
    memory[ip] → opcode word → OPCODES table → arity → operand words → Instruction

Every raw operand word is classified exactly once, at decode time:

    0..32767      Literal(value)
    32768..32775  Register(index 0-7)
    32776..       invalid, decode fails

The decoder reads memory but never writes machine state. Failures come
back as an invalid DecodeResult carrying the message, the same way the
run loop reports every other fault.
"""

from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Sequence, Tuple, Union

from .state import MEMORY_SIZE, REGISTER_BASE, REGISTER_LIMIT


@dataclass(frozen=True)
class Literal:
    """Immediate operand."""
    value: int


@dataclass(frozen=True)
class Register:
    """Register reference operand (index 0-7)."""
    index: int


Operand = Union[Literal, Register]


class OpcodeInfo(NamedTuple):
    mnemonic: str
    arity: int


# Opcode → (mnemonic, operand count)
OPCODES: Dict[int, OpcodeInfo] = {
    0: OpcodeInfo("halt", 0),
    1: OpcodeInfo("set", 2),
    2: OpcodeInfo("push", 1),
    3: OpcodeInfo("pop", 1),
    4: OpcodeInfo("eq", 3),
    5: OpcodeInfo("gt", 3),
    6: OpcodeInfo("jmp", 1),
    7: OpcodeInfo("jt", 2),
    8: OpcodeInfo("jf", 2),
    9: OpcodeInfo("add", 3),
    10: OpcodeInfo("mult", 3),
    11: OpcodeInfo("mod", 3),
    12: OpcodeInfo("and", 3),
    13: OpcodeInfo("or", 3),
    14: OpcodeInfo("not", 2),
    15: OpcodeInfo("rmem", 2),
    16: OpcodeInfo("wmem", 2),
    17: OpcodeInfo("call", 1),
    18: OpcodeInfo("ret", 0),
    19: OpcodeInfo("out", 1),
    20: OpcodeInfo("in", 1),
    21: OpcodeInfo("noop", 0),
}


def classify_operand(word: int) -> Optional[Operand]:
    """Classify a raw operand word.

    Args:
        word: Raw 16-bit word read from memory

    Returns:
        Literal or Register, or None if the word is not a valid operand
    """
    if 0 <= word < REGISTER_BASE:
        return Literal(word)
    if REGISTER_BASE <= word < REGISTER_LIMIT:
        return Register(word - REGISTER_BASE)
    return None


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction.

    Attributes:
        opcode: Opcode number (0-21)
        operands: Classified operands, in memory order
        address: Address of the opcode word
        size: Words consumed (opcode word plus operand words)
    """
    opcode: int
    operands: Tuple[Operand, ...] = ()
    address: int = 0
    size: int = 1

    @property
    def mnemonic(self) -> str:
        return OPCODES[self.opcode].mnemonic


@dataclass
class DecodeResult:
    """Result of an instruction decode.

    Attributes:
        instruction: Decoded instruction (None if decode failed)
        valid: Whether decode succeeded
        error: Error message if decode failed
        next_ip: Address following the instruction (the failing address
            on error)
    """
    instruction: Optional[Instruction]
    valid: bool
    error: Optional[str] = None
    next_ip: int = 0


class Decoder:
    """Reads one instruction at a time out of a memory image."""

    def decode(self, memory: Sequence[int], ip: int) -> DecodeResult:
        """Decode the instruction starting at ip.

        Args:
            memory: Word-addressable memory
            ip: Address of the opcode word

        Returns:
            DecodeResult; next_ip is ip plus the instruction size when valid
        """
        if not 0 <= ip < min(len(memory), MEMORY_SIZE):
            return self._fail(f"instruction pointer out of range: {ip}", ip)

        opcode = memory[ip]
        info = OPCODES.get(opcode)
        if info is None:
            return self._fail(f"unknown opcode: {opcode}", ip)

        operands = []
        position = ip + 1
        for _ in range(info.arity):
            if position >= len(memory):
                return self._fail(f"instruction pointer out of range: {position}", ip)
            word = memory[position]
            operand = classify_operand(word)
            if operand is None:
                return self._fail(f"invalid operand word: {word}", ip)
            operands.append(operand)
            position += 1

        instruction = Instruction(
            opcode=opcode,
            operands=tuple(operands),
            address=ip,
            size=1 + info.arity,
        )
        return DecodeResult(instruction, True, next_ip=position)

    def _fail(self, error: str, ip: int) -> DecodeResult:
        return DecodeResult(None, False, error=error, next_ip=ip)
