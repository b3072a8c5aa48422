"""Disassembler: offline listing of a memory image.

Walks memory with the same Decoder the VM uses, one instruction at a
time, without executing anything. Line format:

    <address>: <mnemonic>(<args>)

Literals render as bare decimals and registers as #<index>, e.g.
``5: add(#0, #1, 4)``. An undecodable word renders as
``<address>: ERROR(<message>)`` and the listing resumes at the next word.
"""

from typing import Iterator, Optional, Sequence

from .decoder import Decoder, Instruction, Literal, Operand


def format_operand(operand: Operand) -> str:
    if isinstance(operand, Literal):
        return str(operand.value)
    return f"#{operand.index}"


def format_instruction(instruction: Instruction) -> str:
    args = ", ".join(format_operand(op) for op in instruction.operands)
    return f"{instruction.address}: {instruction.mnemonic}({args})"


def disassemble(memory: Sequence[int], start: int = 0, end: Optional[int] = None) -> Iterator[str]:
    """Yield one listing line per instruction in memory[start:end].

    Args:
        memory: Word-addressable memory or image
        start: First address to list
        end: Address to stop at (defaults to the end of memory)
    """
    decoder = Decoder()
    stop = len(memory) if end is None else min(end, len(memory))
    address = start

    while address < stop:
        result = decoder.decode(memory, address)
        if result.valid:
            yield format_instruction(result.instruction)
            address = result.next_ip
        else:
            yield f"{address}: ERROR({result.error})"
            address += 1
