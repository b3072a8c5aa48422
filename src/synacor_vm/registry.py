"""OpcodeRegistry: Verified opcode primitives for the Synacor VM.

Each of the 22 opcodes maps to one primitive registered at construction.
The registry is frozen afterwards, so the instruction set cannot change
at runtime.

Registry (opcode: mnemonic):
    0 halt   1 set    2 push   3 pop    4 eq     5 gt
    6 jmp    7 jt     8 jf     9 add   10 mult  11 mod
   12 and   13 or    14 not   15 rmem  16 wmem  17 call
   18 ret   19 out   20 in    21 noop

Each primitive has the shape (MachineState, Instruction) -> Optional[ExecutionState].
It mutates the state in place and returns None to keep running, or the
state the machine moves to (Halted, Errored, WaitingForInput). When a
primitive runs, state.ip already points past the instruction.
"""

from typing import Callable, Dict, Optional

from .decoder import Instruction, Literal, Operand, Register
from .state import (
    MAX_WORD,
    MODULUS,
    Errored,
    ExecutionState,
    Halted,
    MachineState,
    WaitingForInput,
)


Primitive = Callable[[MachineState, Instruction], Optional[ExecutionState]]


class MachineFault(Exception):
    """Raised inside a primitive; execute() turns it into Errored."""


class OpcodeRegistry:
    """Verified registry of opcode primitives.

    Attributes:
        _primitives: Dictionary mapping opcodes to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all opcode primitives."""
        self._primitives: Dict[int, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all opcode primitives."""
        # Control
        self.register(0, self._op_halt)
        self.register(6, self._op_jmp)
        self.register(7, self._op_jt)
        self.register(8, self._op_jf)
        self.register(17, self._op_call)
        self.register(18, self._op_ret)
        self.register(21, self._op_noop)

        # Registers & stack
        self.register(1, self._op_set)
        self.register(2, self._op_push)
        self.register(3, self._op_pop)

        # Comparison
        self.register(4, self._op_eq)
        self.register(5, self._op_gt)

        # Arithmetic
        self.register(9, self._op_add)
        self.register(10, self._op_mult)
        self.register(11, self._op_mod)

        # Bitwise
        self.register(12, self._op_and)
        self.register(13, self._op_or)
        self.register(14, self._op_not)

        # Memory
        self.register(15, self._op_rmem)
        self.register(16, self._op_wmem)

        # I/O
        self.register(19, self._op_out)
        self.register(20, self._op_in)

    def register(self, opcode: int, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            opcode: Opcode number
            handler: Function that takes (state, instruction) and returns
                the next execution state or None

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If opcode already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if opcode in self._primitives:
            raise ValueError(f"Primitive already registered: {opcode}")
        self._primitives[opcode] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_opcodes(self) -> set:
        """Get set of all registered opcodes."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """Execute a registered primitive.

        Args:
            state: Machine state, mutated in place
            instruction: Decoded instruction

        Returns:
            The state the machine moves to, or None to keep running

        Raises:
            KeyError: If opcode not in registry
        """
        if instruction.opcode not in self._primitives:
            raise KeyError(f"Unknown opcode: {instruction.opcode}")

        handler = self._primitives[instruction.opcode]
        try:
            return handler(state, instruction)
        except MachineFault as e:
            return Errored(str(e))

    # =========================================================================
    # Control Primitives
    # =========================================================================

    def _op_halt(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """halt - Stop execution."""
        return Halted()

    def _op_jmp(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """jmp a - Jump to a."""
        (target,) = instruction.operands
        state.ip = self._read(state, target)
        return None

    def _op_jt(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """jt a b - Jump to b if a is nonzero."""
        condition, target = instruction.operands
        if self._read(state, condition) != 0:
            state.ip = self._read(state, target)
        return None

    def _op_jf(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """jf a b - Jump to b if a is zero."""
        condition, target = instruction.operands
        if self._read(state, condition) == 0:
            state.ip = self._read(state, target)
        return None

    def _op_call(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """call a - Push the address of the next instruction, jump to a."""
        (target,) = instruction.operands
        destination = self._read(state, target)
        state.push(state.ip)
        state.ip = destination
        return None

    def _op_ret(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """ret - Pop an address and jump to it.

        An empty stack means there is no caller left: the program is done.
        """
        address = state.pop()
        if address is None:
            return Halted()
        state.ip = address
        return None

    def _op_noop(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """noop - No operation."""
        return None

    # =========================================================================
    # Register & Stack Primitives
    # =========================================================================

    def _op_set(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """set a b - Store b in register a."""
        dest, src = instruction.operands
        self._write(state, dest, self._read(state, src))
        return None

    def _op_push(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """push a - Push a onto the stack."""
        (src,) = instruction.operands
        state.push(self._read(state, src))
        return None

    def _op_pop(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """pop a - Pop the top of the stack into a."""
        (dest,) = instruction.operands
        value = state.pop()
        if value is None:
            raise MachineFault("attempted to pop an empty stack")
        self._write(state, dest, value)
        return None

    # =========================================================================
    # Comparison Primitives
    # =========================================================================

    def _op_eq(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """eq a b c - a = 1 if b == c else 0."""
        dest, a, b = instruction.operands
        self._write(state, dest, int(self._read(state, a) == self._read(state, b)))
        return None

    def _op_gt(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """gt a b c - a = 1 if b > c else 0."""
        dest, a, b = instruction.operands
        self._write(state, dest, int(self._read(state, a) > self._read(state, b)))
        return None

    # =========================================================================
    # Arithmetic Primitives
    # =========================================================================

    def _op_add(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """add a b c - a = (b + c) mod 32768."""
        dest, a, b = instruction.operands
        self._write(state, dest, (self._read(state, a) + self._read(state, b)) % MODULUS)
        return None

    def _op_mult(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """mult a b c - a = (b * c) mod 32768."""
        dest, a, b = instruction.operands
        self._write(state, dest, (self._read(state, a) * self._read(state, b)) % MODULUS)
        return None

    def _op_mod(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """mod a b c - a = b mod c."""
        dest, a, b = instruction.operands
        divisor = self._read(state, b)
        if divisor == 0:
            raise MachineFault("division by zero")
        self._write(state, dest, (self._read(state, a) % divisor) % MODULUS)
        return None

    # =========================================================================
    # Bitwise Primitives
    # =========================================================================

    def _op_and(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """and a b c - a = b & c."""
        dest, a, b = instruction.operands
        self._write(state, dest, self._read(state, a) & self._read(state, b))
        return None

    def _op_or(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """or a b c - a = b | c."""
        dest, a, b = instruction.operands
        self._write(state, dest, self._read(state, a) | self._read(state, b))
        return None

    def _op_not(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """not a b - a = 15-bit complement of b."""
        dest, src = instruction.operands
        self._write(state, dest, (self._read(state, src) ^ MAX_WORD) & MAX_WORD)
        return None

    # =========================================================================
    # Memory Primitives
    # =========================================================================

    def _op_rmem(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """rmem a b - a = memory[b].

        The word is copied as stored; image data words above 32767 are not
        masked.
        """
        dest, address = instruction.operands
        self._write(state, dest, self._load(state, self._read(state, address)))
        return None

    def _op_wmem(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """wmem a b - memory[a] = b.

        Any address may be written, including the code being executed.
        """
        address, src = instruction.operands
        self._store(state, self._read(state, address), self._read(state, src))
        return None

    # =========================================================================
    # I/O Primitives
    # =========================================================================

    def _op_out(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """out a - Append the character with code a (low 8 bits) to output."""
        (src,) = instruction.operands
        state.output.append(chr(self._read(state, src) & 0xFF))
        return None

    def _op_in(self, state: MachineState, instruction: Instruction) -> Optional[ExecutionState]:
        """in a - Read one input word into a.

        With nothing queued, rewind to the start of this instruction and
        block; the next run() decodes and retries it.
        """
        (dest,) = instruction.operands
        if not state.input_queue:
            state.ip = instruction.address
            return WaitingForInput()
        self._write(state, dest, state.input_queue.popleft())
        return None

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _read(self, state: MachineState, operand: Operand) -> int:
        """Resolve an operand to its current value."""
        if isinstance(operand, Literal):
            return operand.value
        try:
            return state.get_register(operand.index)
        except IndexError as e:
            raise MachineFault(str(e))

    def _write(self, state: MachineState, operand: Operand, value: int) -> None:
        """Store a value into a destination operand (must be a register)."""
        if not isinstance(operand, Register):
            raise MachineFault("attempted to write to a literal")
        try:
            state.set_register(operand.index, value)
        except IndexError as e:
            raise MachineFault(str(e))

    def _load(self, state: MachineState, address: int) -> int:
        try:
            return state.read_memory(address)
        except IndexError as e:
            raise MachineFault(str(e))

    def _store(self, state: MachineState, address: int, value: int) -> None:
        try:
            state.write_memory(address, value)
        except IndexError as e:
            raise MachineFault(str(e))


# Singleton registry instance
_registry: Optional[OpcodeRegistry] = None


def get_registry() -> OpcodeRegistry:
    """Get the singleton opcode registry instance.

    Returns:
        The frozen OpcodeRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = OpcodeRegistry()
    return _registry
