"""Tests for MachineState and execution states."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from synacor_vm.state import (
    MachineState,
    create_initial_state,
    Initialized,
    Running,
    WaitingForInput,
    Errored,
    Halted,
    MEMORY_SIZE,
    MAX_CYCLES,
    REGISTER_BASE,
    REGISTER_LIMIT,
)


class TestMachineStateCreation:
    """Test MachineState initialization and defaults."""

    def test_default_state(self):
        """Default state has zeroed registers, memory and empty stack."""
        state = MachineState()
        assert state.ip == 0
        assert state.cycle_count == 0
        assert state.registers == [0] * 8
        assert state.stack == []
        assert len(state.memory) == MEMORY_SIZE
        assert len(state.input_queue) == 0
        assert state.output == []

    def test_create_initial_state(self):
        """create_initial_state loads the image at address 0."""
        state = create_initial_state([9, 32768, 32769, 88])
        assert state.memory[:4] == [9, 32768, 32769, 88]
        assert state.ip == 0

    def test_memory_is_zero_filled(self):
        """Addresses beyond the image exist and hold zero."""
        state = create_initial_state([21, 21])
        assert len(state.memory) == MEMORY_SIZE
        assert state.memory[2] == 0
        assert state.memory[MEMORY_SIZE - 1] == 0

    def test_oversized_image_rejected(self):
        with pytest.raises(ValueError, match="too large"):
            create_initial_state([0] * (MEMORY_SIZE + 1))

    def test_invalid_image_word_rejected(self):
        with pytest.raises(ValueError, match="Invalid image word"):
            create_initial_state([0, 70000])

    def test_constants(self):
        assert REGISTER_BASE == 32768
        assert REGISTER_LIMIT == 32776
        assert MAX_CYCLES == 5_000_000


class TestMachineStateAccessors:
    """Test register, memory and stack accessors."""

    def test_set_and_get_register(self):
        state = MachineState()
        state.set_register(3, 100)
        assert state.get_register(3) == 100

    def test_get_register_invalid(self):
        """get_register raises IndexError for an invalid register."""
        state = MachineState()
        with pytest.raises(IndexError):
            state.get_register(8)

    def test_read_memory_out_of_range(self):
        state = MachineState()
        with pytest.raises(IndexError):
            state.read_memory(MEMORY_SIZE)

    def test_write_memory(self):
        state = MachineState()
        state.write_memory(32767, 5)
        assert state.read_memory(32767) == 5

    def test_stack_is_lifo(self):
        state = MachineState()
        state.push(1)
        state.push(2)
        assert state.pop() == 2
        assert state.pop() == 1

    def test_pop_empty_returns_none(self):
        state = MachineState()
        assert state.pop() is None

    def test_dump_registers(self):
        """dump_registers returns a copy keyed R0-R7."""
        state = MachineState()
        state.set_register(0, 1)
        state.set_register(7, 2)

        regs = state.dump_registers()
        assert regs["R0"] == 1
        assert regs["R7"] == 2

        # Modifying copy doesn't affect state
        regs["R0"] = 999
        assert state.registers[0] == 1


class TestMachineStateSnapshot:
    """Test state snapshot for tracing."""

    def test_snapshot_is_copy(self):
        state = MachineState()
        state.set_register(0, 42)
        state.push(7)
        snapshot = state.snapshot()

        assert snapshot["registers"]["R0"] == 42
        assert snapshot["stack"] == [7]
        assert snapshot["ip"] == 0

        snapshot["stack"].append(99)
        assert state.stack == [7]

    def test_snapshot_excludes_memory(self):
        assert "memory" not in MachineState().snapshot()


class TestMachineStateValidation:
    """Test state validation."""

    def test_valid_state(self):
        assert MachineState().validate() is True

    def test_ip_out_of_range(self):
        state = MachineState(ip=MEMORY_SIZE)
        assert state.validate() is False

    def test_wrong_register_count(self):
        state = MachineState(registers=[0] * 7)
        assert state.validate() is False

    def test_short_memory(self):
        state = MachineState(memory=[0] * 10)
        assert state.validate() is False


class TestExecutionStates:
    """Test the lifecycle values."""

    def test_terminal_states(self):
        assert Halted().is_terminal is True
        assert Errored("boom").is_terminal is True

    def test_non_terminal_states(self):
        assert Initialized().is_terminal is False
        assert Running().is_terminal is False
        assert WaitingForInput().is_terminal is False

    def test_value_equality(self):
        assert Halted() == Halted()
        assert Errored("a") == Errored("a")
        assert Errored("a") != Errored("b")
        assert Running() != WaitingForInput()

    def test_errored_str_carries_message(self):
        assert str(Errored("unknown opcode: 22")) == "Errored(unknown opcode: 22)"
        assert str(Halted()) == "Halted"
