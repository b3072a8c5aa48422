"""Integration tests for whole programs run through SynacorVM."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from synacor_vm import SynacorVM, Initialized, Running, WaitingForInput, Errored, Halted


def echo_program():
    """in r0; out r0; jmp 0."""
    return [20, 32768, 19, 32768, 6, 0]


class TestReferencePrograms:
    """Small programs with known cycle counts and results."""

    @pytest.fixture
    def vm(self):
        return SynacorVM()

    def test_halt(self, vm):
        """[0] halts in exactly one cycle."""
        vm.load_image([0])
        assert vm.get_state() == Initialized()

        assert vm.run() == Halted()
        assert vm.get_cycle_count() == 1

    def test_jumps(self, vm):
        vm.load_image([6, 3, 42, 7, 2, 6, 8, 2, 10, 0])
        assert vm.run() == Halted()
        assert vm.get_cycle_count() == 4
        assert vm.get_ip() == 10

    def test_not_and_wmem(self, vm):
        vm.load_image([14, 32768, 32767, 16, 6, 32768, 42])
        assert vm.run() == Halted()
        assert vm.get_cycle_count() == 3
        assert vm.read_memory(6) == 0

    def test_add_and_output(self, vm):
        """r0 = r1 + 88, printed as X."""
        vm.load_image([9, 32768, 32769, 88, 19, 32768, 0])
        assert vm.run() == Halted()
        assert vm.get_output() == "X"

    def test_add_registers_and_output(self, vm):
        vm.load_image([
            1, 32769, 79,            # set r1 79
            1, 32768, 9,             # set r0 9
            9, 32768, 32768, 32769,  # add r0 r0 r1
            19, 32768,               # out r0
            0,
        ])
        vm.run()
        assert vm.get_output() == "X"

    def test_call_and_return(self, vm):
        vm.load_image([
            17, 5,         # call 5
            19, 32768,     # out r0
            0,             # halt
            1, 32768, 65,  # set r0 'A'
            18,            # ret
        ])
        assert vm.run() == Halted()
        assert vm.get_output() == "A"
        assert vm.get_stack() == []

    def test_ret_with_empty_stack_halts(self, vm):
        vm.load_image([18])
        assert vm.run() == Halted()
        assert vm.is_halted() is True

    def test_self_modifying_code(self, vm):
        """wmem rewrites the next instruction before it executes."""
        vm.load_image([
            16, 4, 0,  # wmem 4 0  (turn the out into halt)
            21,        # noop
            19, 65,    # out 'A'
            0,
        ])
        assert vm.run() == Halted()
        assert vm.get_output() == ""
        assert vm.get_cycle_count() == 3

    def test_write_past_image(self, vm):
        vm.load_image([16, 20000, 7, 15, 32768, 20000, 0])
        vm.run()
        assert vm.get_register(0) == 7


class TestInputSuspension:
    """Test WaitingForInput and resume."""

    @pytest.fixture
    def vm(self):
        vm = SynacorVM()
        vm.load_image(echo_program())
        return vm

    def test_waits_at_instruction_start(self, vm):
        assert vm.run() == WaitingForInput()
        assert vm.get_ip() == 0
        assert vm.get_cycle_count() == 1

    def test_resume_consumes_input(self, vm):
        vm.run()
        vm.add_input(ord("h"))
        assert vm.run() == WaitingForInput()
        assert vm.get_output() == "h"
        assert vm.get_register(0) == ord("h")
        assert vm.get_ip() == 0

    def test_add_input_line(self, vm):
        vm.add_input_line("hi")
        assert vm.run() == WaitingForInput()
        assert vm.get_output() == "hi\n"

    def test_input_word_range(self, vm):
        with pytest.raises(ValueError):
            vm.add_input(32768)

    def test_rejected_line_queues_nothing(self, vm):
        """A wide character anywhere in the line leaves the queue untouched."""
        with pytest.raises(ValueError):
            vm.add_input_line("go \U0001F600")
        assert list(vm.state.input_queue) == []

        vm.add_input_line("go")
        assert list(vm.state.input_queue) == [103, 111, 10]



class TestOutputDrain:

    def test_drain_is_not_idempotent(self):
        vm = SynacorVM()
        vm.load_image([19, 72, 19, 105, 0])
        vm.run()
        assert vm.get_output() == "Hi"
        assert vm.get_output() == ""


class TestErrors:
    """Faults converge on Errored."""

    @pytest.fixture
    def vm(self):
        return SynacorVM()

    def test_unknown_opcode(self, vm):
        vm.load_image([22])
        state = vm.run()
        assert isinstance(state, Errored)
        assert "22" in state.message
        assert vm.get_cycle_count() == 0

    def test_pop_empty_stack(self, vm):
        vm.load_image([3, 32768])
        assert vm.run() == Errored("attempted to pop an empty stack")

    def test_write_to_literal(self, vm):
        vm.load_image([1, 5, 6, 0])
        assert vm.run() == Errored("attempted to write to a literal")

    def test_jump_out_of_memory(self, vm):
        vm.load_image([
            15, 32769, 5,  # rmem r1 [5]
            6, 32769,      # jmp r1
            40000,         # data word
        ])
        state = vm.run()
        assert isinstance(state, Errored)
        assert state.message == "instruction pointer out of range: 40000"


class TestCycleGovernor:
    """Test the cycle ceiling and terminal guard."""

    def test_max_cycles_stops_execution(self):
        """Infinite loop stops at max cycles."""
        vm = SynacorVM(max_cycles=10)
        vm.load_image([6, 0])

        assert vm.run() == Errored("reached max cycles")
        assert vm.get_cycle_count() == 10

    def test_instruction_at_ceiling_not_executed(self):
        vm = SynacorVM(max_cycles=1)
        vm.load_image([19, 65, 19, 66, 0])
        assert isinstance(vm.run(), Errored)
        assert vm.get_output() == "A"

    def test_default_ceiling(self):
        assert SynacorVM().max_cycles == 5_000_000

    def test_run_on_halted_machine_is_noop(self, caplog):
        vm = SynacorVM()
        vm.load_image([0, 19, 65, 0])
        vm.run()
        vm.state.ip = 1

        with caplog.at_level(logging.WARNING, logger="synacor_vm.vm"):
            assert vm.run() == Halted()
        assert vm.get_cycle_count() == 1
        assert vm.get_output() == ""
        assert "nothing executed" in caplog.text

    def test_run_on_errored_machine_is_noop(self):
        vm = SynacorVM()
        vm.load_image([22])
        first = vm.run()
        assert vm.run() == first

    def test_run_without_program(self):
        with pytest.raises(RuntimeError, match="No program loaded"):
            SynacorVM().run()

    def test_step_enters_running(self):
        vm = SynacorVM()
        vm.load_image([21, 0])
        assert vm.step() == Running()
        assert vm.step() == Halted()


class TestDeterminism:

    def test_same_inputs_same_results(self):
        def session():
            vm = SynacorVM()
            vm.load_image(echo_program())
            outputs = []
            for line in ["north", "take lamp"]:
                vm.run()
                vm.add_input_line(line)
            outputs.append(vm.run())
            outputs.append(vm.get_output())
            outputs.append(vm.get_cycle_count())
            return outputs

        assert session() == session()

    def test_instances_share_no_state(self):
        a, b = SynacorVM(), SynacorVM()
        a.load_image([1, 32768, 5, 0])
        b.load_image([0])
        a.run()
        b.run()
        assert a.get_register(0) == 5
        assert b.get_register(0) == 0


class TestExecutionTrace:

    def test_trace_records_cycles(self):
        vm = SynacorVM(record_trace=True)
        vm.load_image([1, 32768, 42, 0])
        vm.run()

        assert len(vm.trace) == 2
        assert vm.trace[0].instruction.mnemonic == "set"
        assert vm.trace[0].pre_state["registers"]["R0"] == 0
        assert vm.trace[0].post_state["registers"]["R0"] == 42
        assert vm.trace[1].instruction.mnemonic == "halt"

    def test_trace_off_by_default(self):
        vm = SynacorVM()
        vm.load_image([0])
        vm.run()
        assert vm.trace == []

    def test_summary_lists_errors(self):
        vm = SynacorVM(record_trace=True)
        vm.load_image([3, 32768])
        vm.run()
        summary = vm.get_summary()
        assert summary["halted"] is False
        assert summary["errors"] == ["attempted to pop an empty stack"]
