"""SECD Virtual Machine - executes bytecode against stack, environment, code and dump registers."""

import difflib
import logging
from typing import Any, Callable, Dict, List, Tuple

from secd.secd_bytecode import Instruction, Opcode, SECDCode
from secd.secd_bytecode_validator import validate_code
from secd.secd_dump import SECDDumpApply, SECDDumpSelect, SECDDumpFrame
from secd.secd_error import SECDRuntimeError
from secd.secd_output import SECDOutputWatcher, SECDStdoutOutputWatcher
from secd.secd_value import (
    SECDValue, SECDInteger, SECDBoolean, SECDCons, SECDList, SECDClosure,
    SECD_INT_MIN, SECD_INT_MAX, secd_boolean, values_equal
)


class SECDVM:
    """
    Virtual machine for executing SECD bytecode.

    Four registers drive execution:
    - stack: operand values
    - environment: a flat map from name to value
    - code: the current instruction sequence, with `ip` indexing the next instruction
    - dump: saved continuation frames, one per suspended application or branch

    Execution is single-threaded and runs to completion or to the first error.
    """

    def __init__(
        self,
        code: SECDCode,
        validate: bool = True,
        max_steps: int | None = None,
        output_watcher: SECDOutputWatcher | None = None
    ) -> None:
        """
        Initialize the machine with a program.

        Args:
            code: Top-level code to execute
            validate: Whether to validate the bytecode before execution
            max_steps: Maximum number of instructions to execute, or None for no limit
            output_watcher: Receives PUTS output; a stdout watcher is used if None

        Raises:
            SECDValidationError: If validation is enabled and the code is malformed
        """
        self._logger = logging.getLogger("SECDVM")

        if validate:
            validate_code(code)

        self.stack: List[SECDValue] = []
        self.environment: Dict[str, SECDValue] = {}
        self.code: SECDCode = code
        self.ip = 0
        self.dump: List[SECDDumpFrame] = []

        self.max_steps = max_steps
        self.steps = 0
        self.output_watcher: SECDOutputWatcher = (
            output_watcher if output_watcher is not None else SECDStdoutOutputWatcher()
        )
        self._last_instruction: Instruction | None = None

        self._dispatch_table = self._build_dispatch_table()

    def _build_dispatch_table(self) -> List[Any]:
        """
        Build jump table for opcode dispatch.

        Every opcode must have a handler; a missing one is a construction error.
        """
        handlers: Dict[Opcode, Callable[[Instruction], None]] = {
            Opcode.LDC: self._op_ldc,
            Opcode.LD: self._op_ld,
            Opcode.LDF: self._op_ldf,
            Opcode.LET: self._op_let,
            Opcode.ARGS: self._op_args,
            Opcode.AP: self._op_ap,
            Opcode.RAP: self._op_rap,
            Opcode.RET: self._op_ret,
            Opcode.SEL: self._op_sel,
            Opcode.JOIN: self._op_join,
            Opcode.PUTS: self._op_puts,
            Opcode.EQ: self._op_eq,
            Opcode.ADD: self._op_add,
            Opcode.SUB: self._op_sub,
            Opcode.CONS: self._op_cons,
            Opcode.CAR: self._op_car,
            Opcode.CDR: self._op_cdr,
        }

        missing = [opcode.name for opcode in Opcode if opcode not in handlers]
        if missing:
            raise RuntimeError(f"No VM handler for opcodes: {', '.join(missing)}")

        table: List[Any] = [None] * (max(Opcode) + 1)
        for opcode, handler in handlers.items():
            table[opcode] = handler

        return table

    def run(self) -> SECDValue:
        """
        Execute until the code is exhausted and return the top of the stack.

        Returns:
            The program's result value

        Raises:
            SECDRuntimeError: On the first failing instruction
        """
        self._logger.debug("Starting run of %d instructions", len(self.code))

        while self.step():
            pass

        if self.dump:
            raise self._error(
                self._last_instruction,
                "Code ended with suspended frames on the dump",
                context=f"Dump depth: {len(self.dump)}",
                suggestion="Lambda bodies must end in RET and branches in JOIN"
            )

        if not self.stack:
            raise self._error(self._last_instruction, "Program finished with an empty stack")

        result = self.stack[-1]
        self._logger.debug("Run finished after %d steps", self.steps)
        return result

    def step(self) -> bool:
        """
        Execute a single instruction.

        Returns:
            True if there is more code to execute, False once the code is exhausted
        """
        if self.ip >= len(self.code):
            return False

        instr = self.code[self.ip]
        if self.max_steps is not None and self.steps >= self.max_steps:
            raise self._error(
                instr,
                f"Step limit exceeded: {self.max_steps}",
                suggestion="Check for unbounded recursion or raise max_steps"
            )

        # Advance before executing so control transfers can override
        self.ip += 1
        self.steps += 1
        self._last_instruction = instr

        self._dispatch_table[instr.opcode](instr)
        return self.ip < len(self.code)

    def _error(self, instr: Instruction | None, message: str, **kwargs: str) -> SECDRuntimeError:
        """Build a runtime error located at an instruction."""
        if instr is None:
            return SECDRuntimeError(message, **kwargs)

        return SECDRuntimeError(message, line=instr.line, column=instr.column, **kwargs)

    def _require(self, instr: Instruction, count: int) -> None:
        """Check the stack holds at least `count` values."""
        if len(self.stack) < count:
            raise self._error(
                instr,
                f"Stack underflow in {instr.opcode.name}",
                expected=f"At least {count} value{'s' if count != 1 else ''} on the stack",
                received=f"{len(self.stack)}"
            )

    def _require_integer(self, instr: Instruction, value: SECDValue) -> int:
        """Return the Python int inside an integer value, or raise a type error."""
        if not isinstance(value, SECDInteger):
            raise self._error(
                instr,
                f"{instr.opcode.name} requires integer operands",
                received=f"{value.describe()} ({value.type_name()})",
                expected="integer"
            )

        return value.value

    def _require_cons(self, instr: Instruction) -> SECDCons:
        """Pop a pair, or raise a type error."""
        self._require(instr, 1)
        value = self.stack[-1]
        if not isinstance(value, SECDCons):
            raise self._error(
                instr,
                f"{instr.opcode.name} requires a cons cell",
                received=f"{value.describe()} ({value.type_name()})",
                expected="cons"
            )

        self.stack.pop()
        return value

    def _op_ldc(self, instr: Instruction) -> None:
        """LDC: Push a constant."""
        self.stack.append(instr.arg1)

    def _op_ld(self, instr: Instruction) -> None:
        """LD: Push the value bound to a name."""
        name = instr.arg1
        value = self.environment.get(name)
        if value is not None:
            self.stack.append(value)
            return

        similar = difflib.get_close_matches(name, list(self.environment.keys()), n=3, cutoff=0.6)
        suggestion_text = (
            f"Did you mean: {', '.join(similar)}?" if similar
            else "Check spelling or bind it with let, letrec or lambda"
        )

        raise self._error(
            instr,
            f"Unbound identifier: '{name}'",
            context=f"Bound names: {', '.join(sorted(self.environment.keys())) or '(none)'}",
            suggestion=suggestion_text
        )

    def _op_ldf(self, instr: Instruction) -> None:
        """LDF: Push a closure over a snapshot of the current environment."""
        self.stack.append(SECDClosure(instr.arg1, instr.arg2, dict(self.environment)))

    def _op_let(self, instr: Instruction) -> None:
        """LET: Pop a value and bind it in the current environment."""
        self._require(instr, 1)
        self.environment[instr.arg1] = self.stack.pop()

    def _op_args(self, instr: Instruction) -> None:
        """ARGS: Pack the top n values into a list, preserving evaluation order."""
        count = instr.arg1
        self._require(instr, count)
        if count == 0:
            values: List[SECDValue] = []

        else:
            values = self.stack[-count:]
            del self.stack[-count:]

        self.stack.append(SECDList(tuple(values)))

    def _pop_application(self, instr: Instruction) -> Tuple[SECDClosure, Dict[str, SECDValue]]:
        """
        Pop a closure and its argument list for AP/RAP.

        Returns:
            The closure, and its captured bindings with its parameters bound positionally
        """
        self._require(instr, 2)
        closure = self.stack[-1]
        if not isinstance(closure, SECDClosure):
            raise self._error(
                instr,
                "Cannot apply non-closure value",
                received=f"Attempted to apply: {closure.describe()} ({closure.type_name()})",
                expected="closure"
            )

        args = self.stack[-2]
        if not isinstance(args, SECDList):
            raise self._error(
                instr,
                f"{instr.opcode.name} expects an argument list below the closure",
                received=f"{args.describe()} ({args.type_name()})"
            )

        expected = len(closure.parameters)
        if args.length() != expected:
            raise self._error(
                instr,
                f"Closure expects {expected} argument{'s' if expected != 1 else ''}, got {args.length()}",
                received=closure.describe(),
                suggestion=f"Provide exactly {expected} argument{'s' if expected != 1 else ''}"
            )

        del self.stack[-2:]

        bindings = dict(closure.environment)
        bindings.update(zip(closure.parameters, args.elements))
        return closure, bindings

    def _enter(self, saved_environment: Dict[str, SECDValue], body: SECDCode) -> None:
        """Suspend the caller's registers on the dump and start executing a body."""
        self.dump.append(SECDDumpApply(self.stack, saved_environment, self.code, self.ip))
        self.stack = []
        self.code = body
        self.ip = 0

    def _op_ap(self, instr: Instruction) -> None:
        """AP: Apply a closure in its own captured environment."""
        closure, bindings = self._pop_application(instr)
        self._enter(self.environment, closure.body)
        self.environment = bindings
        self._logger.debug("AP: dump depth %d", len(self.dump))

    def _op_rap(self, instr: Instruction) -> None:
        """
        RAP: Apply a closure by extending the caller's environment in place.

        The suspended frame keeps a copy of the caller's bindings, so RET
        restores them unextended.  Recursive bindings accumulate along the
        call chain, which lets letrec names resolve to themselves.
        """
        closure, bindings = self._pop_application(instr)
        self._enter(dict(self.environment), closure.body)
        self.environment.update(bindings)
        self._logger.debug("RAP: dump depth %d", len(self.dump))

    def _op_ret(self, instr: Instruction) -> None:
        """RET: Restore the suspended application and push the return value."""
        self._require(instr, 1)
        if not self.dump:
            raise self._error(instr, "Dump underflow in RET", suggestion="RET is only valid inside a lambda body")

        frame = self.dump[-1]
        if not isinstance(frame, SECDDumpApply):
            raise self._error(instr, "RET found a branch frame on the dump", expected="An application frame")

        result = self.stack.pop()
        self.dump.pop()
        self.stack = frame.stack
        self.environment = frame.environment
        self.code = frame.code
        self.ip = frame.ip
        self.stack.append(result)

    def _op_sel(self, instr: Instruction) -> None:
        """SEL: Pop a boolean and branch, suspending the code cursor."""
        self._require(instr, 1)
        condition = self.stack[-1]
        if not isinstance(condition, SECDBoolean):
            raise self._error(
                instr,
                "If condition must be boolean",
                received=f"{condition.describe()} ({condition.type_name()})",
                expected="true or false"
            )

        self.stack.pop()
        self.dump.append(SECDDumpSelect(self.code, self.ip))
        self.code = instr.arg1 if condition.value else instr.arg2
        self.ip = 0

    def _op_join(self, instr: Instruction) -> None:
        """JOIN: Resume after the branch."""
        if not self.dump:
            raise self._error(instr, "Dump underflow in JOIN", suggestion="JOIN is only valid at the end of a branch")

        frame = self.dump[-1]
        if not isinstance(frame, SECDDumpSelect):
            raise self._error(instr, "JOIN found an application frame on the dump", expected="A branch frame")

        self.dump.pop()
        self.code = frame.code
        self.ip = frame.ip

    def _op_puts(self, instr: Instruction) -> None:
        """PUTS: Hand the top value to the output watcher; the stack is unchanged."""
        self._require(instr, 1)
        self.output_watcher.on_output(self.stack[-1], instr)

    def _op_eq(self, instr: Instruction) -> None:
        """EQ: Pop two values and push whether they are structurally equal."""
        self._require(instr, 2)
        a = self.stack.pop()
        b = self.stack.pop()
        self.stack.append(secd_boolean(values_equal(a, b)))

    def _arithmetic(self, instr: Instruction, operation: Callable[[int, int], int]) -> None:
        """Pop a then b, push operation(b, a), checking the fixed-width range."""
        self._require(instr, 2)
        a = self._require_integer(instr, self.stack[-1])
        b = self._require_integer(instr, self.stack[-2])
        result = operation(b, a)
        if not SECD_INT_MIN <= result <= SECD_INT_MAX:
            raise self._error(
                instr,
                "Integer overflow",
                context=f"{instr.opcode.name} of {b} and {a} gives {result}",
                expected=f"A result between {SECD_INT_MIN} and {SECD_INT_MAX}"
            )

        del self.stack[-2:]
        self.stack.append(SECDInteger(result))

    def _op_add(self, instr: Instruction) -> None:
        """ADD: b + a."""
        self._arithmetic(instr, lambda b, a: b + a)

    def _op_sub(self, instr: Instruction) -> None:
        """SUB: b - a."""
        self._arithmetic(instr, lambda b, a: b - a)

    def _op_cons(self, instr: Instruction) -> None:
        """CONS: Pop a then b, push Cons(b, a)."""
        self._require(instr, 2)
        a = self.stack.pop()
        b = self.stack.pop()
        self.stack.append(SECDCons(b, a))

    def _op_car(self, instr: Instruction) -> None:
        """CAR: Replace a pair with its first component."""
        self.stack.append(self._require_cons(instr).car)

    def _op_cdr(self, instr: Instruction) -> None:
        """CDR: Replace a pair with its second component."""
        self.stack.append(self._require_cons(instr).cdr)
