"""
Bytecode validator for the SECD virtual machine.

Performs static checks on a code tree before execution so malformed code is
rejected up front instead of partway through a run.

The validator checks:
- Operand shapes for every instruction
- Stack depth never underflows within a straight-line sequence
- Lambda bodies end in RET, branches end in JOIN, and neither appears elsewhere
- Each branch leaves exactly one value, each body at least one at RET
- Lambda bodies and branches nest no deeper than a fixed limit
"""

from enum import Enum
from typing import Dict, Tuple

from secd.secd_bytecode import Instruction, Opcode, SECDCode
from secd.secd_error import SECDError
from secd.secd_value import SECDValue


class ValidationErrorType(Enum):
    """Types of validation errors."""
    INVALID_OPERAND = "invalid_operand"
    STACK_UNDERFLOW = "stack_underflow"
    STACK_INCONSISTENT = "stack_inconsistent"
    MISSING_RETURN = "missing_return"
    MISSING_JOIN = "missing_join"
    MISPLACED_TERMINATOR = "misplaced_terminator"
    EMPTY_RESULT = "empty_result"
    NESTING_TOO_DEEP = "nesting_too_deep"


class SECDValidationError(SECDError):
    """Bytecode validation error with the offending instruction."""

    def __init__(
        self,
        error_type: ValidationErrorType,
        message: str,
        instruction_index: int | None = None,
        instruction: Instruction | None = None
    ):
        self.error_type = error_type
        self.instruction_index = instruction_index
        self.opcode = instruction.opcode if instruction is not None else None

        context = None
        if instruction_index is not None and instruction is not None:
            context = f"At instruction {instruction_index}: {instruction!r}"

        super().__init__(
            message=f"Bytecode validation error: {message}",
            context=context,
            line=instruction.line if instruction is not None else None,
            column=instruction.column if instruction is not None else None
        )


# Where a sequence is being validated: the top level, a lambda body or an if branch
_PROGRAM = "program"
_BODY = "body"
_BRANCH = "branch"


class BytecodeValidator:
    """
    Validates SECD bytecode for well-formedness.

    Callee stacks start empty, so an application is a fixed (pop 2, push 1)
    from the caller's point of view and depth can be tracked statically.
    """

    def __init__(self, max_depth: int = 500) -> None:
        """
        Initialize validator.

        Args:
            max_depth: Maximum nesting of lambda bodies and branches
        """
        self.max_depth = max_depth
        # Stack effect: (pop_count, push_count).  ARGS depends on its operand.
        self.stack_effects: Dict[Opcode, Tuple[int, int]] = {
            Opcode.LDC: (0, 1),
            Opcode.LD: (0, 1),
            Opcode.LDF: (0, 1),
            Opcode.LET: (1, 0),
            Opcode.AP: (2, 1),
            Opcode.RAP: (2, 1),
            Opcode.RET: (1, 0),
            Opcode.SEL: (1, 0),
            Opcode.JOIN: (0, 0),
            Opcode.PUTS: (1, 1),
            Opcode.EQ: (2, 1),
            Opcode.ADD: (2, 1),
            Opcode.SUB: (2, 1),
            Opcode.CONS: (2, 1),
            Opcode.CAR: (1, 1),
            Opcode.CDR: (1, 1),
        }

    def validate(self, code: SECDCode) -> None:
        """
        Validate a top-level program.

        Raises:
            SECDValidationError: If the code is malformed
        """
        depth = self._validate_sequence(code, _PROGRAM, 0, 0)
        if depth < 1:
            raise SECDValidationError(
                ValidationErrorType.EMPTY_RESULT,
                "Program leaves no value on the stack"
            )

    def _validate_sequence(self, code: SECDCode, kind: str, depth: int, nesting: int) -> int:
        """Validate one instruction stream starting at stack `depth`, returning the final depth."""
        if nesting > self.max_depth:
            raise SECDValidationError(
                ValidationErrorType.NESTING_TOO_DEEP,
                f"Code nested too deeply (max depth: {self.max_depth})"
            )

        last = len(code) - 1
        for i, instr in enumerate(code):
            if not isinstance(instr, Instruction):
                raise SECDValidationError(
                    ValidationErrorType.INVALID_OPERAND,
                    f"Expected an instruction, got {type(instr).__name__}",
                    i
                )

            self._check_operands(i, instr)

            opcode = instr.opcode
            if opcode == Opcode.ARGS:
                pops, pushes = instr.arg1, 1

            else:
                pops, pushes = self.stack_effects[opcode]

            if depth < pops:
                raise SECDValidationError(
                    ValidationErrorType.STACK_UNDERFLOW,
                    f"{opcode.name} needs {pops} value(s) but only {depth} available",
                    i,
                    instr
                )

            depth = depth - pops + pushes

            if opcode == Opcode.LDF:
                # Callee stacks start empty
                self._validate_sequence(instr.arg2, _BODY, 0, nesting + 1)

            elif opcode == Opcode.SEL:
                for branch in (instr.arg1, instr.arg2):
                    branch_depth = self._validate_sequence(branch, _BRANCH, depth, nesting + 1)
                    if branch_depth != depth + 1:
                        raise SECDValidationError(
                            ValidationErrorType.STACK_INCONSISTENT,
                            f"Branch must leave exactly one value, left {branch_depth - depth}",
                            i,
                            instr
                        )

                depth += 1

            elif opcode == Opcode.RET:
                if kind != _BODY or i != last:
                    raise SECDValidationError(
                        ValidationErrorType.MISPLACED_TERMINATOR,
                        "RET may only end a lambda body",
                        i,
                        instr
                    )

            elif opcode == Opcode.JOIN:
                if kind != _BRANCH or i != last:
                    raise SECDValidationError(
                        ValidationErrorType.MISPLACED_TERMINATOR,
                        "JOIN may only end an if branch",
                        i,
                        instr
                    )

        if kind == _BODY and (not code or code[-1].opcode != Opcode.RET):
            raise SECDValidationError(ValidationErrorType.MISSING_RETURN, "Lambda body does not end in RET")

        if kind == _BRANCH and (not code or code[-1].opcode != Opcode.JOIN):
            raise SECDValidationError(ValidationErrorType.MISSING_JOIN, "Branch does not end in JOIN")

        return depth

    def _check_operands(self, index: int, instr: Instruction) -> None:
        """Check the operands an instruction carries match its opcode."""
        opcode = instr.opcode
        problem: str | None = None

        if opcode == Opcode.LDC:
            if not isinstance(instr.arg1, SECDValue):
                problem = "LDC operand must be a value"

        elif opcode in (Opcode.LD, Opcode.LET):
            if not isinstance(instr.arg1, str) or not instr.arg1:
                problem = f"{opcode.name} operand must be a non-empty name"

        elif opcode == Opcode.LDF:
            if not isinstance(instr.arg1, tuple) or not all(isinstance(p, str) for p in instr.arg1):
                problem = "LDF parameters must be a tuple of names"

            elif not isinstance(instr.arg2, tuple):
                problem = "LDF body must be a code sequence"

        elif opcode == Opcode.SEL:
            if not isinstance(instr.arg1, tuple) or not isinstance(instr.arg2, tuple):
                problem = "SEL branches must be code sequences"

        elif opcode == Opcode.ARGS:
            if not isinstance(instr.arg1, int) or isinstance(instr.arg1, bool) or instr.arg1 < 0:
                problem = "ARGS count must be a non-negative integer"

        elif instr.arg1 is not None or instr.arg2 is not None:
            problem = f"{opcode.name} takes no operands"

        if problem is not None:
            raise SECDValidationError(ValidationErrorType.INVALID_OPERAND, problem, index, instr)


def validate_code(code: SECDCode) -> None:
    """
    Validate a program (convenience function).

    Args:
        code: Top-level code sequence

    Raises:
        SECDValidationError: If the code is malformed
    """
    BytecodeValidator().validate(code)
