"""Bytecode definitions for the SECD virtual machine."""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Tuple

from secd.secd_value import SECDValue


def _op(n: int, arg_count: int = 0) -> Tuple[int, int]:
    """Helper to construct an Opcode value: (integer_value, operand_count).

    operand_count is the number of operands carried inside the instruction
    (not values popped from the stack):
      0 - all operands come from the value stack
      1 - arg1 is set
      2 - arg1 and arg2 are set
    """
    return (n, arg_count)


class Opcode(IntEnum):
    """Machine operation codes.

    Each member's value is a (integer_value, operand_count) tuple.  The
    integer value indexes the VM's dispatch table; the arg_count property
    returns the number of operands the instruction carries.
    """

    _arg_count: int  # Set in __new__; declared here so mypy knows the attribute exists

    def __new__(cls, int_value: int, arg_count: int = 0) -> 'Opcode':
        obj = int.__new__(cls, int_value)
        obj._value_ = int_value
        obj._arg_count = arg_count
        return obj

    @property
    def arg_count(self) -> int:
        """Number of operands carried by the instruction (0, 1, or 2)."""
        return self._arg_count

    # Loads and bindings
    LDC = _op(1, 1)                     # LDC value
    LD = _op(2, 1)                      # LD name
    LDF = _op(3, 2)                     # LDF params body
    LET = _op(4, 1)                     # LET name  (pop and bind)

    # Application
    ARGS = _op(10, 1)                   # ARGS n  (pack n values into a list)
    AP = _op(11, 0)                     # Apply closure to argument list
    RAP = _op(12, 0)                    # Recursive apply (extends caller environment)
    RET = _op(13, 0)                    # Return to the suspended application

    # Branching
    SEL = _op(20, 2)                    # SEL then else
    JOIN = _op(21, 0)                   # Resume after a branch

    # Output
    PUTS = _op(30, 0)                   # Print top of stack (does not pop)

    # Primitives
    EQ = _op(40, 0)                     # Structural equality
    ADD = _op(41, 0)                    # b + a
    SUB = _op(42, 0)                    # b - a
    CONS = _op(43, 0)                   # Cons(b, a)
    CAR = _op(44, 0)                    # First component of a pair
    CDR = _op(45, 0)                    # Second component of a pair


@dataclass(frozen=True)
class Instruction:
    """Single bytecode instruction with the source position that produced it."""
    opcode: Opcode
    arg1: Any = None
    arg2: Any = None
    line: int | None = field(default=None, kw_only=True)
    column: int | None = field(default=None, kw_only=True)

    def arg_count(self) -> int:
        """Return the number of operands this instruction carries (0, 1, or 2)."""
        return self.opcode.arg_count

    def __repr__(self) -> str:
        """Human-readable representation."""
        n = self.arg_count()
        if n == 0:
            return f"{self.opcode.name}"

        if self.opcode == Opcode.LDC:
            if isinstance(self.arg1, SECDValue):
                return f"LDC {self.arg1.describe()}"

            return f"LDC {self.arg1!r}"

        if self.opcode == Opcode.LDF:
            return f"LDF ({' '.join(str(p) for p in self.arg1)}) <{len(self.arg2)} instructions>"

        if self.opcode == Opcode.SEL:
            return f"SEL <{len(self.arg1)} instructions> <{len(self.arg2)} instructions>"

        return f"{self.opcode.name} {self.arg1}"


# Compiled code is an immutable, ordered sequence of instructions
SECDCode = Tuple[Instruction, ...]


def make_instruction(
    opcode: Opcode,
    arg1: Any = None,
    arg2: Any = None,
    line: int | None = None,
    column: int | None = None
) -> Instruction:
    """
    Build an instruction, freezing any code operands.

    Args:
        opcode: Operation code
        arg1: First operand (value, name, parameter names, count or then-branch)
        arg2: Second operand (lambda body or else-branch)
        line: Source line of the originating AST node
        column: Source column of the originating AST node

    Returns:
        The instruction
    """
    if opcode in (Opcode.LDF, Opcode.SEL):
        arg1 = tuple(arg1)
        arg2 = tuple(arg2)

    return Instruction(opcode, arg1, arg2, line=line, column=column)


def disassemble(code: SECDCode, indent: int = 0) -> str:
    """
    Return a readable listing of a code sequence, including nested code.

    Args:
        code: Code to list
        indent: Indentation level for nested sequences

    Returns:
        Multi-line listing
    """
    lines: List[str] = []
    pad = "  " * indent
    for i, instr in enumerate(code):
        location = f"  ; {instr.line}:{instr.column}" if instr.line is not None else ""
        opcode = instr.opcode
        if opcode == Opcode.LDF:
            lines.append(f"{pad}{i:3d}: LDF ({' '.join(instr.arg1)}){location}")
            lines.append(disassemble(instr.arg2, indent + 2))
            continue

        if opcode == Opcode.SEL:
            lines.append(f"{pad}{i:3d}: SEL{location}")
            lines.append(f"{pad}     then:")
            lines.append(disassemble(instr.arg1, indent + 2))
            lines.append(f"{pad}     else:")
            lines.append(disassemble(instr.arg2, indent + 2))
            continue

        lines.append(f"{pad}{i:3d}: {instr!r}{location}")

    return "\n".join(lines)
