"""Shared fixtures and utilities for SECD tests."""

import itertools
from typing import Any, List

import pytest

from secd import SECD, SECDASTNode, SECDASTInteger, SECDASTSymbol, SECDASTList
from secd.secd_bytecode import Opcode, SECDCode
from secd.secd_compiler import SECDCompiler


@pytest.fixture
def secd():
    """Create a fresh SECD instance for each test."""
    return SECD()


class SECDTestHelpers:
    """Helper utilities for SECD testing."""

    @staticmethod
    def ast(data: Any, line: int = 1) -> SECDASTNode:
        """
        Build an AST from nested Python data.

        ints become integer literals, strs become symbols and lists or tuples
        become lists.  Every node is placed on `line`, with columns numbered
        in pre-order so each node has a distinct position.
        """
        columns = itertools.count(1)

        def build(item: Any) -> SECDASTNode:
            column = next(columns)
            if isinstance(item, int):
                return SECDASTInteger(item, line=line, column=column)

            if isinstance(item, str):
                return SECDASTSymbol(item, line=line, column=column)

            return SECDASTList(tuple(build(element) for element in item), line=line, column=column)

        return build(data)

    @staticmethod
    def compile(data: Any) -> SECDCode:
        """Compile nested Python data."""
        return SECDCompiler().compile(SECDTestHelpers.ast(data))

    @staticmethod
    def opcodes(code: SECDCode) -> List[Opcode]:
        """Return the opcodes of a code sequence, ignoring operands."""
        return [instr.opcode for instr in code]

    @staticmethod
    def assert_evaluates_to(secd: SECD, data: Any, expected: str) -> None:
        """Assert that a program evaluates to the expected text form."""
        result = secd.evaluate_and_format(SECDTestHelpers.ast(data))
        assert result == expected, f"Expected '{expected}', got '{result}'"


@pytest.fixture
def helpers():
    """Provide test helper utilities."""
    return SECDTestHelpers


# Multiplication by repeated addition, then factorial on top of it
FACTORIAL_PROGRAM = [
    "letrec", "mul",
    ["lambda", ["a", "b"], ["if", ["eq", "b", 0], 0, ["+", "a", ["mul", "a", ["-", "b", 1]]]]],
    ["letrec", "fact",
     ["lambda", ["n"], ["if", ["eq", "n", 0], 1, ["mul", "n", ["fact", ["-", "n", 1]]]]],
     ["fact", 5]]
]


@pytest.fixture
def factorial_program():
    """A letrec factorial program applied to 5."""
    return FACTORIAL_PROGRAM
