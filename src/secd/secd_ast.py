"""SECD AST Node hierarchy - compile-time representation with source location metadata.

This module defines the Abstract Syntax Tree node types consumed by the compiler.
They are produced by an external reader and are separate from runtime SECDValue
types; the compiler copies each node's position onto every instruction it
derives from that node.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class SECDASTNode(ABC):
    """
    Abstract base class for all SECD AST nodes.

    All AST nodes are immutable and carry source location metadata
    for error reporting.

    Source location fields are keyword-only so node payloads stay positional.
    """
    # Source location metadata (keyword-only)
    line: int | None = field(default=None, kw_only=True)
    column: int | None = field(default=None, kw_only=True)
    source_file: str = field(default="", kw_only=True)

    @abstractmethod
    def type_name(self) -> str:
        """Return the node type name for error messages."""

    @abstractmethod
    def describe(self) -> str:
        """Describe the node in source notation."""


@dataclass(frozen=True)
class SECDASTInteger(SECDASTNode):
    """Represents integer literals in AST."""
    value: int

    def type_name(self) -> str:
        return "integer"

    def describe(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class SECDASTSymbol(SECDASTNode):
    """Represents atoms: identifiers, keywords and the reserved literal names."""
    name: str

    def type_name(self) -> str:
        return "symbol"

    def describe(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f'SECDASTSymbol({self.name!r})'


@dataclass(frozen=True)
class SECDASTList(SECDASTNode):
    """Represents an ordered list of AST nodes."""
    elements: Tuple[SECDASTNode, ...] = ()

    def type_name(self) -> str:
        return "list"

    def describe(self) -> str:
        if self.is_empty():
            return "()"

        return f"({' '.join(element.describe() for element in self.elements)})"

    def length(self) -> int:
        """Return the length of the list."""
        return len(self.elements)

    def is_empty(self) -> bool:
        """Check if the list is empty."""
        return len(self.elements) == 0

    def first(self) -> SECDASTNode:
        """Get the first element (raises IndexError if empty)."""
        if not self.elements:
            raise IndexError("Cannot get first element of empty list")

        return self.elements[0]

    def rest(self) -> Tuple[SECDASTNode, ...]:
        """Get all elements after the first."""
        return self.elements[1:]
