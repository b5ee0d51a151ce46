"""SECD Value hierarchy - immutable runtime value types for the machine."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Tuple

if TYPE_CHECKING:
    from secd.secd_bytecode import SECDCode


# Integers are fixed-width signed 32-bit values
SECD_INT_MIN = -(2 ** 31)
SECD_INT_MAX = 2 ** 31 - 1


class SECDValue(ABC):
    """
    Abstract base class for all SECD values.

    All SECD values are immutable.  Duplicating a value copies a reference,
    never the payload.
    """

    @abstractmethod
    def type_name(self) -> str:
        """Return the type name used in error messages."""

    @abstractmethod
    def describe(self) -> str:
        """Return the canonical text form of the value."""


@dataclass(frozen=True)
class SECDInteger(SECDValue):
    """Represents fixed-width integer values."""
    value: int

    def type_name(self) -> str:
        return "integer"

    def describe(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class SECDNil(SECDValue):
    """Represents nil, the empty list."""

    def type_name(self) -> str:
        return "nil"

    def describe(self) -> str:
        return "nil"


@dataclass(frozen=True)
class SECDBoolean(SECDValue):
    """Represents the true and false tags."""
    value: bool

    def type_name(self) -> str:
        return "boolean"

    def describe(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class SECDCons(SECDValue):
    """Represents a pair; both components are shared, not copied."""
    car: SECDValue
    cdr: SECDValue

    def type_name(self) -> str:
        return "cons"

    def describe(self) -> str:
        return describe_value(self)


@dataclass(frozen=True)
class SECDList(SECDValue):
    """Packed application arguments, in left-to-right evaluation order."""
    elements: Tuple[SECDValue, ...] = ()

    def type_name(self) -> str:
        return "argument-list"

    def describe(self) -> str:
        return describe_value(self)

    def length(self) -> int:
        """Return the number of packed arguments."""
        return len(self.elements)


@dataclass(frozen=True, eq=False)
class SECDClosure(SECDValue):
    """
    Represents a function value.

    Pairs the parameter names and body code with a snapshot of the
    environment taken when the closure was created.  The snapshot is a
    shallow copy of the bindings and is never mutated afterwards.
    Closures compare by identity.
    """
    parameters: Tuple[str, ...]
    body: 'SECDCode'
    environment: Dict[str, SECDValue] = field(default_factory=dict)

    def type_name(self) -> str:
        return "closure"

    def describe(self) -> str:
        return f"<closure ({' '.join(self.parameters)})>"


SECD_NIL = SECDNil()
SECD_TRUE = SECDBoolean(True)
SECD_FALSE = SECDBoolean(False)


def secd_boolean(flag: bool) -> SECDBoolean:
    """Return the shared boolean value for a Python bool."""
    return SECD_TRUE if flag else SECD_FALSE


def values_equal(left: SECDValue, right: SECDValue) -> bool:
    """
    Structural equality between two values.

    Integers compare by value, booleans and nil by tag, cons cells and
    argument lists component-wise, closures by identity.  Uses an explicit
    work list rather than recursion.
    """
    pending: List[Tuple[SECDValue, SECDValue]] = [(left, right)]
    while pending:
        a, b = pending.pop()
        if a is b:
            continue

        if isinstance(a, SECDCons):
            if not isinstance(b, SECDCons):
                return False

            pending.append((a.cdr, b.cdr))
            pending.append((a.car, b.car))
            continue

        if isinstance(a, SECDList):
            if not isinstance(b, SECDList) or len(a.elements) != len(b.elements):
                return False

            pending.extend(zip(a.elements, b.elements))
            continue

        if isinstance(a, SECDInteger):
            if not isinstance(b, SECDInteger) or a.value != b.value:
                return False

            continue

        if isinstance(a, SECDBoolean):
            if not isinstance(b, SECDBoolean) or a.value != b.value:
                return False

            continue

        if isinstance(a, SECDNil):
            if not isinstance(b, SECDNil):
                return False

            continue

        # Closures: identity was already checked above
        return False

    return True


def describe_value(value: SECDValue) -> str:
    """
    Render a value in its canonical text form.

    Cons cells and argument lists may nest arbitrarily deep through any
    component, so rendering uses an explicit work list of pending values and
    literal text rather than recursion.

    Args:
        value: Value to render

    Returns:
        Canonical text form
    """
    parts: List[str] = []
    pending: List[SECDValue | str] = [value]
    while pending:
        item = pending.pop()
        if isinstance(item, str):
            parts.append(item)
            continue

        if isinstance(item, SECDCons):
            elements: List[SECDValue] = [item.car]
            tail = item.cdr
            while isinstance(tail, SECDCons):
                elements.append(tail.car)
                tail = tail.cdr

            # Pushed in reverse so they pop in output order
            pending.append(")")
            if not isinstance(tail, SECDNil):
                pending.append(tail)
                pending.append(" . ")

            for i in range(len(elements) - 1, -1, -1):
                pending.append(elements[i])
                if i > 0:
                    pending.append(" ")

            pending.append("(")
            continue

        if isinstance(item, SECDList):
            pending.append("]")
            for i in range(len(item.elements) - 1, -1, -1):
                pending.append(item.elements[i])
                if i > 0:
                    pending.append(" ")

            pending.append("[")
            continue

        parts.append(item.describe())

    return "".join(parts)
