"""Continuation frames saved on the SECD machine's dump register."""

from dataclasses import dataclass
from typing import Dict, List

from secd.secd_bytecode import SECDCode
from secd.secd_value import SECDValue


@dataclass(frozen=True)
class SECDDumpApply:
    """
    Registers suspended by AP or RAP, restored by RET.

    The code cursor is saved as the code sequence plus the index of the next
    instruction to execute in it.
    """
    stack: List[SECDValue]
    environment: Dict[str, SECDValue]
    code: SECDCode
    ip: int


@dataclass(frozen=True)
class SECDDumpSelect:
    """Code cursor suspended by SEL, restored by JOIN."""
    code: SECDCode
    ip: int


SECDDumpFrame = SECDDumpApply | SECDDumpSelect
