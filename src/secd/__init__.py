"""SECD: a small Lisp compiled to bytecode for a stack/environment/control/dump machine."""

# Main API
from secd.secd import SECD

# Exceptions
from secd.secd_error import SECDError, SECDCompileError, SECDRuntimeError
from secd.secd_bytecode_validator import SECDValidationError, ValidationErrorType, validate_code

# AST types
from secd.secd_ast import SECDASTNode, SECDASTInteger, SECDASTSymbol, SECDASTList

# Value types
from secd.secd_value import (
    SECDValue, SECDInteger, SECDNil, SECDBoolean, SECDCons, SECDList, SECDClosure,
    SECD_NIL, SECD_TRUE, SECD_FALSE, describe_value, values_equal
)

# Lower-level components (for advanced usage)
from secd.secd_bytecode import Instruction, Opcode, SECDCode, disassemble, make_instruction
from secd.secd_compiler import SECDCompiler
from secd.secd_dump import SECDDumpApply, SECDDumpSelect
from secd.secd_vm import SECDVM

# Output watchers
from secd.secd_output import (
    SECDOutputWatcher, SECDStdoutOutputWatcher, SECDFileOutputWatcher, SECDBufferingOutputWatcher
)

__all__ = [
    # Main API
    "SECD",

    # Exceptions
    "SECDError", "SECDCompileError", "SECDRuntimeError", "SECDValidationError", "ValidationErrorType",
    "validate_code",

    # AST node types
    "SECDASTNode", "SECDASTInteger", "SECDASTSymbol", "SECDASTList",

    # Value types
    "SECDValue", "SECDInteger", "SECDNil", "SECDBoolean", "SECDCons", "SECDList", "SECDClosure",
    "SECD_NIL", "SECD_TRUE", "SECD_FALSE", "describe_value", "values_equal",

    # Lower-level components
    "Instruction", "Opcode", "SECDCode", "disassemble", "make_instruction",
    "SECDCompiler", "SECDDumpApply", "SECDDumpSelect", "SECDVM",

    # Output watchers
    "SECDOutputWatcher", "SECDStdoutOutputWatcher", "SECDFileOutputWatcher", "SECDBufferingOutputWatcher",
]
