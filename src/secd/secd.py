"""Main SECD class: compile an AST and execute it on the virtual machine."""

from secd.secd_ast import SECDASTNode
from secd.secd_bytecode import SECDCode
from secd.secd_compiler import SECDCompiler
from secd.secd_output import SECDOutputWatcher
from secd.secd_value import SECDValue
from secd.secd_vm import SECDVM


class SECD:
    """
    Compiler and virtual machine for a small Lisp on an SECD machine.

    Parsing is left to the caller: every entry point takes an AST whose nodes
    carry source positions, and every error reports the position of the node
    or instruction that triggered it.
    """

    def __init__(
        self,
        validate: bool = True,
        max_steps: int | None = None,
        output_watcher: SECDOutputWatcher | None = None,
        max_depth: int = 200
    ):
        """
        Initialize SECD.

        Args:
            validate: Whether to validate bytecode before execution
            max_steps: Maximum number of instructions per run, or None for no limit
            output_watcher: Receives PUTS output; output goes to stdout if None
            max_depth: Maximum expression nesting depth accepted by the compiler
        """
        self.validate = validate
        self.max_steps = max_steps
        self.output_watcher = output_watcher
        self.max_depth = max_depth

    def compile(self, ast: SECDASTNode) -> SECDCode:
        """
        Compile an AST to bytecode.

        Raises:
            SECDCompileError: If the AST contains a malformed form or nests too deeply
        """
        return SECDCompiler(max_depth=self.max_depth).compile(ast)

    def run(self, code: SECDCode) -> SECDValue:
        """
        Execute compiled code on a fresh machine.

        Raises:
            SECDValidationError: If validation is enabled and the code is malformed
            SECDRuntimeError: If execution fails
        """
        vm = SECDVM(
            code,
            validate=self.validate,
            max_steps=self.max_steps,
            output_watcher=self.output_watcher
        )
        return vm.run()

    def evaluate(self, ast: SECDASTNode) -> SECDValue:
        """
        Compile and execute an AST.

        Args:
            ast: Program to evaluate

        Returns:
            The program's result value

        Raises:
            SECDCompileError: If compilation fails
            SECDRuntimeError: If execution fails
        """
        return self.run(self.compile(ast))

    def evaluate_and_format(self, ast: SECDASTNode) -> str:
        """
        Compile and execute an AST, returning the result's canonical text form.

        Raises:
            SECDCompileError: If compilation fails
            SECDRuntimeError: If execution fails
        """
        return self.evaluate(ast).describe()
