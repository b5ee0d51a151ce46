"""SECD compiler - translates AST to a flat bytecode sequence."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Set, Tuple

from secd.secd_ast import SECDASTNode, SECDASTInteger, SECDASTSymbol, SECDASTList
from secd.secd_bytecode import Instruction, Opcode, SECDCode, make_instruction
from secd.secd_error import SECDCompileError
from secd.secd_value import (
    SECDValue, SECDInteger, SECD_NIL, SECD_TRUE, SECD_FALSE, SECD_INT_MIN, SECD_INT_MAX
)


# Atoms that compile to constants rather than environment lookups
RESERVED_LITERALS: Dict[str, SECDValue] = {
    'nil': SECD_NIL,
    'true': SECD_TRUE,
    'false': SECD_FALSE,
}

# Binary primitives: both operands are compiled left then right
BINARY_PRIMITIVES: Dict[str, Opcode] = {
    'eq': Opcode.EQ,
    '+': Opcode.ADD,
    '-': Opcode.SUB,
    'cons': Opcode.CONS,
}

# Unary primitives
UNARY_PRIMITIVES: Dict[str, Opcode] = {
    'car': Opcode.CAR,
    'cdr': Opcode.CDR,
}


@dataclass
class CompilationContext:
    """
    State for compiling one instruction stream.

    Lambda bodies and if branches are compiled into their own contexts, each
    starting with a copy of the parent's letrec names so recursion visibility
    follows the defining context.
    """
    letrec_names: Set[str] = field(default_factory=set)
    instructions: List[Instruction] = field(default_factory=list)

    def sub_context(self) -> 'CompilationContext':
        """Create a context for a nested instruction stream."""
        return CompilationContext(letrec_names=set(self.letrec_names))

    def emit(self, node: SECDASTNode, opcode: Opcode, arg1: object = None, arg2: object = None) -> None:
        """Emit an instruction carrying the position of the node that produced it."""
        self.instructions.append(make_instruction(opcode, arg1, arg2, node.line, node.column))

    def code(self) -> SECDCode:
        """Freeze the emitted instructions."""
        return tuple(self.instructions)


class SECDCompiler:
    """
    Compiles SECD AST to bytecode.

    Syntax-directed: each AST shape, and each special form keyword, maps to a
    fixed instruction pattern.  Applications whose head names a letrec-bound
    function compile to RAP, all others to AP.
    """

    def __init__(self, max_depth: int = 200) -> None:
        """
        Initialize compiler.

        Args:
            max_depth: Maximum AST nesting depth accepted by compile
        """
        self._logger = logging.getLogger("SECDCompiler")
        self.max_depth = max_depth
        self._depth = 0
        self._special_forms: Dict[str, Callable[[SECDASTList, CompilationContext], None]] = {
            'lambda': self._compile_lambda,
            'let': self._compile_let,
            'letrec': self._compile_letrec,
            'if': self._compile_if,
            'puts': self._compile_puts,
        }

    def compile(self, ast: SECDASTNode) -> SECDCode:
        """
        Compile an AST to bytecode.

        Args:
            ast: Root AST node

        Returns:
            Immutable instruction sequence

        Raises:
            SECDCompileError: If a special form or binder is malformed, or the AST nests too deeply
        """
        ctx = CompilationContext()
        self._depth = 0
        self._compile_node(ast, ctx)
        code = ctx.code()
        self._logger.debug("Compiled %s into %d instructions", ast.type_name(), len(code))
        return code

    def _error(self, node: SECDASTNode, message: str, **kwargs: str) -> SECDCompileError:
        """Build a compile error located at a node."""
        return SECDCompileError(message, line=node.line, column=node.column, **kwargs)

    def _compile_node(self, node: SECDASTNode, ctx: CompilationContext) -> None:
        """Compile any node into the given context."""
        self._depth += 1
        try:
            if self._depth > self.max_depth:
                raise self._error(
                    node,
                    f"Expression too deeply nested (max depth: {self.max_depth})",
                    suggestion="Reduce nesting depth or increase max_depth limit",
                    example="Bind intermediate results with let: (let x (+ 1 2) (+ x 3))"
                )

            if isinstance(node, SECDASTInteger):
                self._compile_integer(node, ctx)
                return

            if isinstance(node, SECDASTSymbol):
                self._compile_symbol(node, ctx)
                return

            if isinstance(node, SECDASTList):
                self._compile_list(node, ctx)
                return

            raise self._error(node, f"Cannot compile {node.type_name()} node")

        finally:
            self._depth -= 1

    def _compile_integer(self, node: SECDASTInteger, ctx: CompilationContext) -> None:
        """Integer literal: LDC."""
        if not SECD_INT_MIN <= node.value <= SECD_INT_MAX:
            raise self._error(
                node,
                f"Integer literal out of range: {node.value}",
                expected=f"An integer between {SECD_INT_MIN} and {SECD_INT_MAX}"
            )

        ctx.emit(node, Opcode.LDC, SECDInteger(node.value))

    def _compile_symbol(self, node: SECDASTSymbol, ctx: CompilationContext) -> None:
        """Reserved literal names load constants, anything else is a variable."""
        literal = RESERVED_LITERALS.get(node.name)
        if literal is not None:
            ctx.emit(node, Opcode.LDC, literal)
            return

        ctx.emit(node, Opcode.LD, node.name)

    def _compile_list(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """Empty list is nil; otherwise dispatch on the head."""
        if node.is_empty():
            ctx.emit(node, Opcode.LDC, SECD_NIL)
            return

        head = node.first()
        if isinstance(head, SECDASTInteger):
            raise self._error(
                head,
                "Cannot apply an integer",
                received=f"Application head: {head.describe()}",
                expected="A function name, a special form keyword, or an expression yielding a closure",
                example="((lambda (x) (+ x 1)) 41)"
            )

        if isinstance(head, SECDASTSymbol):
            handler = self._special_forms.get(head.name)
            if handler is not None:
                handler(node, ctx)
                return

            opcode = BINARY_PRIMITIVES.get(head.name)
            if opcode is not None:
                self._compile_binary(node, opcode, ctx)
                return

            opcode = UNARY_PRIMITIVES.get(head.name)
            if opcode is not None:
                self._compile_unary(node, opcode, ctx)
                return

        self._compile_apply(node, ctx)

    def _check_arity(self, node: SECDASTList, expected: int, usage: str) -> Tuple[SECDASTNode, ...]:
        """Return the form's arguments, raising if there are not exactly `expected`."""
        args = node.rest()
        if len(args) != expected:
            form = node.first().describe()
            raise self._error(
                node,
                f"'{form}' expects {expected} argument{'s' if expected != 1 else ''}, got {len(args)}",
                received=node.describe(),
                expected=usage
            )

        return args

    def _binder_name(self, node: SECDASTNode, form: str) -> str:
        """Validate a symbol in a binding position and return its name."""
        if not isinstance(node, SECDASTSymbol):
            raise self._error(
                node,
                f"'{form}' binding must be a symbol",
                received=f"{node.describe()} ({node.type_name()})"
            )

        if node.name in RESERVED_LITERALS:
            raise self._error(
                node,
                f"Cannot bind reserved name '{node.name}'",
                suggestion="Choose a name other than nil, true or false"
            )

        return node.name

    def _compile_lambda(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(lambda params body): LDF with the body compiled in its own stream."""
        params_node, body = self._check_arity(node, 2, "(lambda (x y) body) or (lambda x body)")

        params: List[str] = []
        if isinstance(params_node, SECDASTSymbol):
            params.append(self._binder_name(params_node, "lambda"))

        elif isinstance(params_node, SECDASTList):
            for param in params_node.elements:
                params.append(self._binder_name(param, "lambda"))

        else:
            raise self._error(
                params_node,
                "Lambda parameters must be a symbol or a list of symbols",
                received=f"{params_node.describe()} ({params_node.type_name()})",
                example="(lambda (x y) (+ x y))"
            )

        body_ctx = ctx.sub_context()
        self._compile_node(body, body_ctx)
        body_ctx.emit(node, Opcode.RET)
        ctx.emit(node, Opcode.LDF, params, body_ctx.code())

    def _compile_let(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(let id expr body): bind non-recursively, then continue with body."""
        id_node, expr, body = self._check_arity(node, 3, "(let name expr body)")
        name = self._binder_name(id_node, "let")

        self._compile_node(expr, ctx)
        # Discarded after expr, so a call to an outer letrec binding of the same name in expr is still RAP
        ctx.letrec_names.discard(name)
        ctx.emit(node, Opcode.LET, name)
        self._compile_node(body, ctx)

    def _compile_letrec(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(letrec id expr body): as let, but calls to id use RAP from here on."""
        id_node, expr, body = self._check_arity(node, 3, "(letrec name expr body)")
        name = self._binder_name(id_node, "letrec")

        ctx.letrec_names.add(name)
        self._compile_node(expr, ctx)
        ctx.emit(node, Opcode.LET, name)
        self._compile_node(body, ctx)

    def _compile_if(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(if cond then else): cond, then SEL over two JOIN-terminated branches."""
        cond, then_node, else_node = self._check_arity(node, 3, "(if condition then else)")

        self._compile_node(cond, ctx)

        then_ctx = ctx.sub_context()
        self._compile_node(then_node, then_ctx)
        then_ctx.emit(then_node, Opcode.JOIN)

        else_ctx = ctx.sub_context()
        self._compile_node(else_node, else_ctx)
        else_ctx.emit(else_node, Opcode.JOIN)

        ctx.emit(node, Opcode.SEL, then_ctx.code(), else_ctx.code())

    def _compile_puts(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(puts expr): print without consuming the value."""
        (expr,) = self._check_arity(node, 1, "(puts expr)")
        self._compile_node(expr, ctx)
        ctx.emit(node, Opcode.PUTS)

    def _compile_binary(self, node: SECDASTList, opcode: Opcode, ctx: CompilationContext) -> None:
        """eq, +, -, cons: left operand, right operand, opcode."""
        form = node.first().describe()
        left, right = self._check_arity(node, 2, f"({form} left right)")
        self._compile_node(left, ctx)
        self._compile_node(right, ctx)
        ctx.emit(node, opcode)

    def _compile_unary(self, node: SECDASTList, opcode: Opcode, ctx: CompilationContext) -> None:
        """car, cdr: operand, opcode."""
        form = node.first().describe()
        (expr,) = self._check_arity(node, 1, f"({form} pair)")
        self._compile_node(expr, ctx)
        ctx.emit(node, opcode)

    def _compile_apply(self, node: SECDASTList, ctx: CompilationContext) -> None:
        """(head args...): arguments left to right, ARGS, head, then AP or RAP."""
        head = node.first()
        args = node.rest()
        for arg in args:
            self._compile_node(arg, ctx)

        ctx.emit(node, Opcode.ARGS, len(args))
        self._compile_node(head, ctx)

        if isinstance(head, SECDASTSymbol) and head.name in ctx.letrec_names:
            ctx.emit(node, Opcode.RAP)
            return

        ctx.emit(node, Opcode.AP)
