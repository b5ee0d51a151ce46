"""Exception classes for the SECD compiler and virtual machine with detailed context."""


class SECDError(Exception):
    """Base exception for SECD errors with detailed context information."""

    def __init__(
        self,
        message: str,
        context: str | None = None,
        expected: str | None = None,
        received: str | None = None,
        suggestion: str | None = None,
        example: str | None = None,
        line: int | None = None,
        column: int | None = None
    ):
        """
        Initialize detailed error.

        Args:
            message: Core error description
            context: Additional context information
            expected: What was expected
            received: What was actually received
            suggestion: Suggestion for fixing the error
            example: Example of correct usage
            line: Line number (1-indexed)
            column: Column number (1-indexed)
        """
        self.message = message
        self.context = context
        self.expected = expected
        self.received = received
        self.suggestion = suggestion
        self.example = example
        self.line = line
        self.column = column

        super().__init__(self._format_detailed_message())

    def _format_detailed_message(self) -> str:
        """Format the error message with all available details."""
        parts = [f"Error: {self.message}"]

        # Add position information if available
        if self.line is not None and self.column is not None:
            parts.append(f"Location: Line {self.line}, Column {self.column}")

        if self.received:
            parts.append(f"Received: {self.received}")

        if self.expected:
            parts.append(f"Expected: {self.expected}")

        if self.context:
            parts.append(f"Context: {self.context}")

        if self.suggestion:
            parts.append(f"Suggestion: {self.suggestion}")

        if self.example:
            parts.append(f"Example: {self.example}")

        return "\n".join(parts)


class SECDCompileError(SECDError):
    """Compilation errors: malformed special forms and binders."""


class SECDRuntimeError(SECDError):
    """Errors raised while the virtual machine executes an instruction."""
