"""Output watchers: receive each value written by PUTS together with the instruction that wrote it."""

from typing import IO, Any, List, Protocol, Tuple

from secd.secd_bytecode import Instruction
from secd.secd_value import SECDValue


class SECDOutputWatcher(Protocol):
    """Protocol for PUTS output watchers."""
    def on_output(self, value: SECDValue, instruction: Instruction) -> None:
        """
        Called once per executed PUTS.

        Args:
            value: The value on top of the stack; PUTS leaves it there
            instruction: The PUTS instruction, carrying the source position of its puts form
        """


class SECDStdoutOutputWatcher:
    """Prints each value's canonical text form on its own line.  The machine's default."""

    def on_output(self, value: SECDValue, instruction: Instruction) -> None:
        print(value.describe())


class SECDBufferingOutputWatcher:
    """Keeps every value written, with the source position of the puts that wrote it."""

    def __init__(self) -> None:
        self.values: List[SECDValue] = []
        self.positions: List[Tuple[int | None, int | None]] = []

    def on_output(self, value: SECDValue, instruction: Instruction) -> None:
        self.values.append(value)
        self.positions.append((instruction.line, instruction.column))

    def get_output(self) -> List[str]:
        """Return the canonical text of each value written so far, in order."""
        return [value.describe() for value in self.values]

    def clear(self) -> None:
        self.values.clear()
        self.positions.clear()


class SECDFileOutputWatcher:
    """
    Writes each value's text form to a file, one line per PUTS.

    With `show_positions`, each line is prefixed with the position of the
    puts form that produced it, as `line:column: `.  Lines are flushed as
    they are written so output survives a run that later fails.
    """

    def __init__(self, filepath: str, show_positions: bool = False) -> None:
        self.show_positions = show_positions
        self._file: IO[str] = open(filepath, 'w', encoding='utf-8')

    def on_output(self, value: SECDValue, instruction: Instruction) -> None:
        text = value.describe()
        if self.show_positions and instruction.line is not None:
            text = f"{instruction.line}:{instruction.column}: {text}"

        print(text, file=self._file, flush=True)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> 'SECDFileOutputWatcher':
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
