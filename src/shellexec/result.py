"""Execution results.

ExecResult is the value every finished invocation produces. It carries the
exit code and both captured streams, and reads as its stdout wherever text
is expected, so callers that only want the output can treat it as a string:

    >>> result = ExecResult(code=0, stdout="hello\\n", stderr="")
    >>> result == "hello\\n"
    True
    >>> result.strip()
    'hello'
"""

import locale
from dataclasses import dataclass
from typing import Any

from .types import FAILURE_CODE, SIGNAL_CODE_BASE, ENCODING_TEXT, is_bytes_encoding


@dataclass(frozen=True, eq=False)
class ExecResult:
    """Result of one command execution.

    Attributes:
        code: Exit status (0 on success)
        stdout: Captured standard output (str, or bytes in bytes mode)
        stderr: Captured standard error (str, or bytes in bytes mode)
    """

    code: int
    stdout: str | bytes = ""
    stderr: str | bytes = ""

    @property
    def ok(self) -> bool:
        """Check if the command exited with code 0."""
        return self.code == 0

    def to_text(self) -> str:
        """Return stdout as text, decoding raw bytes if needed."""
        if isinstance(self.stdout, bytes):
            return self.stdout.decode(locale.getpreferredencoding(False), errors="replace")
        return self.stdout

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""

        def text(value: str | bytes) -> str:
            if isinstance(value, bytes):
                return value.decode(locale.getpreferredencoding(False), errors="replace")
            return value

        return {"code": self.code, "stdout": text(self.stdout), "stderr": text(self.stderr)}

    def __str__(self) -> str:
        return self.to_text()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ExecResult):
            return (self.code, self.stdout, self.stderr) == (other.code, other.stdout, other.stderr)
        if isinstance(other, str):
            return self.to_text() == other
        if isinstance(other, bytes) and isinstance(self.stdout, bytes):
            return self.stdout == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.to_text())

    def __add__(self, other: object) -> str:
        if isinstance(other, (str, ExecResult)):
            return self.to_text() + str(other)
        return NotImplemented

    def __radd__(self, other: object) -> str:
        if isinstance(other, str):
            return other + self.to_text()
        return NotImplemented

    def __contains__(self, item: str) -> bool:
        return item in self.to_text()

    def __len__(self) -> int:
        return len(self.to_text())

    def __getattr__(self, name: str) -> Any:
        # str methods (strip, splitlines, startswith, ...) act on stdout
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.to_text(), name)


def decode_output(data: bytes, encoding: str) -> str | bytes:
    """Convert a captured buffer to its final form for an encoding setting."""
    if is_bytes_encoding(encoding):
        return bytes(data)
    codec = locale.getpreferredencoding(False) if encoding == ENCODING_TEXT else encoding
    return data.decode(codec, errors="replace")


def finalize(
    exit_code: int | None,
    signal: int | None,
    stdout: bytes,
    stderr: bytes,
    *,
    encoding: str = ENCODING_TEXT,
    timed_out: bool = False,
    overflowed: bool = False,
) -> ExecResult:
    """Build the result of a finished invocation.

    Args:
        exit_code: Exit status of the child, None if it never ran
        signal: Number of the signal that killed the child, if any
        stdout: Everything captured from stdout
        stderr: Everything captured from stderr
        encoding: Encoding setting of the invocation
        timed_out: The child was killed because the deadline passed
        overflowed: The child was killed because output exceeded max_buffer

    Returns:
        ExecResult with the mapped exit code and decoded output
    """
    if timed_out or overflowed:
        code = FAILURE_CODE
    elif signal is not None:
        code = SIGNAL_CODE_BASE + signal
    elif exit_code is None:
        code = FAILURE_CODE
    else:
        code = exit_code

    return ExecResult(
        code=code,
        stdout=decode_output(stdout, encoding),
        stderr=decode_output(stderr, encoding),
    )
