"""Type definitions for shellexec.

This module defines the configuration type shared by the execution context,
the per-call option overlay and the configuration file loader.
"""

import sys
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

# Exit code reserved for failures that happen outside the child's control:
# interpreter resolution, launch errors, max-buffer overflow and timeouts.
FAILURE_CODE = 1

# Death by signal N is reported as SIGNAL_CODE_BASE + N, like POSIX shells do.
SIGNAL_CODE_BASE = 128

DEFAULT_MAX_BUFFER = 20 * 1024 * 1024
DEFAULT_POSIX_SHELL = "/bin/sh"

ENCODING_TEXT = "text"
ENCODING_BYTES = "bytes"
BYTES_ENCODINGS = frozenset({ENCODING_BYTES, "buffer"})


def is_bytes_encoding(encoding: str) -> bool:
    """Check if an encoding setting asks for raw bytes."""
    return encoding in BYTES_ENCODINGS


@dataclass
class ExecutionConfig:
    """Configuration for command execution.

    A context holds one instance as its process-wide defaults. Per-call
    options are overlaid on a copy, key by key, so an option that is not
    given always falls back to the context default.

    Attributes:
        interpreter_path: Interpreter that runs the bootstrap script
        silent: Do not mirror output (or reported errors) to the console
        async_: Run asynchronously and return a live handle
        fatal: Raise FatalCommandError when the command fails
        fatal_exceptions: Exit codes exempt from fatal handling
        cwd: Working directory (None means the current directory)
        max_buffer: Largest number of bytes captured per stream
        timeout: Seconds before the child is killed (None means no limit)
        encoding: "text", "bytes" or a codec name
        shell: Shell binary used to interpret the command (None means default)
        env: Child environment (None means a copy of os.environ)

    Example:
        >>> config = ExecutionConfig(silent=True, timeout=5)
        >>> config.max_buffer
        20971520
    """

    interpreter_path: str | None = field(default_factory=lambda: sys.executable or None)
    silent: bool = False
    async_: bool = False
    fatal: bool = False
    fatal_exceptions: frozenset[int] = frozenset()
    cwd: str | None = None
    max_buffer: int = DEFAULT_MAX_BUFFER
    timeout: float | None = None
    encoding: str = ENCODING_TEXT
    shell: str | None = None
    env: Mapping[str, str] | None = None

    @property
    def wants_bytes(self) -> bool:
        """Check if results carry raw bytes instead of text."""
        return is_bytes_encoding(self.encoding)

    def is_fatal_for(self, code: int) -> bool:
        """Check if a result with this exit code escalates to a fatal error."""
        return self.fatal and code != 0 and code not in self.fatal_exceptions

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary keyed by option name."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "fatal_exceptions":
                value = sorted(value)
            elif f.name == "env" and value is not None:
                value = dict(value)
            result[option_name(f.name)] = value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExecutionConfig":
        """Create from a dictionary of option names.

        Values are validated the same way per-call options are.
        """
        from shellexec.config import resolve_config

        return resolve_config(cls(), data)


def option_name(field_name: str) -> str:
    """Map a dataclass field name to its public option key."""
    return "async" if field_name == "async_" else field_name
