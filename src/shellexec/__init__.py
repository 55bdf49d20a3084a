"""shellexec - run shell commands synchronously or asynchronously.

One call signature for blocking and callback-driven execution, with output
capture, console mirroring, buffer caps, timeouts and fatal-mode errors.

Quick Start:
    import shellexec

    result = shellexec.execute("ls -l", silent=True)
    if result.code != 0:
        print(shellexec.error())

    shellexec.execute("make", lambda code, out, err: print("done", code))
"""

__version__ = "0.1.0"

from shellexec.context import ExecutionContext, default_context
from shellexec.exceptions import ConfigError, FatalCommandError, ShellExecError
from shellexec.executor import execute, execute_async, execute_blocking
from shellexec.launcher import ChildHandle
from shellexec.result import ExecResult
from shellexec.types import ExecutionConfig

# Defaults of the package-level context; mutate to change them globally
defaults = default_context.config


def error() -> str | None:
    """Return the last error of the package-level context."""
    return default_context.error()


__all__ = [
    "__version__",
    "ChildHandle",
    "ConfigError",
    "ExecResult",
    "ExecutionConfig",
    "ExecutionContext",
    "FatalCommandError",
    "ShellExecError",
    "defaults",
    "default_context",
    "error",
    "execute",
    "execute_async",
    "execute_blocking",
]
