"""Execution context: configuration defaults and error state.

An ExecutionContext replaces process-wide globals. The package keeps one
default instance behind the top-level helpers (shellexec.execute,
shellexec.defaults, shellexec.error); tests and libraries that must not leak
state into each other create their own.
"""

import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .exceptions import FatalCommandError
from .logging import get_logger
from .types import FAILURE_CODE, ExecutionConfig

logger = get_logger(__name__)


@dataclass
class ExecutionContext:
    """Configuration defaults and last-error state shared by executions.

    Nothing here is locked: concurrent asynchronous executions may interleave
    their updates of the error state.

    Attributes:
        config: Defaults that per-call options are overlaid on
        last_error: Message of the most recent failure, None after success
        last_error_code: Exit code that goes with last_error

    Example:
        >>> ctx = ExecutionContext(config=ExecutionConfig(silent=True))
        >>> result = ctx.execute("exit 3")
        >>> result.code, ctx.error() is not None
        (3, True)
    """

    config: ExecutionConfig = field(default_factory=ExecutionConfig)
    last_error: str | None = None
    last_error_code: int = 0

    def error(self) -> str | None:
        """Return the last error message, or None if the last call succeeded."""
        return self.last_error

    def reset_error(self) -> None:
        """Clear the error state."""
        self.last_error = None
        self.last_error_code = 0

    def report_error(
        self,
        message: str,
        code: int = FAILURE_CODE,
        *,
        command: str | None = None,
        fatal: bool | None = None,
        silent: bool | None = None,
    ) -> None:
        """Record a failure and print it unless silent.

        Args:
            message: Error message, stored as the last error
            code: Exit code that goes with the error
            command: Command text, included in fatal errors
            fatal: Raise instead of returning (defaults to config.fatal)
            silent: Do not print (defaults to config.silent)

        Raises:
            FatalCommandError: If fatal
        """
        fatal = self.config.fatal if fatal is None else fatal
        silent = self.config.silent if silent is None else silent

        self.last_error = message
        self.last_error_code = code

        if fatal:
            logger.critical("Fatal command error", command=command, code=code)
            raise FatalCommandError(message, command=command or "", code=code)

        logger.debug("Command error recorded", code=code)
        if not silent:
            sys.stderr.write(message if message.endswith("\n") else message + "\n")

    def execute(
        self,
        command: str | None = None,
        options: Mapping[str, Any] | Callable[..., Any] | None = None,
        callback: Callable[..., Any] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run a command with this context. See shellexec.executor.execute."""
        from .executor import execute

        return execute(command, options, callback, context=self, **kwargs)


default_context = ExecutionContext()
