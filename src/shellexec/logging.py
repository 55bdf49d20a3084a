"""Logging utilities for shellexec.

The library only creates loggers; handlers are installed by whoever owns the
process (the command line tool calls configure_logging). Provides:
- Verbosity levels with a custom TRACE level
- Timing of command executions
- Loggers that append structured context to every message
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

DEFAULT_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DEBUG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
TRACE_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s:%(funcName)s:%(lineno)d] %(message)s"

# More detailed than DEBUG: child argv and environment sizes
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
    3: TRACE,
}


def get_level_from_verbosity(verbosity: int) -> int:
    """Convert a count of -v flags to a logging level."""
    return VERBOSITY_LEVELS.get(min(verbosity, 3), TRACE)


def configure_logging(
    level: int = logging.WARNING,
    format_string: str | None = None,
    debug: bool = False,
    log_file: str | Path | None = None,
) -> None:
    """Configure root logging.

    Args:
        level: Logging level for the console handler
        format_string: Custom format string (chosen from level if None)
        debug: Use the debug format with timestamps and line numbers
        log_file: Optional file that receives the same records

    Example:
        >>> configure_logging(level=logging.INFO)
        >>> configure_logging(level=TRACE, log_file="/tmp/shellexec.log")
    """
    if format_string is None:
        if level <= TRACE:
            format_string = TRACE_FORMAT
        elif debug or level <= logging.DEBUG:
            format_string = DEBUG_FORMAT
        else:
            format_string = DEFAULT_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Console output of the child goes to stdout, so logs stay on stderr
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(format_string))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEBUG_FORMAT))
        root_logger.addHandler(file_handler)


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    threshold: float | None = None,
    **context: Any,
) -> Generator[None, None, None]:
    """Time an operation and log its duration.

    Args:
        logger: Logger instance to use
        operation: Description of the operation being timed
        level: Log level to use
        threshold: Only log if the duration reaches this many seconds
        **context: Additional context to include in the message

    Example:
        >>> with log_performance(logger, "exec", command="make"):
        ...     run()
        DEBUG: exec completed in 1.204s (command=make)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        if threshold is None or duration >= threshold:
            message = f"{operation} completed in {duration:.3f}s"
            if context:
                message += " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"
            logger.log(level, message)


class StructuredLogger:
    """Logger that appends key=value context to every message.

    Attributes:
        logger: Underlying Python logger
        context: Context added to all messages

    Example:
        >>> logger = StructuredLogger("shellexec.executor", pid=4242)
        >>> logger.info("Child exited", code=0)
        INFO [shellexec.executor] Child exited (pid=4242, code=0)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context: dict[str, Any] = context.copy()

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a new logger with extra context, leaving this one unchanged."""
        return StructuredLogger(self.logger.name, **{**self.context, **context})

    def _format_message(self, message: str, **extra: Any) -> str:
        combined = {**self.context, **extra}
        if not combined:
            return message
        context_str = ", ".join(f"{k}={v}" for k, v in combined.items())
        return f"{message} ({context_str})"

    def log(self, level: int, message: str, **extra: Any) -> None:
        """Log a message at an arbitrary level."""
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format_message(message, **extra))

    def trace(self, message: str, **extra: Any) -> None:
        self.log(TRACE, message, **extra)

    def debug(self, message: str, **extra: Any) -> None:
        self.log(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log(logging.INFO, message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.log(logging.WARNING, message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> None:
        self.log(logging.CRITICAL, message, **extra)

    def exception(self, message: str, **extra: Any) -> None:
        """Log an error with the active exception's traceback."""
        self.logger.exception(self._format_message(message, **extra))

    @contextmanager
    def performance(
        self,
        operation: str,
        level: int = logging.DEBUG,
        threshold: float | None = None,
    ) -> Generator[None, None, None]:
        """Time an operation, logging it with this logger's context."""
        with log_performance(self.logger, operation, level, threshold, **self.context):
            yield


def get_logger(name: str, **context: Any) -> StructuredLogger:
    """Get a structured logger.

    Example:
        >>> logger = get_logger(__name__, component="launcher")
        >>> logger.info("Starting")
        INFO [shellexec.launcher] Starting (component=launcher)
    """
    return StructuredLogger(name, **context)
