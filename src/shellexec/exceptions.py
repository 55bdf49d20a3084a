"""shellexec exceptions."""

from typing import Any


class ShellExecError(Exception):
    """Base class for shellexec errors.

    Attributes:
        msg: Human-readable error message
        result: Dict with the message and any additional context fields

    Example:
        raise ShellExecError("Invalid option", option="max_buffer")
        # result: {"failed": True, "msg": "Invalid option", "option": "max_buffer"}
    """

    def __init__(self, msg: str, **result_fields: Any) -> None:
        super().__init__(msg)
        self.msg = msg
        self.result: dict[str, Any] = {
            "failed": True,
            "msg": msg,
            **result_fields,
        }

    def __str__(self) -> str:
        return self.msg


class FatalCommandError(ShellExecError):
    """Raised instead of returning a result when fatal mode is active.

    The message always names the command so the offending invocation can be
    found from the traceback alone.
    """

    def __init__(self, msg: str, command: str, code: int) -> None:
        super().__init__(msg, command=command, code=code)
        self.command = command
        self.code = code

    def __str__(self) -> str:
        if self.command in self.msg:
            return self.msg
        return f"{self.msg} (command: {self.command})"


class ConfigError(ShellExecError):
    """Raised when an option or a configuration file is invalid."""
