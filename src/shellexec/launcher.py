"""Process launching for shellexec.

Starts the bootstrap script under the configured interpreter, which in turn
runs the command through the shell. A ChildHandle owns the child, its output
channels and the future that eventually holds the ExecResult.
"""

import asyncio
import concurrent.futures
import os
import signal
import sys
from pathlib import Path
from typing import Any, Generator, Mapping

from .aggregator import OutputAggregator, OutputChannel
from .logging import get_logger
from .result import ExecResult
from .types import DEFAULT_POSIX_SHELL, FAILURE_CODE

logger = get_logger(__name__)

CHILD_SCRIPT = Path(__file__).with_name("_child.py")

# Seconds between SIGTERM and SIGKILL when tearing a child down
KILL_GRACE_PERIOD = 2.0


def default_shell() -> str:
    """Return the shell used when none is configured."""
    if os.name == "nt":
        return os.environ.get("COMSPEC", "cmd.exe")
    return DEFAULT_POSIX_SHELL


def build_argv(interpreter_path: str, shell: str, command: str) -> list[str]:
    """Build the argv of the child process.

    -I and -S keep the interpreter from importing site packages or honouring
    PYTHON* variables; the bootstrap only needs the standard library.
    """
    return [interpreter_path, "-I", "-S", str(CHILD_SCRIPT), shell, command]


def is_runnable(path: str | None) -> bool:
    """Check if path names an executable file."""
    if not path:
        return False
    return os.path.isfile(path) and os.access(path, os.X_OK)


class ChildHandle:
    """Live handle of one command execution.

    Exclusively owned by the invocation that created it. Callers can watch
    output through the stdout/stderr channels while the child runs, then
    block on wait() or await the handle for the final ExecResult.

    Attributes:
        command: Command text passed to the shell
        aggregator: Aggregator collecting the child's output
        launch_error: OS error message if the child could not be started
        timed_out: The child was killed because the deadline passed
    """

    def __init__(self, command: str, aggregator: OutputAggregator) -> None:
        self.command = command
        self.aggregator = aggregator
        self.launch_error: str | None = None
        self.timed_out = False
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task[None]] = []
        self._teardown: asyncio.Future[None] | None = None
        self._future: concurrent.futures.Future[ExecResult] = concurrent.futures.Future()

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"<ChildHandle pid={self.pid} {state} command={self.command!r}>"

    @property
    def stdout(self) -> OutputChannel:
        return self.aggregator.stdout

    @property
    def stderr(self) -> OutputChannel:
        return self.aggregator.stderr

    @property
    def pid(self) -> int | None:
        """Process id of the child, None until it has been started."""
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        """Raw return code of the child process, None while it runs."""
        if self.launch_error is not None:
            return FAILURE_CODE
        if self._process is None:
            return None
        return self._process.returncode

    def done(self) -> bool:
        """Check if the result (or a fatal error) is available."""
        return self._future.done()

    def wait(self, timeout: float | None = None) -> ExecResult:
        """Block until the invocation finishes and return its result.

        Raises:
            FatalCommandError: If fatal mode turned the result into an error
            TimeoutError: If it is still running after timeout seconds
        """
        try:
            return self._future.result(timeout)
        except concurrent.futures.TimeoutError:
            raise TimeoutError(f"Command still running after {timeout}s: {self.command}") from None

    def __await__(self) -> Generator[Any, None, ExecResult]:
        return asyncio.wrap_future(self._future).__await__()

    def set_result(self, result: ExecResult) -> None:
        self._future.set_result(result)

    def set_exception(self, error: BaseException) -> None:
        self._future.set_exception(error)

    def attach(self, process: asyncio.subprocess.Process) -> None:
        """Take ownership of a started process and start reading its output."""
        self._process = process
        self.aggregator.on_overflow = self.request_termination
        self._readers = [
            asyncio.ensure_future(self.aggregator.consume(process.stdout, self.aggregator.stdout)),
            asyncio.ensure_future(self.aggregator.consume(process.stderr, self.aggregator.stderr)),
        ]

    def fail(self, message: str) -> None:
        """Record that the child could not be started."""
        self.launch_error = message
        self.aggregator.stderr.write_diagnostic(f"exec: {message}\n")
        self.aggregator.close()

    async def wait_for_exit(self, timeout: float | None = None) -> tuple[int | None, int | None]:
        """Wait until the child exits and both streams are drained.

        The deadline covers draining too, so a grandchild holding the pipes
        open cannot stretch it. On timeout the process group is killed and
        the output read so far is kept.

        Returns:
            Tuple of (exit_code, signal); exit_code is None if the child
            never started
        """
        process = self._process
        if process is None:
            return None, None

        async def finish() -> None:
            await asyncio.gather(*self._readers)
            await process.wait()

        try:
            await asyncio.wait_for(finish(), timeout)
        except asyncio.TimeoutError:
            self.timed_out = True
            logger.warning("Command timed out, terminating", pid=process.pid, timeout=timeout)
            await self.terminate()
            for reader in self._readers:
                reader.cancel()
            await asyncio.gather(*self._readers, return_exceptions=True)
            self.aggregator.close()

        if self._teardown is not None:
            await self._teardown

        returncode = process.returncode
        if returncode is not None and returncode < 0:
            return None, -returncode
        return returncode, None

    def send_signal(self, sig: int) -> None:
        """Send a signal to the child and, on POSIX, its whole process group."""
        process = self._process
        if process is None:
            return
        try:
            if hasattr(os, "killpg"):
                os.killpg(process.pid, sig)
            elif process.returncode is None:
                process.send_signal(sig)
        except ProcessLookupError:
            # already gone
            return

    def request_termination(self) -> None:
        """Schedule terminate() on the running loop without waiting for it."""
        if self._teardown is None:
            self._teardown = asyncio.ensure_future(self.terminate())

    async def terminate(self) -> None:
        """Stop the child: SIGTERM, then SIGKILL if it lingers."""
        process = self._process
        if process is None:
            return
        kill = getattr(signal, "SIGKILL", signal.SIGTERM)
        self.send_signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), KILL_GRACE_PERIOD)
        except asyncio.TimeoutError:
            logger.warning("Child ignored SIGTERM, killing", pid=process.pid)
            self.send_signal(kill)
            await process.wait()
        else:
            # the leader is gone but other members of its group may not be
            self.send_signal(kill)


async def launch(
    handle: ChildHandle,
    *,
    interpreter_path: str,
    shell: str | None = None,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> ChildHandle:
    """Start the command of a handle and begin consuming its output.

    A child that cannot be started does not raise: the handle is marked as
    failed and reports the error on stderr. ValueError covers arguments the
    OS rejects, such as a NUL byte in the command or an "=" in an env name.

    Args:
        handle: Handle of the invocation, holding command and aggregator
        interpreter_path: Interpreter that runs the bootstrap script
        shell: Shell binary (defaults to default_shell())
        cwd: Working directory of the child
        env: Environment of the child, passed through as is

    Returns:
        The same handle, now running (or failed)
    """
    argv = build_argv(interpreter_path, shell or default_shell(), handle.command)
    logger.trace("Spawning child", argv=argv, cwd=cwd)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            start_new_session=sys.platform != "win32",
        )
    except (OSError, ValueError) as e:
        logger.error("Failed to launch child", command=handle.command, error=e)
        handle.fail(str(e))
        return handle

    logger.debug("Child started", pid=process.pid)
    handle.attach(process)
    return handle
