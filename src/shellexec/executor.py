"""Command execution entry point.

execute() runs a shell command either synchronously, returning an
ExecResult, or asynchronously, returning a live ChildHandle and calling a
callback when the command finishes:

    >>> result = execute("echo hello", silent=True)
    >>> result.code, str(result)
    (0, 'hello\\n')

    >>> handle = execute("make", lambda code, out, err: print(code))

Process I/O always runs on asyncio. A daemon runtime thread owns the event
loop that asynchronous executions use and their callbacks run on;
synchronous executions submit to the same loop and block the caller.
"""

import asyncio
import concurrent.futures
import os
import sys
import threading
from dataclasses import replace
from typing import Any, Callable, Coroutine, Mapping

from .aggregator import OutputAggregator
from .config import resolve_config
from .context import ExecutionContext, default_context
from .exceptions import ConfigError, FatalCommandError
from .launcher import ChildHandle, is_runnable, launch
from .logging import get_logger
from .result import ExecResult, finalize
from .types import FAILURE_CODE, ExecutionConfig

logger = get_logger(__name__)

Callback = Callable[[int, Any, Any], Any]

INTERPRETER_NOT_FOUND = "exec: Unable to find a path to the interpreter. Please manually configure it."
MISSING_COMMAND = "exec: must specify command"


class _Runtime:
    """Event loop running on a daemon thread, started on first use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None or self._thread is None or not self._thread.is_alive():
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._run_forever,
                    args=(loop,),
                    name="shellexec-runtime",
                    daemon=True,
                )
                thread.start()
                self._loop, self._thread = loop, thread
            return self._loop

    @staticmethod
    def _run_forever(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        loop.run_forever()

    def in_runtime_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Schedule a coroutine on the runtime loop without waiting for it."""
        if self.in_runtime_thread():
            task = asyncio.ensure_future(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            asyncio.run_coroutine_threadsafe(coro, self.loop())

    def run(self, coro: Coroutine[Any, Any, ExecResult]) -> ExecResult:
        """Run a coroutine to completion, blocking the calling thread."""
        if self.in_runtime_thread():
            # blocking call from a callback: the runtime loop is busy running
            # us, so use a private loop on a helper thread
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                return pool.submit(asyncio.run, coro).result()
        return asyncio.run_coroutine_threadsafe(coro, self.loop()).result()

    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        self.loop().call_soon_threadsafe(func, *args)


_runtime = _Runtime()


def _failure_message(result: ExecResult) -> str:
    stderr = result.stderr.decode(errors="replace") if isinstance(result.stderr, bytes) else result.stderr
    return stderr or f"exec: command exited with code {result.code}"


def _snapshot(config: ExecutionConfig) -> ExecutionConfig:
    """Pin working directory and environment at call time."""
    return replace(
        config,
        cwd=config.cwd or os.getcwd(),
        env=dict(config.env) if config.env is not None else dict(os.environ),
    )


def _new_handle(command: str, config: ExecutionConfig) -> ChildHandle:
    aggregator = OutputAggregator(config.max_buffer, config.encoding, config.silent)
    return ChildHandle(command, aggregator)


def _interpreter_failure(command: str, config: ExecutionConfig, context: ExecutionContext) -> ExecResult:
    context.report_error(
        INTERPRETER_NOT_FOUND,
        FAILURE_CODE,
        command=command,
        fatal=config.is_fatal_for(FAILURE_CODE),
        silent=config.silent,
    )
    return finalize(None, None, b"", (INTERPRETER_NOT_FOUND + "\n").encode(), encoding=config.encoding)


async def _run(handle: ChildHandle, config: ExecutionConfig) -> ExecResult:
    """Launch the child of a handle and collect its result.

    Never raises for a failing command: unexpected errors kill the child
    and end up on stderr of a failed result.
    """
    try:
        await launch(
            handle,
            interpreter_path=config.interpreter_path or "",
            shell=config.shell,
            cwd=config.cwd,
            env=config.env,
        )
        exit_code, sig = await handle.wait_for_exit(config.timeout)
    except Exception as e:
        logger.exception("exec failed unexpectedly", command=handle.command)
        await handle.terminate()
        handle.fail(str(e) or type(e).__name__)
        exit_code, sig = None, None

    result = finalize(
        exit_code,
        sig,
        handle.stdout.getvalue(),
        handle.stderr.getvalue(),
        encoding=config.encoding,
        timed_out=handle.timed_out,
        overflowed=handle.aggregator.overflowed is not None,
    )
    logger.debug("Command finished", pid=handle.pid, code=result.code, signal=sig)
    return result


def execute_blocking(command: str, config: ExecutionConfig, context: ExecutionContext) -> ExecResult:
    """Run a command and block until it finishes.

    Args:
        command: Command text for the shell
        config: Effective configuration of this invocation
        context: Context receiving the error state

    Returns:
        ExecResult of the command

    Raises:
        FatalCommandError: If fatal mode applies to the result
    """
    if not is_runnable(config.interpreter_path):
        return _interpreter_failure(command, config, context)

    config = _snapshot(config)
    handle = _new_handle(command, config)
    log = logger.bind(command=command)
    with log.performance("exec"):
        result = _runtime.run(_run(handle, config))
    handle.set_result(result)

    if result.code != 0:
        context.report_error(
            _failure_message(result),
            result.code,
            command=command,
            fatal=config.is_fatal_for(result.code),
            silent=True,
        )
    return result


async def _run_async(
    handle: ChildHandle,
    config: ExecutionConfig,
    callback: Callback | None,
    context: ExecutionContext,
) -> None:
    result = await _run(handle, config)
    _deliver(handle, result, config, callback, context)


def _deliver(
    handle: ChildHandle,
    result: ExecResult,
    config: ExecutionConfig,
    callback: Callback | None,
    context: ExecutionContext,
) -> None:
    """Complete a handle and call the callback exactly once."""
    if config.is_fatal_for(result.code):
        try:
            context.report_error(_failure_message(result), result.code, command=handle.command, fatal=True)
        except FatalCommandError as error:
            if not config.silent:
                sys.stderr.write(f"{error}\n")
            handle.set_exception(error)
        return

    handle.set_result(result)
    if callback is None:
        return
    try:
        callback(result.code, result.stdout, result.stderr)
    except Exception:
        logger.exception("exec callback raised", command=handle.command)


def execute_async(
    command: str,
    config: ExecutionConfig,
    callback: Callback | None,
    context: ExecutionContext,
) -> ChildHandle:
    """Start a command and return its live handle immediately.

    The callback, if any, is called once with (code, stdout, stderr) on the
    runtime thread after the command finished and its output was drained.

    Raises:
        FatalCommandError: If the interpreter cannot be found in fatal mode
    """
    if not is_runnable(config.interpreter_path):
        result = _interpreter_failure(command, config, context)
        # already printed by report_error, so the channel stays quiet
        handle = ChildHandle(command, OutputAggregator(config.max_buffer, config.encoding, silent=True))
        handle.fail(INTERPRETER_NOT_FOUND.removeprefix("exec: "))
        _runtime.call_soon(_deliver, handle, result, config, callback, context)
        return handle

    config = _snapshot(config)
    handle = _new_handle(command, config)
    logger.debug("Starting asynchronous exec", command=command)
    _runtime.spawn(_run_async(handle, config, callback, context))
    return handle


def execute(
    command: str | None = None,
    options: Mapping[str, Any] | Callback | None = None,
    callback: Callback | None = None,
    *,
    context: ExecutionContext | None = None,
    **kwargs: Any,
) -> ExecResult | ChildHandle | None:
    """Run a shell command.

    Accepts (command), (command, options), (command, callback) and
    (command, options, callback). Options may also be given as keyword
    arguments, which win over the options mapping. A callback always runs
    the command asynchronously; async_=True without one returns the live
    handle.

    Args:
        command: Command text, handed to the shell unmodified
        options: Per-call overrides of the context's ExecutionConfig
        callback: Called with (code, stdout, stderr) when the command ends
        context: Execution context (defaults to the package default)
        **kwargs: More per-call options

    Returns:
        ExecResult when synchronous, ChildHandle when asynchronous, None on
        usage errors

    Raises:
        FatalCommandError: In fatal mode, instead of returning a failure
    """
    context = context or default_context
    context.reset_error()

    if callable(options) and callback is None:
        callback, options = options, None

    if not isinstance(command, str) or not command:
        context.report_error(MISSING_COMMAND)
        return None

    if options is not None and not isinstance(options, Mapping):
        context.report_error(f"exec: options must be a mapping, got {type(options).__name__}", command=command)
        return None

    try:
        config = resolve_config(context.config, {**(options or {}), **kwargs})
    except ConfigError as e:
        context.report_error(f"exec: {e}", command=command)
        return None

    if callback is not None or config.async_:
        return execute_async(command, config, callback, context)
    return execute_blocking(command, config, context)
