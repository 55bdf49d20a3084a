"""Tests for asynchronous command execution."""

import queue
import threading
import time

import pytest

from shellexec import ChildHandle, FatalCommandError

from conftest import python_cmd

WAIT = 15


def exec_async(ctx, *args, **kwargs):
    """Run execute with a callback and return what the callback received."""
    calls = queue.Queue()
    handle = ctx.execute(*args, lambda code, stdout, stderr: calls.put((code, stdout, stderr)), **kwargs)
    assert isinstance(handle, ChildHandle)
    return calls.get(timeout=WAIT)


class TestAsyncHandle:
    """Tests for async execution without a callback."""

    def test_no_callback(self, ctx):
        """Test that async=True returns a live handle with a stdout channel."""
        handle = ctx.execute(python_cmd("print(1234)"), {"async": True})

        assert ctx.error() is None
        assert isinstance(handle, ChildHandle)
        assert hasattr(handle, "stdout")
        assert handle.stdout.read(timeout=WAIT) == "1234\n"
        assert handle.wait(WAIT).stdout == "1234\n"

    def test_keyword_async(self, ctx):
        """Test the async_ keyword spelling."""
        handle = ctx.execute("echo hi", async_=True)
        result = handle.wait(WAIT)
        assert result.code == 0
        assert result == "hi\n"
        assert handle.done()

    def test_returns_before_completion(self, ctx):
        """Test that the handle is returned while the command still runs."""
        start = time.monotonic()
        handle = ctx.execute("sleep 1", async_=True)
        assert time.monotonic() - start < 1
        assert not handle.done()
        assert handle.wait(WAIT).code == 0

    def test_wait_timeout(self, ctx):
        """Test that wait gives up after its own timeout."""
        handle = ctx.execute("sleep 2", async_=True)
        with pytest.raises(TimeoutError):
            handle.wait(0.1)
        assert handle.wait(WAIT).code == 0

    def test_listener_sees_live_output(self, ctx):
        """Test subscribing to output while the command runs."""
        chunks = []
        handle = ctx.execute("sleep 0.5; echo live", async_=True)
        handle.stdout.add_listener(chunks.append)
        handle.wait(WAIT)
        assert b"".join(chunks) == b"live\n"

    @pytest.mark.asyncio
    async def test_await_handle(self, ctx):
        """Test awaiting a handle from a coroutine."""
        result = await ctx.execute("echo awaited", async_=True)
        assert result.code == 0
        assert result.stdout == "awaited\n"

    def test_timeout(self, ctx):
        """Test the timeout option in async mode."""
        handle = ctx.execute("echo before; sleep 10; echo after", async_=True, timeout=0.5)
        result = handle.wait(WAIT)
        assert result.code == 1
        assert result.stdout == "before\n"


class TestAsyncCallback:
    """Tests for async execution with a callback."""

    def test_callback_as_second_argument(self, ctx):
        """Test (command, callback)."""
        code, stdout, stderr = exec_async(ctx, python_cmd("print(5678)"))
        assert code == 0
        assert stdout == "5678\n"
        assert stderr == ""

    def test_callback_as_third_argument(self, ctx):
        """Test (command, options, callback) with async already set."""
        code, stdout, stderr = exec_async(ctx, python_cmd("print(5566)"), {"async": True})
        assert code == 0
        assert stdout == "5566\n"
        assert stderr == ""

    def test_callback_silent(self, loud_ctx, capsys):
        """Test (command, options, callback) with silent=True."""
        code, stdout, stderr = exec_async(loud_ctx, python_cmd("print(5678)"), {"silent": True})
        assert code == 0
        assert stdout == "5678\n"
        assert stderr == ""
        assert capsys.readouterr().out == ""

    def test_callback_mirrors(self, loud_ctx, capsys):
        """Test that async output is mirrored when not silent."""
        exec_async(loud_ctx, "echo mirrored")
        assert capsys.readouterr().out == "mirrored\n"

    def test_command_that_fails(self, ctx):
        """Test a failing command reports its code and stderr."""
        code, stdout, stderr = exec_async(ctx, "echo 'cp: missing <source> and/or <dest>' >&2; exit 1")
        assert code == 1
        assert stdout == ""
        assert stderr == "cp: missing <source> and/or <dest>\n"

    def test_bytes_encoding(self, ctx):
        """Test encoding=bytes in async mode."""
        code, stdout, stderr = exec_async(ctx, python_cmd("print(5566)"), {"async": True, "encoding": "bytes"})
        assert code == 0
        assert isinstance(stdout, bytes)
        assert isinstance(stderr, bytes)
        assert stdout.decode() == "5566\n"
        assert stderr.decode() == ""

    def test_called_exactly_once(self, ctx):
        """Test that the callback runs once, after completion."""
        calls = []
        done = threading.Event()

        def callback(code, stdout, stderr):
            calls.append((code, stdout))
            done.set()

        handle = ctx.execute("echo once", callback)
        assert done.wait(WAIT)
        handle.wait(WAIT)
        time.sleep(0.2)
        assert calls == [(0, "once\n")]

    def test_callback_runs_off_caller_thread(self, ctx):
        """Test that the callback runs on the runtime thread."""
        threads = queue.Queue()
        ctx.execute("true", lambda *_: threads.put(threading.current_thread().name))
        assert threads.get(timeout=WAIT) == "shellexec-runtime"

    def test_sync_exec_inside_callback(self, ctx):
        """Test that a blocking exec from a callback does not deadlock."""
        inner = queue.Queue()
        ctx.execute("true", lambda *_: inner.put(ctx.execute("echo nested")))
        assert inner.get(timeout=WAIT) == "nested\n"

    def test_async_exec_inside_callback(self, ctx):
        """Test starting another async exec from a callback."""
        inner = queue.Queue()
        ctx.execute("true", lambda *_: ctx.execute("echo chained", lambda code, out, err: inner.put(out)))
        assert inner.get(timeout=WAIT) == "chained\n"

    def test_missing_interpreter(self, ctx):
        """Test that an unresolvable interpreter completes the callback with code 1."""
        ctx.config.interpreter_path = None
        code, stdout, stderr = exec_async(ctx, "echo foo")
        assert code == 1
        assert stdout == ""
        assert "Unable to find a path to the interpreter" in stderr
        assert "Unable to find a path to the interpreter" in ctx.error()

    def test_launch_failure(self, ctx):
        """Test that a child the OS refuses to start still reaches the callback."""
        code, stdout, stderr = exec_async(ctx, "echo hi", {"env": {"A=B": "x"}})
        assert code == 1
        assert stdout == ""
        assert stderr.startswith("exec: ")

    def test_unexpected_error(self, ctx, monkeypatch):
        """Test that an unexpected launcher error still calls back once."""

        async def broken_launch(handle, **kwargs):
            raise RuntimeError("launcher broke")

        monkeypatch.setattr("shellexec.executor.launch", broken_launch)
        calls = queue.Queue()
        handle = ctx.execute("echo hi", lambda *args: calls.put(args))

        code, _, stderr = calls.get(timeout=WAIT)
        assert code == 1
        assert "exec: launcher broke" in stderr
        assert handle.wait(WAIT).code == 1
        time.sleep(0.1)
        assert calls.empty()

    def test_fatal(self, ctx):
        """Test that fatal mode skips the callback and fails the handle."""
        calls = []
        handle = ctx.execute("asdfasdf", {"fatal": True}, lambda *args: calls.append(args))
        with pytest.raises(FatalCommandError, match="asdfasdf"):
            handle.wait(WAIT)
        assert calls == []
        assert ctx.error()
