"""Tests for process launching."""

import os
import sys
import time

import pytest

from shellexec import _child
from shellexec.aggregator import OutputAggregator
from shellexec.launcher import (
    CHILD_SCRIPT,
    ChildHandle,
    build_argv,
    default_shell,
    is_runnable,
    launch,
)
from shellexec.types import FAILURE_CODE

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


def make_handle(command, max_buffer=1024):
    return ChildHandle(command, OutputAggregator(max_buffer=max_buffer, silent=True))


class TestHelpers:
    """Tests for launcher helper functions."""

    def test_build_argv(self):
        """Test the argv given to the interpreter."""
        argv = build_argv("/usr/bin/python3", "/bin/sh", "echo 'hi there'")
        assert argv == ["/usr/bin/python3", "-I", "-S", str(CHILD_SCRIPT), "/bin/sh", "echo 'hi there'"]

    def test_child_script_exists(self):
        """Test that the bootstrap script ships next to the launcher."""
        assert CHILD_SCRIPT.is_file()

    def test_is_runnable(self, tmp_path):
        """Test executable detection."""
        assert is_runnable(sys.executable)
        assert not is_runnable(None)
        assert not is_runnable("")
        assert not is_runnable(str(tmp_path))
        assert not is_runnable(str(tmp_path / "missing"))

    @posix_only
    def test_default_shell(self):
        """Test the default POSIX shell."""
        assert default_shell() == "/bin/sh"


class TestChildBootstrap:
    """Tests for the bootstrap script."""

    def test_import_exports_nothing(self):
        """Test that importing the bootstrap has no public surface."""
        assert _child.__all__ == []

    @pytest.mark.parametrize(
        "shell,expected",
        [
            ("/bin/sh", ["/bin/sh", "-c", "ls"]),
            ("/usr/bin/bash", ["/usr/bin/bash", "--noprofile", "--norc", "-c", "ls"]),
            ("zsh", ["zsh", "-f", "-c", "ls"]),
            ("C:\\Windows\\System32\\cmd.exe", ["C:\\Windows\\System32\\cmd.exe", "/d", "/s", "/c", "ls"]),
            ("CMD.EXE", ["CMD.EXE", "/d", "/s", "/c", "ls"]),
            ("C:/Program Files/Git/bin/bash.exe", ["C:/Program Files/Git/bin/bash.exe", "--noprofile", "--norc", "-c", "ls"]),
        ],
    )
    def test_shell_argv(self, shell, expected):
        """Test startup flags per shell."""
        assert _child.shell_argv(shell, "ls") == expected

    def test_usage(self, capsys):
        """Test that wrong arguments print usage."""
        assert _child.main(["_child.py"]) == 2
        assert "usage" in capsys.readouterr().err


@posix_only
class TestLaunch:
    """Tests for launching real children."""

    @pytest.mark.asyncio
    async def test_launch_and_wait(self):
        """Test running a command to completion."""
        handle = await launch(make_handle("echo out; echo err >&2"), interpreter_path=sys.executable, cwd=os.getcwd())
        assert handle.pid is not None

        exit_code, sig = await handle.wait_for_exit()

        assert (exit_code, sig) == (0, None)
        assert handle.returncode == 0
        assert handle.stdout.getvalue() == b"out\n"
        assert handle.stderr.getvalue() == b"err\n"
        assert handle.stdout.closed and handle.stderr.closed

    @pytest.mark.asyncio
    async def test_exit_code(self):
        """Test that the shell's exit code is reported."""
        handle = await launch(make_handle("exit 7"), interpreter_path=sys.executable)
        assert await handle.wait_for_exit() == (7, None)

    @pytest.mark.asyncio
    async def test_missing_shell(self):
        """Test that a missing shell is reported like a missing command."""
        handle = await launch(make_handle("echo hi"), interpreter_path=sys.executable, shell="/nonexistent/sh")
        exit_code, _ = await handle.wait_for_exit()
        assert exit_code == _child.NOT_FOUND_CODE
        assert b"/nonexistent/sh" in handle.stderr.getvalue()

    @pytest.mark.asyncio
    async def test_launch_failure(self, tmp_path):
        """Test that a bad interpreter yields a failed handle instead of raising."""
        handle = await launch(make_handle("echo hi"), interpreter_path=str(tmp_path / "missing"))

        assert handle.launch_error
        assert handle.pid is None
        assert handle.returncode == FAILURE_CODE
        assert await handle.wait_for_exit() == (None, None)
        assert handle.stderr.getvalue().startswith(b"exec: ")
        assert handle.stdout.closed

    @pytest.mark.asyncio
    async def test_environment_passed_through(self):
        """Test that env is given to the child as is."""
        handle = await launch(
            make_handle("echo $ONLY_VAR"),
            interpreter_path=sys.executable,
            env={"ONLY_VAR": "$literal"},
        )
        await handle.wait_for_exit()
        assert handle.stdout.getvalue() == b"$literal\n"

    @pytest.mark.asyncio
    async def test_timeout_kills_group(self):
        """Test that the deadline kills the child and its children."""
        handle = await launch(make_handle("echo started; sleep 30 & wait"), interpreter_path=sys.executable)

        start = time.monotonic()
        exit_code, sig = await handle.wait_for_exit(timeout=0.5)

        assert time.monotonic() - start < 5
        assert handle.timed_out
        assert exit_code is None
        assert sig is not None
        assert handle.stdout.getvalue() == b"started\n"

    @pytest.mark.asyncio
    async def test_signal_reported(self):
        """Test that death by signal is reported as a signal number."""
        handle = await launch(make_handle("kill -KILL $$"), interpreter_path=sys.executable)
        assert await handle.wait_for_exit() == (None, 9)

    @pytest.mark.asyncio
    async def test_await_handle(self):
        """Test that a handle can be awaited once its result is set."""
        from shellexec.result import ExecResult

        handle = make_handle("true")
        handle.set_result(ExecResult(code=0, stdout="done"))
        assert (await handle).stdout == "done"
        assert handle.done()
