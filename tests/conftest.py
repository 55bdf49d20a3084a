"""Shared fixtures for shellexec tests."""

import shlex
import sys
from pathlib import Path

import pytest

from shellexec import ExecutionConfig, ExecutionContext

RESOURCES = Path(__file__).parent / "resources"

# Quoted interpreter path, for building command strings
PYTHON = shlex.quote(sys.executable)


def python_cmd(code: str) -> str:
    """Build a command that runs a Python snippet."""
    return f"{PYTHON} -c {shlex.quote(code)}"


def slow_cmd(seconds: float) -> str:
    """Build a command that prints fast, sleeps, then prints slow."""
    return f"{PYTHON} {shlex.quote(str(RESOURCES / 'slow.py'))} {seconds}"


@pytest.fixture
def ctx():
    """Isolated, silent execution context."""
    return ExecutionContext(config=ExecutionConfig(silent=True))


@pytest.fixture
def loud_ctx():
    """Isolated execution context that mirrors output."""
    return ExecutionContext(config=ExecutionConfig(silent=False))
