"""Bootstrap run by the launcher as ``python -I -S _child.py SHELL COMMAND``.

Replaces itself with SHELL interpreting COMMAND. Only the standard library
is used here and nothing happens on import.
"""

import ntpath
import os
import subprocess
import sys

__all__: list[str] = []

# Exit status of a shell that cannot find the program it was asked to run
NOT_FOUND_CODE = 127


def shell_argv(shell: str, command: str) -> list[str]:
    """Build the argv that runs command with shell, without startup files."""
    name = ntpath.basename(shell).lower()
    if name.endswith(".exe"):
        name = name[:-4]

    if name == "cmd":
        return [shell, "/d", "/s", "/c", command]
    if name == "bash":
        return [shell, "--noprofile", "--norc", "-c", command]
    if name == "zsh":
        return [shell, "-f", "-c", command]
    return [shell, "-c", command]


def main(argv: list[str]) -> int:
    if len(argv) != 3:
        sys.stderr.write("usage: _child.py SHELL COMMAND\n")
        return 2

    shell, command = argv[1], argv[2]
    args = shell_argv(shell, command)

    if os.name == "nt":
        return subprocess.call(args)

    try:
        os.execvp(shell, args)
    except OSError as e:
        sys.stderr.write(f"{shell}: {e.strerror}\n")
        return NOT_FOUND_CODE
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
