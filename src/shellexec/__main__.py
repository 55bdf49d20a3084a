"""Allow ``python -m shellexec``."""

from shellexec.cli import main

main()
