"""Command line interface for shellexec."""

import json
from pathlib import Path

import click

from shellexec import __version__
from shellexec.config import DEFAULT_CONFIG_PATH, load_config
from shellexec.context import ExecutionContext
from shellexec.exceptions import ConfigError, FatalCommandError
from shellexec.logging import configure_logging, get_level_from_verbosity, get_logger
from shellexec.result import ExecResult
from shellexec.types import ExecutionConfig

logger = get_logger("shellexec.cli")


def format_result_json(result: ExecResult, command: str) -> str:
    """Format a result as JSON.

    Args:
        result: Result of the command
        command: Command that was run

    Returns:
        JSON string with command, code, stdout and stderr
    """
    return json.dumps({"command": command, **result.to_dict()}, indent=2)


def build_defaults(config_file: str | None) -> ExecutionConfig:
    """Load the defaults from --config, or the default config file if present."""
    if config_file:
        return load_config(config_file)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return ExecutionConfig()


@click.command()
@click.argument("command", required=False)
@click.option("--silent", "-s", is_flag=True, help="Do not echo the command's output")
@click.option("--fatal", is_flag=True, help="Treat a non-zero exit as a fatal error")
@click.option("--timeout", "-t", type=float, default=None, help="Kill the command after this many seconds")
@click.option("--max-buffer", type=int, default=None, help="Maximum bytes captured per stream")
@click.option("--shell", "shell_path", default=None, help="Shell used to interpret the command")
@click.option("--cwd", type=click.Path(file_okay=False), default=None, help="Working directory")
@click.option("--encoding", default=None, help="Output encoding: text, bytes or a codec name")
@click.option("--config", "config_file", type=click.Path(dir_okay=False), default=None,
              help=f"Config file (YAML or JSON, default: {DEFAULT_CONFIG_PATH})")
@click.option("--format", "-f", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Output format (json implies --silent)")
@click.option("--verbose", "-v", count=True, help="Increase logging verbosity (-v, -vv, -vvv)")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also write logs to this file")
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(
    ctx: click.Context,
    command: str | None,
    silent: bool,
    fatal: bool,
    timeout: float | None,
    max_buffer: int | None,
    shell_path: str | None,
    cwd: str | None,
    encoding: str | None,
    config_file: str | None,
    output_format: str,
    verbose: int,
    log_file: str | None,
    version: bool,
) -> None:
    """Run COMMAND through the shell and exit with its exit code.

    \b
    Examples:
      shellexec "ls -l /tmp"
      shellexec --timeout 5 "sleep 10"
      shellexec --format json "uname -a"
    """
    if version:
        click.echo(f"shellexec {__version__}")
        ctx.exit(0)

    if not command:
        click.echo(ctx.get_help())
        ctx.exit(2)

    configure_logging(level=get_level_from_verbosity(verbose), log_file=log_file)

    try:
        defaults = build_defaults(config_file)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    options = {
        "silent": True if silent or output_format == "json" else None,
        "fatal": True if fatal else None,
        "timeout": timeout,
        "max_buffer": max_buffer,
        "shell": shell_path,
        "cwd": str(Path(cwd).resolve()) if cwd else None,
        "encoding": encoding,
    }
    context = ExecutionContext(config=defaults)

    try:
        result = context.execute(command, {k: v for k, v in options.items() if v is not None})
    except FatalCommandError as e:
        logger.debug("Fatal command error", code=e.code)
        click.echo(str(e), err=True)
        ctx.exit(e.code or 1)

    if result is None:
        raise click.ClickException(context.error() or "exec failed")

    if output_format == "json":
        click.echo(format_result_json(result, command))

    logger.info("Command exited", code=result.code)
    ctx.exit(result.code)


def main() -> None:
    """Entry point for the shellexec console script."""
    cli()


if __name__ == "__main__":
    main()
