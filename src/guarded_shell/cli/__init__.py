from __future__ import annotations

import logging

import typer

from guarded_shell import __version__
from guarded_shell.cli.cmds import register_patterns, register_sessions
from guarded_shell.cli.output import console
from guarded_shell.logging import configure_logging


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"guarded-shell [dim]v{__version__}[/dim]")
        raise typer.Exit()


_TYPER_HELP = """Policy-gated remote shell execution.

**Quick start:**

* `guarded-shell patterns test "rm -rf /"` - Classify a command
* `guarded-shell exec -H web-1 -u deploy -c "df -h"` - Run one command
* `guarded-shell shell -H web-1 -u deploy` - Interactive guarded shell
"""

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=_TYPER_HELP,
    rich_markup_mode="markdown",
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable debug logging."),
    log_format: str = typer.Option(
        "rich",
        "--log-format",
        envvar="GUARDED_SHELL_LOG_FORMAT",
        help="Log output format: rich, human or json.",
    ),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """guarded-shell: supervised, policy-gated remote command execution."""
    if log_format not in ("rich", "human", "json"):
        raise typer.BadParameter(f"Unknown log format: {log_format}", param_hint="--log-format")
    configure_logging(logging.DEBUG if verbose else logging.ERROR, format=log_format)


register_patterns(app)
register_sessions(app)


def main():
    app()


if __name__ == "__main__":
    main()
