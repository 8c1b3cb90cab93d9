"""
CLI commands for running commands over a guarded ssh session.

Usage:
    guarded-shell exec -H web-1 -u deploy -c "df -h"
    guarded-shell exec -c "tail -f /var/log/syslog" --stream --timeout 10
    guarded-shell exec -c "rm -rf /" --unsafe        # Bypass dangerous-command blocking
    guarded-shell shell -H web-1 -u deploy           # Interactive line loop

Connection options fall back to GUARDED_SHELL_HOST, GUARDED_SHELL_USER,
GUARDED_SHELL_PORT, GUARDED_SHELL_KEY and GUARDED_SHELL_PASSWORD.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.markup import escape

from guarded_shell.cli.cmds.patterns_cmds import PatternsFileOption, load_registry
from guarded_shell.cli.output import (
    console,
    err_console,
    print_cli_error,
    print_result,
    print_warning,
    render_status,
)
from guarded_shell.errors import CommandBlockedError, GuardedShellError, TransportError
from guarded_shell.shell import (
    ExecuteOptions,
    InteractiveSession,
    SessionCallbacks,
    SessionConfig,
    SshConfig,
    StreamEvent,
    Verdict,
    WarningEvent,
)

EXIT_ERROR = 1
EXIT_BLOCKED = 2

_SHELL_HELP = """Built-in commands:
  :status    Show session status
  :history   Show recent commands
  :unsafe    Disable dangerous-command blocking
  :safe      Re-enable dangerous-command blocking
  exit       Close the session"""

HostOption = typer.Option(..., "--host", "-H", envvar="GUARDED_SHELL_HOST", help="Remote host")
UserOption = typer.Option(..., "--user", "-u", envvar="GUARDED_SHELL_USER", help="Remote user")
PortOption = typer.Option(22, "--port", envvar="GUARDED_SHELL_PORT", help="SSH port")
KeyOption = typer.Option(None, "--key", "-k", envvar="GUARDED_SHELL_KEY", help="Private key file")
PasswordOption = typer.Option(
    None,
    "--password",
    envvar="GUARDED_SHELL_PASSWORD",
    help="Password for the first password prompt",
    show_default=False,
)


class ConsoleCallbacks(SessionCallbacks):
    """Print streamed output and suspicious-command warnings."""

    def on_stream(self, event: StreamEvent) -> None:
        typer.echo(event.chunk.data, nl=False)

    def on_warning(self, event: WarningEvent) -> None:
        print_warning(f"Suspicious command: {event.command}")
        for warning in event.verdict.warnings:
            err_console.print(f"  [yellow]{escape(warning)}[/yellow]")


def _print_blocked(e: CommandBlockedError) -> None:
    print_cli_error(f"Command blocked: {e.reason}", hint="Use --unsafe to bypass safety checks")
    for warning in e.verdict.warnings:
        err_console.print(f"  [red]{escape(warning)}[/red]")


async def _confirm(command: str, verdict: Verdict) -> bool:
    return await asyncio.to_thread(typer.confirm, f"Run suspicious command '{command}'?", default=False)


def _build_session(
    patterns_file: Path | None,
    *,
    host: str,
    user: str,
    port: int,
    key: str | None,
    password: str | None,
    unsafe: bool,
    confirm: bool = False,
) -> InteractiveSession:
    registry = load_registry(patterns_file)
    if unsafe:
        print_warning("UNSAFE MODE: dangerous-command blocking is disabled")

    config = SessionConfig(
        block_dangerous_commands=False if unsafe else None,
        require_confirmation=confirm,
        confirm=_confirm if confirm else None,
    )
    return InteractiveSession(
        SshConfig(host=host, user=user, port=port, key_path=key, password=password),
        registry=registry,
        config=config,
        callbacks=ConsoleCallbacks(),
    )


# =============================================================================
# exec
# =============================================================================


async def run_exec(
    session: InteractiveSession,
    command: str,
    options: ExecuteOptions,
    *,
    output_json: bool = False,
) -> int:
    """Connect, run one command, close. Returns the process exit code."""
    try:
        async with session:
            result = await session.execute_command(command, options)
    except CommandBlockedError as e:
        if output_json:
            typer.echo(json.dumps({"blocked": True, "reason": e.reason, "analysis": e.verdict.to_dict()}, indent=2))
        else:
            _print_blocked(e)
        return EXIT_BLOCKED
    except GuardedShellError as e:
        print_cli_error(e.message, hint=e.hint)
        return EXIT_ERROR

    if output_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    elif options.streaming:
        err_console.print(f"[dim]({result.duration_ms:.0f}ms)[/dim]")
    else:
        print_result(result)
    return 0


def exec_cmd(
    command: str = typer.Option(..., "--command", "-c", help="Command to execute"),
    host: str = HostOption,
    user: str = UserOption,
    port: int = PortOption,
    key: str | None = KeyOption,
    password: str | None = PasswordOption,
    unsafe: bool = typer.Option(False, "--unsafe", help="Allow dangerous commands"),
    stream: bool = typer.Option(False, "--stream", help="Print output as it arrives"),
    timeout: float = typer.Option(30.0, "--timeout", "-t", help="Maximum seconds to wait for the command"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Execute one command on a remote host."""
    session = _build_session(
        patterns_file,
        host=host,
        user=user,
        port=port,
        key=key,
        password=password,
        unsafe=unsafe,
    )
    options = ExecuteOptions(timeout=timeout, streaming=stream and not output_json)
    exit_code = asyncio.run(run_exec(session, command, options, output_json=output_json))
    if exit_code:
        raise typer.Exit(exit_code)


# =============================================================================
# shell
# =============================================================================


def _handle_builtin(session: InteractiveSession, line: str) -> bool:
    """Run a ``:command``. Returns False if ``line`` is not a built-in."""
    if line == ":status":
        console.print(render_status(session.get_status()))
    elif line == ":history":
        for record in session.get_history(20):
            marker = "[green]✓[/green]" if record.executed else "[red]✗[/red]"
            console.print(f"{marker} {escape(record.command)}", highlight=False)
    elif line == ":unsafe":
        session.block_dangerous_commands = False
        print_warning("UNSAFE MODE: dangerous-command blocking is disabled")
    elif line == ":safe":
        session.block_dangerous_commands = True
        console.print("[green]Dangerous-command blocking enabled[/green]")
    elif line in (":help", "help"):
        console.print(_SHELL_HELP)
    else:
        return False
    return True


async def run_shell(session: InteractiveSession, *, timeout: float) -> int:
    """Interactive read-execute loop until ``exit`` or EOF."""
    try:
        await session.connect()
    except GuardedShellError as e:
        print_cli_error(e.message, hint=e.hint)
        return EXIT_ERROR

    console.print(f"[green]Connected to {session.transport.description}[/green] [dim](type :help)[/dim]")
    prompt = f"[bold cyan]{session.transport.description}[/bold cyan] $ "
    exit_code = 0

    try:
        while session.connected:
            try:
                line = (await asyncio.to_thread(console.input, prompt)).strip()
            except (EOFError, KeyboardInterrupt):
                break

            if not line:
                continue
            if line in ("exit", "quit"):
                break
            if _handle_builtin(session, line):
                continue

            try:
                result = await session.execute_command(line, ExecuteOptions(timeout=timeout, streaming=True))
            except CommandBlockedError as e:
                _print_blocked(e)
                continue
            except TransportError as e:
                print_cli_error(e.message)
                exit_code = EXIT_ERROR
                break

            if result.truncated:
                err_console.print(f"[dim](stopped after {result.duration_ms / 1000:.1f}s)[/dim]")
    finally:
        await session.close()

    return exit_code


def shell_cmd(
    host: str = HostOption,
    user: str = UserOption,
    port: int = PortOption,
    key: str | None = KeyOption,
    password: str | None = PasswordOption,
    unsafe: bool = typer.Option(False, "--unsafe", help="Allow dangerous commands"),
    confirm: bool = typer.Option(True, "--confirm/--no-confirm", help="Ask before running suspicious commands"),
    timeout: float = typer.Option(30.0, "--timeout", "-t", help="Maximum seconds to wait per command"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Open an interactive guarded shell on a remote host."""
    session = _build_session(
        patterns_file,
        host=host,
        user=user,
        port=port,
        key=key,
        password=password,
        unsafe=unsafe,
        confirm=confirm,
    )
    exit_code = asyncio.run(run_shell(session, timeout=timeout))
    if exit_code:
        raise typer.Exit(exit_code)


def register(parent: typer.Typer):
    """Register session commands with the parent CLI app."""
    parent.command("exec", rich_help_panel="Sessions")(exec_cmd)
    parent.command("shell", rich_help_panel="Sessions")(shell_cmd)
