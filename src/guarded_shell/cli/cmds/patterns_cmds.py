"""
CLI commands for managing command patterns.

Usage:
    guarded-shell patterns list                      # All categories
    guarded-shell patterns list dangerous --json
    guarded-shell patterns test "rm -rf /tmp/test"   # Classify a command
    guarded-shell patterns stats
    guarded-shell patterns add --type dangerous --name shutdown_system \\
        --pattern "^shutdown|^reboot" --description "System shutdown/reboot" --severity high
    guarded-shell patterns export my-patterns.json
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from guarded_shell.cli.output import (
    console,
    print_cli_error,
    print_success,
    print_warning,
    render_patterns_table,
    render_settings,
    render_stats_table,
    render_verdict,
)
from guarded_shell.errors import ConfigurationError, InvalidPatternError
from guarded_shell.shell import PatternCategory, PatternRegistry, Severity, classify
from guarded_shell.shell.patterns import PATTERNS_FILE_ENV

app = typer.Typer(help="Manage dangerous, suspicious and whitelisted command patterns")

PatternsFileOption = typer.Option(
    None,
    "--patterns",
    "-P",
    envvar=PATTERNS_FILE_ENV,
    help="Pattern document (JSON or YAML). Defaults to config/command-patterns.json",
)


def load_registry(patterns_file: Path | None) -> PatternRegistry:
    """Load a registry, warning when the built-in defaults had to be used."""
    registry = PatternRegistry.load(patterns_file)
    if registry.using_defaults:
        print_warning(f"Pattern file {registry.config_path} unavailable, using built-in defaults")
    return registry


@app.command("list")
def list_cmd(
    category: str = typer.Argument(
        "all",
        help="Category to list: dangerous, suspicious, whitelisted or all",
    ),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    patterns_file: Path | None = PatternsFileOption,
):
    """List patterns."""
    if category == "all":
        categories = list(PatternCategory)
    else:
        try:
            categories = [PatternCategory(category)]
        except ValueError:
            print_cli_error(
                f"Invalid type: {category}",
                hint="Use dangerous, suspicious, whitelisted or all",
            )
            raise typer.Exit(1)

    registry = load_registry(patterns_file)

    if output_json:
        data = {
            c.value: [p.to_entry().model_dump(mode="json", exclude_none=True) for p in registry.patterns(c)]
            for c in categories
        }
        typer.echo(json.dumps(data if category == "all" else data[category], indent=2))
        return

    for c in categories:
        console.print(render_patterns_table(c, registry.patterns(c)))


@app.command("test")
def test_cmd(
    command: str = typer.Argument(..., help="Command to classify"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Classify a command against the current patterns."""
    registry = load_registry(patterns_file)
    verdict = classify(command, registry)

    if output_json:
        typer.echo(json.dumps(verdict.to_dict(), indent=2))
        return

    console.print(render_verdict(verdict))
    if verdict.whitelisted:
        console.print("[green]Command is WHITELISTED (will not be blocked)[/green]")
    elif verdict.dangerous:
        console.print("[red]Command will be BLOCKED[/red]")
    elif verdict.suspicious:
        console.print("[yellow]Command will show a WARNING[/yellow]")
    else:
        console.print("[green]Command is SAFE[/green]")


@app.command("stats")
def stats_cmd(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Show pattern statistics."""
    stats = load_registry(patterns_file).stats()

    if output_json:
        typer.echo(json.dumps(stats.to_dict(), indent=2))
        return

    console.print(render_stats_table(stats))
    console.print(render_settings(stats))


@app.command("add")
def add_cmd(
    category: str = typer.Option(..., "--type", "-t", help="dangerous, suspicious or whitelisted"),
    name: str = typer.Option(..., "--name", "-n", help="Pattern name (snake_case)"),
    expression: str = typer.Option(..., "--pattern", "-p", help="Regular expression"),
    description: str = typer.Option(..., "--description", "-d", help="Human-readable description"),
    severity: Severity = typer.Option(Severity.MEDIUM, "--severity", "-s", help="Severity level"),
    save: bool = typer.Option(True, "--save/--no-save", help="Write the pattern file after adding"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Add a new pattern."""
    registry = load_registry(patterns_file)

    try:
        registry.add_pattern(
            category,
            name=name,
            expression=expression,
            description=description,
            severity=severity,
        )
    except InvalidPatternError as e:
        print_cli_error(e.message, hint="Check the regular expression and --type value")
        raise typer.Exit(1)

    print_success(f"Added {category} pattern: {name}")

    if save:
        try:
            path = registry.save()
        except ConfigurationError as e:
            print_cli_error(e.message)
            raise typer.Exit(1)
        print_success(f"Saved patterns to {path}")


@app.command("export")
def export_cmd(
    output: Path = typer.Argument(..., help="Destination file (.json, .yaml or .yml)"),
    patterns_file: Path | None = PatternsFileOption,
):
    """Export all patterns to a file."""
    registry = load_registry(patterns_file)
    try:
        path = registry.export(output)
    except ConfigurationError as e:
        print_cli_error(e.message)
        raise typer.Exit(1)
    print_success(f"Exported patterns to {path}")


def register(parent: typer.Typer):
    """Register pattern commands with the parent CLI app."""
    parent.add_typer(app, name="patterns", rich_help_panel="Patterns")
