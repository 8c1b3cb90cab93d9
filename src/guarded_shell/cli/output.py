"""Rich rendering helpers shared by CLI commands."""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from guarded_shell.shell import (
    CommandPattern,
    CommandResult,
    PatternCategory,
    PatternStats,
    SessionStatus,
    Severity,
    Verdict,
)

console = Console()
err_console = Console(stderr=True)

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}

CATEGORY_STYLES = {
    PatternCategory.DANGEROUS: "red",
    PatternCategory.SUSPICIOUS: "yellow",
    PatternCategory.WHITELISTED: "green",
}


# =============================================================================
# Messages
# =============================================================================


def print_cli_error(message: str, *, hint: str | None = None) -> None:
    err_console.print(f"[red]✗[/red] {escape(message)}", soft_wrap=True)
    if hint:
        err_console.print(f"  [dim]Hint: {escape(hint)}[/dim]")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]⚠[/yellow] {escape(message)}", soft_wrap=True)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}", soft_wrap=True)


# =============================================================================
# Patterns
# =============================================================================


def _severity_text(severity: Severity | None) -> str:
    if severity is None:
        return "[dim]-[/dim]"
    style = SEVERITY_STYLES[severity]
    return f"[{style}]{severity.value}[/{style}]"


def render_patterns_table(category: PatternCategory, patterns: Iterable[CommandPattern]) -> Table:
    style = CATEGORY_STYLES[category]
    table = Table(title=f"[{style}]{category.value.title()} patterns[/{style}]", header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Severity")
    table.add_column("Pattern", style="dim")
    table.add_column("Description", no_wrap=False)

    for pattern in patterns:
        table.add_row(
            escape(pattern.name),
            _severity_text(pattern.severity),
            escape(pattern.expression),
            escape(pattern.description),
        )
    return table


def render_stats_table(stats: PatternStats) -> Table:
    table = Table(title="Pattern statistics", header_style="bold")
    table.add_column("Category")
    table.add_column("Total", justify="right")
    for severity in Severity:
        table.add_column(severity.value.title(), justify="right")

    for category, counts in (
        (PatternCategory.DANGEROUS, stats.dangerous),
        (PatternCategory.SUSPICIOUS, stats.suspicious),
    ):
        style = CATEGORY_STYLES[category]
        table.add_row(
            f"[{style}]{category.value}[/{style}]",
            str(counts["total"]),
            *(str(counts[s.value]) for s in Severity),
        )
    table.add_row(
        f"[green]{PatternCategory.WHITELISTED.value}[/green]",
        str(stats.whitelisted["total"]),
        *("-" for _ in Severity),
    )
    return table


def render_settings(stats: PatternStats) -> Panel:
    lines = [
        f"[bold]{name}:[/bold] {'[green]on[/green]' if value else '[dim]off[/dim]'}"
        for name, value in stats.settings.model_dump().items()
    ]
    return Panel("\n".join(lines), title="Settings", border_style="blue")


# =============================================================================
# Verdicts and Results
# =============================================================================


def render_verdict(verdict: Verdict) -> Panel:
    if verdict.whitelisted:
        status, color = "WHITELISTED", "green"
    elif verdict.dangerous:
        status, color = "DANGEROUS", "red"
    elif verdict.suspicious:
        status, color = "SUSPICIOUS", "yellow"
    else:
        status, color = "SAFE", "green"

    lines = [
        f"[bold]Command:[/bold] {escape(verdict.command)}",
        f"[bold]Status:[/bold]  [{color}]{status}[/{color}]",
    ]
    if verdict.matched_whitelist:
        lines.append(f"[bold]Whitelist:[/bold] {escape(verdict.matched_whitelist)}")
    if verdict.blocked_reason:
        lines.append(f"[bold]Blocked:[/bold] {verdict.blocked_reason}")
    if verdict.warnings:
        lines.append("")
        lines.append("[bold]Warnings:[/bold]")
        lines.extend(f"  • {escape(warning)}" for warning in verdict.warnings)

    return Panel("\n".join(lines), title="Command analysis", border_style=color)


def print_result(result: CommandResult) -> None:
    console.print(result.output, end="" if result.output.endswith("\n") else "\n", markup=False, highlight=False)
    note = f"{result.duration_ms:.0f}ms"
    if result.truncated:
        note += f", stopped: {result.completion.value}"
    err_console.print(f"[dim]({note})[/dim]")


def render_status(status: SessionStatus) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Session", status.session_id)
    table.add_row("Server", status.server)
    table.add_row("Connected", "[green]yes[/green]" if status.connected else "[red]no[/red]")
    table.add_row("Uptime", f"{status.uptime_ms / 1000:.1f}s")
    table.add_row("Commands", str(status.command_count))
    table.add_row("Blocked", str(status.blocked_count))
    table.add_row("Suspicious", str(status.suspicious_count))
    return table
