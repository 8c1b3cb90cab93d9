"""Core types for guarded shell sessions.

This module provides the value types shared by the session controller,
the completion detector and the transport:

- OutputChunk / StreamKind: a raw piece of transport output
- ExecuteOptions: per-command execution options
- CommandResult: outcome of a completed command
- CommandRecord: history entry for a submitted command
- SessionStatus: read-only status snapshot of a session
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from guarded_shell.shell.detector import CompletionReason

if TYPE_CHECKING:
    from guarded_shell.shell.classifier import Verdict

__all__ = [
    "StreamKind",
    "OutputChunk",
    "ExecuteOptions",
    "CommandResult",
    "CommandRecord",
    "SessionStatus",
]


# =============================================================================
# Output Chunks
# =============================================================================


class StreamKind(str, Enum):
    """Origin of an output chunk."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True, slots=True)
class OutputChunk:
    """A raw piece of output as delivered by the transport.

    Attributes:
        stream: Whether the chunk came from stdout or stderr.
        data: Decoded text of the chunk.
        timestamp: Wall-clock time (epoch seconds) the chunk was received.
    """

    stream: StreamKind
    data: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.stream.value, "data": self.data, "timestamp": self.timestamp}


# =============================================================================
# Execution Options
# =============================================================================


@dataclass(frozen=True, slots=True)
class ExecuteOptions:
    """Options for a single ``execute_command`` call.

    Attributes:
        bypass_safety: Execute even if the command is classified dangerous.
        timeout: Ceiling in seconds. None uses the session default (30s).
        streaming: Forward every chunk to ``on_stream`` observers as it arrives.
        require_confirmation: Override the session's confirmation toggle.

    Example:
        >>> options = ExecuteOptions(timeout=120.0, streaming=True)
    """

    bypass_safety: bool = False
    timeout: float | None = None
    streaming: bool = False
    require_confirmation: bool | None = None


# =============================================================================
# Results and History
# =============================================================================


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a completed command.

    Completion is inferred from output quiescence, so there is no exit code.
    A command cut off by the ceiling is still a normal result; ``completion``
    tells which condition ended it.

    Attributes:
        command: The command that was executed.
        output: Raw concatenation of every chunk seen while in flight.
        duration_ms: Time from submission to completion in milliseconds.
        verdict: Safety classification made at submission time.
        completion: What ended the command (idle, ceiling or closed).
    """

    command: str
    output: str
    duration_ms: float
    verdict: Verdict
    completion: CompletionReason

    @property
    def truncated(self) -> bool:
        """True if the command was cut off before output went quiet."""
        return self.completion is not CompletionReason.IDLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "output": self.output,
            "duration_ms": round(self.duration_ms, 2),
            "completion": self.completion.value,
            "analysis": self.verdict.to_dict(),
        }


@dataclass(slots=True)
class CommandRecord:
    """History entry for a submitted command.

    Attributes:
        command: The submitted command text.
        verdict: Classification at submission time.
        executed: False only if the command was refused.
        timestamp: Submission time (UTC).
        result: Filled in once the command completes.
    """

    command: str
    verdict: Verdict
    executed: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    result: CommandResult | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "command": self.command,
            "timestamp": self.timestamp.isoformat(),
            "executed": self.executed,
            "analysis": self.verdict.to_dict(),
        }
        if self.result is not None:
            d["duration_ms"] = round(self.result.duration_ms, 2)
            d["completion"] = self.result.completion.value
        return d


@dataclass(frozen=True, slots=True)
class SessionStatus:
    """Read-only snapshot of a session.

    Counts are derived from the session history at snapshot time.
    """

    session_id: str
    connected: bool
    server: str
    uptime_ms: float
    command_count: int
    blocked_count: int
    suspicious_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "connected": self.connected,
            "server": self.server,
            "uptime_ms": round(self.uptime_ms, 2),
            "command_count": self.command_count,
            "blocked_count": self.blocked_count,
            "suspicious_count": self.suspicious_count,
        }
