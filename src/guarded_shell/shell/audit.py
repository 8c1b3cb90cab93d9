"""Audit logging for guarded shell sessions.

Security-relevant events are written to the ``guarded_shell.shell.audit``
logger with structured ``extra`` fields, so any handler (JSON formatter,
log shipper) can pick them up:

- **command_blocked**: a dangerous command was refused (WARNING)
- **suspicious_pattern**: a suspicious command was allowed to run (WARNING)
- **command_executed**: a command completed (INFO)
- **session_started** / **session_ended**: session lifecycle (INFO)

A blocked command is a routine policy outcome; it is audited, never logged
as an application error.

Usage:
    from guarded_shell.shell.audit import get_shell_audit_logger

    audit = get_shell_audit_logger()
    audit.log_blocked(verdict, session_id="ssh_1a2b3c")
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from guarded_shell.shell.classifier import PatternMatch, Verdict
    from guarded_shell.shell.types import CommandResult

__all__ = [
    "AuditEventType",
    "AuditEvent",
    "BlockedCommandEvent",
    "SuspiciousPatternEvent",
    "ShellAuditLogger",
    "get_shell_audit_logger",
    "set_shell_audit_logger",
]


# =============================================================================
# Audit Event Types
# =============================================================================


class AuditEventType(str, Enum):
    """Types of audit events."""

    COMMAND_EXECUTED = "command_executed"
    COMMAND_TRUNCATED = "command_truncated"
    COMMAND_BLOCKED = "command_blocked"
    SUSPICIOUS_PATTERN = "suspicious_pattern"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"


# =============================================================================
# Audit Event Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """Audit event for a completed command.

    Attributes:
        event_type: ``command_executed``, or ``command_truncated`` when the
            command was cut off by the ceiling or by session close.
        timestamp: ISO 8601 timestamp.
        command: The command (truncated for logging).
        duration_ms: Time from submission to completion.
        completion: What ended the command.
        bypassed: Whether a dangerous command ran with safety bypassed.
        session_id: Optional session identifier.
        user: Local user who ran the command.
    """

    event_type: AuditEventType
    timestamp: str
    command: str
    duration_ms: float = 0.0
    completion: str = "idle"
    bypassed: bool = False
    session_id: str | None = None
    user: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "command": self.command,
            "duration_ms": round(self.duration_ms, 2),
            "completion": self.completion,
        }
        if self.bypassed:
            d["bypassed"] = True
        if self.session_id:
            d["session_id"] = self.session_id
        if self.user:
            d["user"] = self.user
        if self.extra:
            d.update(self.extra)
        return d

    @classmethod
    def from_result(
        cls,
        result: CommandResult,
        *,
        session_id: str | None = None,
        user: str | None = None,
    ) -> AuditEvent:
        return cls(
            event_type=AuditEventType.COMMAND_TRUNCATED if result.truncated else AuditEventType.COMMAND_EXECUTED,
            timestamp=datetime.now(UTC).isoformat(),
            command=_truncate_command(result.command),
            duration_ms=result.duration_ms,
            completion=result.completion.value,
            bypassed=result.verdict.dangerous,
            session_id=session_id,
            user=user,
        )


@dataclass(frozen=True, slots=True)
class BlockedCommandEvent:
    """Audit event for a command refused by policy.

    Attributes:
        timestamp: ISO 8601 timestamp.
        command: The refused command (truncated).
        reason: Why it was refused.
        matched_patterns: Dangerous patterns that matched.
        session_id: Optional session identifier.
        user: Local user who attempted the command.
    """

    timestamp: str
    command: str
    reason: str
    matched_patterns: tuple[PatternMatch, ...] = ()
    session_id: str | None = None
    user: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "event_type": AuditEventType.COMMAND_BLOCKED.value,
            "timestamp": self.timestamp,
            "command": self.command,
            "reason": self.reason,
            "matched_patterns": [m.to_dict() for m in self.matched_patterns],
        }
        if self.session_id:
            d["session_id"] = self.session_id
        if self.user:
            d["user"] = self.user
        return d


@dataclass(frozen=True, slots=True)
class SuspiciousPatternEvent:
    """Audit event for a suspicious command that was allowed to run."""

    timestamp: str
    command: str
    matched_patterns: tuple[PatternMatch, ...]
    session_id: str | None = None
    user: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "event_type": AuditEventType.SUSPICIOUS_PATTERN.value,
            "timestamp": self.timestamp,
            "command": self.command,
            "matched_patterns": [m.to_dict() for m in self.matched_patterns],
            "pattern_count": len(self.matched_patterns),
        }
        if self.session_id:
            d["session_id"] = self.session_id
        if self.user:
            d["user"] = self.user
        return d


# =============================================================================
# Helper Functions
# =============================================================================


def _truncate_command(command: str, max_length: int = 200) -> str:
    """Truncate command for safe logging."""
    if len(command) <= max_length:
        return command
    return command[:max_length] + "..."


def _get_current_user() -> str | None:
    return os.environ.get("USER") or os.environ.get("USERNAME")


# =============================================================================
# Shell Audit Logger
# =============================================================================


class ShellAuditLogger:
    """Structured audit logger for guarded shell sessions.

    Example:
        audit = ShellAuditLogger()
        audit.log_session_started("ssh_1a2b3c", server="deploy@web-1:22")
        audit.log_result(result, session_id="ssh_1a2b3c")
    """

    def __init__(
        self,
        name: str = "guarded_shell.shell.audit",
        *,
        enabled: bool = True,
        include_user: bool = True,
    ) -> None:
        """Initialize audit logger.

        Args:
            name: Logger name.
            enabled: Whether audit logging is enabled.
            include_user: Whether to include the local user in events.
        """
        self._logger = logging.getLogger(name)
        self._enabled = enabled
        self._include_user = include_user

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    def _log(self, level: int, message: str, **fields: Any) -> None:
        if self._enabled and self._logger.isEnabledFor(level):
            self._logger.log(level, message, extra=fields)

    def _get_user(self) -> str | None:
        return _get_current_user() if self._include_user else None

    # -------------------------------------------------------------------------
    # Command Logging
    # -------------------------------------------------------------------------

    def log_blocked(
        self,
        verdict: Verdict,
        *,
        reason: str | None = None,
        session_id: str | None = None,
    ) -> None:
        """Log a command refused by policy.

        Args:
            verdict: Classification of the refused command.
            reason: Refusal reason. Defaults to ``verdict.blocked_reason``.
            session_id: Optional session identifier.
        """
        event = BlockedCommandEvent(
            timestamp=datetime.now(UTC).isoformat(),
            command=_truncate_command(verdict.command),
            reason=reason or verdict.blocked_reason or "Blocked by policy",
            matched_patterns=verdict.matched_dangerous,
            session_id=session_id,
            user=self._get_user(),
        )
        self._log(logging.WARNING, "command_blocked", **event.to_dict())

    def log_suspicious(self, verdict: Verdict, *, session_id: str | None = None) -> None:
        """Log a suspicious command. Does nothing if no suspicious pattern matched."""
        if not verdict.matched_suspicious:
            return

        event = SuspiciousPatternEvent(
            timestamp=datetime.now(UTC).isoformat(),
            command=_truncate_command(verdict.command),
            matched_patterns=verdict.matched_suspicious,
            session_id=session_id,
            user=self._get_user(),
        )
        self._log(logging.WARNING, "suspicious_pattern", **event.to_dict())

    def log_result(self, result: CommandResult, *, session_id: str | None = None) -> None:
        """Log a completed command."""
        event = AuditEvent.from_result(result, session_id=session_id, user=self._get_user())
        level = logging.WARNING if event.bypassed else logging.INFO
        self._log(level, event.event_type.value, **event.to_dict())

    # -------------------------------------------------------------------------
    # Session Logging
    # -------------------------------------------------------------------------

    def log_session_started(self, session_id: str, *, server: str | None = None) -> None:
        extra: dict[str, Any] = {
            "event_type": AuditEventType.SESSION_STARTED.value,
            "timestamp": datetime.now(UTC).isoformat(),
            "session_id": session_id,
        }
        if server:
            extra["server"] = server
        if user := self._get_user():
            extra["user"] = user

        self._log(logging.INFO, "session_started", **extra)

    def log_session_ended(
        self,
        session_id: str,
        *,
        duration_seconds: float | None = None,
        command_count: int | None = None,
        blocked_count: int | None = None,
    ) -> None:
        """Log session end event.

        Args:
            session_id: Session identifier.
            duration_seconds: Total connected time.
            command_count: Number of commands submitted.
            blocked_count: Number of commands refused.
        """
        extra: dict[str, Any] = {
            "event_type": AuditEventType.SESSION_ENDED.value,
            "timestamp": datetime.now(UTC).isoformat(),
            "session_id": session_id,
        }
        if duration_seconds is not None:
            extra["duration_seconds"] = round(duration_seconds, 2)
        if command_count is not None:
            extra["command_count"] = command_count
        if blocked_count is not None:
            extra["blocked_count"] = blocked_count
        if user := self._get_user():
            extra["user"] = user

        self._log(logging.INFO, "session_ended", **extra)


# =============================================================================
# Global Audit Logger
# =============================================================================


_audit_logger: ShellAuditLogger | None = None


def get_shell_audit_logger() -> ShellAuditLogger:
    """Get the global shell audit logger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = ShellAuditLogger()
    return _audit_logger


def set_shell_audit_logger(logger: ShellAuditLogger | None) -> None:
    """Set (or reset with None) the global shell audit logger."""
    global _audit_logger
    _audit_logger = logger
