"""Error hierarchy for guarded-shell.

All library errors derive from :class:`GuardedShellError`, which carries a
message, optional structured details and an optional hint for the user.

Hierarchy:
    GuardedShellError
    ├── ConfigurationError
    ├── InvalidPatternError
    └── SessionError
        ├── NotConnectedError
        ├── CommandBlockedError
        ├── ConnectionTimeoutError
        └── TransportError

``CommandBlockedError`` is a routine policy outcome, not a fault: callers can
tell it apart from ``TransportError`` by type alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from guarded_shell.shell.classifier import Verdict

__all__ = [
    "GuardedShellError",
    "ConfigurationError",
    "InvalidPatternError",
    "SessionError",
    "NotConnectedError",
    "CommandBlockedError",
    "ConnectionTimeoutError",
    "TransportError",
    "log_exception",
]


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    *,
    level: Literal["debug", "info", "warning", "error"] = "warning",
    include_traceback: bool = True,
) -> None:
    """Log an exception with a consistent format.

    Args:
        logger: Logger to write to.
        message: Context message describing what failed.
        exc: The exception that was raised.
        level: Log level name.
        include_traceback: Attach the traceback to the record.
    """
    log_fn = getattr(logger, level)
    log_fn(
        f"{message}: {type(exc).__name__}: {exc}",
        exc_info=exc if include_traceback else None,
    )


class GuardedShellError(Exception):
    """Base exception for all guarded-shell errors.

    Attributes:
        message: Human-readable error message.
        details: Structured context for programmatic inspection.
        hint: Optional suggestion for resolving the error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.hint = hint
        super().__init__(self._format())

    def _format(self) -> str:
        if self.hint:
            return f"{self.message}\n  Hint: {self.hint}"
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ConfigurationError(GuardedShellError):
    """Pattern configuration could not be read, parsed or written."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        self.path = path
        super().__init__(message, details=details, hint=hint)


class InvalidPatternError(GuardedShellError):
    """A pattern expression does not compile or its category is unknown."""

    def __init__(
        self,
        message: str,
        *,
        pattern_name: str | None = None,
        expression: str | None = None,
        category: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.pattern_name = pattern_name
        self.expression = expression
        self.category = category
        super().__init__(message, details=details)


class SessionError(GuardedShellError):
    """Base class for errors raised by an interactive session."""

    def __init__(
        self,
        message: str,
        *,
        session_id: str | None = None,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
    ) -> None:
        self.session_id = session_id
        super().__init__(message, details=details, hint=hint)


class NotConnectedError(SessionError):
    """Operation needs an active connection but the session has none."""

    def __init__(self, message: str = "SSH session not connected", **kwargs: Any) -> None:
        kwargs.setdefault("hint", "Call connect() first or use the session as a context manager")
        super().__init__(message, **kwargs)


class CommandBlockedError(SessionError):
    """A command was refused by the safety policy.

    Attributes:
        command: The refused command.
        reason: Human-readable reason (the verdict's ``blocked_reason``).
        verdict: Full classification for programmatic inspection.
    """

    def __init__(
        self,
        command: str,
        reason: str,
        verdict: Verdict,
        *,
        session_id: str | None = None,
    ) -> None:
        self.command = command
        self.reason = reason
        self.verdict = verdict
        super().__init__(
            f"Command blocked: {reason}",
            session_id=session_id,
            details={"command": command, "warnings": list(verdict.warnings)},
        )


class ConnectionTimeoutError(SessionError):
    """The transport did not confirm readiness within the allowed time."""

    def __init__(self, timeout: float, *, session_id: str | None = None) -> None:
        self.timeout = timeout
        super().__init__(
            f"SSH connection timeout after {timeout:g}s",
            session_id=session_id,
            hint="Check host reachability and credentials",
        )


class TransportError(SessionError):
    """The underlying transport failed or terminated unexpectedly."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        session_id: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        super().__init__(message, session_id=session_id, details={"exit_code": exit_code})
