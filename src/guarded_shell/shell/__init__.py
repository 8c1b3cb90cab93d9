"""Policy-gated remote shell sessions.

This package provides:
- PatternRegistry: dangerous / suspicious / whitelisted command patterns
- classify / CommandClassifier: command safety verdicts
- CompletionDetector: output-quiescence command completion
- InteractiveSession: supervised command execution over ssh
- ShellAuditLogger: structured audit events

Example:
    ```python
    from guarded_shell.shell import InteractiveSession, PatternRegistry, SshConfig

    registry = PatternRegistry.load("config/command-patterns.json")
    async with InteractiveSession(SshConfig(host="web-1", user="deploy"), registry=registry) as session:
        result = await session.execute_command("df -h")
    ```
"""

from guarded_shell.shell.audit import (
    ShellAuditLogger,
    get_shell_audit_logger,
    set_shell_audit_logger,
)
from guarded_shell.shell.classifier import (
    BLOCKED_REASON,
    CommandClassifier,
    PatternMatch,
    Verdict,
    classify,
)
from guarded_shell.shell.detector import (
    DEFAULT_CEILING,
    DEFAULT_IDLE_THRESHOLD,
    Completion,
    CompletionDetector,
    CompletionReason,
    DetectorState,
)
from guarded_shell.shell.events import (
    BlockedEvent,
    CallbackManager,
    CloseEvent,
    ConnectedEvent,
    ExecutedEvent,
    OutputEvent,
    SessionCallbacks,
    StreamEvent,
    WarningEvent,
)
from guarded_shell.shell.patterns import (
    CommandPattern,
    PatternCategory,
    PatternDocument,
    PatternRegistry,
    PatternSettings,
    PatternStats,
    RegistrySnapshot,
    Severity,
    get_pattern_registry,
    set_pattern_registry,
)
from guarded_shell.shell.session import InteractiveSession, SessionConfig
from guarded_shell.shell.transport import (
    SshConfig,
    SshTransport,
    Transport,
    mask_secret,
    sanitize_for_log,
)
from guarded_shell.shell.types import (
    CommandRecord,
    CommandResult,
    ExecuteOptions,
    OutputChunk,
    SessionStatus,
    StreamKind,
)

__all__ = [
    # Patterns
    "CommandPattern",
    "PatternCategory",
    "PatternDocument",
    "PatternRegistry",
    "PatternSettings",
    "PatternStats",
    "RegistrySnapshot",
    "Severity",
    "get_pattern_registry",
    "set_pattern_registry",
    # Classification
    "BLOCKED_REASON",
    "CommandClassifier",
    "PatternMatch",
    "Verdict",
    "classify",
    # Completion detection
    "DEFAULT_CEILING",
    "DEFAULT_IDLE_THRESHOLD",
    "Completion",
    "CompletionDetector",
    "CompletionReason",
    "DetectorState",
    # Events
    "BlockedEvent",
    "CallbackManager",
    "CloseEvent",
    "ConnectedEvent",
    "ExecutedEvent",
    "OutputEvent",
    "SessionCallbacks",
    "StreamEvent",
    "WarningEvent",
    # Session
    "InteractiveSession",
    "SessionConfig",
    "CommandRecord",
    "CommandResult",
    "ExecuteOptions",
    "OutputChunk",
    "SessionStatus",
    "StreamKind",
    # Transport
    "SshConfig",
    "SshTransport",
    "Transport",
    "mask_secret",
    "sanitize_for_log",
    # Audit
    "ShellAuditLogger",
    "get_shell_audit_logger",
    "set_shell_audit_logger",
]
