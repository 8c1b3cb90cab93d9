import os

from dotenv import find_dotenv, load_dotenv

if not os.environ.get("GUARDED_SHELL_ENV_LOADED"):
    load_dotenv(find_dotenv(usecwd=True))
    os.environ["GUARDED_SHELL_ENV_LOADED"] = "1"

from guarded_shell.errors import (
    CommandBlockedError,
    ConfigurationError,
    ConnectionTimeoutError,
    GuardedShellError,
    InvalidPatternError,
    NotConnectedError,
    SessionError,
    TransportError,
)
from guarded_shell.logging import configure_logging, get_logger
from guarded_shell.shell import (
    CommandClassifier,
    CommandPattern,
    CommandRecord,
    CommandResult,
    CompletionDetector,
    ExecuteOptions,
    InteractiveSession,
    PatternCategory,
    PatternRegistry,
    SessionCallbacks,
    SessionConfig,
    Severity,
    SshConfig,
    SshTransport,
    Verdict,
    classify,
    get_pattern_registry,
    set_pattern_registry,
)

__version__ = "0.3.0"

__all__ = [
    # Errors
    "GuardedShellError",
    "ConfigurationError",
    "InvalidPatternError",
    "SessionError",
    "NotConnectedError",
    "CommandBlockedError",
    "ConnectionTimeoutError",
    "TransportError",
    # Logging
    "configure_logging",
    "get_logger",
    # Patterns & classification
    "CommandPattern",
    "PatternCategory",
    "PatternRegistry",
    "Severity",
    "get_pattern_registry",
    "set_pattern_registry",
    "CommandClassifier",
    "Verdict",
    "classify",
    # Sessions
    "CompletionDetector",
    "InteractiveSession",
    "SessionConfig",
    "SessionCallbacks",
    "ExecuteOptions",
    "CommandRecord",
    "CommandResult",
    "SshConfig",
    "SshTransport",
]
