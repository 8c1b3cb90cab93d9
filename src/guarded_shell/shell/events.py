"""Session event surface.

Sessions publish events to observers that subclass :class:`SessionCallbacks`
and override the hooks they care about:

- ``on_connected``: transport confirmed ready
- ``on_output``: every raw chunk, any origin
- ``on_stream``: raw chunk of a command executed with ``streaming=True``
- ``on_blocked``: a command was refused by policy
- ``on_warning``: a suspicious command is about to run
- ``on_executed``: a command completed
- ``on_close``: the transport terminated

Example:
    ```python
    class PrintBlocked(SessionCallbacks):
        def on_blocked(self, event: BlockedEvent) -> None:
            print(f"refused: {event.command} ({event.verdict.blocked_reason})")

    session = InteractiveSession(config, callbacks=[PrintBlocked()])
    ```
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from guarded_shell.errors import log_exception

if TYPE_CHECKING:
    from guarded_shell.shell.classifier import Verdict
    from guarded_shell.shell.types import CommandResult, OutputChunk

logger = logging.getLogger(__name__)

__all__ = [
    "ConnectedEvent",
    "OutputEvent",
    "StreamEvent",
    "BlockedEvent",
    "WarningEvent",
    "ExecutedEvent",
    "CloseEvent",
    "SessionCallbacks",
    "CallbackManager",
]


# =============================================================================
# Events
# =============================================================================


@dataclass
class ConnectedEvent:
    session_id: str
    server: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class OutputEvent:
    session_id: str
    chunk: OutputChunk
    timestamp: float = field(default_factory=time.time)


@dataclass
class StreamEvent:
    """Chunk forwarded live for a command run with ``streaming=True``."""

    session_id: str
    command: str
    chunk: OutputChunk
    timestamp: float = field(default_factory=time.time)


@dataclass
class BlockedEvent:
    session_id: str
    command: str
    verdict: Verdict
    reason: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class WarningEvent:
    session_id: str
    command: str
    verdict: Verdict
    timestamp: float = field(default_factory=time.time)


@dataclass
class ExecutedEvent:
    session_id: str
    result: CommandResult
    timestamp: float = field(default_factory=time.time)


@dataclass
class CloseEvent:
    """Transport terminated. ``exit_code`` is None if it could not be determined."""

    session_id: str
    exit_code: int | None
    timestamp: float = field(default_factory=time.time)


# =============================================================================
# Observers
# =============================================================================


class SessionCallbacks:
    """Base class for session observers. Every hook is a no-op."""

    def on_connected(self, event: ConnectedEvent) -> None:
        pass

    def on_output(self, event: OutputEvent) -> None:
        pass

    def on_stream(self, event: StreamEvent) -> None:
        pass

    def on_blocked(self, event: BlockedEvent) -> None:
        pass

    def on_warning(self, event: WarningEvent) -> None:
        pass

    def on_executed(self, event: ExecutedEvent) -> None:
        pass

    def on_close(self, event: CloseEvent) -> None:
        pass


class CallbackManager(SessionCallbacks):
    """Dispatch events to several observers in registration order.

    A failing observer is logged and skipped; the remaining observers still
    receive the event.
    """

    def __init__(self, callbacks: Iterable[SessionCallbacks] = ()) -> None:
        self._callbacks: list[SessionCallbacks] = list(callbacks)

    @property
    def callbacks(self) -> list[SessionCallbacks]:
        return list(self._callbacks)

    def add(self, callbacks: SessionCallbacks) -> None:
        self._callbacks.append(callbacks)

    def remove(self, callbacks: SessionCallbacks) -> None:
        self._callbacks.remove(callbacks)

    def _dispatch(self, hook: str, event: object) -> None:
        for callbacks in list(self._callbacks):
            try:
                getattr(callbacks, hook)(event)
            except Exception as e:
                log_exception(logger, f"Observer {type(callbacks).__name__}.{hook} failed", e)

    def on_connected(self, event: ConnectedEvent) -> None:
        self._dispatch("on_connected", event)

    def on_output(self, event: OutputEvent) -> None:
        self._dispatch("on_output", event)

    def on_stream(self, event: StreamEvent) -> None:
        self._dispatch("on_stream", event)

    def on_blocked(self, event: BlockedEvent) -> None:
        self._dispatch("on_blocked", event)

    def on_warning(self, event: WarningEvent) -> None:
        self._dispatch("on_warning", event)

    def on_executed(self, event: ExecutedEvent) -> None:
        self._dispatch("on_executed", event)

    def on_close(self, event: CloseEvent) -> None:
        self._dispatch("on_close", event)
