"""Policy-gated interactive shell session.

This module provides InteractiveSession, which runs commands one at a time
over a persistent transport (an ssh process by default):

- Every command is classified against the pattern registry before it is sent
- Dangerous commands are refused without touching the transport
- Suspicious commands run, but raise a warning event and an audit record
- Completion is detected from output quiescence (see ``detector.py``)
- History, a capped output buffer and status are kept per session

Example:
    >>> config = SshConfig(host="web-1", user="deploy")
    >>> async with InteractiveSession(config, registry=registry) as session:
    ...     result = await session.execute_command("uptime")
    ...     print(result.output)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from guarded_shell.errors import (
    CommandBlockedError,
    ConnectionTimeoutError,
    NotConnectedError,
    SessionError,
    TransportError,
    log_exception,
)
from guarded_shell.shell.audit import ShellAuditLogger, get_shell_audit_logger
from guarded_shell.shell.classifier import Verdict, classify
from guarded_shell.shell.detector import (
    DEFAULT_CEILING,
    DEFAULT_IDLE_THRESHOLD,
    CompletionDetector,
    CompletionReason,
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
from guarded_shell.shell.patterns import PatternRegistry, get_pattern_registry
from guarded_shell.shell.transport import SshConfig, SshTransport, Transport
from guarded_shell.shell.types import (
    CommandRecord,
    CommandResult,
    ExecuteOptions,
    OutputChunk,
    SessionStatus,
    StreamKind,
)

logger = logging.getLogger(__name__)

__all__ = ["InteractiveSession", "SessionConfig", "ConfirmHook", "UNCONFIRMED_REASON"]

ConfirmHook = Callable[[str, Verdict], bool | Awaitable[bool]]

UNCONFIRMED_REASON = "Suspicious command was not confirmed"


# =============================================================================
# Session Configuration
# =============================================================================


@dataclass
class SessionConfig:
    """Configuration for an interactive session.

    Attributes:
        connect_timeout: Seconds to wait for the shell to answer the readiness probe.
        close_grace_period: Seconds to wait for the shell to exit before terminating it.
        idle_threshold: Seconds of output silence that complete a command.
        default_timeout: Ceiling in seconds for commands without an explicit timeout.
        output_buffer_size: Number of raw chunks kept for diagnostics.
        block_dangerous_commands: Refuse dangerous commands. None uses the
            registry's ``block_dangerous_by_default`` setting.
        require_confirmation: Ask ``confirm`` before running suspicious commands.
        confirm: Hook deciding whether a suspicious command may run.
        enable_audit: Write audit events.

    Example:
        >>> config = SessionConfig(
        ...     default_timeout=120.0,
        ...     require_confirmation=True,
        ...     confirm=lambda command, verdict: input(f"Run {command}? ") == "y",
        ... )
    """

    connect_timeout: float = 10.0
    close_grace_period: float = 2.0
    idle_threshold: float = DEFAULT_IDLE_THRESHOLD
    default_timeout: float = DEFAULT_CEILING
    output_buffer_size: int = 1000
    block_dangerous_commands: bool | None = None
    require_confirmation: bool = False
    confirm: ConfirmHook | None = None
    enable_audit: bool = True


# =============================================================================
# Interactive Session
# =============================================================================


class InteractiveSession:
    """Supervised command execution over one persistent transport.

    Commands run strictly one at a time; concurrent ``execute_command``
    calls on the same session queue behind each other. Use independent
    sessions for parallel execution.

    ``block_dangerous_commands`` and ``require_confirmation`` are plain
    attributes and may be flipped at runtime (e.g. an "unsafe" mode).
    """

    def __init__(
        self,
        transport: Transport | SshConfig,
        *,
        registry: PatternRegistry | None = None,
        config: SessionConfig | None = None,
        callbacks: SessionCallbacks | Iterable[SessionCallbacks] | None = None,
        audit_logger: ShellAuditLogger | None = None,
    ) -> None:
        """Initialize a session. Nothing is spawned until :meth:`connect`.

        Args:
            transport: A transport, or ssh settings to build an SshTransport from.
            registry: Pattern registry. Defaults to the process-wide registry.
            config: Session configuration. Defaults to SessionConfig().
            callbacks: Observer(s) for session events.
            audit_logger: Audit logger. Defaults to the global one.
        """
        self._transport: Transport = SshTransport(transport) if isinstance(transport, SshConfig) else transport
        self._registry = registry or get_pattern_registry()
        self._config = config or SessionConfig()

        if callbacks is None:
            callbacks = []
        elif isinstance(callbacks, SessionCallbacks):
            callbacks = [callbacks]
        self._callbacks = CallbackManager(callbacks)

        self._audit_logger = audit_logger
        self._session_id = f"ssh_{uuid.uuid4().hex[:12]}"
        self._history: list[CommandRecord] = []
        self._output_buffer: deque[OutputChunk] = deque(maxlen=self._config.output_buffer_size)
        self._lock = asyncio.Lock()

        self._connected = False
        self._closing = False
        self._closed = False
        self._connected_at: float | None = None

        self._probe_token: str | None = None
        self._probe_buffer = ""
        self._probe_event: asyncio.Event | None = None
        self._probe_failed = False
        self._exit_code: int | None = None

        self._detector: CompletionDetector | None = None
        self._current_command: str | None = None
        self._streaming = False

        if self._config.block_dangerous_commands is None:
            self.block_dangerous_commands = self._registry.settings.block_dangerous_by_default
        else:
            self.block_dangerous_commands = self._config.block_dangerous_commands
        self.require_confirmation = self._config.require_confirmation

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def registry(self) -> PatternRegistry:
        return self._registry

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def config(self) -> SessionConfig:
        return self._config

    def add_callbacks(self, callbacks: SessionCallbacks) -> None:
        """Register an additional observer."""
        self._callbacks.add(callbacks)

    def _get_audit_logger(self) -> ShellAuditLogger | None:
        if not self._config.enable_audit:
            return None
        if self._audit_logger is None:
            self._audit_logger = get_shell_audit_logger()
        return self._audit_logger

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> None:
        """Start the transport and wait until the remote shell answers.

        Readiness is confirmed by echoing a random token through the shell.

        Raises:
            SessionError: If the session was already closed.
            TransportError: If the transport cannot be started or exits
                before becoming ready.
            ConnectionTimeoutError: If the shell does not answer within
                ``connect_timeout``.
        """
        if self._closed:
            raise SessionError("Session has been closed", session_id=self._session_id)
        if self._connected:
            return

        self._transport.add_output_listener(self._on_chunk)
        self._transport.add_close_listener(self._on_transport_close)

        self._probe_token = f"__guarded_shell_ready_{uuid.uuid4().hex}__"
        self._probe_buffer = ""
        self._probe_event = asyncio.Event()
        self._probe_failed = False

        try:
            await self._transport.start()
            await self._transport.write(f"echo {self._probe_token}\n")
            await asyncio.wait_for(self._probe_event.wait(), timeout=self._config.connect_timeout)
        except TimeoutError:
            self._closed = True
            await self._transport.terminate()
            raise ConnectionTimeoutError(self._config.connect_timeout, session_id=self._session_id) from None
        except TransportError as e:
            self._closed = True
            e.session_id = self._session_id
            await self._transport.terminate()
            raise
        finally:
            self._probe_token = None
            self._probe_buffer = ""

        if self._probe_failed:
            self._closed = True
            exit_code = self._exit_code
            raise TransportError(
                f"SSH process exited with code {exit_code} before the session was ready",
                exit_code=exit_code,
                session_id=self._session_id,
            )

        self._connected = True
        self._connected_at = time.monotonic()
        logger.info(f"Session {self._session_id} connected to {self._transport.description}")

        self._callbacks.on_connected(ConnectedEvent(session_id=self._session_id, server=self._transport.description))
        if audit := self._get_audit_logger():
            audit.log_session_started(self._session_id, server=self._transport.description)

    # =========================================================================
    # Command Execution
    # =========================================================================

    async def execute_command(self, command: str, options: ExecuteOptions | None = None) -> CommandResult:
        """Classify and run a command, waiting for its output to go quiet.

        Args:
            command: Command text. A newline is appended when sending.
            options: Per-command options (bypass, timeout, streaming, confirmation).

        Returns:
            The command result. A command cut off by its timeout still returns
            normally, with ``completion=CompletionReason.CEILING``.

        Raises:
            NotConnectedError: If the session is not connected. Nothing is written.
            CommandBlockedError: If the command was refused by policy or not
                confirmed. Nothing is written.
            TransportError: If the transport fails while the command is in flight.
            SessionError: If the timeout is not positive. Nothing is recorded.
        """
        options = options or ExecuteOptions()
        timeout = self._config.default_timeout if options.timeout is None else options.timeout
        if timeout <= 0:
            raise SessionError(
                f"Command timeout must be positive, got {timeout:g}",
                session_id=self._session_id,
                hint="Pass a timeout in seconds greater than zero",
            )
        if not self._connected:
            raise NotConnectedError(session_id=self._session_id)

        async with self._lock:
            if not self._connected:
                raise NotConnectedError(session_id=self._session_id)

            verdict = classify(command, self._registry)

            if verdict.dangerous and self.block_dangerous_commands and not options.bypass_safety:
                reason = verdict.blocked_reason or "Blocked by policy"
                self._refuse(command, verdict, reason)
                raise CommandBlockedError(command, reason, verdict, session_id=self._session_id)

            require_confirmation = (
                self.require_confirmation if options.require_confirmation is None else options.require_confirmation
            )
            if verdict.suspicious and require_confirmation and self._config.confirm is not None:
                if not await self._confirm(command, verdict):
                    self._refuse(command, verdict, UNCONFIRMED_REASON)
                    raise CommandBlockedError(command, UNCONFIRMED_REASON, verdict, session_id=self._session_id)

            audit = self._get_audit_logger()
            if verdict.suspicious:
                self._callbacks.on_warning(WarningEvent(session_id=self._session_id, command=command, verdict=verdict))
                if audit and self._registry.settings.warn_on_suspicious:
                    audit.log_suspicious(verdict, session_id=self._session_id)
            if verdict.dangerous:
                logger.warning(f"Executing dangerous command with safety checks bypassed: {command}")

            detector = CompletionDetector(idle_threshold=self._config.idle_threshold, ceiling=timeout)
            record = CommandRecord(command=command, verdict=verdict, executed=True)
            self._history.append(record)

            self._detector = detector
            self._current_command = command
            self._streaming = options.streaming

            try:
                detector.arm()
                await self._transport.write(command + "\n")
                completion = await detector.wait()
            finally:
                detector.force_complete()
                self._detector = None
                self._current_command = None
                self._streaming = False

            result = CommandResult(
                command=command,
                output=completion.output,
                duration_ms=completion.duration_ms,
                verdict=verdict,
                completion=completion.reason,
            )
            record.result = result

            self._callbacks.on_executed(ExecutedEvent(session_id=self._session_id, result=result))
            if audit:
                audit.log_result(result, session_id=self._session_id)
            return result

    async def send_input(self, data: str) -> None:
        """Write raw input to the shell, bypassing classification and history.

        Intended for answering interactive prompts. No newline is added.

        Raises:
            NotConnectedError: If the session is not connected.
        """
        if not self._connected:
            raise NotConnectedError(session_id=self._session_id)
        await self._transport.write(data)

    def _refuse(self, command: str, verdict: Verdict, reason: str) -> None:
        self._history.append(CommandRecord(command=command, verdict=verdict, executed=False))
        self._callbacks.on_blocked(
            BlockedEvent(session_id=self._session_id, command=command, verdict=verdict, reason=reason)
        )
        audit = self._get_audit_logger()
        if audit and self._registry.settings.log_blocked_commands:
            audit.log_blocked(verdict, reason=reason, session_id=self._session_id)

    async def _confirm(self, command: str, verdict: Verdict) -> bool:
        assert self._config.confirm is not None
        answer = self._config.confirm(command, verdict)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    # =========================================================================
    # Transport Listeners
    # =========================================================================

    def _on_chunk(self, chunk: OutputChunk) -> None:
        self._output_buffer.append(chunk)
        self._callbacks.on_output(OutputEvent(session_id=self._session_id, chunk=chunk))

        if self._probe_token is not None:
            if chunk.stream is not StreamKind.STDOUT:
                return
            self._probe_buffer += chunk.data
            if f"{self._probe_token}\n" in self._probe_buffer and self._probe_event is not None:
                self._probe_event.set()
            return

        detector = self._detector
        if detector is None or detector.completed:
            return
        if self._streaming and self._current_command is not None:
            self._callbacks.on_stream(
                StreamEvent(session_id=self._session_id, command=self._current_command, chunk=chunk)
            )
        detector.feed(chunk.data)

    def _on_transport_close(self, exit_code: int | None) -> None:
        self._connected = False
        self._exit_code = exit_code

        if self._probe_event is not None and not self._probe_event.is_set():
            self._probe_failed = True
            self._probe_event.set()

        if not self._closing:
            logger.warning(f"Session {self._session_id} transport closed unexpectedly (code {exit_code})")

        self._callbacks.on_close(CloseEvent(session_id=self._session_id, exit_code=exit_code))

        detector = self._detector
        if detector is not None and not detector.completed:
            if self._closing:
                detector.force_complete(CompletionReason.CLOSED)
            else:
                detector.fail(
                    TransportError(
                        f"SSH process exited with code {exit_code} during command",
                        exit_code=exit_code,
                        session_id=self._session_id,
                    )
                )

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_history(self, limit: int = 50) -> list[CommandRecord]:
        """Most recent ``limit`` command records, oldest first."""
        if limit <= 0:
            return []
        return self._history[-limit:]

    def get_output_buffer(self, limit: int = 100) -> list[OutputChunk]:
        """Most recent ``limit`` raw output chunks, oldest first."""
        if limit <= 0:
            return []
        return list(self._output_buffer)[-limit:]

    def get_status(self) -> SessionStatus:
        """Snapshot of the session, with counts derived from history."""
        uptime_ms = 0.0
        if self._connected and self._connected_at is not None:
            uptime_ms = (time.monotonic() - self._connected_at) * 1000

        return SessionStatus(
            session_id=self._session_id,
            connected=self._connected,
            server=self._transport.description,
            uptime_ms=uptime_ms,
            command_count=len(self._history),
            blocked_count=sum(1 for r in self._history if not r.executed),
            suspicious_count=sum(1 for r in self._history if r.verdict.suspicious),
        )

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def close(self) -> None:
        """Close the session.

        Asks the shell to exit, waits up to ``close_grace_period`` and then
        terminates the transport. A command still in flight is completed
        with the output received so far. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self._closing = True
        connected_at = self._connected_at

        if self._transport.is_running:
            try:
                await self._transport.write("exit\n")
            except TransportError as e:
                log_exception(logger, "Failed to send exit", e, level="debug", include_traceback=False)
            try:
                await asyncio.wait_for(self._transport.wait_closed(), timeout=self._config.close_grace_period)
            except TimeoutError:
                logger.info(f"Session {self._session_id} did not exit within grace period, terminating")
                await self._transport.terminate()

        if self._detector is not None:
            self._detector.force_complete(CompletionReason.CLOSED)

        self._transport.remove_output_listener(self._on_chunk)
        self._connected = False
        logger.info(f"Session {self._session_id} closed")

        if connected_at is not None and (audit := self._get_audit_logger()):
            audit.log_session_ended(
                self._session_id,
                duration_seconds=time.monotonic() - connected_at,
                command_count=len(self._history),
                blocked_count=sum(1 for r in self._history if not r.executed),
            )

    async def __aenter__(self) -> InteractiveSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
