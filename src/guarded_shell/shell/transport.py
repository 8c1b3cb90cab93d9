"""Transport layer for guarded shell sessions.

A transport is a long-lived, unframed, bidirectional text stream to a remote
shell. The session controller only depends on the :class:`Transport`
protocol; :class:`SshTransport` implements it with an ``ssh`` subprocess.

Also provides credential masking helpers for log output.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from guarded_shell.errors import TransportError, log_exception
from guarded_shell.shell.types import OutputChunk, StreamKind

logger = logging.getLogger(__name__)

__all__ = [
    "OutputListener",
    "CloseListener",
    "Transport",
    "SshConfig",
    "SshTransport",
    "DEFAULT_SSH_OPTIONS",
    "mask_secret",
    "sanitize_for_log",
]

OutputListener = Callable[[OutputChunk], None]
CloseListener = Callable[[int | None], None]

DEFAULT_SSH_OPTIONS: tuple[str, ...] = (
    "ServerAliveInterval=60",
    "ServerAliveCountMax=3",
    "StrictHostKeyChecking=accept-new",
)

_READ_SIZE = 4096
_TERMINATE_TIMEOUT = 5.0
_SECRET_KEYS = frozenset({"password", "sudo_password", "passphrase"})


# =============================================================================
# Credential Masking
# =============================================================================


def mask_secret(secret: str | None) -> str:
    """Mask a secret for logging, keeping only its first and last character.

    Example:
        >>> mask_secret("hunter22")
        'h******2'
        >>> mask_secret("abc")
        '****'
    """
    if not secret:
        return "none"
    if len(secret) <= 4:
        return "****"
    return secret[0] + "*" * (len(secret) - 2) + secret[-1]


def sanitize_for_log(config: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a config mapping with credential values masked."""
    safe = dict(config)
    for key in _SECRET_KEYS:
        if safe.get(key):
            safe[key] = mask_secret(safe[key])
    return safe


# =============================================================================
# Transport Protocol
# =============================================================================


@runtime_checkable
class Transport(Protocol):
    """Consumed interface of a remote shell connection.

    Output listeners receive every chunk tagged stdout or stderr in arrival
    order. Close listeners receive the exit code once the connection ends.
    """

    @property
    def description(self) -> str:
        """Human-readable ``user@host:port`` descriptor."""
        ...

    @property
    def is_running(self) -> bool: ...

    async def start(self) -> None:
        """Spawn the connection. Raises TransportError on failure."""
        ...

    async def write(self, data: str) -> None:
        """Write raw text to the remote shell's input."""
        ...

    def add_output_listener(self, listener: OutputListener) -> None: ...

    def remove_output_listener(self, listener: OutputListener) -> None: ...

    def add_close_listener(self, listener: CloseListener) -> None: ...

    async def wait_closed(self) -> int | None:
        """Wait until the connection has ended and return its exit code."""
        ...

    async def terminate(self) -> None:
        """Force the connection to end."""
        ...


# =============================================================================
# SSH Transport
# =============================================================================


@dataclass
class SshConfig:
    """Connection settings for :class:`SshTransport`.

    Attributes:
        host: Remote host name or address.
        user: Remote user.
        port: SSH port.
        password: Password answered to the first ``password:`` prompt.
        key_path: Private key file (``~`` is expanded).
        options: ``-o`` options passed to ssh.
        executable: ssh binary to run.

    Example:
        >>> config = SshConfig(host="web-1", user="deploy", key_path="~/.ssh/id_ed25519")
        >>> config.description
        'deploy@web-1:22'
    """

    host: str
    user: str
    port: int = 22
    password: str | None = field(default=None, repr=False)
    key_path: str | None = None
    options: tuple[str, ...] = DEFAULT_SSH_OPTIONS
    executable: str = "ssh"

    @property
    def description(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"

    @property
    def expanded_key_path(self) -> str | None:
        return str(Path(self.key_path).expanduser()) if self.key_path else None

    def build_args(self) -> list[str]:
        """Full ssh command line."""
        args = [self.executable, f"{self.user}@{self.host}", "-p", str(self.port)]
        if key_path := self.expanded_key_path:
            args += ["-i", key_path]
        for option in self.options:
            args += ["-o", option]
        return args

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "user": self.user,
            "port": self.port,
            "password": self.password,
            "key_path": self.key_path,
            "options": list(self.options),
        }


class SshTransport:
    """Transport backed by an ``ssh`` subprocess.

    stdout and stderr are pumped in 4096-byte reads through incremental
    UTF-8 decoders, so multi-byte characters split across reads are
    delivered intact. When a password is configured, the first
    ``password:`` prompt seen on stderr is answered with it.

    Example:
        >>> transport = SshTransport(SshConfig(host="web-1", user="deploy"))
        >>> await transport.start()
        >>> transport.add_output_listener(lambda chunk: print(chunk.data, end=""))
        >>> await transport.write("uptime\\n")
    """

    def __init__(self, config: SshConfig) -> None:
        self._config = config
        self._process: asyncio.subprocess.Process | None = None
        self._output_listeners: list[OutputListener] = []
        self._close_listeners: list[CloseListener] = []
        self._pump_tasks: list[asyncio.Task[None]] = []
        self._exit_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()
        self._exit_code: int | None = None
        self._password_sent = False

    @property
    def config(self) -> SshConfig:
        return self._config

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def is_running(self) -> bool:
        return self._process is not None and not self._closed.is_set()

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_output_listener(self, listener: OutputListener) -> None:
        self._output_listeners.append(listener)

    def remove_output_listener(self, listener: OutputListener) -> None:
        if listener in self._output_listeners:
            self._output_listeners.remove(listener)

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def _emit(self, chunk: OutputChunk) -> None:
        for listener in list(self._output_listeners):
            try:
                listener(chunk)
            except Exception as e:
                log_exception(logger, "Output listener failed", e)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Spawn the ssh process and start pumping its output.

        Raises:
            TransportError: If the transport was already started or ssh
                cannot be spawned.
        """
        if self._process is not None:
            raise TransportError("Transport already started")

        args = self._config.build_args()
        env = dict(os.environ)
        env["TERM"] = "xterm-256color"

        logger.info(f"Starting SSH transport to {self.description}")
        logger.debug(f"SSH config: {sanitize_for_log(self._config.to_dict())}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise TransportError(f"Failed to start {self._config.executable}: {e}") from e

        assert self._process.stdout is not None and self._process.stderr is not None
        self._pump_tasks = [
            asyncio.create_task(self._pump(self._process.stdout, StreamKind.STDOUT)),
            asyncio.create_task(self._pump(self._process.stderr, StreamKind.STDERR)),
        ]
        self._exit_task = asyncio.create_task(self._watch_exit())

    async def write(self, data: str) -> None:
        """Write text to ssh's stdin.

        Raises:
            TransportError: If the transport is not running or the pipe broke.
        """
        if not self.is_running or self._process is None or self._process.stdin is None:
            raise TransportError("Transport is not running")
        try:
            self._process.stdin.write(data.encode("utf-8"))
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(f"Write to {self.description} failed: {e}", exit_code=self._exit_code) from e

    async def wait_closed(self) -> int | None:
        await self._closed.wait()
        return self._exit_code

    async def terminate(self) -> None:
        """Terminate ssh, killing it if it does not exit promptly."""
        process = self._process
        if process is None or self._closed.is_set():
            return

        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=_TERMINATE_TIMEOUT)
        except TimeoutError:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass

        if self._exit_task is not None:
            await self._exit_task

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _pump(self, stream: asyncio.StreamReader, kind: StreamKind) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(_READ_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                if kind is StreamKind.STDERR:
                    await self._answer_password_prompt(text)
                self._emit(OutputChunk(stream=kind, data=text))
            if not data:
                return

    async def _answer_password_prompt(self, text: str) -> None:
        if self._password_sent or not self._config.password:
            return
        if "password:" in text.lower():
            self._password_sent = True
            logger.debug(f"Answering password prompt for {self.description}")
            try:
                await self.write(self._config.password + "\n")
            except TransportError as e:
                log_exception(logger, "Failed to answer password prompt", e, include_traceback=False)

    async def _watch_exit(self) -> None:
        assert self._process is not None
        exit_code = await self._process.wait()
        await asyncio.gather(*self._pump_tasks, return_exceptions=True)

        self._exit_code = exit_code
        self._closed.set()
        logger.info(f"SSH transport to {self.description} closed with code {exit_code}")

        for listener in list(self._close_listeners):
            try:
                listener(exit_code)
            except Exception as e:
                log_exception(logger, "Close listener failed", e)
