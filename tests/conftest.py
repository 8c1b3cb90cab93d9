"""
Root conftest.py for guarded-shell tests.

This file provides:
1. Common pytest markers for test categorization
2. Shared fixtures used across multiple test modules
3. An in-memory transport standing in for the ssh process

Fixtures are organized by category:
- Registry fixtures (default patterns, pattern files)
- Transport fixtures (FakeTransport factory)
- Global state reset
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from guarded_shell.errors import TransportError
from guarded_shell.shell import OutputChunk, PatternRegistry, StreamKind
from guarded_shell.shell.audit import set_shell_audit_logger
from guarded_shell.shell.patterns import set_pattern_registry

# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        norm = str(item.fspath).replace("\\", "/")

        if "/tests/unit/cli/" in norm:
            item.add_marker(pytest.mark.cli)
        if "pattern" in norm or "classifier" in norm:
            item.add_marker(pytest.mark.patterns)
        if "session" in norm or "detector" in norm or "transport" in norm:
            item.add_marker(pytest.mark.session)


def pytest_configure(config):
    """Register custom markers."""
    for name, desc in [
        ("cli", "Command line interface tests"),
        ("patterns", "Pattern registry and classification tests"),
        ("session", "Session, transport and completion detection tests"),
        ("slow", "Slow-running tests"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


# =============================================================================
# GLOBAL STATE
# =============================================================================


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch: pytest.MonkeyPatch):
    """Reset process-wide registry and audit logger between tests."""
    monkeypatch.delenv("GUARDED_SHELL_PATTERNS_FILE", raising=False)
    set_pattern_registry(None)
    set_shell_audit_logger(None)
    yield
    set_pattern_registry(None)
    set_shell_audit_logger(None)


# =============================================================================
# REGISTRY FIXTURES
# =============================================================================


@pytest.fixture
def registry() -> PatternRegistry:
    """Registry holding the built-in default patterns."""
    registry = PatternRegistry()
    registry.load_defaults()
    return registry


@pytest.fixture
def patterns_file(tmp_path: Path, registry: PatternRegistry) -> Path:
    """A pattern document on disk containing the default patterns."""
    return registry.save(tmp_path / "command-patterns.json")


# =============================================================================
# TRANSPORT FIXTURES
# =============================================================================


class FakeTransport:
    """In-memory Transport double.

    Records every write. Answers the session's readiness probe, replies to
    commands listed in ``responses`` (one chunk per list item, each on its
    own loop iteration) and exits when it receives ``exit``.

    Usage:
        transport = FakeTransport(responses={"uptime": "up 3 days\\n"})
        session = InteractiveSession(transport, registry=registry)
    """

    def __init__(
        self,
        *,
        description: str = "deploy@web-1:22",
        responses: dict[str, str | list[str]] | None = None,
        answer_probe: bool = True,
        exit_on_exit: bool = True,
        fail_start: bool = False,
    ) -> None:
        self._description = description
        self.responses = dict(responses or {})
        self.answer_probe = answer_probe
        self.exit_on_exit = exit_on_exit
        self.fail_start = fail_start

        self.writes: list[str] = []
        self.started = False
        self.terminated = False
        self.exit_code: int | None = None
        self._running = False
        self._closed = asyncio.Event()
        self._output_listeners: list[Callable[[OutputChunk], None]] = []
        self._close_listeners: list[Callable[[int | None], None]] = []

    @property
    def description(self) -> str:
        return self._description

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def command_writes(self) -> list[str]:
        """Writes other than the readiness probe and ``exit``."""
        return [w for w in self.writes if not w.startswith("echo __guarded_shell_ready_") and w != "exit\n"]

    async def start(self) -> None:
        if self.fail_start:
            raise TransportError("Failed to start ssh: not found")
        self.started = True
        self._running = True

    async def write(self, data: str) -> None:
        if not self._running:
            raise TransportError("Transport is not running")
        self.writes.append(data)

        line = data.rstrip("\n")
        loop = asyncio.get_running_loop()
        if line.startswith("echo __guarded_shell_ready_"):
            if self.answer_probe:
                loop.call_soon(self.emit, line.split(" ", 1)[1] + "\n")
        elif line == "exit":
            if self.exit_on_exit:
                loop.call_soon(self.close, 0)
        elif line in self.responses:
            self._schedule(self.responses[line])

    def _schedule(self, response: str | list[str]) -> None:
        chunks = [response] if isinstance(response, str) else list(response)

        async def _emit_all() -> None:
            for chunk in chunks:
                await asyncio.sleep(0)
                self.emit(chunk)

        asyncio.ensure_future(_emit_all())

    def emit(self, data: str, stream: StreamKind = StreamKind.STDOUT) -> None:
        """Deliver a chunk to every output listener."""
        chunk = OutputChunk(stream=stream, data=data)
        for listener in list(self._output_listeners):
            listener(chunk)

    def close(self, exit_code: int | None = 0) -> None:
        """Simulate the remote process exiting."""
        if not self._running:
            return
        self._running = False
        self.exit_code = exit_code
        self._closed.set()
        for listener in list(self._close_listeners):
            listener(exit_code)

    def add_output_listener(self, listener: Callable[[OutputChunk], None]) -> None:
        self._output_listeners.append(listener)

    def remove_output_listener(self, listener: Callable[[OutputChunk], None]) -> None:
        if listener in self._output_listeners:
            self._output_listeners.remove(listener)

    def add_close_listener(self, listener: Callable[[int | None], None]) -> None:
        self._close_listeners.append(listener)

    async def wait_closed(self) -> int | None:
        await self._closed.wait()
        return self.exit_code

    async def terminate(self) -> None:
        self.terminated = True
        self.close(-15)


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for FakeTransport instances."""

    def _make(**kwargs: Any) -> FakeTransport:
        return FakeTransport(**kwargs)

    return _make
