"""Output-quiescence completion detection.

The remote shell gives no end-of-command marker, so a command is considered
finished once its output has been quiet for ``idle_threshold`` seconds. A
``ceiling`` bounds commands whose output never goes quiet.

State machine::

    PENDING --arm()--> ARMED --feed()--> ACCUMULATING --+
                         |                  ^   |       |
                         |                  +---+       |
                         +--- idle / ceiling / closed --+--> COMPLETED

All transitions into COMPLETED go through ``_finish``; timers and the
transport reader run on the same event loop, so the completed flag needs
no lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from guarded_shell.errors import log_exception

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_IDLE_THRESHOLD",
    "DEFAULT_CEILING",
    "CompletionReason",
    "DetectorState",
    "Completion",
    "CompletionDetector",
]

DEFAULT_IDLE_THRESHOLD = 0.5
DEFAULT_CEILING = 30.0


class CompletionReason(str, Enum):
    """What ended an in-flight command."""

    IDLE = "idle"
    CEILING = "ceiling"
    CLOSED = "closed"


class DetectorState(str, Enum):
    PENDING = "pending"
    ARMED = "armed"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class Completion:
    """Outcome of one detection cycle.

    Attributes:
        output: Concatenation of every chunk fed while in flight.
        duration_ms: Time from ``arm()`` to completion in milliseconds.
        reason: Which condition completed the command.
        chunk_count: Number of chunks received.
    """

    output: str
    duration_ms: float
    reason: CompletionReason
    chunk_count: int


class CompletionDetector:
    """Decide when a command's output stream has gone quiet.

    One detector serves exactly one command. Typical use::

        detector = CompletionDetector(idle_threshold=0.5, ceiling=30.0)
        detector.arm()
        transport.add_output_listener(lambda chunk: detector.feed(chunk.data))
        await transport.write(command + "\\n")
        completion = await detector.wait()

    A command that produces no output completes after one idle interval.
    A command whose output never pauses for ``idle_threshold`` completes at
    the ceiling with ``reason=CompletionReason.CEILING``; that is a normal
    completion, not an error.
    """

    def __init__(
        self,
        idle_threshold: float = DEFAULT_IDLE_THRESHOLD,
        ceiling: float = DEFAULT_CEILING,
        on_chunk: Callable[[str], None] | None = None,
    ) -> None:
        """Create a detector.

        Args:
            idle_threshold: Seconds of silence that mark completion.
            ceiling: Absolute maximum seconds a command may stay in flight.
            on_chunk: Optional observer called with every chunk as it arrives.

        Raises:
            ValueError: If either duration is not positive.
        """
        if idle_threshold <= 0:
            raise ValueError(f"idle_threshold must be positive, got {idle_threshold}")
        if ceiling <= 0:
            raise ValueError(f"ceiling must be positive, got {ceiling}")

        self._idle_threshold = idle_threshold
        self._ceiling = ceiling
        self._on_chunk = on_chunk
        self._state = DetectorState.PENDING
        self._chunks: list[str] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future[Completion] | None = None
        self._started_at = 0.0
        self._idle_handle: asyncio.TimerHandle | None = None
        self._ceiling_handle: asyncio.TimerHandle | None = None

    @property
    def idle_threshold(self) -> float:
        return self._idle_threshold

    @property
    def ceiling(self) -> float:
        return self._ceiling

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def completed(self) -> bool:
        return self._state is DetectorState.COMPLETED

    @property
    def output(self) -> str:
        """Output accumulated so far."""
        return "".join(self._chunks)

    # =========================================================================
    # Transitions
    # =========================================================================

    def arm(self) -> None:
        """Start the idle and ceiling timers.

        Must be called from a running event loop, before the command is
        written, so no early output is lost.

        Raises:
            RuntimeError: If the detector was already armed.
        """
        if self._state is not DetectorState.PENDING:
            raise RuntimeError("Detector already armed")

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._future = loop.create_future()
        self._started_at = loop.time()
        self._idle_handle = loop.call_later(self._idle_threshold, self._finish, CompletionReason.IDLE)
        self._ceiling_handle = loop.call_later(self._ceiling, self._finish, CompletionReason.CEILING)
        self._state = DetectorState.ARMED

    def feed(self, data: str) -> None:
        """Record a chunk of output and restart the idle timer.

        Chunks arriving before ``arm()`` or after completion are ignored.
        """
        if self._state not in (DetectorState.ARMED, DetectorState.ACCUMULATING):
            return

        self._chunks.append(data)
        self._state = DetectorState.ACCUMULATING

        if self._on_chunk is not None:
            try:
                self._on_chunk(data)
            except Exception as e:
                log_exception(logger, "Chunk observer failed", e)

        # The observer may have completed us
        if self._state is DetectorState.COMPLETED:
            return

        assert self._loop is not None
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = self._loop.call_later(self._idle_threshold, self._finish, CompletionReason.IDLE)

    def force_complete(self, reason: CompletionReason = CompletionReason.CLOSED) -> bool:
        """Complete immediately with the output received so far.

        Returns:
            True if this call completed the detector, False if it was
            already completed or never armed.
        """
        return self._finish(reason)

    def fail(self, exc: BaseException) -> bool:
        """Complete by making ``wait()`` raise ``exc``.

        Returns:
            True if this call completed the detector.
        """
        return self._finish(CompletionReason.CLOSED, error=exc)

    def _finish(self, reason: CompletionReason, error: BaseException | None = None) -> bool:
        if self._state in (DetectorState.PENDING, DetectorState.COMPLETED):
            return False

        self._state = DetectorState.COMPLETED
        self._cancel_timers()

        assert self._loop is not None and self._future is not None
        if self._future.done():
            return False

        if error is not None:
            self._future.set_exception(error)
        else:
            duration_ms = (self._loop.time() - self._started_at) * 1000
            self._future.set_result(
                Completion(
                    output=self.output,
                    duration_ms=duration_ms,
                    reason=reason,
                    chunk_count=len(self._chunks),
                )
            )
        logger.debug(f"Command completed ({reason.value}) after {len(self._chunks)} chunks")
        return True

    def _cancel_timers(self) -> None:
        for handle in (self._idle_handle, self._ceiling_handle):
            if handle is not None:
                handle.cancel()
        self._idle_handle = None
        self._ceiling_handle = None

    # =========================================================================
    # Waiting
    # =========================================================================

    async def wait(self) -> Completion:
        """Wait for completion.

        Cancelling the waiting task cancels the timers and completes the
        detector.

        Raises:
            RuntimeError: If the detector was never armed.
            BaseException: Whatever was passed to :meth:`fail`.
        """
        if self._future is None:
            raise RuntimeError("Detector not armed")
        try:
            return await self._future
        except asyncio.CancelledError:
            self._state = DetectorState.COMPLETED
            self._cancel_timers()
            raise
