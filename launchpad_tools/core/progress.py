"""Progress reporting and cancellation for bulk operations.

The patch engine reports through a ProgressSink. Events are emitted on
the worker thread running the operation; sinks that feed a UI must
marshal them onto the UI thread themselves.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from launchpad_tools.core.types import Module, Stage
from launchpad_tools.core.utils import format_size

if TYPE_CHECKING:
    from launchpad_tools.core.patch_engine import OperationResult


class OperationCancelledError(Exception):
    """Raised when an operation observes a cancelled token."""


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a worker."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError once cancel() has been called."""
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled")


@dataclass(frozen=True)
class FileStarted:
    """A file is about to be processed."""

    module: Module
    stage: Stage
    path: str
    index: int
    total: int

    @property
    def message(self) -> str:
        verb = {
            Stage.DOWNLOAD: "Downloading",
            Stage.UPDATE: "Updating",
            Stage.VERIFY: "Verifying",
        }.get(self.stage, "Processing")
        return f"{verb} file {self.path} ({self.index} of {self.total})"


@dataclass(frozen=True)
class BytesTransferred:
    """A chunk of the current file was written."""

    module: Module
    path: str
    bytes_done: int
    bytes_total: int

    @property
    def fraction(self) -> float:
        if self.bytes_total <= 0:
            return 0.0
        return min(self.bytes_done / self.bytes_total, 1.0)

    @property
    def message(self) -> str:
        return (
            f"Downloading {self.path}: {format_size(self.bytes_done)} "
            f"out of {format_size(self.bytes_total)}"
        )


@dataclass(frozen=True)
class FileFinished:
    """A file finished processing."""

    module: Module
    stage: Stage
    path: str
    index: int
    total: int
    ok: bool

    @property
    def message(self) -> str:
        status = "done" if self.ok else "failed"
        return f"{self.path} {status} ({self.index} of {self.total})"


@dataclass(frozen=True)
class OperationFinished:
    """A bulk operation ended."""

    result: OperationResult

    @property
    def message(self) -> str:
        return self.result.summary


ProgressEvent = FileStarted | BytesTransferred | FileFinished | OperationFinished


class ProgressSink(Protocol):
    """Receiver of progress events."""

    def emit(self, event: ProgressEvent) -> None: ...


class NullSink:
    """Discards every event."""

    def emit(self, event: ProgressEvent) -> None:
        pass


class CallbackSink:
    """Forwards every event to a callable."""

    def __init__(self, callback: Callable[[ProgressEvent], None]) -> None:
        self.callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self.callback(event)


class QueueSink:
    """Channel of progress events for a consumer on another thread.

    Args:
        maxsize: Queue bound, 0 for unbounded
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize)

    def emit(self, event: ProgressEvent) -> None:
        self.queue.put(event)

    def drain(self) -> list[ProgressEvent]:
        """Return all queued events without blocking."""
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events
