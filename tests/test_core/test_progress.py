"""Tests for launchpad_tools.core.progress module."""

import threading

import pytest

from launchpad_tools.core.patch_engine import OperationResult
from launchpad_tools.core.progress import (
    BytesTransferred,
    CallbackSink,
    CancellationToken,
    FileFinished,
    FileStarted,
    NullSink,
    OperationCancelledError,
    OperationFinished,
    QueueSink,
)
from launchpad_tools.core.types import Module, Operation, Stage


class TestCancellationToken:
    """Test CancellationToken class."""

    def test_not_cancelled_by_default(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_from_other_thread(self):
        """Cancellation set on one thread is observed on another."""
        token = CancellationToken()
        thread = threading.Thread(target=token.cancel)
        thread.start()
        thread.join()

        assert token.cancelled
        with pytest.raises(OperationCancelledError):
            token.raise_if_cancelled()


class TestEvents:
    """Test progress event messages."""

    def test_file_started_message(self):
        event = FileStarted(Module.GAME, Stage.DOWNLOAD, "dat/a.bin", 1, 2)
        assert event.message == "Downloading file dat/a.bin (1 of 2)"
        assert FileStarted(Module.GAME, Stage.VERIFY, "a", 2, 2).message.startswith("Verifying")

    def test_bytes_transferred(self):
        event = BytesTransferred(Module.GAME, "dat/a.bin", 512, 2048)
        assert event.fraction == 0.25
        assert event.message == "Downloading dat/a.bin: 512 B out of 2.0 KB"
        assert BytesTransferred(Module.GAME, "a", 5, 0).fraction == 0.0

    def test_file_finished_message(self):
        event = FileFinished(Module.GAME, Stage.UPDATE, "a.bin", 3, 4, ok=False)
        assert event.message == "a.bin failed (3 of 4)"

    def test_operation_finished_message(self):
        result = OperationResult(Module.GAME, Operation.VERIFY, success=False, stage=Stage.VERIFY, error="boom")
        assert OperationFinished(result).message == "Verify of game failed during verify: boom"


class TestSinks:
    """Test progress sinks."""

    def test_null_sink(self):
        NullSink().emit(FileStarted(Module.GAME, Stage.DOWNLOAD, "a", 1, 1))

    def test_callback_sink(self):
        received = []
        sink = CallbackSink(received.append)
        event = FileStarted(Module.GAME, Stage.DOWNLOAD, "a", 1, 1)
        sink.emit(event)
        assert received == [event]

    def test_queue_sink_preserves_order(self):
        sink = QueueSink()
        events = [FileStarted(Module.GAME, Stage.DOWNLOAD, f"f{i}", i, 3) for i in range(1, 4)]
        for event in events:
            sink.emit(event)

        assert sink.drain() == events
        assert sink.drain() == []
