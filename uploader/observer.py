"""Per-chunk upload events, decoupled from the scheduler's control flow."""

from typing import Awaitable, Callable, List, Optional

from chunking.bmt import Chunk
from common.logging_config import get_logger

logger = get_logger(__name__)


class UploadObserver:
    """
    Receives per-chunk outcomes from the scheduler.

    The default implementation does nothing; subclasses override the events
    they care about. Observers must not raise: an exception from an observer
    ends that chunk's task and aborts the run like an exhausted retry.
    """

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        pass

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        pass


class LoggingObserver(UploadObserver):
    """Logs every outcome; used when no observer is supplied."""

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        logger.debug(f"Uploaded chunk {reference.hex()} span={chunk.span_value}")

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        logger.warning(f"Upload of chunk {chunk.address().hex()} failed (attempt {attempt}): {error}")


class CallbackObserver(UploadObserver):
    """Adapts plain success/failure coroutines to the observer interface."""

    def __init__(
        self,
        on_success: Optional[Callable[[Chunk, bytes], Awaitable[None]]] = None,
        on_failure: Optional[Callable[[Chunk, int, Exception], Awaitable[None]]] = None,
    ):
        self._on_success = on_success
        self._on_failure = on_failure

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        if self._on_success is not None:
            await self._on_success(chunk, reference)

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        if self._on_failure is not None:
            await self._on_failure(chunk, attempt, error)


class CompositeObserver(UploadObserver):
    """Fans events out to several observers in order."""

    def __init__(self, observers: List[UploadObserver]):
        self.observers = list(observers)

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        for observer in self.observers:
            await observer.on_chunk_uploaded(chunk, reference)

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        for observer in self.observers:
            await observer.on_chunk_failed(chunk, attempt, error)


class ProgressRecorder(UploadObserver):
    """Counts outcomes; handy for summaries and tests."""

    def __init__(self):
        self.uploaded: List[bytes] = []
        self.failures: List[tuple] = []

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        self.uploaded.append(reference)

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        self.failures.append((chunk.address(), attempt, error))
