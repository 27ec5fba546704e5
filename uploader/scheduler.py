"""Bounded-concurrency chunk upload scheduler built on an asyncio worker pool."""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional

from chunking.bmt import Chunk
from common.constants import DEFAULT_PARALLELISM, DEFAULT_RETRIES
from common.logging_config import get_logger
from uploader.observer import LoggingObserver, UploadObserver
from uploader.retry import retry

logger = get_logger(__name__)

UploadFn = Callable[[Chunk], Awaitable[bytes]]


class UploadScheduler:
    """
    Runs one upload task per chunk with at most ``parallelism`` in flight.

    Each task retries up to ``max_retries`` times. The first task that
    exhausts its retries stops the pool from starting new tasks; tasks already
    in flight are left to finish, then ``run`` raises that task's last error.
    """

    def __init__(
        self,
        parallelism: int = DEFAULT_PARALLELISM,
        max_retries: int = DEFAULT_RETRIES,
        observer: Optional[UploadObserver] = None,
        retry_backoff: float = 0.0,
    ):
        if parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {parallelism}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.parallelism = parallelism
        self.max_retries = max_retries
        self.observer = observer or LoggingObserver()
        self.retry_backoff = retry_backoff

    async def _upload_one(self, chunk: Chunk, upload_fn: UploadFn) -> bytes:
        async def on_failure(attempt: int, error: Exception) -> None:
            await self.observer.on_chunk_failed(chunk, attempt, error)

        reference = await retry(
            upload_fn,
            chunk,
            attempts=self.max_retries,
            on_failure=on_failure,
            backoff=self.retry_backoff,
        )
        await self.observer.on_chunk_uploaded(chunk, reference)
        return reference

    async def run(self, chunks: Iterable[Chunk], upload_fn: UploadFn) -> List[bytes]:
        """
        Upload every chunk.

        Args:
            chunks: Chunks of every tree level, in enqueue order
            upload_fn: Coroutine performing one upload attempt for a chunk

        Returns:
            References of the uploaded chunks, in completion order

        Raises:
            Exception: The last error of the first chunk that ran out of retries
        """
        queue: asyncio.Queue = asyncio.Queue()
        for chunk in chunks:
            queue.put_nowait(chunk)
        total = queue.qsize()

        references: List[bytes] = []
        errors: List[Exception] = []
        aborted = asyncio.Event()

        async def worker() -> None:
            while not aborted.is_set():
                try:
                    chunk = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    references.append(await self._upload_one(chunk, upload_fn))
                except Exception as e:
                    errors.append(e)
                    if not aborted.is_set():
                        logger.error(f"Chunk {chunk.address().hex()} failed after retries: {e}")
                        aborted.set()
                    return
                finally:
                    queue.task_done()

        worker_count = min(self.parallelism, total)
        logger.info(f"Uploading {total} chunks with {worker_count} workers")
        await asyncio.gather(*(worker() for _ in range(worker_count)))

        if errors:
            raise errors[0]
        logger.info(f"Uploaded {len(references)}/{total} chunks")
        return references
