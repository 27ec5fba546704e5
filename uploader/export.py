"""Writes chunks and their stamps to disk for inspection or offline upload."""

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from chunking.bmt import Chunk
from common.logging_config import get_logger
from postage.stamp import Stamp

logger = get_logger(__name__)


class ChunkExporter:
    """
    Stores chunk ``i`` as ``data-{i:05d}-{address}.bin`` (span followed by
    payload) and its stamp, hex-encoded, as ``data-{i:05d}-{address}.sig.bin``.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def chunk_path(self, index: int, chunk: Chunk) -> Path:
        return self.directory / f"data-{index:05d}-{chunk.address().hex()}.bin"

    def stamp_path(self, index: int, chunk: Chunk) -> Path:
        return self.directory / f"data-{index:05d}-{chunk.address().hex()}.sig.bin"

    def write(self, index: int, chunk: Chunk, stamp: Optional[Stamp] = None) -> Path:
        """
        Write one chunk (and its stamp when given).

        Returns:
            Path of the chunk file
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.chunk_path(index, chunk)
        path.write_bytes(chunk.data())
        if stamp is not None:
            self.stamp_path(index, chunk).write_text(stamp.hex(), encoding='ascii')
        return path

    def export(self, chunks: Iterable[Chunk], stamp_for: Callable[[Chunk], Optional[Stamp]]) -> List[Path]:
        paths = [self.write(i, chunk, stamp_for(chunk)) for i, chunk in enumerate(chunks)]
        logger.info(f"Exported {len(paths)} chunks to {self.directory}")
        return paths
