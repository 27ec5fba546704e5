"""Content-addressed chunk splitting (Swarm binary Merkle tree)."""

from chunking.bmt import Chunk, ChunkedFile, bmt_hash, make_chunk, split

__all__ = [
    "Chunk",
    "ChunkedFile",
    "bmt_hash",
    "make_chunk",
    "split",
]
