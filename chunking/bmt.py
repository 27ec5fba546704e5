"""
Binary Merkle Tree chunking.

A file is cut into payloads of at most 4096 bytes. Each leaf chunk is
addressed by ``keccak256(span || bmt_root(payload))`` where the span is the
8-byte little-endian length of the data beneath the chunk. Intermediate
chunks carry the concatenated addresses of up to 128 children and span the
sum of their children's spans, until a single root chunk remains.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from eth_utils import keccak

from common.constants import BRANCHES, CHUNK_PAYLOAD_SIZE, SEGMENT_SIZE, SPAN_SIZE
from common.exceptions import EncodingError
from common.types import ChunkAddress


def bmt_hash(payload: bytes) -> bytes:
    """
    Compute the BMT root of a payload zero-padded to a full chunk.

    Args:
        payload: Up to 4096 bytes

    Returns:
        32-byte root hash (not yet combined with the span)
    """
    level = payload.ljust(CHUNK_PAYLOAD_SIZE, b'\x00')
    while len(level) > SEGMENT_SIZE:
        level = b''.join(
            keccak(level[i:i + 2 * SEGMENT_SIZE])
            for i in range(0, len(level), 2 * SEGMENT_SIZE)
        )
    return level


@dataclass(frozen=True)
class Chunk:
    """
    A single content-addressed chunk.

    Attributes:
        payload: Chunk payload, at most 4096 bytes
        span_value: Number of file bytes this chunk covers
    """
    payload: bytes
    span_value: int
    _address: Optional[bytes] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        if len(self.payload) > CHUNK_PAYLOAD_SIZE:
            raise EncodingError(
                f"Chunk payload is {len(self.payload)} bytes, maximum is {CHUNK_PAYLOAD_SIZE}"
            )
        if not 0 <= self.span_value < 2 ** 64:
            raise EncodingError(f"Span value out of range: {self.span_value}")

    def span(self) -> bytes:
        return self.span_value.to_bytes(SPAN_SIZE, 'little')

    def data(self) -> bytes:
        """Wire form of the chunk: span followed by payload."""
        return self.span() + self.payload

    @classmethod
    def from_data(cls, data: bytes) -> "Chunk":
        """Parse the wire form (span followed by payload)."""
        if len(data) < SPAN_SIZE:
            raise EncodingError(f"Chunk data is {len(data)} bytes, shorter than its span")
        return cls(payload=bytes(data[SPAN_SIZE:]), span_value=int.from_bytes(data[:SPAN_SIZE], 'little'))

    def address(self) -> ChunkAddress:
        if self._address is None:
            object.__setattr__(self, '_address', keccak(self.span() + bmt_hash(self.payload)))
        return self._address


def make_chunk(payload: bytes, span_value: Optional[int] = None) -> Chunk:
    """Create a chunk; leaf chunks span their own payload length."""
    return Chunk(payload=bytes(payload), span_value=len(payload) if span_value is None else span_value)


def _intermediate_chunk(children: List[Chunk]) -> Chunk:
    payload = b''.join(child.address() for child in children)
    return Chunk(payload=payload, span_value=sum(child.span_value for child in children))


def _pop_carrier_chunk(chunks: List[Chunk]) -> Optional[Chunk]:
    # A lone trailing chunk would get a parent with one child; it is carried
    # up to the first level where it fits as a sibling instead.
    if len(chunks) <= 1:
        return None
    if len(chunks) % BRANCHES == 1:
        return chunks.pop()
    return None


class ChunkedFile:
    """
    A byte string split into BMT chunks.

    ``levels`` lists every chunk exactly once, leaves first and the root chunk
    alone on the last level.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.leaves = self._leaf_chunks()
        self.levels = self._build_levels()

    def _leaf_chunks(self) -> List[Chunk]:
        if not self.data:
            return [make_chunk(b'')]
        return [
            make_chunk(self.data[i:i + CHUNK_PAYLOAD_SIZE])
            for i in range(0, len(self.data), CHUNK_PAYLOAD_SIZE)
        ]

    def _build_levels(self) -> List[List[Chunk]]:
        leaves = list(self.leaves)
        if len(leaves) == 1:
            return [leaves]

        levels = [leaves]
        carrier = _pop_carrier_chunk(leaves)
        while len(levels[-1]) != 1:
            current = levels[-1]
            next_level = [
                _intermediate_chunk(current[i:i + BRANCHES])
                for i in range(0, len(current), BRANCHES)
            ]
            if carrier is not None:
                if len(next_level) % BRANCHES != 0:
                    next_level.append(carrier)
                    carrier = None
            else:
                carrier = _pop_carrier_chunk(next_level)
            levels.append(next_level)
        return levels

    def chunks(self) -> List[Chunk]:
        """All chunks of all levels, leaves first."""
        return [chunk for level in self.levels for chunk in level]

    def root(self) -> Chunk:
        return self.levels[-1][0]

    def address(self) -> ChunkAddress:
        return self.root().address()

    def span(self) -> int:
        return len(self.data)


def split(data: bytes) -> ChunkedFile:
    """Split a byte string into a BMT chunk tree."""
    return ChunkedFile(data)
