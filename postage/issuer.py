"""Per-bucket stamp counters for the bucketed stamp scheme, with a binary state file."""

import threading
from pathlib import Path
from typing import List, Optional, Tuple

from common.constants import BUCKET_DEPTH
from common.exceptions import BucketFullError, EncodingError
from common.logging_config import get_logger

logger = get_logger(__name__)

BUCKET_COUNT = 2 ** BUCKET_DEPTH
SLOT_SIZE = 4
STATE_SIZE = BUCKET_COUNT * SLOT_SIZE


class StampIssuer:
    """
    Hands out ``(bucket, counter)`` pairs for a postage batch.

    Buckets use the fixed bucket depth of 16; each bucket holds
    ``2 ** (depth - 16)`` stamps. The counters are the only state shared
    between concurrent upload tasks, so access is serialized with a lock.
    """

    def __init__(self, depth: int, counters: Optional[List[int]] = None):
        if depth < BUCKET_DEPTH:
            raise EncodingError(f"Batch depth {depth} is below bucket depth {BUCKET_DEPTH}")
        self.depth = depth
        self.capacity = 2 ** (depth - BUCKET_DEPTH)
        self._counters = list(counters) if counters is not None else [0] * BUCKET_COUNT
        if len(self._counters) != BUCKET_COUNT:
            raise EncodingError(f"Expected {BUCKET_COUNT} bucket counters, got {len(self._counters)}")
        self._lock = threading.Lock()

    def bucket_of(self, address: bytes) -> int:
        return int.from_bytes(address[:2], 'big') >> (16 - BUCKET_DEPTH)

    def next_index(self, address: bytes) -> Tuple[int, int]:
        """
        Reserve the next index in the bucket an address falls into.

        Returns:
            Tuple of (bucket, counter)

        Raises:
            BucketFullError: If the bucket has no capacity left
        """
        bucket = self.bucket_of(address)
        with self._lock:
            counter = self._counters[bucket]
            if counter >= self.capacity:
                raise BucketFullError(f"Bucket {bucket} is full ({self.capacity} stamps issued)")
            self._counters[bucket] = counter + 1
        return bucket, counter

    def counter(self, bucket: int) -> int:
        return self._counters[bucket]

    def utilization(self) -> int:
        """Fill level of the fullest bucket."""
        return max(self._counters)

    def to_bytes(self) -> bytes:
        with self._lock:
            return b''.join(c.to_bytes(SLOT_SIZE, 'little') for c in self._counters)

    @classmethod
    def from_bytes(cls, data: bytes, depth: int) -> "StampIssuer":
        if len(data) != STATE_SIZE:
            raise EncodingError(f"Expected {STATE_SIZE} byte issuer state, got {len(data)} bytes")
        counters = [
            int.from_bytes(data[i:i + SLOT_SIZE], 'little')
            for i in range(0, STATE_SIZE, SLOT_SIZE)
        ]
        return cls(depth, counters)

    def store(self, path: Path) -> None:
        """Write the counters to ``path``."""
        path = Path(path)
        path.write_bytes(self.to_bytes())
        logger.debug(f"Stored issuer state to {path} (max bucket fill {self.utilization()})")

    @classmethod
    def load(cls, path: Path, depth: int) -> "StampIssuer":
        """
        Read counters from ``path``; a missing file means a fresh batch.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            logger.info(f"No issuer state at {path}, starting with empty buckets")
            return cls(depth)
        return cls.from_bytes(data, depth)
