"""
Postage stamp construction and signing.

A stamp authorizes a storage node to accept one chunk against a prepaid
batch. Its 113-byte wire form is::

    batchID (32) | index (8) | timestamp (8) | signature (65, r|s|v)

The signature covers ``address | batchID | index | timestamp`` using the
Ethereum personal-message convention. The encoding of the index and
timestamp fields, and whether the message is hashed before signing, depend on
the :class:`StampScheme` the target storage node accepts.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from common.constants import (
    ADDRESS_SIZE,
    BATCH_ID_SIZE,
    INDEX_SIZE,
    MAX_BATCH_DEPTH,
    MIN_BATCH_DEPTH,
    PRIVATE_KEY_SIZE,
    SIGNATURE_SIZE,
    STAMP_SIZE,
    TIMESTAMP_SIZE,
)
from common.exceptions import EncodingError
from common.logging_config import get_logger
from common.types import from_hex, require_length
from postage.issuer import StampIssuer

logger = get_logger(__name__)

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class StampScheme(str, Enum):
    """Wire variants of the stamp index/timestamp encoding and signed digest."""

    FLAT = "flat"            # index = bucket as uint64 LE, keccak-hashed message
    RAW = "raw"              # index = bucket as uint64 LE, raw 80-byte message
    BUCKETED = "bucketed"    # index = bucket uint32 BE | counter uint32 BE, keccak-hashed message

    @property
    def byteorder(self) -> str:
        return 'big' if self is StampScheme.BUCKETED else 'little'

    @property
    def hashes_message(self) -> bool:
        return self is not StampScheme.RAW


@dataclass(frozen=True)
class PostageBatch:
    """
    Prepaid storage capacity.

    Attributes:
        batch_id: 32-byte batch identifier
        depth: Batch depth; the batch spans 2**depth buckets
    """
    batch_id: bytes
    depth: int

    @classmethod
    def from_hex(cls, batch_id: str, depth: int) -> "PostageBatch":
        return cls(batch_id=from_hex(batch_id, BATCH_ID_SIZE), depth=depth)

    def validate(self) -> None:
        require_length("batchID", self.batch_id, BATCH_ID_SIZE)
        _require_depth(self.depth)


@dataclass(frozen=True)
class Stamp:
    """
    A signed authorization for a single chunk write.

    Attributes:
        batch_id: 32-byte batch identifier
        index: Raw 8-byte index field, already encoded per scheme
        timestamp: Milliseconds since epoch
        signature: 65-byte recoverable signature (r|s|v)
        scheme: Encoding used for index and timestamp
    """
    batch_id: bytes
    index: bytes
    timestamp: int
    signature: bytes
    scheme: StampScheme = StampScheme.FLAT

    def timestamp_bytes(self) -> bytes:
        return _encode_uint64(self.timestamp, self.scheme.byteorder, "timestamp")

    def marshal(self) -> bytes:
        """
        Lay the stamp out in its fixed 113-byte wire form.

        Raises:
            EncodingError: If any field has the wrong length
        """
        require_length("batchID", self.batch_id, BATCH_ID_SIZE)
        require_length("index", self.index, INDEX_SIZE)
        require_length("signature", self.signature, SIGNATURE_SIZE)
        buffer = self.batch_id + self.index + self.timestamp_bytes() + self.signature
        if len(buffer) != STAMP_SIZE:
            raise EncodingError(f"Expected {STAMP_SIZE} byte stamp, got {len(buffer)} bytes")
        return buffer

    def hex(self) -> str:
        return self.marshal().hex()

    @classmethod
    def unmarshal(cls, data: bytes, scheme: StampScheme = StampScheme.FLAT) -> "Stamp":
        require_length("stamp", data, STAMP_SIZE)
        timestamp_end = BATCH_ID_SIZE + INDEX_SIZE + TIMESTAMP_SIZE
        return cls(
            batch_id=bytes(data[:BATCH_ID_SIZE]),
            index=bytes(data[BATCH_ID_SIZE:BATCH_ID_SIZE + INDEX_SIZE]),
            timestamp=int.from_bytes(data[BATCH_ID_SIZE + INDEX_SIZE:timestamp_end], scheme.byteorder),
            signature=bytes(data[timestamp_end:]),
            scheme=scheme,
        )

    def signed_message(self, address: bytes) -> bytes:
        """The 80-byte message this stamp's signature covers for a chunk address."""
        require_length("address", address, ADDRESS_SIZE)
        return bytes(address) + self.batch_id + self.index + self.timestamp_bytes()


def _require_depth(depth: int) -> None:
    if isinstance(depth, bool) or not isinstance(depth, int):
        raise EncodingError(f"Expected integer depth, got {depth!r}")
    if depth < MIN_BATCH_DEPTH or depth > MAX_BATCH_DEPTH:
        raise EncodingError(
            f"Expected depth between {MIN_BATCH_DEPTH} and {MAX_BATCH_DEPTH}, got {depth}"
        )


def _encode_uint64(value: int, byteorder: str, name: str) -> bytes:
    try:
        return int(value).to_bytes(8, byteorder)
    except OverflowError:
        raise EncodingError(f"{name} does not fit in 64 bits: {value}")


def bucket_index(depth: int, address: bytes) -> int:
    """
    Derive the bucket a chunk address falls into.

    The first four address bytes are read as a big-endian uint32 and shifted
    right by ``32 - depth``. The shift count is taken modulo 32, so depths
    above 32 shift right by ``(32 - depth) & 31`` like an unsigned 32-bit
    shift on the storage side. The result is always below ``2 ** depth``.

    Raises:
        EncodingError: If the address is not 32 bytes or depth is outside [16, 100]
    """
    require_length("address", address, ADDRESS_SIZE)
    _require_depth(depth)
    prefix = int.from_bytes(address[:4], 'big')
    return prefix >> ((32 - depth) & 31)


def _require_private_key(private_key: bytes) -> bytes:
    key = require_length("privateKey", private_key, PRIVATE_KEY_SIZE)
    if not 0 < int.from_bytes(key, 'big') < SECP256K1_ORDER:
        raise EncodingError("privateKey is not a valid secp256k1 secret")
    return key


def _sign_message(message: bytes, private_key: bytes, scheme: StampScheme) -> bytes:
    payload = keccak(message) if scheme.hashes_message else message
    signed = Account.sign_message(encode_defunct(primitive=payload), private_key=private_key)
    signature = bytes(signed.signature)
    if len(signature) != SIGNATURE_SIZE:
        raise EncodingError(f"Expected {SIGNATURE_SIZE} byte signature, got {len(signature)} bytes")
    return signature


def sign(
    chunk_address: bytes,
    batch: PostageBatch,
    private_key: bytes,
    timestamp: Optional[int] = None,
    scheme: StampScheme = StampScheme.FLAT,
    issuer: Optional[StampIssuer] = None,
) -> Stamp:
    """
    Sign a postage stamp for one chunk.

    Args:
        chunk_address: 32-byte chunk address
        batch: Postage batch the write is charged against
        private_key: 32-byte secp256k1 secret of the batch owner
        timestamp: Milliseconds since epoch (defaults to now)
        scheme: Stamp wire variant
        issuer: StampIssuer supplying per-bucket counters (bucketed scheme only)

    Returns:
        Signed Stamp

    Raises:
        EncodingError: On any wrong-length input or out-of-range depth
    """
    address = require_length("address", chunk_address, ADDRESS_SIZE)
    batch.validate()
    key = _require_private_key(private_key)
    scheme = StampScheme(scheme)
    if timestamp is None:
        timestamp = time.time_ns() // 1_000_000

    bucket = bucket_index(batch.depth, address)
    if scheme is StampScheme.BUCKETED:
        if issuer is None:
            raise EncodingError("Bucketed stamps need a StampIssuer")
        bucket, counter = issuer.next_index(address)
        index = bucket.to_bytes(4, 'big') + counter.to_bytes(4, 'big')
    else:
        index = _encode_uint64(bucket, 'little', "index")

    stamp = Stamp(
        batch_id=bytes(batch.batch_id),
        index=index,
        timestamp=timestamp,
        signature=b'',
        scheme=scheme,
    )
    signature = _sign_message(stamp.signed_message(address), key, scheme)
    logger.debug(f"Signed stamp for chunk {address.hex()} bucket={bucket} scheme={scheme.value}")
    return Stamp(
        batch_id=stamp.batch_id,
        index=index,
        timestamp=timestamp,
        signature=signature,
        scheme=scheme,
    )


def marshal_stamp(
    batch: PostageBatch,
    timestamp: Optional[int],
    address: bytes,
    private_key: bytes,
    scheme: StampScheme = StampScheme.FLAT,
    issuer: Optional[StampIssuer] = None,
) -> bytes:
    """Sign a stamp for ``address`` and return its 113-byte wire form."""
    return sign(address, batch, private_key, timestamp, scheme, issuer).marshal()


def recover_signer(stamp: Stamp, address: bytes) -> str:
    """
    Recover the checksummed Ethereum address that signed a stamp.

    Used to check a stamp against the batch owner before it leaves the process.
    """
    message = stamp.signed_message(address)
    payload = keccak(message) if stamp.scheme.hashes_message else message
    return Account.recover_message(encode_defunct(primitive=payload), signature=stamp.signature)
