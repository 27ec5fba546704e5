"""Immutable per-run upload configuration, read from the environment."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from common.constants import (
    BATCH_ID_SIZE,
    DEFAULT_BEE_URL,
    DEFAULT_PARALLELISM,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    PRIVATE_KEY_SIZE,
)
from common.exceptions import EncodingError
from common.types import from_hex
from postage.stamp import PostageBatch, StampScheme

DEFAULT_CONFIG = {
    "BEE": DEFAULT_BEE_URL,
    "STAMP": "f0b1935f917f5d9f29726e9f184b82309829b5bdfc9e1f177a6f84a9ea4cbd56",
    "BATCH_DEPTH": "20",
    "STAMP_SCHEME": StampScheme.FLAT.value,
    "PARALLELISM": str(DEFAULT_PARALLELISM),
    "RETRIES": str(DEFAULT_RETRIES),
    "RETRY_BACKOFF": "0",
    "DEFERRED": "true",
    "TIMEOUT": str(DEFAULT_TIMEOUT_SECONDS),
    "ISSUER_STATE": "state.bin",
}

OPTIONAL_VARS = ("PRIVATE_KEY", "CONTENT_TYPE", "EXPORT_DIR")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str, minimum: int) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {number}")
    return number


def _parse_float(name: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")
    if number < 0:
        raise ValueError(f"{name} must not be negative, got {number}")
    return number


def _parse_hex(name: str, value: str, size: int) -> bytes:
    try:
        return from_hex(value, size)
    except EncodingError as e:
        raise ValueError(f"{name}: {e}")


@dataclass(frozen=True)
class UploadConfig:
    """
    Settings shared read-only by every upload task of one run.

    Attributes:
        endpoint: Storage node base URL
        batch_id: 32-byte postage batch identifier
        batch_depth: Postage batch depth
        private_key: Batch owner's 32-byte secret; None lets the node stamp chunks
        stamp_scheme: Stamp wire variant used when signing locally
        parallelism: Maximum concurrent chunk uploads
        max_retries: Attempts per chunk (and per manifest node) before giving up
        retry_backoff: Base delay between attempts in seconds (0 = immediate)
        deferred: Ask the node to acknowledge before the chunk is pushed to the network
        content_type: MIME type for the manifest entry; detected from the filename when None
        timeout: Per-request timeout in seconds
        export_dir: Directory to write chunk and stamp files to, if any
        issuer_state: Path of the per-bucket counter file (bucketed scheme only)
    """
    endpoint: str = DEFAULT_BEE_URL
    batch_id: bytes = field(default=bytes.fromhex(DEFAULT_CONFIG["STAMP"]))
    batch_depth: int = 20
    private_key: Optional[bytes] = field(default=None, repr=False)
    stamp_scheme: StampScheme = StampScheme.FLAT
    parallelism: int = DEFAULT_PARALLELISM
    max_retries: int = DEFAULT_RETRIES
    retry_backoff: float = 0.0
    deferred: bool = True
    content_type: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    export_dir: Optional[Path] = None
    issuer_state: Path = Path(DEFAULT_CONFIG["ISSUER_STATE"])

    def __post_init__(self):
        if len(self.batch_id) != BATCH_ID_SIZE:
            raise ValueError(f"batch_id must be {BATCH_ID_SIZE} bytes, got {len(self.batch_id)}")
        if self.private_key is not None and len(self.private_key) != PRIVATE_KEY_SIZE:
            raise ValueError(f"private_key must be {PRIVATE_KEY_SIZE} bytes")
        if self.parallelism < 1:
            raise ValueError(f"parallelism must be at least 1, got {self.parallelism}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        object.__setattr__(self, "stamp_scheme", StampScheme(self.stamp_scheme))
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))

    @property
    def batch(self) -> PostageBatch:
        return PostageBatch(batch_id=self.batch_id, depth=self.batch_depth)

    @property
    def signs_locally(self) -> bool:
        """True when chunks are stamped client-side instead of by the node."""
        return self.private_key is not None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UploadConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            UploadConfig instance

        Raises:
            ValueError: If a variable is malformed; the message names the variable
        """
        env = dict(DEFAULT_CONFIG)
        source = os.environ if environ is None else environ
        env.update({k: v for k, v in source.items() if k in DEFAULT_CONFIG or k in OPTIONAL_VARS})

        try:
            scheme = StampScheme(env["STAMP_SCHEME"].strip().lower())
        except ValueError:
            raise ValueError(f"STAMP_SCHEME must be one of {[s.value for s in StampScheme]}")

        private_key = None
        if env.get("PRIVATE_KEY"):
            private_key = _parse_hex("PRIVATE_KEY", env["PRIVATE_KEY"], PRIVATE_KEY_SIZE)

        return cls(
            endpoint=env["BEE"],
            batch_id=_parse_hex("STAMP", env["STAMP"], BATCH_ID_SIZE),
            batch_depth=_parse_int("BATCH_DEPTH", env["BATCH_DEPTH"], 16),
            private_key=private_key,
            stamp_scheme=scheme,
            parallelism=_parse_int("PARALLELISM", env["PARALLELISM"], 1),
            max_retries=_parse_int("RETRIES", env["RETRIES"], 1),
            retry_backoff=_parse_float("RETRY_BACKOFF", env["RETRY_BACKOFF"]),
            deferred=_parse_bool("DEFERRED", env["DEFERRED"]),
            content_type=env.get("CONTENT_TYPE") or None,
            timeout=_parse_float("TIMEOUT", env["TIMEOUT"]),
            export_dir=Path(env["EXPORT_DIR"]) if env.get("EXPORT_DIR") else None,
            issuer_state=Path(env["ISSUER_STATE"]),
        )
