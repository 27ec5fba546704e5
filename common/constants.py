"""Project-wide constants (chunk geometry, stamp layout, storage-node headers)."""

CHUNK_PAYLOAD_SIZE: int = 4096  # max payload bytes per chunk
SPAN_SIZE: int = 8
SEGMENT_SIZE: int = 32
BRANCHES: int = CHUNK_PAYLOAD_SIZE // SEGMENT_SIZE  # 128 references per intermediate chunk

ADDRESS_SIZE: int = 32
BATCH_ID_SIZE: int = 32
PRIVATE_KEY_SIZE: int = 32
SIGNATURE_SIZE: int = 65
INDEX_SIZE: int = 8
TIMESTAMP_SIZE: int = 8
STAMP_SIZE: int = BATCH_ID_SIZE + INDEX_SIZE + TIMESTAMP_SIZE + SIGNATURE_SIZE  # 113

MIN_BATCH_DEPTH: int = 16
MAX_BATCH_DEPTH: int = 100
BUCKET_DEPTH: int = 16  # fixed bucket depth of the bucketed stamp scheme

DEFAULT_BEE_URL: str = "http://localhost:1633"
DEFAULT_PARALLELISM: int = 8
DEFAULT_RETRIES: int = 5
DEFAULT_TIMEOUT_SECONDS: float = 30.0

POSTAGE_STAMP_HEADER: str = "swarm-postage-stamp"
POSTAGE_BATCH_ID_HEADER: str = "swarm-postage-batch-id"
DEFERRED_UPLOAD_HEADER: str = "swarm-deferred-upload"
