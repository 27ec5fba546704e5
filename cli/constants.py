"""CLI constants."""

GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"

USAGE = """Usage: swarm-upload [--debug] <file>

Uploads <file> as signed chunks and prints the manifest URL.

Environment:
  BEE             Storage node URL (default http://localhost:1633)
  STAMP           Postage batch id (hex)
  BATCH_DEPTH     Postage batch depth (default 20)
  PRIVATE_KEY     Batch owner key (hex); unset lets the node stamp chunks
  STAMP_SCHEME    flat | raw | bucketed (default flat)
  PARALLELISM     Concurrent chunk uploads (default 8)
  RETRIES         Attempts per chunk (default 5)
  RETRY_BACKOFF   Base delay between attempts in seconds (default 0)
  DEFERRED        Deferred uploads, true|false (default true)
  CONTENT_TYPE    Override the detected content type
  TIMEOUT         Request timeout in seconds (default 30)
  EXPORT_DIR      Also write chunk and stamp files to this directory
  ISSUER_STATE    Bucket counter file for the bucketed scheme (default state.bin)
  LOG_LEVEL       DEBUG, INFO, WARNING, ERROR (default INFO)"""
