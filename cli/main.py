"""CLI entry point."""

import asyncio
import os
import sys
from typing import List, Optional

from chunking.bmt import Chunk
from cli.constants import GREEN, RED, RESET, USAGE
from common.exceptions import SwarmUploadError
from common.logging_config import setup_logging
from uploader.config import UploadConfig
from uploader.observer import CompositeObserver, ProgressRecorder, UploadObserver
from uploader.pipeline import upload_file

EXIT_UPLOAD_ERROR = 1
EXIT_USAGE_ERROR = 2


class ConsoleObserver(UploadObserver):
    """Prints one line per uploaded chunk and per failed attempt."""

    def __init__(self, endpoint: str, stream=None):
        self.endpoint = endpoint
        self.stream = stream or sys.stdout

    async def on_chunk_uploaded(self, chunk: Chunk, reference: bytes) -> None:
        self.stream.write(f"{GREEN}✅{RESET} {self.endpoint}/chunks/{reference.hex()}\n")

    async def on_chunk_failed(self, chunk: Chunk, attempt: int, error: Exception) -> None:
        self.stream.write(f"{RED}❌{RESET} {self.endpoint}/chunks/{chunk.address().hex()} (attempt {attempt}): {error}\n")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = list(sys.argv[1:] if argv is None else argv)
    debug = '--debug' in args
    if debug:
        args.remove('--debug')
    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'INFO')
    logger = setup_logging('cli', log_level=log_level)

    if len(args) != 1 or args[0] in ('-h', '--help'):
        print(USAGE, file=sys.stderr)
        return EXIT_USAGE_ERROR
    path = args[0]

    try:
        config = UploadConfig.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_USAGE_ERROR

    if not os.path.isfile(path):
        logger.error(f"File not found: {path}")
        return EXIT_USAGE_ERROR

    logger.info(f"Uploading {path} to {config.endpoint}")
    recorder = ProgressRecorder()
    observer = CompositeObserver([ConsoleObserver(config.endpoint), recorder])
    try:
        result = asyncio.run(upload_file(path, config, observer))
    except SwarmUploadError as e:
        logger.error(f"Upload failed: {e}")
        return EXIT_UPLOAD_ERROR
    except OSError as e:
        logger.error(f"Cannot read {path}: {e}")
        return EXIT_UPLOAD_ERROR

    print(f"📦 {result.bzz_url(config.endpoint)}")
    logger.info(
        f"Upload complete [root={result.root_chunk_address.hex()} chunks={result.chunk_count} "
        f"failed_attempts={len(recorder.failures)}]"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
