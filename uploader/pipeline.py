"""Upload orchestration: split, upload every chunk, then build the manifest."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from chunking.bmt import Chunk, split
from common.logging_config import get_logger
from common.types import ChunkAddress
from manifest.assembler import ManifestAssembler
from postage.issuer import StampIssuer
from postage.stamp import Stamp, StampScheme, sign
from uploader.client import BeeClient
from uploader.config import UploadConfig
from uploader.export import ChunkExporter
from uploader.mime import detect_mime
from uploader.observer import UploadObserver
from uploader.scheduler import UploadScheduler

logger = get_logger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    SPLITTING = "splitting"
    UPLOADING_CHUNKS = "uploading_chunks"
    BUILDING_MANIFEST = "building_manifest"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
    """
    Outcome of a completed upload.

    Attributes:
        root_chunk_address: Address of the file's root chunk
        manifest_reference: Reference of the persisted manifest
        chunk_count: Number of chunks uploaded across all tree levels
    """
    root_chunk_address: ChunkAddress
    manifest_reference: bytes
    chunk_count: int

    def bzz_url(self, endpoint: str) -> str:
        return f"{endpoint.rstrip('/')}/bzz/{self.manifest_reference.hex()}/"


class UploadPipeline:
    """
    Single-shot upload of one file.

    States run ``idle -> splitting -> uploading_chunks -> building_manifest ->
    done``; an unrecovered error while uploading chunks or building the
    manifest ends in ``failed`` and is re-raised. The manifest is never built
    unless every chunk of every tree level was uploaded.
    """

    def __init__(
        self,
        config: UploadConfig,
        client: BeeClient,
        observer: Optional[UploadObserver] = None,
        issuer: Optional[StampIssuer] = None,
    ):
        self.config = config
        self.client = client
        self.issuer = issuer
        self.state = PipelineState.IDLE
        self.scheduler = UploadScheduler(
            parallelism=config.parallelism,
            max_retries=config.max_retries,
            observer=observer,
            retry_backoff=config.retry_backoff,
        )
        self.assembler = ManifestAssembler(
            client,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff,
        )
        self._stamps: Dict[bytes, Stamp] = {}
        if config.signs_locally and config.stamp_scheme is StampScheme.BUCKETED and issuer is None:
            raise ValueError("The bucketed stamp scheme needs a StampIssuer")

    def _transition(self, state: PipelineState) -> None:
        logger.info(f"Pipeline {self.state.value} -> {state.value}")
        self.state = state

    def stamp_for(self, chunk: Chunk) -> Optional[Stamp]:
        """
        Stamp for a chunk, signed on first use and reused across retries.

        The cached stamp is dropped once the chunk is uploaded, so the cache
        only holds stamps of chunks that have not been uploaded yet.

        Returns None when the storage node stamps chunks itself.
        """
        if not self.config.signs_locally:
            return None
        address = chunk.address()
        stamp = self._stamps.get(address)
        if stamp is None:
            stamp = sign(
                address,
                self.config.batch,
                self.config.private_key,
                scheme=self.config.stamp_scheme,
                issuer=self.issuer,
            )
            self._stamps[address] = stamp
        return stamp

    async def _upload_chunk(self, chunk: Chunk) -> bytes:
        reference = await self.client.upload_chunk(chunk.data(), self.stamp_for(chunk))
        self._stamps.pop(chunk.address(), None)
        return reference

    async def run(self, data: bytes, filename: str, content_type: Optional[str] = None) -> UploadResult:
        """
        Upload ``data`` and publish it under ``/{filename}``.

        Args:
            data: File contents
            filename: Name used in the manifest
            content_type: MIME type; falls back to config, then to detection

        Returns:
            UploadResult with root chunk address and manifest reference

        Raises:
            RuntimeError: If the pipeline has already run
            Exception: The first unrecoverable upload error
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already ran (state={self.state.value})")
        content_type = content_type or self.config.content_type or detect_mime(filename)

        self._transition(PipelineState.SPLITTING)
        chunked = split(data)
        chunks = chunked.chunks()
        root = chunked.address()
        logger.info(
            f"Split {len(data)} bytes into {len(chunks)} chunks over {len(chunked.levels)} levels, "
            f"root {root.hex()}"
        )
        if self.config.export_dir is not None:
            ChunkExporter(self.config.export_dir).export(chunks, self.stamp_for)

        self._transition(PipelineState.UPLOADING_CHUNKS)
        try:
            await self.scheduler.run(chunks, self._upload_chunk)
        except Exception:
            self._transition(PipelineState.FAILED)
            raise

        self._transition(PipelineState.BUILDING_MANIFEST)
        try:
            manifest = await self.assembler.build(root, filename, content_type)
        except Exception:
            self._transition(PipelineState.FAILED)
            raise

        self._transition(PipelineState.DONE)
        return UploadResult(
            root_chunk_address=root,
            manifest_reference=manifest,
            chunk_count=len(chunks),
        )


def normalize_filename(path: str) -> str:
    """File name component of a path, as used in the manifest."""
    return Path(path).name


async def upload_bytes(
    data: bytes,
    filename: str,
    config: UploadConfig,
    observer: Optional[UploadObserver] = None,
    transport=None,
) -> UploadResult:
    """
    Upload an in-memory file with a fresh client.

    The per-bucket issuer state is loaded before and stored after the run when
    the bucketed stamp scheme signs locally.
    """
    issuer = None
    if config.signs_locally and config.stamp_scheme is StampScheme.BUCKETED:
        issuer = StampIssuer.load(config.issuer_state, config.batch_depth)

    try:
        async with BeeClient.from_config(config, transport=transport) as client:
            pipeline = UploadPipeline(config, client, observer=observer, issuer=issuer)
            return await pipeline.run(data, filename)
    finally:
        if issuer is not None:
            issuer.store(config.issuer_state)


async def upload_file(
    path: str,
    config: UploadConfig,
    observer: Optional[UploadObserver] = None,
    transport=None,
) -> UploadResult:
    """Read a file from disk and upload it under its own file name."""
    data = Path(path).read_bytes()
    return await upload_bytes(data, normalize_filename(path), config, observer, transport)
