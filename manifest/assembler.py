"""Builds and persists the two-entry manifest that makes an upload browsable."""

from typing import Optional

from common.constants import ADDRESS_SIZE
from common.logging_config import get_logger
from common.types import ChunkAddress, from_hex
from manifest.mantaray import ZERO_ADDRESS, MantarayNode
from uploader.retry import retry

logger = get_logger(__name__)

INDEX_DOCUMENT_KEY = "website-index-document"


class ManifestAssembler:
    """
    Creates a manifest with two paths:

    - ``/{filename}`` pointing at the uploaded content, with its content type
      and filename as metadata
    - ``/`` with a zero reference whose metadata names ``/{filename}`` as the
      index document
    """

    def __init__(self, client, max_retries: int = 1, retry_backoff: float = 0.0):
        self.client = client
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.trie: Optional[MantarayNode] = None

    def build_trie(self, root_chunk_address: ChunkAddress, filename: str, content_type: str) -> MantarayNode:
        node = MantarayNode()
        node.add_fork(
            f"/{filename}".encode('utf-8'),
            root_chunk_address,
            {
                'Content-Type': content_type,
                'Filename': filename,
            }
        )
        node.add_fork(
            b"/",
            ZERO_ADDRESS,
            {INDEX_DOCUMENT_KEY: f"/{filename}"}
        )
        return node

    async def _persist(self, data: bytes) -> bytes:
        result = await retry(
            self.client.upload_data,
            data,
            attempts=self.max_retries,
            backoff=self.retry_backoff,
        )
        return from_hex(result.reference, ADDRESS_SIZE)

    async def build(self, root_chunk_address: ChunkAddress, filename: str, content_type: str) -> bytes:
        """
        Build the manifest for an uploaded file and persist it.

        Args:
            root_chunk_address: Address of the file's root chunk
            filename: Name the file is served under
            content_type: MIME type stored in the file entry

        Returns:
            32-byte manifest reference
        """
        self.trie = self.build_trie(root_chunk_address, filename, content_type)
        reference = await self.trie.save(self._persist)
        logger.info(f"Manifest for /{filename} saved as {reference.hex()}")
        return reference
