"""HTTP client for the storage node's chunk and data upload endpoints."""

from typing import Optional

import httpx

from chunking.bmt import Chunk
from common.constants import (
    DEFERRED_UPLOAD_HEADER,
    POSTAGE_BATCH_ID_HEADER,
    POSTAGE_STAMP_HEADER,
)
from common.exceptions import IntegrityError, NetworkError
from common.logging_config import get_logger
from common.types import ChunkAddress
from postage.stamp import Stamp
from uploader.schemas import ReferenceResponse

logger = get_logger(__name__)


class BeeClient:
    """
    Single-round-trip upload operations against a storage node.

    Neither operation retries; retry policy belongs to the caller.
    """

    def __init__(
        self,
        endpoint: str,
        batch_id: bytes,
        deferred: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Storage node base URL
            batch_id: Postage batch used when the node stamps uploads itself
            deferred: Value of the deferred-upload header on chunk writes
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.endpoint = endpoint.rstrip('/')
        self.batch_id = batch_id
        self.deferred = deferred
        self.session = httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=timeout,
            transport=transport,
        )
        logger.info(f"Initialized BeeClient [endpoint={self.endpoint}]")

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "BeeClient":
        return cls(
            endpoint=config.endpoint,
            batch_id=config.batch_id,
            deferred=config.deferred,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "BeeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session."""
        await self.session.aclose()

    async def _post(self, path: str, content: bytes, headers: dict) -> ReferenceResponse:
        try:
            response = await self.session.post(path, content=content, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(f"POST {path} failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            detail = response.text[:200] if response.text else response.reason_phrase
            raise NetworkError(
                f"POST {path} returned {response.status_code}: {detail}",
                status_code=response.status_code
            )

        try:
            return ReferenceResponse.model_validate(response.json())
        except ValueError as e:
            raise NetworkError(f"POST {path} returned an unreadable reference: {e}", status_code=response.status_code) from e

    async def upload_chunk(self, data: bytes, stamp: Optional[Stamp] = None) -> ChunkAddress:
        """
        Write one chunk and verify the address the node reports.

        Args:
            data: Chunk wire form (span followed by payload)
            stamp: Client-signed stamp; without one the node stamps with the batch id

        Returns:
            32-byte chunk address

        Raises:
            IntegrityError: If the node's reference differs from the local address
            NetworkError: On transport or HTTP failure
        """
        expected = Chunk.from_data(data).address().hex()
        headers = {
            'content-type': 'application/octet-stream',
            DEFERRED_UPLOAD_HEADER: 'true' if self.deferred else 'false',
        }
        if stamp is not None:
            headers[POSTAGE_STAMP_HEADER] = stamp.hex()
        else:
            headers[POSTAGE_BATCH_ID_HEADER] = self.batch_id.hex()

        logger.debug(f"Uploading chunk {expected} ({len(data)} bytes)")
        result = await self._post('/chunks', data, headers)

        if result.reference != expected:
            raise IntegrityError(expected, result.reference)
        return bytes.fromhex(result.reference)

    async def upload_data(self, blob: bytes) -> ReferenceResponse:
        """
        Write an arbitrary blob (manifest nodes) and return the node's reference.

        Raises:
            NetworkError: On transport or HTTP failure
        """
        headers = {
            'content-type': 'application/octet-stream',
            POSTAGE_BATCH_ID_HEADER: self.batch_id.hex(),
        }
        logger.debug(f"Uploading data blob ({len(blob)} bytes)")
        return await self._post('/bytes', blob, headers)
