"""Shared pytest fixtures for all tests."""

import logging
from typing import Dict, List

import httpx
import pytest
from eth_account import Account
from eth_utils import keccak

from chunking.bmt import Chunk
from postage.stamp import PostageBatch
from uploader.client import BeeClient
from uploader.config import UploadConfig

PRIVATE_KEY = bytes.fromhex('22' * 32)
BATCH_ID = bytes.fromhex('1000000000000000000000000000000000000000000000000000000000000001')


class FakeBeeNode:
    """
    In-memory storage node answering the chunk and bytes endpoints.

    Chunk references are real BMT addresses; blob references are the keccak
    hash of the blob. ``chunk_failures`` maps a chunk address (hex) to a list
    of status codes returned for its next attempts; ``wrong_references`` is the
    number of chunk writes still to be answered with a foreign reference.
    """

    def __init__(self):
        self.chunks: Dict[str, bytes] = {}
        self.blobs: Dict[str, bytes] = {}
        self.requests: List[httpx.Request] = []
        self.chunk_failures: Dict[str, List[int]] = {}
        self.wrong_references = 0

    def chunk_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == '/chunks']

    def bytes_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == '/bytes']

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = request.content

        if request.url.path == '/chunks' and request.method == 'POST':
            address = Chunk.from_data(body).address().hex()
            pending = self.chunk_failures.get(address)
            if pending:
                return httpx.Response(pending.pop(0), text='node unavailable')
            self.chunks[address] = body
            if self.wrong_references:
                self.wrong_references -= 1
                return httpx.Response(201, json={'reference': 'ff' * 32})
            return httpx.Response(201, json={'reference': address})

        if request.url.path == '/bytes' and request.method == 'POST':
            reference = keccak(body).hex()
            self.blobs[reference] = body
            return httpx.Response(201, json={'reference': reference})

        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def private_key():
    """Batch owner key used for signing."""
    return PRIVATE_KEY


@pytest.fixture
def owner_address(private_key):
    """Ethereum address of the batch owner."""
    return Account.from_key(private_key).address


@pytest.fixture
def batch():
    """Postage batch with depth 20."""
    return PostageBatch(batch_id=BATCH_ID, depth=20)


@pytest.fixture
def fake_node():
    """Fresh in-memory storage node."""
    return FakeBeeNode()


@pytest.fixture
def config(private_key):
    """
    Configuration that signs stamps locally.

    Returns:
        UploadConfig with max_retries=3 and parallelism=4
    """
    return UploadConfig(
        endpoint='http://bee.test',
        batch_id=BATCH_ID,
        batch_depth=20,
        private_key=private_key,
        parallelism=4,
        max_retries=3,
    )


@pytest.fixture
def client(fake_node, config):
    """BeeClient wired to the fake node."""
    return BeeClient.from_config(config, transport=fake_node.transport())


@pytest.fixture(autouse=True)
def reset_project_loggers():
    """Drop handlers installed by setup_logging so captured streams don't leak between tests."""
    yield
    for name in ('cli', 'cli-test', 'common', 'postage', 'chunking', 'manifest', 'uploader'):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
