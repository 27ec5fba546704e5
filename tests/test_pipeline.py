"""End-to-end tests for the upload pipeline against an in-memory node."""

from dataclasses import replace

import pytest

from chunking.bmt import make_chunk, split
from common.constants import POSTAGE_BATCH_ID_HEADER, POSTAGE_STAMP_HEADER
from common.exceptions import IntegrityError, NetworkError
from manifest.assembler import INDEX_DOCUMENT_KEY
from manifest.mantaray import ZERO_ADDRESS
from postage.issuer import StampIssuer
from postage.stamp import Stamp, StampScheme, recover_signer
from uploader.client import BeeClient
from uploader.observer import ProgressRecorder
from uploader.pipeline import (
    PipelineState,
    UploadPipeline,
    normalize_filename,
    upload_bytes,
    upload_file,
)


@pytest.mark.asyncio
async def test_small_file_upload(config, client, fake_node, owner_address):
    data = b'0123456789'
    recorder = ProgressRecorder()
    pipeline = UploadPipeline(config, client, observer=recorder)

    result = await pipeline.run(data, 'hello.txt')
    await client.close()

    chunk = make_chunk(data)
    assert pipeline.state is PipelineState.DONE
    assert result.chunk_count == 1
    assert result.root_chunk_address == chunk.address()
    assert recorder.uploaded == [chunk.address()]
    assert recorder.failures == []

    requests = fake_node.chunk_requests()
    assert len(requests) == 1
    stamp = Stamp.unmarshal(bytes.fromhex(requests[0].headers[POSTAGE_STAMP_HEADER]))
    assert recover_signer(stamp, chunk.address()) == owner_address

    assert result.manifest_reference.hex() in fake_node.blobs
    assert list(pipeline.assembler.trie.paths()) == [
        (b'/', ZERO_ADDRESS, {INDEX_DOCUMENT_KEY: '/hello.txt'}),
        (b'/hello.txt', chunk.address(), {'Content-Type': 'text/plain', 'Filename': 'hello.txt'}),
    ]


@pytest.mark.asyncio
async def test_multi_chunk_upload_covers_every_level(config, client, fake_node):
    data = bytes(range(256)) * 40  # 10240 bytes, three leaves
    pipeline = UploadPipeline(config, client)

    result = await pipeline.run(data, 'blob.bin', content_type='application/x-test')
    await client.close()

    expected = split(data)
    assert result.chunk_count == 4
    assert result.root_chunk_address == expected.address()
    assert set(fake_node.chunks) == {c.address().hex() for c in expected.chunks()}
    assert pipeline.assembler.trie.forks  # manifest built


@pytest.mark.asyncio
async def test_transient_failure_is_retried(config, client, fake_node):
    data = b'retry me'
    address = make_chunk(data).address()
    fake_node.chunk_failures[address.hex()] = [503]
    recorder = ProgressRecorder()

    result = await UploadPipeline(config, client, observer=recorder).run(data, 'retry.txt')
    await client.close()

    assert result.root_chunk_address == address
    assert [(a, n) for a, n, _ in recorder.failures] == [(address, 1)]
    assert isinstance(recorder.failures[0][2], NetworkError)
    assert len(fake_node.chunk_requests()) == 2


@pytest.mark.asyncio
async def test_stamp_is_reused_across_retries(config, client, fake_node):
    data = b'same stamp twice'
    fake_node.chunk_failures[make_chunk(data).address().hex()] = [500]

    await UploadPipeline(config, client).run(data, 'same.txt')
    await client.close()

    first, second = fake_node.chunk_requests()
    assert first.headers[POSTAGE_STAMP_HEADER] == second.headers[POSTAGE_STAMP_HEADER]


@pytest.mark.asyncio
async def test_exhausted_retries_abort_before_manifest(config, client, fake_node):
    data = b'never makes it'
    fake_node.chunk_failures[make_chunk(data).address().hex()] = [500, 502, 503]
    recorder = ProgressRecorder()
    pipeline = UploadPipeline(config, client, observer=recorder)

    with pytest.raises(NetworkError) as exc_info:
        await pipeline.run(data, 'lost.txt')
    await client.close()

    assert exc_info.value.status_code == 503
    assert pipeline.state is PipelineState.FAILED
    assert [n for _, n, _ in recorder.failures] == [1, 2, 3]
    assert fake_node.bytes_requests() == []


@pytest.mark.asyncio
async def test_wrong_reference_is_retried(config, client, fake_node):
    data = b'verified twice'
    address = make_chunk(data).address()
    fake_node.wrong_references = 1
    recorder = ProgressRecorder()
    pipeline = UploadPipeline(config, client, observer=recorder)

    result = await pipeline.run(data, 'verified.txt')
    await client.close()

    assert pipeline.state is PipelineState.DONE
    assert result.root_chunk_address == address
    assert [(a, n) for a, n, _ in recorder.failures] == [(address, 1)]
    assert isinstance(recorder.failures[0][2], IntegrityError)
    assert recorder.uploaded == [address]
    assert len(fake_node.bytes_requests()) > 0


@pytest.mark.asyncio
async def test_persistent_wrong_reference_fails_the_upload(config, client, fake_node):
    fake_node.wrong_references = config.max_retries
    recorder = ProgressRecorder()
    pipeline = UploadPipeline(config, client, observer=recorder)

    with pytest.raises(IntegrityError):
        await pipeline.run(b'always corrupted', 'bad.txt')
    await client.close()

    assert pipeline.state is PipelineState.FAILED
    assert [n for _, n, _ in recorder.failures] == [1, 2, 3]
    assert len(fake_node.chunk_requests()) == config.max_retries
    assert fake_node.bytes_requests() == []


@pytest.mark.asyncio
async def test_stamps_are_released_after_upload(config, client, fake_node):
    data = bytes(i % 251 for i in range(10240))
    fake_node.chunk_failures[make_chunk(data[:4096]).address().hex()] = [503]
    pipeline = UploadPipeline(config, client)

    await pipeline.run(data, 'released.bin')
    await client.close()

    assert pipeline._stamps == {}
    first_leaf = [r for r in fake_node.chunk_requests() if r.content == make_chunk(data[:4096]).data()]
    assert len(first_leaf) == 2
    assert first_leaf[0].headers[POSTAGE_STAMP_HEADER] == first_leaf[1].headers[POSTAGE_STAMP_HEADER]


@pytest.mark.asyncio
async def test_pipeline_runs_only_once(config, client):
    pipeline = UploadPipeline(config, client)
    await pipeline.run(b'once', 'once.txt')

    with pytest.raises(RuntimeError, match='already ran'):
        await pipeline.run(b'twice', 'twice.txt')
    await client.close()


@pytest.mark.asyncio
async def test_node_side_stamping_without_private_key(config, fake_node):
    config = replace(config, private_key=None)
    client = BeeClient.from_config(config, transport=fake_node.transport())

    await UploadPipeline(config, client).run(b'node stamps', 'n.txt')
    await client.close()

    request = fake_node.chunk_requests()[0]
    assert POSTAGE_STAMP_HEADER not in request.headers
    assert request.headers[POSTAGE_BATCH_ID_HEADER] == config.batch_id.hex()


@pytest.mark.asyncio
async def test_export_writes_chunks_and_stamps(config, fake_node, tmp_path):
    config = replace(config, export_dir=tmp_path / 'out')
    client = BeeClient.from_config(config, transport=fake_node.transport())
    data = b'exported'

    await UploadPipeline(config, client).run(data, 'e.txt')
    await client.close()

    address = make_chunk(data).address().hex()
    chunk_file = tmp_path / 'out' / f'data-00000-{address}.bin'
    stamp_file = tmp_path / 'out' / f'data-00000-{address}.sig.bin'
    assert chunk_file.read_bytes() == make_chunk(data).data()
    assert stamp_file.read_text() == fake_node.chunk_requests()[0].headers[POSTAGE_STAMP_HEADER]


def test_bucketed_scheme_requires_issuer(config, client):
    config = replace(config, stamp_scheme=StampScheme.BUCKETED)

    with pytest.raises(ValueError, match='StampIssuer'):
        UploadPipeline(config, client)


@pytest.mark.asyncio
async def test_upload_bytes_persists_issuer_state(config, fake_node, tmp_path):
    state = tmp_path / 'state.bin'
    config = replace(config, stamp_scheme=StampScheme.BUCKETED, issuer_state=state)
    data = b'bucketed'
    address = make_chunk(data).address()

    result = await upload_bytes(data, 'b.txt', config, transport=fake_node.transport())

    assert result.root_chunk_address == address
    header = fake_node.chunk_requests()[0].headers[POSTAGE_STAMP_HEADER]
    stamp = Stamp.unmarshal(bytes.fromhex(header), StampScheme.BUCKETED)
    bucket = int.from_bytes(address[:2], 'big')
    assert stamp.index == bucket.to_bytes(4, 'big') + (0).to_bytes(4, 'big')
    assert StampIssuer.load(state, config.batch_depth).counter(bucket) == 1


@pytest.mark.asyncio
async def test_upload_file_uses_base_name(config, fake_node, tmp_path):
    path = tmp_path / 'docs' / 'page.html'
    path.parent.mkdir()
    path.write_bytes(b'<h1>hi</h1>')
    observer = ProgressRecorder()

    result = await upload_file(str(path), config, observer=observer, transport=fake_node.transport())

    assert result.bzz_url('http://bee.test/') == f'http://bee.test/bzz/{result.manifest_reference.hex()}/'
    assert len(observer.uploaded) == 1
    blobs = b''.join(fake_node.blobs.values())
    assert b'page.html' in blobs
    assert b'text/html' in blobs


def test_normalize_filename():
    assert normalize_filename('/tmp/some/dir/file.txt') == 'file.txt'
    assert normalize_filename('file.txt') == 'file.txt'
