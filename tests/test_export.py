"""Tests for writing chunks and stamps to disk."""

from chunking.bmt import make_chunk
from postage.stamp import sign
from uploader.export import ChunkExporter


def test_write_chunk_and_stamp(tmp_path, batch, private_key):
    chunk = make_chunk(b'on disk')
    stamp = sign(chunk.address(), batch, private_key, 42)
    exporter = ChunkExporter(tmp_path / 'nested' / 'dir')

    path = exporter.write(3, chunk, stamp)

    assert path.name == f'data-00003-{chunk.address().hex()}.bin'
    assert path.read_bytes() == chunk.data()
    assert exporter.stamp_path(3, chunk).read_text() == stamp.hex()


def test_export_without_stamps(tmp_path):
    chunks = [make_chunk(b'a'), make_chunk(b'b')]

    paths = ChunkExporter(tmp_path).export(chunks, lambda chunk: None)

    assert [p.name for p in paths] == [
        f'data-00000-{chunks[0].address().hex()}.bin',
        f'data-00001-{chunks[1].address().hex()}.bin',
    ]
    assert not list(tmp_path.glob('*.sig.bin'))
