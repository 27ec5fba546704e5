"""Tests for content type detection."""

import pytest

from uploader.mime import DEFAULT_CONTENT_TYPE, MIME_TYPES, detect_mime


@pytest.mark.parametrize('filename,expected', [
    ('index.html', 'text/html'),
    ('notes.txt', 'text/plain'),
    ('photo.PNG', 'image/png'),
    ('font.woff2', 'font/woff2'),
    ('archive.7z', 'application/x-7z-compressed'),
])
def test_known_extensions(filename, expected):
    assert detect_mime(filename) == expected


@pytest.mark.parametrize('filename,expected', [
    ('sheet.xlsx', 'application/vnd.ms-excel'),
    ('app.js', 'application/javascript'),
    ('favicon.ico', 'image/x-icon'),
    ('song.mid', 'audio/midi'),
    ('backup.rar', 'application/x-rar-compressed'),
    ('clip.wav', 'audio/x-wav'),
    ('types.ts', 'application/typescript'),
])
def test_table_wins_over_host_registry(filename, expected):
    assert detect_mime(filename) == expected


@pytest.mark.parametrize('filename', ['README', 'data.unknownext', 'page.md', 'archive.tar.gz'])
def test_unknown_falls_back_to_octet_stream(filename):
    assert detect_mime(filename) == DEFAULT_CONTENT_TYPE


def test_table_covers_every_extension():
    assert len(MIME_TYPES) == 72
    assert MIME_TYPES['aac'] == 'audio/aac'
