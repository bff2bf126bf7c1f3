"""Tests for file source normalization."""

import io

import pytest

from uploader.exceptions import NotFoundError, UploadIOError
from uploader.file_source import normalize


async def collect(unit, chunk_size=4):
    return [chunk async for chunk in unit.chunks(chunk_size)]


class TestNormalizePath:
    """Tests for path sources."""

    def test_path_uses_basename_and_size(self, sample_file):
        unit = normalize(str(sample_file))
        assert unit.name == 'clip.mp4'
        assert unit.size == len(b'Sample content for testing')

    def test_pathlike_and_name_override(self, sample_file):
        unit = normalize(sample_file, name='renamed.mp4')
        assert unit.name == 'renamed.mp4'

    def test_missing_path_raises_not_found(self, tmp_path):
        with pytest.raises(NotFoundError):
            normalize(str(tmp_path / 'missing.mp4'))

    def test_directory_is_rejected(self, tmp_path):
        with pytest.raises(UploadIOError):
            normalize(str(tmp_path))

    @pytest.mark.asyncio
    async def test_chunks_read_whole_file(self, sample_file):
        unit = normalize(sample_file)
        chunks = await collect(unit, chunk_size=10)
        assert b''.join(chunks) == sample_file.read_bytes()
        assert [len(c) for c in chunks] == [10, 10, 6]

    @pytest.mark.asyncio
    async def test_chunks_are_single_use(self, sample_file):
        unit = normalize(sample_file)
        await collect(unit)
        assert unit.consumed
        with pytest.raises(UploadIOError):
            unit.chunks(4)


class TestNormalizeHandle:
    """Tests for file-object sources."""

    def test_bytesio_defaults_to_blob(self):
        unit = normalize(io.BytesIO(b'abcdef'))
        assert unit.name == 'blob'
        assert unit.size == 6

    def test_size_counts_from_current_position(self):
        handle = io.BytesIO(b'abcdef')
        handle.read(2)
        unit = normalize(handle, name='tail.bin')
        assert unit.size == 4

    def test_open_file_uses_its_name(self, sample_file):
        with open(sample_file, 'rb') as handle:
            unit = normalize(handle)
            assert unit.name == 'clip.mp4'
            assert unit.size == sample_file.stat().st_size

    @pytest.mark.asyncio
    async def test_handle_is_not_closed_after_reading(self):
        handle = io.BytesIO(b'abcdef')
        unit = normalize(handle)
        assert b''.join(await collect(unit)) == b'abcdef'
        assert not handle.closed

    def test_unsupported_source(self):
        with pytest.raises(UploadIOError):
            normalize(12345)
