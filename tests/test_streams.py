"""Tests for the chunk reader and the iterator-to-file adapter."""

import io

import pytest

from forensic_imager.storage.exceptions import DeviceReadError, EncryptionError
from forensic_imager.storage.imaging.streams import ChunkStream, iter_device_chunks


class TestIterDeviceChunks:
    def test_reads_whole_device_in_blocks(self, fake_device):
        chunks = list(iter_device_chunks(str(fake_device), block_size=1024 * 1024))

        assert [len(c) for c in chunks] == [1024 * 1024, fake_device.stat().st_size - 1024 * 1024]
        assert b"".join(chunks) == fake_device.read_bytes()

    def test_empty_device(self, tmp_path):
        empty = tmp_path / "empty"
        empty.write_bytes(b"")
        assert list(iter_device_chunks(str(empty))) == []

    def test_missing_device_raises(self, tmp_path):
        with pytest.raises(DeviceReadError, match="nope"):
            list(iter_device_chunks(str(tmp_path / "nope")))

    def test_read_error_raises(self, mocker, fake_device):
        handle = mocker.MagicMock()
        handle.__enter__.return_value = handle
        handle.read.side_effect = OSError(5, "Input/output error")
        mocker.patch(
            "forensic_imager.storage.imaging.streams.open", return_value=handle, create=True
        )

        with pytest.raises(DeviceReadError, match="Input/output error"):
            list(iter_device_chunks(str(fake_device)))

    def test_rejects_non_positive_block_size(self, fake_device):
        with pytest.raises(ValueError):
            list(iter_device_chunks(str(fake_device), block_size=0))


class TestChunkStream:
    def test_read_all(self):
        stream = ChunkStream([b"abc", b"", b"defg"])
        assert stream.read() == b"abcdefg"
        assert stream.read(10) == b""

    def test_buffered_reads_fill_requested_size(self):
        stream = io.BufferedReader(ChunkStream([b"ab", b"cd", b"ef"]), buffer_size=4)

        assert stream.read(5) == b"abcde"
        assert stream.read(5) == b"f"

    def test_records_stage_error(self):
        def chunks():
            yield b"ok"
            raise EncryptionError("boom")

        stream = ChunkStream(chunks())
        assert stream.read(2) == b"ok"
        with pytest.raises(EncryptionError):
            stream.read(2)
        assert isinstance(stream.error, EncryptionError)

    def test_close_closes_generator(self):
        closed = []

        def chunks():
            try:
                yield b"data"
                yield b"more"
            finally:
                closed.append(True)

        stream = ChunkStream(chunks())
        stream.read(1)
        stream.close()
        assert closed == [True]
