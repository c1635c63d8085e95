"""Byte stream plumbing shared by the digest and transfer stages.

Every stage of the transfer is an iterator of ``bytes`` chunks:

    iter_device_chunks -> OpenSSLEncryptor.transform -> ProgressMeter.observe

The upload client wants a file object, so ``ChunkStream`` adapts the last
iterator to ``io.RawIOBase``.
"""

from __future__ import annotations

import io
from typing import Iterable, Iterator, Optional

from forensic_imager.config.settings import DEFAULT_BLOCK_SIZE
from forensic_imager.storage.exceptions import DeviceReadError, TransferError


def iter_device_chunks(
    device_path: str, block_size: int = DEFAULT_BLOCK_SIZE
) -> Iterator[bytes]:
    """Read a device sequentially in ``block_size`` chunks.

    Raises:
        DeviceReadError: If the device cannot be opened or a read fails
    """
    if block_size <= 0:
        raise ValueError("block_size must be positive")
    try:
        handle = open(device_path, "rb", buffering=0)
    except OSError as error:
        raise DeviceReadError(device_path, str(error)) from error
    with handle:
        while True:
            try:
                chunk = handle.read(block_size)
            except OSError as error:
                raise DeviceReadError(device_path, str(error)) from error
            if not chunk:
                return
            yield chunk


class ChunkStream(io.RawIOBase):
    """Readable, non-seekable file object over an iterator of chunks.

    The first ``TransferError`` raised by the iterator is kept in ``error``
    so the consumer can report the failing stage even if an upload library
    wraps the exception on its way out.
    """

    def __init__(self, chunks: Iterable[bytes]):
        super().__init__()
        self._chunks = iter(chunks)
        self._buffer = b""
        self._exhausted = False
        self.error: Optional[TransferError] = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._buffer and not self._exhausted:
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                self._exhausted = True
            except TransferError as error:
                self.error = error
                raise
        if not self._buffer:
            return 0
        size = min(len(buffer), len(self._buffer))
        buffer[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size

    def close(self) -> None:
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()
        super().close()
