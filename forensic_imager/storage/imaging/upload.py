"""Object storage for encrypted images (Amazon S3 via boto3)."""

from __future__ import annotations

import io
from typing import Iterable, Optional, Protocol

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from forensic_imager.config.settings import DEFAULT_UPLOAD_PART_SIZE, ImagerConfig
from forensic_imager.domain.models import UploadTarget
from forensic_imager.logging import get_logger
from forensic_imager.storage.exceptions import CleanupError, TransferError, UploadError

from .streams import ChunkStream

log = get_logger(source="upload", tags=["upload", "s3"])

# S3 rejects multipart parts below 5 MiB (except the last one)
MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10000
# Parts buffered in memory at once for non-seekable input
MAX_BUFFERED_PARTS = 2
# Salted header plus at most one block of padding
ENCRYPTION_OVERHEAD = 32
_MIB = 1024 * 1024


class ObjectStore(Protocol):
    def upload(
        self,
        chunks: Iterable[bytes],
        target: UploadTarget,
        expected_size: Optional[int] = None,
    ) -> int: ...

    def delete(self, target: UploadTarget) -> None: ...


class S3ObjectStore:
    """Streams chunks into a single S3 object without touching local disk."""

    def __init__(self, client=None, part_size: int = DEFAULT_UPLOAD_PART_SIZE):
        self._client = client
        self.part_size = max(part_size, MIN_PART_SIZE)

    @classmethod
    def from_config(cls, config: ImagerConfig) -> S3ObjectStore:
        kwargs = {}
        if config.aws_region:
            kwargs["region_name"] = config.aws_region
        if config.s3_endpoint_url:
            kwargs["endpoint_url"] = config.s3_endpoint_url
        return cls(boto3.client("s3", **kwargs), part_size=config.upload_part_size)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def part_size_for(self, expected_size: Optional[int] = None) -> int:
        """Part size that keeps an upload of ``expected_size`` plaintext
        bytes within S3's part limit, rounded up to whole MiB."""
        if not expected_size:
            return self.part_size
        needed = -(-(expected_size + ENCRYPTION_OVERHEAD) // MAX_PARTS)
        needed = -(-needed // _MIB) * _MIB
        return max(self.part_size, needed)

    def transfer_config(self, expected_size: Optional[int] = None) -> TransferConfig:
        # Non-seekable input is buffered part by part in memory, so peak
        # memory is MAX_BUFFERED_PARTS * part size
        part_size = self.part_size_for(expected_size)
        return TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            max_concurrency=MAX_BUFFERED_PARTS,
            max_in_memory_upload_chunks=MAX_BUFFERED_PARTS,
        )

    def upload(
        self,
        chunks: Iterable[bytes],
        target: UploadTarget,
        expected_size: Optional[int] = None,
    ) -> int:
        """Upload the stream to ``target``; returns the number of bytes sent.

        ``expected_size`` is the plaintext size of the device and sizes the
        multipart parts so the whole image fits in one object.

        Raises:
            TransferError: The stage that failed (read, encrypt or upload)
        """
        config = self.transfer_config(expected_size)
        raw = ChunkStream(chunks)
        # Default buffer; reads larger than it go straight to the raw stream
        stream = io.BufferedReader(raw)
        counter = _CountingReader(stream)
        log.debug(
            f"Uploading stream to {target.uri} in parts of "
            f"{config.multipart_chunksize // _MIB} MiB"
        )
        try:
            self.client.upload_fileobj(
                counter,
                target.bucket,
                target.key,
                Config=config,
            )
        except TransferError:
            raise
        except (Boto3Error, BotoCoreError, ClientError, OSError) as error:
            if raw.error is not None:
                raise raw.error from error
            raise UploadError(target.bucket, target.key, str(error)) from error
        finally:
            stream.close()
        if raw.error is not None:
            raise raw.error
        return counter.bytes_read

    def delete(self, target: UploadTarget) -> None:
        """Remove ``target``.

        Raises:
            CleanupError: If the object could not be removed
        """
        log.debug(f"Deleting {target.uri}")
        try:
            self.client.delete_object(Bucket=target.bucket, Key=target.key)
        except (BotoCoreError, ClientError) as error:
            raise CleanupError(target.bucket, target.key, str(error)) from error


class _CountingReader:
    """File-like wrapper that counts bytes handed to the upload client."""

    def __init__(self, stream: io.BufferedReader):
        self._stream = stream
        self.bytes_read = 0

    def read(self, size: Optional[int] = -1) -> bytes:
        data = self._stream.read(size)
        self.bytes_read += len(data)
        return data

    def readable(self) -> bool:
        return True
