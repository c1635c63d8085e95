"""Device integrity digests using SHA256 checksums."""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional

from forensic_imager.config.settings import DEFAULT_BLOCK_SIZE
from forensic_imager.domain.models import IntegrityDigest
from forensic_imager.logging import get_logger, operation_context
from forensic_imager.storage.devices import human_size

from .streams import iter_device_chunks

log = get_logger(source="digest", tags=["digest"])


def sha256_chunks(chunks: Iterable[bytes]) -> IntegrityDigest:
    hasher = hashlib.sha256()
    total = 0
    for chunk in chunks:
        hasher.update(chunk)
        total += len(chunk)
    return IntegrityDigest(hexdigest=hasher.hexdigest(), bytes_read=total)


def compute_sha256(
    device_path: str,
    block_size: int = DEFAULT_BLOCK_SIZE,
    total_bytes: Optional[int] = None,
) -> IntegrityDigest:
    """Compute the SHA256 checksum of an entire device.

    Every call is a full sequential read of the device with no caching.
    Called before and after the transfer with the same path and block size
    so the results are comparable.

    Raises:
        DeviceReadError: If the device cannot be read to the end
    """
    log.info(f"Calculating SHA256 hash of {device_path}...")
    if total_bytes:
        log.info(
            f"This reads all {human_size(total_bytes)} of {device_path} and "
            "takes about as long as the upload itself"
        )
    with operation_context("digest", log=log, device=device_path):
        digest = sha256_chunks(iter_device_chunks(device_path, block_size))
    log.info(f"SHA256 hash: {digest.hexdigest}")
    return digest
