"""Duplication pipeline: hash, encrypt-and-upload, hash again, compare.

Steps run strictly in order because the digests and the transfer each need
exclusive sequential reads of the same device:

    1. identify the device and derive the object key
    2. "before" digest (full device read)
    3. read -> encrypt -> progress -> upload, LED blinking
    4. "after" digest (full device read)
    5. compare digests and report

Failure policy per step:

    step                 failure                     outcome
    -------------------  --------------------------  ---------------------------
    identify             missing metadata            fallback values, continue
    digest               DeviceReadError             fatal
    transfer             any TransferError           delete partial object, fatal
    delete partial       CleanupError                warning only
    compare              digests differ              warning only, exit 0
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Callable, Optional

from forensic_imager.config.settings import ImagerConfig
from forensic_imager.domain.models import (
    DuplicationReport,
    IntegrityDigest,
    UploadTarget,
)
from forensic_imager.hardware.gpio import NullStatusIndicator
from forensic_imager.logging import get_logger, new_job_id
from forensic_imager.storage.devices import generate_output_identifier, get_device_size
from forensic_imager.storage.exceptions import CleanupError, TransferError, UploadError

from .digest import compute_sha256
from .encryption import OpenSSLEncryptor
from .progress import ProgressMeter
from .streams import iter_device_chunks
from .upload import ObjectStore


def compare_digests(before: IntegrityDigest, after: IntegrityDigest, log=None) -> bool:
    """Log the integrity verdict; a mismatch is a warning, never an error."""
    log = log or get_logger(source="pipeline", tags=["verify"])
    if before.matches(after):
        log.success(
            "SHA256 hash verification successful. "
            "Source disk remained unchanged during duplication."
        )
        return True
    log.warning("SHA256 hash mismatch. The source disk may have changed during duplication.")
    log.warning(f"  Before: {before.hexdigest}")
    log.warning(f"  After:  {after.hexdigest}")
    return False


class DuplicationPipeline:
    def __init__(
        self,
        config: ImagerConfig,
        store: ObjectStore,
        indicator=None,
        *,
        now: Callable[[], datetime] = datetime.now,
        salt_factory: Callable[[int], bytes] = os.urandom,
    ):
        self.config = config
        self.store = store
        self.indicator = indicator or NullStatusIndicator()
        self._now = now
        self._salt_factory = salt_factory
        self.job_id = new_job_id("image")
        self.log = get_logger(job_id=self.job_id, source="pipeline", tags=["pipeline"])

    def run(self, device_path: str, bucket: str, passphrase: str) -> DuplicationReport:
        """Run every step against ``device_path`` and upload into ``bucket``.

        Raises:
            TransferError: If a device read or the transfer fails
        """
        device, identifier = generate_output_identifier(device_path, now=self._now())
        self.log.info(f"Generated output filename: {identifier.key}")
        self.log.info("Filename components:")
        for label, value in identifier.components():
            self.log.info(f"  {label}: {value}")
        if identifier.has_synthetic_serial:
            self.log.warning(f"No hardware serial reported for {device_path}; using {identifier.serial}")

        total_bytes = get_device_size(device_path)
        digest_before = compute_sha256(device_path, self.config.block_size, total_bytes)

        target = UploadTarget(bucket=bucket, key=identifier.key)
        self.log.info(f"Starting disk duplication of {device_path}")
        bytes_uploaded = self.transfer(device_path, target, passphrase, total_bytes)
        self.log.success("Disk duplication completed successfully")

        digest_after = compute_sha256(device_path, self.config.block_size, total_bytes)
        compare_digests(digest_before, digest_after, self.log)

        self.log.info(f"Encrypted disk image uploaded to {target.uri}")
        self.log.info("Please store the SHA256 hash securely for later verification")

        return DuplicationReport(
            device=device,
            identifier=identifier,
            target=target,
            digest_before=digest_before,
            digest_after=digest_after,
            bytes_uploaded=bytes_uploaded,
        )

    def transfer(
        self,
        device_path: str,
        target: UploadTarget,
        passphrase: str,
        total_bytes: Optional[int] = None,
    ) -> int:
        """Stream device -> encryptor -> progress -> object store.

        On failure the partial object is removed (best effort), the LED is
        switched off and the error is re-raised.
        """
        encryptor = OpenSSLEncryptor(
            passphrase,
            iterations=self.config.pbkdf2_iterations,
            salt_factory=self._salt_factory,
        )
        meter = ProgressMeter(total_bytes, self.config.progress_interval)
        chunks = meter.observe(
            encryptor.transform(iter_device_chunks(device_path, self.config.block_size))
        )
        try:
            with self.indicator.blinking():
                bytes_uploaded = self.store.upload(chunks, target, expected_size=total_bytes)
        except KeyboardInterrupt:
            self.log.error("Disk duplication interrupted")
            self.indicator.off()
            self.remove_incomplete_upload(target)
            raise
        except Exception as error:
            self.log.error(f"Disk duplication failed: {error}")
            self.indicator.off()
            self.remove_incomplete_upload(target)
            if isinstance(error, TransferError):
                raise
            raise UploadError(target.bucket, target.key, str(error)) from error
        self.indicator.success()
        return bytes_uploaded

    def remove_incomplete_upload(self, target: UploadTarget) -> bool:
        self.log.info(f"Removing incomplete upload {target.uri}...")
        try:
            self.store.delete(target)
        except CleanupError as error:
            self.log.warning(f"{error}")
            self.log.warning(
                "Failed to remove incomplete upload. Manual cleanup may be necessary."
            )
            return False
        return True
