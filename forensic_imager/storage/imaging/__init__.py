"""Device imaging: integrity digests and the encrypt-and-upload pipeline.

Main Entry Points:
    - DuplicationPipeline: hash, encrypt-and-upload, hash again, compare
    - compute_sha256(): full-device SHA256 digest

Stream Stages:
    - iter_device_chunks(): sequential device reader
    - OpenSSLEncryptor: AES-256-CBC/PBKDF2, openssl enc compatible
    - ProgressMeter: pv-style progress reporting
    - S3ObjectStore: streaming upload and cleanup
"""

from .digest import compute_sha256, sha256_chunks
from .encryption import OpenSSLEncryptor, decrypt_chunks, derive_key_iv
from .pipeline import DuplicationPipeline, compare_digests
from .progress import ProgressMeter, format_eta, format_progress_line
from .streams import ChunkStream, iter_device_chunks
from .upload import ObjectStore, S3ObjectStore

__all__ = [
    "ChunkStream",
    "DuplicationPipeline",
    "ObjectStore",
    "OpenSSLEncryptor",
    "ProgressMeter",
    "S3ObjectStore",
    "compare_digests",
    "compute_sha256",
    "decrypt_chunks",
    "derive_key_iv",
    "format_eta",
    "format_progress_line",
    "iter_device_chunks",
    "sha256_chunks",
]
