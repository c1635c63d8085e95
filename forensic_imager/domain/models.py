"""Domain model for imaging runs.

Type-safe objects for the device being imaged, the name of the uploaded
image, the integrity digests and the upload destination.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePath
from typing import Any


IMAGE_SUFFIX = ".img.enc"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
SYNTHETIC_SERIAL_PREFIX = "no-serial-"
UNKNOWN_MODEL = "unknown-model"
UNKNOWN_SIZE = "unknown-size"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9.\-]+")


def sanitize_component(value: str | None) -> str:
    """Make a metadata value safe for file names and object keys.

    Runs of characters outside ``[A-Za-z0-9.-]`` collapse to a single ``-``
    so a component never contains the ``_`` field separator.
    """
    if not value:
        return ""
    return _UNSAFE_CHARS.sub("-", value.strip()).strip("-")


# ==============================================================================
# Source Device
# ==============================================================================


@dataclass(frozen=True)
class SourceDevice:
    """A block device as reported by lsblk.

    Metadata is optional; some USB bridges and SD readers report nothing.
    """

    path: str  # e.g., "/dev/sda"
    model: str | None = None
    serial: str | None = None
    vendor: str | None = None
    size: str | None = None  # lsblk human-readable size, e.g. "32G"
    uuid: str | None = None

    @property
    def name(self) -> str:
        return PurePath(self.path).name

    @classmethod
    def from_lsblk_dict(cls, path: str, device: dict[str, Any]) -> SourceDevice:
        """Convert an lsblk JSON entry to a SourceDevice."""

        def clean(key: str) -> str | None:
            value = device.get(key)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        return cls(
            path=path,
            model=clean("model"),
            serial=clean("serial"),
            vendor=clean("vendor"),
            size=clean("size"),
            uuid=clean("uuid"),
        )


# ==============================================================================
# Output Identifier
# ==============================================================================


@dataclass(frozen=True)
class OutputIdentifier:
    """Name of the encrypted image, created once per run."""

    timestamp: str
    model: str
    serial: str
    size: str

    @property
    def key(self) -> str:
        """Object key, e.g. ``20240101_120000_ACME_SN123_32G.img.enc``."""
        return f"{self.timestamp}_{self.model}_{self.serial}_{self.size}{IMAGE_SUFFIX}"

    @property
    def has_synthetic_serial(self) -> bool:
        return self.serial.startswith(SYNTHETIC_SERIAL_PREFIX)

    def components(self) -> list[tuple[str, str]]:
        return [
            ("Timestamp", self.timestamp),
            ("Model", self.model),
            ("Serial", self.serial),
            ("Size", self.size),
        ]

    def __str__(self) -> str:
        return self.key

    @classmethod
    def for_device(cls, device: SourceDevice, now: datetime | None = None) -> OutputIdentifier:
        """Derive the identifier from device metadata.

        Never fails: missing model and serial fall back to synthetic values,
        and synthetic serials carry the ``no-serial-`` marker.
        """
        now = now or datetime.now()

        model = sanitize_component(device.model)
        if not model:
            vendor = sanitize_component(device.vendor)
            model = f"{vendor}-{UNKNOWN_MODEL}" if vendor else UNKNOWN_MODEL

        serial = sanitize_component(device.serial)
        if not serial:
            # Last 8 characters of the UUID, else the device node name
            fallback = sanitize_component((device.uuid or "")[-8:])
            if not fallback:
                fallback = sanitize_component(device.name) or "device"
            serial = f"{SYNTHETIC_SERIAL_PREFIX}{fallback}"

        size = sanitize_component((device.size or "").replace(" ", "")) or UNKNOWN_SIZE

        return cls(
            timestamp=now.strftime(TIMESTAMP_FORMAT),
            model=model,
            serial=serial,
            size=size,
        )


# ==============================================================================
# Integrity Digest
# ==============================================================================


@dataclass(frozen=True)
class IntegrityDigest:
    """Hex SHA-256 of a full device read."""

    hexdigest: str
    bytes_read: int = 0
    algorithm: str = "sha256"

    def matches(self, other: IntegrityDigest) -> bool:
        return self.algorithm == other.algorithm and self.hexdigest == other.hexdigest

    def __str__(self) -> str:
        return self.hexdigest


# ==============================================================================
# Upload Target
# ==============================================================================


@dataclass(frozen=True)
class UploadTarget:
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def __str__(self) -> str:
        return self.uri


# ==============================================================================
# Run Report
# ==============================================================================


@dataclass(frozen=True)
class DuplicationReport:
    """Outcome of a completed run."""

    device: SourceDevice
    identifier: OutputIdentifier
    target: UploadTarget
    digest_before: IntegrityDigest
    digest_after: IntegrityDigest
    bytes_uploaded: int

    @property
    def integrity_verified(self) -> bool:
        return self.digest_before.matches(self.digest_after)
