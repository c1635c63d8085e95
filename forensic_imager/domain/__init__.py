"""Domain models for imaging runs."""

from __future__ import annotations

from .models import (
    DuplicationReport,
    IntegrityDigest,
    OutputIdentifier,
    SourceDevice,
    UploadTarget,
)


__all__ = [
    "DuplicationReport",
    "IntegrityDigest",
    "OutputIdentifier",
    "SourceDevice",
    "UploadTarget",
]
