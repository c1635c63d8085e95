"""Forensic disk imager: hash, encrypt and upload a block device to S3."""

from .__version__ import __version__

__all__ = ["__version__"]
