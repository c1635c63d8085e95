"""Block device queries using lsblk.

This module gathers the metadata used to name an image, enumerates
candidate disks for the operator and answers the low-level questions the
pipeline asks about a device node (is it a block device, how many bytes
does it hold).

Device Identification:
    query_device() asks lsblk for MODEL, SERIAL, VENDOR, SIZE and UUID of a
    single device. Missing metadata is normal on some USB bridges and card
    readers, so lsblk failures degrade to an empty SourceDevice instead of
    raising; the identifier fallback chain in the domain model fills the
    gaps.

Discovery:
    list_unmounted_disks() returns whole disks where neither the disk nor
    any of its partitions is mounted. It is read-only and needs no
    privileges.

Example:
    >>> from forensic_imager.storage.devices import list_unmounted_disks
    >>> for disk in list_unmounted_disks():
    ...     print(format_disk_line(disk))
    /dev/sdb (29.7G)
"""
from __future__ import annotations

import json
import os
import stat
import subprocess
from datetime import datetime
from typing import Optional

from forensic_imager.domain.models import OutputIdentifier, SourceDevice
from forensic_imager.logging import get_logger

from .exceptions import DeviceQueryError

log = get_logger(source="devices", tags=["devices"])

IDENTIFY_COLUMNS = "NAME,MODEL,SERIAL,VENDOR,SIZE,UUID"
DISCOVERY_COLUMNS = "NAME,SIZE,TYPE,MOUNTPOINT,MODEL"


def run_command(command, check=True, log_output=True, log_command=True):
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=check, text=True, capture_output=True)
    except subprocess.CalledProcessError as error:
        log.debug(f"Command failed: {' '.join(command)}")
        if error.stderr:
            log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        log.debug(f"stderr: {result.stderr.strip()}")
    return result


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def get_children(device):
    return device.get("children", []) or []


def _lsblk_json(args: list[str]) -> list[dict]:
    try:
        result = run_command(["lsblk", "-J", *args], log_output=False)
        data = json.loads(result.stdout)
    except (subprocess.CalledProcessError, FileNotFoundError, json.JSONDecodeError) as error:
        raise DeviceQueryError(f"lsblk failed: {error}") from error
    return data.get("blockdevices", []) or []


def query_device(device_path: str) -> SourceDevice:
    """Return lsblk metadata for a single device.

    Always returns a SourceDevice; fields lsblk cannot supply are None.
    """
    try:
        entries = _lsblk_json(["-d", "-o", IDENTIFY_COLUMNS, device_path])
    except DeviceQueryError as error:
        log.debug(f"Metadata unavailable for {device_path}: {error}")
        return SourceDevice(path=device_path)
    if not entries:
        return SourceDevice(path=device_path)
    return SourceDevice.from_lsblk_dict(device_path, entries[0])


def generate_output_identifier(
    device_path: str, now: Optional[datetime] = None
) -> tuple[SourceDevice, OutputIdentifier]:
    device = query_device(device_path)
    return device, OutputIdentifier.for_device(device, now=now)


def has_mountpoint(device) -> bool:
    if device.get("mountpoint"):
        return True
    if any(device.get("mountpoints") or []):
        return True
    for child in get_children(device):
        if has_mountpoint(child):
            return True
    return False


def list_unmounted_disks() -> list[dict]:
    """Whole disks with no mounted filesystem on the disk or its partitions."""
    disks = []
    for device in _lsblk_json(["-p", "-o", DISCOVERY_COLUMNS]):
        if device.get("type") != "disk":
            continue
        if has_mountpoint(device):
            continue
        disks.append(device)
    return disks


def format_disk_line(disk: dict) -> str:
    name = disk.get("name") or ""
    size = (disk.get("size") or "").strip()
    return f"{name} ({size})" if size else name


def is_block_device(device_path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(device_path).st_mode)
    except OSError:
        return False


def get_device_size(device_path: str) -> Optional[int]:
    """Size in bytes, found by seeking to the end of the device node."""
    try:
        fd = os.open(device_path, os.O_RDONLY)
    except OSError as error:
        log.debug(f"Cannot open {device_path} for sizing: {error}")
        return None
    try:
        return os.lseek(fd, 0, os.SEEK_END)
    except OSError as error:
        log.debug(f"Cannot seek {device_path}: {error}")
        return None
    finally:
        os.close(fd)
