"""
Pytest configuration and shared fixtures for forensic-imager tests.

This module provides common fixtures and utilities used across all test modules.
"""

import json
import sys
from contextlib import contextmanager, suppress
from typing import Any, Dict
from unittest.mock import MagicMock, Mock

import pytest
from loguru import logger


# Mock hardware dependencies before other imports
# This allows tests to run on non-Raspberry Pi systems
sys.modules["RPi"] = MagicMock()
sys.modules["RPi.GPIO"] = MagicMock()

from forensic_imager.config.settings import ImagerConfig  # noqa: E402
from forensic_imager.logging import clear_secrets  # noqa: E402
from forensic_imager.storage.exceptions import CleanupError, UploadError  # noqa: E402


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    clear_secrets()
    logger.remove()


@pytest.fixture
def log_messages():
    """Collect every loguru message emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]), level="TRACE"
    )
    yield messages
    with suppress(ValueError):
        logger.remove(handler_id)


# ==============================================================================
# Device Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_lsblk_device() -> Dict[str, Any]:
    """
    Fixture providing lsblk metadata for a single disk.

    Returns:
        Dict as returned by ``lsblk -J -d -o NAME,MODEL,SERIAL,VENDOR,SIZE,UUID``.
    """
    return {
        "name": "sdx",
        "model": "ACME",
        "serial": "SN123",
        "vendor": "ACME Corp",
        "size": "32G",
        "uuid": None,
    }


@pytest.fixture
def mock_lsblk_output(mock_lsblk_device) -> str:
    return json.dumps({"blockdevices": [mock_lsblk_device]})


@pytest.fixture
def mock_discovery_output() -> str:
    """
    Fixture providing ``lsblk -J -p`` output with mounted and unmounted disks.
    """
    return json.dumps(
        {
            "blockdevices": [
                {
                    "name": "/dev/mmcblk0",
                    "size": "29.7G",
                    "type": "disk",
                    "mountpoint": None,
                    "model": None,
                    "children": [
                        {"name": "/dev/mmcblk0p1", "size": "256M", "type": "part", "mountpoint": "/boot"},
                        {"name": "/dev/mmcblk0p2", "size": "29.5G", "type": "part", "mountpoint": "/"},
                    ],
                },
                {
                    "name": "/dev/sda",
                    "size": "32G",
                    "type": "disk",
                    "mountpoint": None,
                    "model": "ACME",
                    "children": [
                        {"name": "/dev/sda1", "size": "32G", "type": "part", "mountpoint": None},
                    ],
                },
                {
                    "name": "/dev/sdb",
                    "size": "64G",
                    "type": "disk",
                    "mountpoint": None,
                    "model": "Generic",
                    "children": [
                        {"name": "/dev/sdb1", "size": "64G", "type": "part", "mountpoint": "/media/usb"},
                    ],
                },
                {
                    "name": "/dev/sr0",
                    "size": "1024M",
                    "type": "rom",
                    "mountpoint": None,
                    "model": "DVD",
                },
            ]
        }
    )


@pytest.fixture
def mock_run_command(mocker, mock_lsblk_output) -> Mock:
    """Patch lsblk calls to return ``mock_lsblk_output``."""
    result = Mock(returncode=0, stdout=mock_lsblk_output, stderr="")
    return mocker.patch("forensic_imager.storage.devices.run_command", return_value=result)


@pytest.fixture
def fake_device(tmp_path):
    """A regular file standing in for a block device (~1.5 blocks of data)."""
    path = tmp_path / "sdx"
    path.write_bytes(bytes(range(256)) * 6000)
    return path


@pytest.fixture
def test_config(tmp_path) -> ImagerConfig:
    return ImagerConfig(
        log_file=tmp_path / "imager.log",
        block_size=1024 * 1024,
        pbkdf2_iterations=1000,
        progress_interval=0.0,
        blink_interval=0.01,
    )


# ==============================================================================
# Collaborator Fakes
# ==============================================================================


class InMemoryObjectStore:
    """Object store keeping uploads in a dict.

    Args:
        fail_after: Raise UploadError once this many bytes have been received
        delete_error: Make delete() raise CleanupError
    """

    def __init__(self, fail_after=None, delete_error=False):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_after = fail_after
        self.delete_error = delete_error

    def upload(self, chunks, target, expected_size=None):
        data = bytearray()
        for chunk in chunks:
            data.extend(chunk)
            self.objects[target.key] = bytes(data)
            if self.fail_after is not None and len(data) >= self.fail_after:
                raise UploadError(target.bucket, target.key, "connection reset")
        return len(data)

    def delete(self, target):
        self.deleted.append(target.key)
        if self.delete_error:
            raise CleanupError(target.bucket, target.key, "access denied")
        self.objects.pop(target.key, None)


class FakeIndicator:
    def __init__(self):
        self.events: list[str] = []

    @contextmanager
    def blinking(self):
        self.events.append("blink-start")
        try:
            yield
        finally:
            self.events.append("blink-stop")

    def success(self):
        self.events.append("solid")

    def off(self):
        self.events.append("off")


@pytest.fixture
def object_store():
    return InMemoryObjectStore()


@pytest.fixture
def make_object_store():
    return InMemoryObjectStore


@pytest.fixture
def fake_indicator():
    return FakeIndicator()


@pytest.fixture
def mock_gpio():
    gpio = MagicMock()
    gpio.BCM = "BCM"
    gpio.OUT = "OUT"
    gpio.HIGH = 1
    gpio.LOW = 0
    return gpio
