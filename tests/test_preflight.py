"""Tests for run precondition checks."""

import pytest

from forensic_imager.config.settings import ImagerConfig
from forensic_imager.storage import preflight
from forensic_imager.storage.exceptions import (
    GpioUnavailableError,
    InsufficientPrivilegesError,
    InvalidDeviceError,
    MissingKeyError,
    MissingToolError,
)


class TestCheckRoot:
    def test_root_passes(self):
        preflight.check_root(geteuid=lambda: 0)

    def test_non_root_fails(self):
        with pytest.raises(InsufficientPrivilegesError) as excinfo:
            preflight.check_root(geteuid=lambda: 1000)
        assert excinfo.value.euid == 1000


class TestCheckCommands:
    def test_all_present(self, log_messages):
        preflight.check_commands(["lsblk"], which=lambda tool: f"/usr/bin/{tool}")
        assert "All required commands are available." in log_messages

    def test_missing_tool(self):
        available = {"lsblk"}

        with pytest.raises(MissingToolError) as excinfo:
            preflight.check_commands(
                ["lsblk", "pv"],
                which=lambda tool: f"/usr/bin/{tool}" if tool in available else None,
            )
        assert excinfo.value.tool == "pv"


class TestCheckGpio:
    def test_disabled_skips_import(self, mocker):
        loader = mocker.patch.object(preflight, "load_gpio_module")
        preflight.check_gpio(ImagerConfig(gpio_enabled=False))
        loader.assert_not_called()

    def test_enabled_and_unavailable(self, mocker):
        mocker.patch.object(
            preflight, "load_gpio_module", side_effect=GpioUnavailableError("No module named 'RPi'")
        )
        with pytest.raises(GpioUnavailableError):
            preflight.check_gpio(ImagerConfig(gpio_enabled=True))


class TestCheckEncryptionKey:
    def test_returns_key(self):
        assert preflight.check_encryption_key({"ENCRYPTION_KEY": "mySecretKey"}) == "mySecretKey"

    @pytest.mark.parametrize("environ", [{}, {"ENCRYPTION_KEY": ""}])
    def test_missing_or_empty(self, environ):
        with pytest.raises(MissingKeyError):
            preflight.check_encryption_key(environ)


class TestCheckSourceDevice:
    def test_regular_file_is_rejected(self, tmp_path):
        path = tmp_path / "image.bin"
        path.write_bytes(b"data")

        with pytest.raises(InvalidDeviceError):
            preflight.check_source_device(str(path))

    def test_missing_path_is_rejected(self, tmp_path):
        with pytest.raises(InvalidDeviceError):
            preflight.check_source_device(str(tmp_path / "missing"))

    def test_block_device_passes(self, mocker):
        mocker.patch.object(preflight, "is_block_device", return_value=True)
        preflight.check_source_device("/dev/sdx")
