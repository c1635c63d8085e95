"""Tests for imaging exception classes."""

import pytest

from forensic_imager.storage.exceptions import (
    CleanupError,
    DeviceQueryError,
    DeviceReadError,
    EncryptionError,
    GpioUnavailableError,
    ImagerError,
    InsufficientPrivilegesError,
    InvalidDeviceError,
    MissingKeyError,
    MissingToolError,
    PreconditionError,
    TransferError,
    UploadError,
    UsageError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            UsageError(),
            InsufficientPrivilegesError(1000),
            MissingToolError("lsblk"),
            GpioUnavailableError("not a Raspberry Pi"),
            MissingKeyError("ENCRYPTION_KEY"),
            InvalidDeviceError("/dev/sdx"),
        ],
    )
    def test_precondition_errors(self, error):
        assert isinstance(error, PreconditionError)
        assert isinstance(error, ImagerError)
        assert not isinstance(error, TransferError)

    @pytest.mark.parametrize(
        "error",
        [
            DeviceReadError("/dev/sdx"),
            EncryptionError("cipher failure"),
            UploadError("bucket", "key"),
        ],
    )
    def test_transfer_errors(self, error):
        assert isinstance(error, TransferError)
        assert isinstance(error, ImagerError)

    def test_cleanup_error_is_not_a_transfer_error(self):
        """Cleanup failures are reported as warnings, separately from the transfer."""
        error = CleanupError("bucket", "key")
        assert isinstance(error, ImagerError)
        assert not isinstance(error, TransferError)

    def test_device_query_error(self):
        assert isinstance(DeviceQueryError("lsblk failed"), ImagerError)


class TestMessages:
    def test_insufficient_privileges(self):
        error = InsufficientPrivilegesError(1000)
        assert str(error) == "Please run as root"
        assert error.euid == 1000

    def test_missing_tool_with_hint(self):
        error = MissingToolError("lsblk", "Please install it.")
        assert str(error) == "lsblk could not be found. Please install it."
        assert error.tool == "lsblk"

    def test_missing_tool_without_hint(self):
        assert str(MissingToolError("lsblk")) == "lsblk could not be found"

    def test_missing_key(self):
        assert str(MissingKeyError("ENCRYPTION_KEY")) == (
            "ENCRYPTION_KEY environment variable is not set."
        )

    def test_invalid_device(self):
        error = InvalidDeviceError("/dev/sdx")
        assert str(error) == "/dev/sdx is not a valid block device."
        assert error.device_path == "/dev/sdx"

    def test_gpio_unavailable(self):
        error = GpioUnavailableError("No module named 'RPi'")
        assert "GPIO support is enabled but unavailable" in str(error)
        assert error.reason == "No module named 'RPi'"

    def test_device_read_error(self):
        error = DeviceReadError("/dev/sdx", "Input/output error")
        assert str(error) == "Failed to read /dev/sdx: Input/output error"

    def test_upload_error(self):
        error = UploadError("evidence", "a.img.enc", "connection reset")
        assert str(error) == "Upload to s3://evidence/a.img.enc failed: connection reset"
        assert (error.bucket, error.key) == ("evidence", "a.img.enc")

    def test_cleanup_error(self):
        error = CleanupError("evidence", "a.img.enc")
        assert str(error) == "Failed to remove s3://evidence/a.img.enc"


def test_catching_base_catches_all():
    with pytest.raises(ImagerError):
        raise UploadError("bucket", "key", "boom")
