"""Custom exceptions for imaging runs.

This module defines a hierarchy of exceptions so the CLI can tell fatal
precondition and transfer failures apart from cleanup problems, which are
only ever reported as warnings.

Exception Hierarchy:
    ImagerError (base)
        ├── PreconditionError
        │   ├── UsageError
        │   ├── InsufficientPrivilegesError
        │   ├── MissingToolError
        │   ├── GpioUnavailableError
        │   ├── MissingKeyError
        │   └── InvalidDeviceError
        ├── DeviceQueryError
        ├── TransferError
        │   ├── DeviceReadError
        │   ├── EncryptionError
        │   └── UploadError
        └── CleanupError

Usage:
    from forensic_imager.storage.exceptions import InvalidDeviceError

    if not is_block_device(path):
        raise InvalidDeviceError(path)
"""


class ImagerError(Exception):
    """Base exception for all imaging operations."""



class PreconditionError(ImagerError):
    """A requirement for the run is not met; nothing has touched the device."""



class UsageError(PreconditionError):
    """The command line does not match any supported invocation."""

    def __init__(self, message: str = "Invalid arguments"):
        super().__init__(message)


class InsufficientPrivilegesError(PreconditionError):
    """The run needs root to read raw block devices."""

    def __init__(self, euid: int):
        self.euid = euid
        super().__init__("Please run as root")


class MissingToolError(PreconditionError):
    """A required external command is not installed."""

    def __init__(self, tool: str, hint: str = ""):
        self.tool = tool
        self.hint = hint
        msg = f"{tool} could not be found"
        if hint:
            msg += f". {hint}"
        super().__init__(msg)


class GpioUnavailableError(PreconditionError):
    """GPIO support was requested but the GPIO library cannot be used."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"GPIO support is enabled but unavailable: {reason}")


class MissingKeyError(PreconditionError):
    """The encryption key environment variable is unset or empty."""

    def __init__(self, variable: str):
        self.variable = variable
        super().__init__(f"{variable} environment variable is not set.")


class InvalidDeviceError(PreconditionError):
    """The source path is missing or is not a block device."""

    def __init__(self, device_path: str):
        self.device_path = device_path
        super().__init__(f"{device_path} is not a valid block device.")


class DeviceQueryError(ImagerError):
    """lsblk failed or returned output that could not be parsed."""

    def __init__(self, message: str):
        super().__init__(message)


class TransferError(ImagerError):
    """Base exception for failures in the read/encrypt/upload relay."""



class DeviceReadError(TransferError):
    """Reading the source device failed."""

    def __init__(self, device_path: str, reason: str = ""):
        self.device_path = device_path
        self.reason = reason
        msg = f"Failed to read {device_path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EncryptionError(TransferError):
    """The encryption transform failed."""

    def __init__(self, message: str):
        super().__init__(message)


class UploadError(TransferError):
    """Writing the object to the bucket failed."""

    def __init__(self, bucket: str, key: str, reason: str = ""):
        self.bucket = bucket
        self.key = key
        self.reason = reason
        msg = f"Upload to s3://{bucket}/{key} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CleanupError(ImagerError):
    """The partially uploaded object could not be removed."""

    def __init__(self, bucket: str, key: str, reason: str = ""):
        self.bucket = bucket
        self.key = key
        self.reason = reason
        msg = f"Failed to remove s3://{bucket}/{key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
