"""Precondition checks run before any device access.

Each check raises a PreconditionError subclass; the CLI turns these into
exit status 1.
"""

from __future__ import annotations

import os
import shutil
from typing import Iterable, Mapping, Optional

from forensic_imager.config.settings import (
    ENCRYPTION_KEY_ENV,
    ImagerConfig,
    read_encryption_key,
)
from forensic_imager.hardware.gpio import load_gpio_module
from forensic_imager.logging import get_logger

from .devices import is_block_device
from .exceptions import (
    InsufficientPrivilegesError,
    InvalidDeviceError,
    MissingKeyError,
    MissingToolError,
)

log = get_logger(source="preflight", tags=["preflight"])


def check_root(geteuid=os.geteuid) -> None:
    euid = geteuid()
    if euid != 0:
        raise InsufficientPrivilegesError(euid)


def check_commands(tools: Iterable[str], which=shutil.which) -> None:
    for tool in tools:
        if not which(tool):
            raise MissingToolError(tool, "Please install it.")
    log.info("All required commands are available.")


def check_gpio(config: ImagerConfig) -> None:
    if config.gpio_enabled:
        load_gpio_module()


def check_encryption_key(environ: Optional[Mapping[str, str]] = None) -> str:
    key = read_encryption_key(environ)
    if not key:
        raise MissingKeyError(ENCRYPTION_KEY_ENV)
    return key


def check_source_device(device_path: str) -> None:
    if not is_block_device(device_path):
        raise InvalidDeviceError(device_path)
