"""Configuration for imaging runs.

Values come from built-in defaults, an optional JSON settings file and the
environment, in that order. The result is an immutable ``ImagerConfig`` that
the pipeline receives at construction time.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping


SETTINGS_PATH = Path(
    os.environ.get(
        "FORENSIC_IMAGER_SETTINGS_PATH",
        Path.home() / ".config" / "forensic-imager" / "settings.json",
    )
)

ENCRYPTION_KEY_ENV = "ENCRYPTION_KEY"

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_LOG_FILE = "/var/log/forensic-imager.log"
DEFAULT_LED_PIN = 18
DEFAULT_BLINK_INTERVAL = 0.5
DEFAULT_BLOCK_SIZE = 4 * 1024 * 1024
DEFAULT_PBKDF2_ITERATIONS = 10000
DEFAULT_UPLOAD_PART_SIZE = 16 * 1024 * 1024
DEFAULT_PROGRESS_INTERVAL = 5.0
DEFAULT_REQUIRED_TOOLS = ("lsblk",)

DEFAULT_SETTINGS: dict[str, Any] = {
    "log_file": DEFAULT_LOG_FILE,
    "gpio_enabled": False,
    "led_pin": DEFAULT_LED_PIN,
    "blink_interval": DEFAULT_BLINK_INTERVAL,
    "block_size": DEFAULT_BLOCK_SIZE,
    "pbkdf2_iterations": DEFAULT_PBKDF2_ITERATIONS,
    "upload_part_size": DEFAULT_UPLOAD_PART_SIZE,
    "progress_interval": DEFAULT_PROGRESS_INTERVAL,
    "aws_region": None,
    "s3_endpoint_url": None,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ImagerConfig:
    log_file: Path = Path(DEFAULT_LOG_FILE)
    gpio_enabled: bool = False
    led_pin: int = DEFAULT_LED_PIN
    blink_interval: float = DEFAULT_BLINK_INTERVAL
    block_size: int = DEFAULT_BLOCK_SIZE
    pbkdf2_iterations: int = DEFAULT_PBKDF2_ITERATIONS
    upload_part_size: int = DEFAULT_UPLOAD_PART_SIZE
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    aws_region: str | None = None
    s3_endpoint_url: str | None = None
    required_tools: tuple[str, ...] = field(default=DEFAULT_REQUIRED_TOOLS)

    def with_overrides(self, **changes: Any) -> ImagerConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def load_settings(path: Path | None = None) -> dict[str, Any]:
    values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return values
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return values
    if isinstance(data, dict):
        values.update({k: v for k, v in data.items() if k in DEFAULT_SETTINGS})
    return values


def load_config(
    environ: Mapping[str, str] | None = None,
    settings_path: Path | None = None,
) -> ImagerConfig:
    """Build the run configuration from settings file and environment."""
    environ = os.environ if environ is None else environ
    values = load_settings(settings_path)

    if "GPIO_ENABLED" in environ:
        values["gpio_enabled"] = environ["GPIO_ENABLED"]
    if environ.get("FORENSIC_IMAGER_LOG_FILE"):
        values["log_file"] = environ["FORENSIC_IMAGER_LOG_FILE"]
    if environ.get("AWS_REGION"):
        values["aws_region"] = environ["AWS_REGION"]
    if environ.get("FORENSIC_IMAGER_S3_ENDPOINT"):
        values["s3_endpoint_url"] = environ["FORENSIC_IMAGER_S3_ENDPOINT"]

    return ImagerConfig(
        log_file=Path(values["log_file"]),
        gpio_enabled=parse_bool(values["gpio_enabled"]),
        led_pin=int(values["led_pin"]),
        blink_interval=float(values["blink_interval"]),
        block_size=int(values["block_size"]),
        pbkdf2_iterations=int(values["pbkdf2_iterations"]),
        upload_part_size=int(values["upload_part_size"]),
        progress_interval=float(values["progress_interval"]),
        aws_region=values["aws_region"] or None,
        s3_endpoint_url=values["s3_endpoint_url"] or None,
    )


def read_encryption_key(environ: Mapping[str, str] | None = None) -> str | None:
    environ = os.environ if environ is None else environ
    return environ.get(ENCRYPTION_KEY_ENV) or None


def clear_encryption_key(environ=None) -> None:
    """Drop the key from the process environment."""
    environ = os.environ if environ is None else environ
    environ.pop(ENCRYPTION_KEY_ENV, None)
