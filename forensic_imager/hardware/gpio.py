"""Status LED on a Raspberry Pi GPIO pin.

The LED blinks while the image is streaming, goes solid when the transfer
succeeds and is switched off on every other exit path. GPIO support is
optional: when it is disabled the pipeline receives a
``NullStatusIndicator`` and never imports RPi.GPIO.
"""

from __future__ import annotations

import importlib
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from forensic_imager.config.settings import DEFAULT_BLINK_INTERVAL, DEFAULT_LED_PIN
from forensic_imager.logging import get_logger
from forensic_imager.storage.exceptions import GpioUnavailableError

log = get_logger(source="gpio", tags=["gpio", "hardware"])


def load_gpio_module():
    """Import RPi.GPIO, raising GpioUnavailableError if it cannot be used."""
    try:
        return importlib.import_module("RPi.GPIO")
    except (ImportError, RuntimeError) as error:
        raise GpioUnavailableError(f"{error}. Please install RPi.GPIO") from error


class StatusLed:
    def __init__(self, pin: int = DEFAULT_LED_PIN, gpio=None):
        self.pin = pin
        self._gpio = gpio

    @property
    def gpio(self):
        if self._gpio is None:
            self._gpio = load_gpio_module()
        return self._gpio

    def setup(self) -> None:
        self.gpio.setmode(self.gpio.BCM)
        self.gpio.setwarnings(False)
        self.gpio.setup(self.pin, self.gpio.OUT, initial=self.gpio.LOW)

    def on(self) -> None:
        self.gpio.output(self.pin, self.gpio.HIGH)

    def off(self) -> None:
        self.gpio.output(self.pin, self.gpio.LOW)

    def cleanup(self) -> None:
        self.gpio.cleanup(self.pin)


class BlinkTask:
    """Background thread toggling the LED until stopped."""

    def __init__(self, led: StatusLed, interval: float = DEFAULT_BLINK_INTERVAL):
        self.led = led
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._blink_loop,
            name="StatusLedBlink",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 4)
            self._thread = None

    def _blink_loop(self) -> None:
        while not self._stop_event.is_set():
            self.led.on()
            if self._stop_event.wait(self.interval):
                break
            self.led.off()
            self._stop_event.wait(self.interval)


class StatusIndicator:
    """Transfer-stage indicator backed by a GPIO LED."""

    def __init__(self, led: StatusLed, blink_interval: float = DEFAULT_BLINK_INTERVAL):
        self.led = led
        self.blink_interval = blink_interval

    @contextmanager
    def blinking(self) -> Iterator[None]:
        """Blink for the duration of the block; the LED is off afterwards."""
        task = BlinkTask(self.led, self.blink_interval)
        task.start()
        try:
            yield
        finally:
            task.stop()
            self.led.off()

    def success(self) -> None:
        self.led.on()

    def off(self) -> None:
        self.led.off()


class NullStatusIndicator:
    """Used when GPIO support is disabled."""

    @contextmanager
    def blinking(self) -> Iterator[None]:
        yield

    def success(self) -> None:
        pass

    def off(self) -> None:
        pass


@contextmanager
def status_indicator(
    enabled: bool,
    pin: int = DEFAULT_LED_PIN,
    blink_interval: float = DEFAULT_BLINK_INTERVAL,
    gpio=None,
):
    """Yield an indicator whose LED is off and released on every exit path."""
    if not enabled:
        yield NullStatusIndicator()
        return

    log.info("Setting up GPIO...")
    led = StatusLed(pin, gpio=gpio)
    try:
        led.setup()
    except RuntimeError as error:
        # e.g. "No access to /dev/mem" when the pin cannot be claimed
        raise GpioUnavailableError(str(error)) from error
    try:
        yield StatusIndicator(led, blink_interval)
    finally:
        log.info("Cleaning up GPIO...")
        led.off()
        led.cleanup()
