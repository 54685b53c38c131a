"""Serial link to the motor and sensor control board."""

from __future__ import annotations

import enum
import logging
import os
import re
import select
import termios
import threading
from typing import Callable, List, Optional, Tuple, Union

log = logging.getLogger(__name__)

MAX_DUTY = 10000
REOPEN_DELAY = 1.0
WATCHDOG_DELAY = 2.0
_READ_SIZE = 128
_POLL_INTERVAL = 0.1

_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?\d+)")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class Pwm(enum.IntEnum):
    """PWM channels of the control board and their device specific roles."""

    PWM1 = 1
    PWM2 = 2
    PWM3 = 3
    PWM4 = 4
    PWM5 = 5
    PWM6 = 6
    PWM7 = 7
    PWM8 = 8

    SPEED = 1
    TURN = 2
    TURN2 = 7
    CAMERA_X = 3
    CAMERA_Y = 4
    SPEED_LEFT = 5
    SPEED_RIGHT = 6


class Gpio(enum.IntEnum):
    """GPIO lines of the control board; 0 stands for the on-board led."""

    LED1 = 0
    REAR_LIGHTS = 1
    DIRECTION_LEFT = 2
    DIRECTION_RIGHT = 3
    SPEED_ENABLE_LEFT = 4
    SPEED_ENABLE_RIGHT = 5
    HEAD_LIGHTS = 5


class Reading(enum.Enum):
    """Kinds of message the control board reports, keyed by their prefix."""

    TEMPERATURE = "tmp"
    DISTANCE = "dst"
    CURRENT = "amp"
    VOLTAGE = "vlt"
    DEBUG = "d"


_VALUE_READINGS = (
    Reading.TEMPERATURE,
    Reading.DISTANCE,
    Reading.CURRENT,
    Reading.VOLTAGE,
)

ReadingValue = Union[int, str]


def _parse_uint16(text: str) -> int:
    """Parse a leading integer the way the board firmware values are read."""
    match = _INT_PREFIX.match(text)
    if not match:
        raise ValueError(f"invalid integer value: {text!r}")
    value = int(match.group(1))
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise ValueError(f"integer value out of range: {text!r}")
    return value & 0xFFFF


def parse_message(line: str) -> Optional[Tuple[Reading, ReadingValue]]:
    """Parse one line from the control board.

    Returns ``(reading, value)`` where the value is a 16-bit integer for
    measurements and a string for debug messages, or None for unknown lines.
    Raises ValueError if a measurement carries no valid integer.
    """
    if line.endswith("\r"):
        line = line[:-1]
    for reading in _VALUE_READINGS:
        prefix = f"{reading.value}: "
        if line.startswith(prefix):
            return reading, _parse_uint16(line[len(prefix):])
    if line.startswith("d: "):
        return Reading.DEBUG, line[3:]
    return None


def format_gpio_command(gpio: int, enable: int) -> str:
    """Build the command that sets a GPIO line; GPIO 0 drives the led."""
    if gpio == 0:
        target = "led "
    else:
        target = f"gpio {chr((ord('0') + gpio) & 0xFF)} "
    return target + ("1" if enable else "0")


class ControlBoard:
    """Commands and telemetry over the control board's serial device.

    Measurement callbacks are the attributes ``on_temperature``,
    ``on_distance``, ``on_current`` and ``on_voltage`` (called with an int)
    and ``on_debug`` (called with a str).
    """

    def __init__(self, serial_device: str) -> None:
        self.serial_device = serial_device
        self.enabled = False
        self.on_debug: Optional[Callable[[str], None]] = None
        self.on_temperature: Optional[Callable[[int], None]] = None
        self.on_distance: Optional[Callable[[int], None]] = None
        self.on_current: Optional[Callable[[int], None]] = None
        self.on_voltage: Optional[Callable[[int], None]] = None
        self._buffer = b""
        self._fd: Optional[int] = None
        self._reader: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.RLock()
        self._reopen_timer: Optional[threading.Timer] = None
        self._watchdog_timer: Optional[threading.Timer] = None
        self._closed = False

    # Connection handling

    def init(self) -> None:
        """Open the serial device and start reading from it.

        Raises OSError if the device cannot be opened; a reopen is then
        retried in the background.
        """
        self._closed = False
        try:
            self._open_device()
        except OSError:
            log.error("Failed to open and setup serial port")
            raise
        self.enabled = True

    def close(self) -> None:
        """Stop the timers and close the serial device."""
        self._closed = True
        for timer in (self._reopen_timer, self._watchdog_timer):
            if timer is not None:
                timer.cancel()
        self._reopen_timer = None
        self._watchdog_timer = None
        self._close_device()

    def _schedule(self, attr: str, delay: float) -> None:
        if self._closed:
            return
        previous = getattr(self, attr)
        if previous is not None:
            previous.cancel()
        timer = threading.Timer(delay, self._reopen)
        timer.daemon = True
        setattr(self, attr, timer)
        timer.start()

    def _open_device(self) -> None:
        try:
            fd = os.open(self.serial_device, os.O_RDWR | os.O_NOCTTY | os.O_NONBLOCK)
        except OSError as exc:
            log.error(
                "Failed to open Control Board device (%s): %s",
                self.serial_device,
                exc.strerror,
            )
            self._schedule("_reopen_timer", REOPEN_DELAY)
            raise

        cc = [0] * termios.NCCS
        attrs = [
            0,
            0,
            termios.CS8 | termios.CLOCAL | termios.CREAD,
            0,
            termios.B115200,
            termios.B115200,
            cc,
        ]
        try:
            termios.tcflush(fd, termios.TCIFLUSH)
            termios.tcsetattr(fd, termios.TCSANOW, attrs)
        except termios.error as exc:
            log.warning("Failed to configure serial port: %s", exc)

        stop = threading.Event()
        reader = threading.Thread(
            target=self._read_loop, args=(fd, stop), name="controlboard", daemon=True
        )
        with self._lock:
            self._fd = fd
            self._stop = stop
            self._reader = reader
        reader.start()

    def _close_device(self) -> None:
        with self._lock:
            fd, self._fd = self._fd, None
            reader, self._reader = self._reader, None
            stop = self._stop
        if reader is not None:
            stop.set()
            if reader is not threading.current_thread():
                reader.join()
        if fd is not None:
            try:
                os.close(fd)
            except OSError as exc:
                log.error("Error closing serial port: %s", exc)

    def _reopen(self) -> None:
        if self._closed:
            return
        log.info("Reopening %s", self.serial_device)
        self._close_device()
        try:
            self._open_device()
        except OSError:
            pass
        self._schedule("_watchdog_timer", WATCHDOG_DELAY)

    def _read_loop(self, fd: int, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                ready, _, _ = select.select([fd], [], [], _POLL_INTERVAL)
                if stop.is_set():
                    return
                if not ready:
                    continue
                data = os.read(fd, _READ_SIZE)
            except BlockingIOError:
                continue
            except OSError as exc:
                log.error("Socket error: %s", exc.errno)
                return
            if not data:
                continue
            # Reopen the device if nothing arrives for a while.
            self._schedule("_watchdog_timer", WATCHDOG_DELAY)
            try:
                self.feed(data)
            except ValueError as exc:
                log.error("Malformed control board message: %s", exc)

    # Incoming data

    def feed(self, data: bytes) -> List[Tuple[Reading, ReadingValue]]:
        """Add received bytes and handle every complete line.

        Returns the readings parsed from the completed lines, after passing
        each to its callback. Raises ValueError on a malformed measurement;
        the offending line is dropped.
        """
        self._buffer += data
        readings: List[Tuple[Reading, ReadingValue]] = []
        while b"\n" in self._buffer:
            line, _, self._buffer = self._buffer.partition(b"\n")
            text = line.decode("latin-1")
            log.debug("have msg: %s", text.rstrip("\r"))
            parsed = parse_message(text)
            if parsed is None:
                continue
            readings.append(parsed)
            self._dispatch(*parsed)
        return readings

    def _dispatch(self, reading: Reading, value: ReadingValue) -> None:
        callback = {
            Reading.TEMPERATURE: self.on_temperature,
            Reading.DISTANCE: self.on_distance,
            Reading.CURRENT: self.on_current,
            Reading.VOLTAGE: self.on_voltage,
            Reading.DEBUG: self.on_debug,
        }[reading]
        if callback is not None:
            callback(value)

    # Commands

    def _write(self, cmd: str) -> None:
        with self._lock:
            fd = self._fd
            if fd is None:
                return
            try:
                os.write(fd, (cmd + "\r").encode("latin-1"))
                return
            except OSError as exc:
                log.error("Failed to write command to ControlBoard: %s", exc)
        self._close_device()
        try:
            self._open_device()
        except OSError:
            pass

    def set_pwm_freq(self, freq: int) -> None:
        """Set the PWM frequency of all channels."""
        if not self.enabled:
            log.error("set_pwm_freq: Not enabled")
            return
        self._write(f"pwm_frequency {freq}")

    def set_pwm_duty(self, pwm: int, duty: int) -> None:
        """Set a PWM channel's duty cycle in hundredths of a percent."""
        if not self.enabled:
            log.error("set_pwm_duty: Not enabled")
            return
        if duty > MAX_DUTY:
            raise ValueError(f"Duty out of range: {duty}")
        self._write(f"pwm_duty {int(pwm)} {duty}")

    def stop_pwm(self, pwm: int) -> None:
        """Stop a PWM channel."""
        if not self.enabled:
            log.error("stop_pwm: Not enabled")
            return
        self._write(f"pwm_stop {int(pwm)}")

    def set_gpio(self, gpio: int, enable: int) -> None:
        """Drive a GPIO line high or low."""
        self._write(format_gpio_command(gpio, enable))

    def send_ping(self) -> None:
        """Send a keep-alive ping to the board."""
        self._write("ping")