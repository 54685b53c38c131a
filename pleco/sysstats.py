"""System statistics reported periodically to the controller."""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Iterator, Optional, Tuple

WIRELESS_LINK_PATH = "/sys/class/net/wlan0/wireless/link"
PROC_WIRELESS_PATH = "/proc/net/wireless"
LOADAVG_PATH = "/proc/loadavg"
UPTIME_PATH = "/proc/uptime"
TEMPERATURE_PATH = "/sys/devices/virtual/hwmon/hwmon0/temp1_input"

# Link quality reported by the wireless driver ranges from 0 to 70.
MAX_LINK_QUALITY = 70.0

_UINT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(
    r"\s*([+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|inf|nan))",
    re.IGNORECASE,
)
_UINT32_MASK = 0xFFFFFFFF


def _uint16(value: float) -> int:
    return int(value) & 0xFFFF


def _parse_uint(text: str) -> int:
    """Parse a leading unsigned integer; a minus sign wraps around."""
    match = _UINT_PREFIX.match(text)
    if not match:
        raise ValueError(f"invalid integer value: {text!r}")
    return int(match.group(1)) & _UINT32_MASK


def _parse_float(text: str) -> float:
    """Parse a leading floating point number."""
    match = _FLOAT_PREFIX.match(text)
    if not match:
        raise ValueError(f"invalid number: {text!r}")
    return float(match.group(1))


def _first_line(path: str) -> Optional[str]:
    try:
        with open(path, encoding="ascii", errors="replace") as stream:
            return stream.readline().rstrip("\n")
    except OSError:
        return None


def _first_field(path: str) -> Optional[float]:
    line = _first_line(path)
    if line is None:
        return None
    return _parse_float(line.split(" ", 1)[0])


def read_signal_strength(
    link_path: str = WIRELESS_LINK_PATH, wireless_path: str = PROC_WIRELESS_PATH
) -> Optional[int]:
    """Wireless signal strength in percent.

    The driver's link file is preferred; otherwise the link quality column
    of the wireless statistics table is used (0 if the table has no rows).
    Returns None if neither file can be read. Raises ValueError on
    malformed contents.
    """
    line = _first_line(link_path)
    if line is not None:
        return _uint16(_parse_uint(line) / MAX_LINK_QUALITY * 100)

    try:
        lines = Path(wireless_path).read_text(errors="replace").splitlines()
    except OSError:
        return None
    # Two header lines precede the first interface.
    content = lines[2] if len(lines) > 2 else ""
    if not content:
        return 0
    tokens = content.split()
    if len(tokens) < 3:
        raise ValueError(f"malformed wireless statistics line: {content!r}")
    quality = tokens[2]
    if quality.endswith("."):
        quality = quality[:-1]
    return _uint16(_parse_uint(quality))


def read_cpu_load(path: str = LOADAVG_PATH) -> Optional[int]:
    """One-minute load average multiplied by 100, or None if unreadable."""
    load = _first_field(path)
    return None if load is None else _uint16(load * 100)


def read_uptime(path: str = UPTIME_PATH) -> Optional[int]:
    """System uptime in whole seconds (16-bit), or None if unreadable."""
    uptime = _first_field(path)
    return None if uptime is None else _uint16(uptime)


def read_temperature(path: str = TEMPERATURE_PATH) -> Optional[int]:
    """Temperature in hundredths of a degree Celsius, or None if unreadable."""
    line = _first_line(path)
    if line is None:
        return None
    return _uint16(_parse_uint(line) / 10.0)


@dataclass(frozen=True)
class SystemStats:
    """A snapshot of the system values; None where unavailable."""

    signal_strength: Optional[int] = None
    cpu_load: Optional[int] = None
    uptime: Optional[int] = None
    temperature: Optional[int] = None

    def available(self) -> Iterator[Tuple[str, int]]:
        """Yield ``(name, value)`` for every value that could be read."""
        for field in fields(self):
            value = getattr(self, field.name)
            if value is not None:
                yield field.name, value


def collect_stats() -> SystemStats:
    """Read all system statistics from their standard locations."""
    return SystemStats(
        signal_strength=read_signal_strength(WIRELESS_LINK_PATH, PROC_WIRELESS_PATH),
        cpu_load=read_cpu_load(LOADAVG_PATH),
        uptime=read_uptime(UPTIME_PATH),
        temperature=read_temperature(TEMPERATURE_PATH),
    )