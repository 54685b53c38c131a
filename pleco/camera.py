"""Camera controls (brightness, zoom, focus) through V4L2 ioctls."""

from __future__ import annotations

import fcntl
import logging
import os
import struct
from typing import Optional, Tuple

log = logging.getLogger(__name__)

DEFAULT_CAMERA = "/dev/video0"
CAMERA_ENV = "PLECO_SLAVE_CAMERA"

_QUERYCTRL = struct.Struct("=II32siiiiIII")
_CONTROL = struct.Struct("=Ii")


def _iowr(type_char: str, nr: int, size: int) -> int:
    return (3 << 30) | (size << 16) | (ord(type_char) << 8) | nr


VIDIOC_S_CTRL = _iowr("V", 28, _CONTROL.size)
VIDIOC_QUERYCTRL = _iowr("V", 36, _QUERYCTRL.size)

V4L2_CID_BASE = 0x00980900
V4L2_CID_BRIGHTNESS = V4L2_CID_BASE
V4L2_CID_CAMERA_CLASS_BASE = 0x009A0900
V4L2_CID_FOCUS_ABSOLUTE = V4L2_CID_CAMERA_CLASS_BASE + 10
V4L2_CID_FOCUS_AUTO = V4L2_CID_CAMERA_CLASS_BASE + 12
V4L2_CID_ZOOM_ABSOLUTE = V4L2_CID_CAMERA_CLASS_BASE + 13


class CameraError(Exception):
    """A camera control could not be opened, queried or set."""


def scale_control(minimum: int, maximum: int, percent: int) -> int:
    """Map a percentage onto a control's range, truncating toward zero."""
    return int(((maximum - minimum) / 100.0) * percent + minimum)


class Camera:
    """A V4L2 camera device whose controls are set in percent."""

    def __init__(self, device: Optional[str] = None) -> None:
        self.device = device
        self.auto_focus = True
        self._fd: Optional[int] = None

    def init(self) -> None:
        """Open the camera device.

        Uses the given device, else $PLECO_SLAVE_CAMERA, else /dev/video0.
        """
        path = self.device or os.environ.get(CAMERA_ENV) or DEFAULT_CAMERA
        try:
            self._fd = os.open(path, os.O_RDWR)
        except OSError as exc:
            raise CameraError(
                f"Failed to open V4L2 device ({path}): {exc.strerror}"
            ) from exc
        self.device = path

    def close(self) -> None:
        """Close the camera device if it is open."""
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def _require_fd(self) -> int:
        if self._fd is None:
            raise CameraError("Camera not initialised.")
        return self._fd

    def _query(self, cid: int, what: str) -> Tuple[int, int]:
        request = _QUERYCTRL.pack(cid, 0, b"", 0, 0, 0, 0, 0, 0, 0)
        try:
            reply = fcntl.ioctl(self._require_fd(), VIDIOC_QUERYCTRL, request)
        except OSError as exc:
            raise CameraError(f"Failed to query {what}: {exc.strerror}") from exc
        fields = _QUERYCTRL.unpack(reply)
        return fields[3], fields[4]

    def _set(self, cid: int, value: int, what: str) -> None:
        try:
            fcntl.ioctl(self._require_fd(), VIDIOC_S_CTRL, _CONTROL.pack(cid, value))
        except OSError as exc:
            raise CameraError(f"Failed to set {what}: {exc.strerror}") from exc
        log.info("%s set to %d", what, value)

    def _set_scaled(self, cid: int, percent: int, what: str) -> int:
        self._require_fd()
        minimum, maximum = self._query(cid, what)
        value = scale_control(minimum, maximum, percent)
        self._set(cid, value, what)
        return value

    def set_brightness(self, value: int) -> int:
        """Set brightness in percent of its range; returns the raw value set."""
        return self._set_scaled(V4L2_CID_BRIGHTNESS, value, "brightness")

    def set_zoom(self, value: int) -> int:
        """Set zoom in percent of its range; returns the raw value set."""
        return self._set_scaled(V4L2_CID_ZOOM_ABSOLUTE, value, "zoom")

    def set_focus(self, value: int) -> Optional[int]:
        """Set focus: 0 selects auto focus, 1-100 a manual focus in percent.

        Returns the raw manual focus value set, or None in auto focus.
        """
        self._require_fd()
        new_auto_focus = value == 0
        if self.auto_focus != new_auto_focus:
            self._set(V4L2_CID_FOCUS_AUTO, 1 if new_auto_focus else 0, "auto focus")
            self.auto_focus = new_auto_focus
        if self.auto_focus:
            return None
        return self._set_scaled(V4L2_CID_FOCUS_ABSOLUTE, value, "focus")