"""Hardware profiles and detection of the board the program runs on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

log = logging.getLogger(__name__)

DEFAULT_HARDWARE = "generic_x86"
DETECT_FILES = ("/proc/cpuinfo", "/proc/device-tree/model")


@dataclass(frozen=True)
class HardwareProfile:
    """Video encoding settings for one kind of board."""

    name: str
    video_encoder: str
    camera_src: str
    bitrate_in_kilobits: bool


PROFILES = (
    HardwareProfile(
        "gumstix_overo", "videoconvert ! dsph264enc name=encoder", "v4l2src", False
    ),
    HardwareProfile("generic_x86", "openh264enc name=encoder", "v4l2src", True),
    HardwareProfile(
        "tegra3",
        "nvvidconv ! capsfilter caps=video/x-nvrm-yuv ! nv_omx_h264enc name=encoder",
        "v4l2src",
        False,
    ),
    HardwareProfile("tegrak1", "omxh264enc name=encoder", "v4l2src", False),
    HardwareProfile("tegrax1", "omxh264enc name=encoder", "v4l2src", False),
    HardwareProfile("tegrax2", "omxh264enc name=encoder", "v4l2src", False),
    HardwareProfile(
        "tegra_nano", "omxh264enc name=encoder", "nvarguscamerasrc", False
    ),
)

# (text to look for, hardware name, stop looking at further files)
_SIGNATURES = (
    ("Gumstix Overo", "gumstix_overo", True),
    ("BCM2708", "raspberry_pi", True),
    ("grouper", "tegra3", False),
    ("cardhu", "tegra3", True),
    ("jetson-tk1", "tegrak1", True),
    ("jetson_tx1", "tegrax1", False),
    ("quill", "tegrax2", False),
    ("Jetson Nano", "tegra_nano", False),
    ("GenuineIntel", "generic_x86", False),
)


class Hardware:
    """The selected hardware profile; unknown names select the first profile."""

    def __init__(self, name: str) -> None:
        self.profile = next((p for p in PROFILES if p.name == name), PROFILES[0])
        if self.profile.name == name:
            log.info("Selected hardware: %s", name)

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def encoding_pipeline(self) -> str:
        """GStreamer encoder fragment for this hardware."""
        return self.profile.video_encoder

    @property
    def camera_src(self) -> str:
        """GStreamer camera source element name."""
        return self.profile.camera_src

    @property
    def bitrate_in_kilobits(self) -> bool:
        """Whether the encoder takes its bitrate in kilobits rather than bits."""
        return self.profile.bitrate_in_kilobits


def detect_hardware_name(contents: Iterable[str]) -> Optional[str]:
    """Guess the hardware name from the texts of system information files.

    Texts are examined in order; a later match overrides an earlier one
    unless the earlier signature is conclusive. Returns None if nothing matched.
    """
    detected = None
    for text in contents:
        for needle, name, conclusive in _SIGNATURES:
            if needle in text:
                log.info("Detected %s", name)
                if conclusive:
                    return name
                detected = name
                break
    return detected


def read_hardware_name(paths: Iterable[str] = DETECT_FILES) -> str:
    """Detect the hardware from the readable files among ``paths``.

    Falls back to the generic x86 profile when nothing is recognised.
    """

    def texts() -> Iterable[str]:
        for path in paths:
            try:
                yield Path(path).read_text(errors="replace")
            except OSError:
                continue

    name = detect_hardware_name(texts())
    if not name:
        log.warning("Failed to detect HW, guessing generic x86")
        name = DEFAULT_HARDWARE
    return name