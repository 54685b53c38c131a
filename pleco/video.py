"""H.264 video streaming from the camera through a GStreamer pipeline."""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, Optional, Union

from pleco.camera import CAMERA_ENV, DEFAULT_CAMERA
from pleco.gst import PipelineProcess
from pleco.hardware import Hardware

log = logging.getLogger(__name__)

VIDEO_QUALITY_BITRATE = (256, 1024, 2048, 8192)
VIDEO_TEST_SOURCE = "videotestsrc"

_RESOLUTIONS = {
    0: (320, 240),
    1: (640, 480),
    2: (800, 600),
    3: (1280, 720),
}
_NANO_QUALITY = 3

PropertyValue = Union[bool, int, str]
ProcessFactory = Callable[[str, Callable[[bytes], None]], PipelineProcess]


def bitrate_for_quality(quality: int) -> int:
    """Bitrate in kilobits for a quality level; unknown levels get the lowest."""
    if 0 <= quality < len(VIDEO_QUALITY_BITRATE):
        return VIDEO_QUALITY_BITRATE[quality]
    log.error("Unknown quality: %d", quality)
    return VIDEO_QUALITY_BITRATE[0]


def encoder_properties(hardware_name: str) -> Dict[str, PropertyValue]:
    """Low-latency encoder tuning for the given hardware."""
    if hardware_name == "generic_x86":
        return {"speed-preset": 1, "tune": 4}
    if hardware_name == "tegrax2":
        return {"preset-level": 0}
    if hardware_name == "tegra_nano":
        return {
            "control-rate": 2,
            "preset-level": 0,
            "profile": 8,
            "iframeinterval": 120,
            "insert-sps-pps": 1,
        }
    return {}


def _format_properties(props: Dict[str, PropertyValue]) -> str:
    def fmt(value: PropertyValue) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return f'"{value}"'
        return str(value)

    return " ".join(f"{key}={fmt(value)}" for key, value in props.items())


def build_video_pipeline(
    hardware: Hardware,
    video_source: str,
    quality: int,
    bitrate: int,
    camera_device: Optional[str] = None,
) -> str:
    """Build the launch description for the video encoding pipeline.

    The pipeline writes RTP packets framed with a 16-bit length to stdout.
    """
    name = hardware.name
    if name == "tegra_nano":
        quality = _NANO_QUALITY
        caps = (
            "video/x-raw(memory:NVMM),format=(string)NV12,"
            "framerate=(fraction)60/1,"
        )
    else:
        caps = "video/x-raw,format=(string)I420,framerate=(fraction)30/1,"
    width, height = _RESOLUTIONS.get(quality, _RESOLUTIONS[0])
    caps += f"width=(int){width},height=(int){height}"

    source_props: Dict[str, PropertyValue] = {"do-timestamp": True}
    if video_source == VIDEO_TEST_SOURCE:
        source_props["is-live"] = True
    if video_source == hardware.camera_src:
        if hardware.camera_src == "v4l2src":
            source_props["device"] = camera_device or DEFAULT_CAMERA
        elif hardware.camera_src == "nvarguscamerasrc":
            source_props["sensor-id"] = 0
        if name in ("tegrak1", "tegrax1"):
            source_props["io-mode"] = 1

    encoder_props = encoder_properties(name)
    bitrate_key = "target-bitrate" if name in ("tegrak1", "tegrax1") else "bitrate"
    encoder_props[bitrate_key] = (
        bitrate if hardware.bitrate_in_kilobits else bitrate * 1024
    )
    encoder = hardware.encoding_pipeline.replace(
        "name=encoder", f"name=encoder {_format_properties(encoder_props)}", 1
    )

    elements = [
        f"{video_source} name=source {_format_properties(source_props)}",
        f'capsfilter caps="{caps}"',
    ]
    if name == "generic_x86":
        # The old Playstation camera needs a conversion step.
        elements.append("videoconvert")
    elements += [
        encoder,
        "rtph264pay name=rtppay config-interval=-1 mtu=500",
        "queue max-size-buffers=1 leaky=downstream",
        "rtpstreampay",
        "fdsink fd=1 sync=false",
    ]
    return " ! ".join(elements)


class VideoSender:
    """Starts and stops video encoding; packets go to ``on_video``."""

    def __init__(
        self, hardware: Hardware, process_factory: ProcessFactory = PipelineProcess
    ) -> None:
        self.hardware = hardware
        self.process_factory = process_factory
        self.video_source = hardware.camera_src
        self.quality = 0
        self.bitrate = VIDEO_QUALITY_BITRATE[0]
        self.on_video: Optional[Callable[[bytes], None]] = None
        self._pipeline: Optional[PipelineProcess] = None

    @property
    def sending(self) -> bool:
        """Whether an encoding pipeline has been started."""
        return self._pipeline is not None

    def _emit_video(self, data: bytes) -> None:
        if self.on_video is not None:
            self.on_video(data)

    def enable_sending(self, enable: bool) -> None:
        """Start or stop the encoding pipeline.

        Raises PipelineError if the pipeline cannot be started.
        """
        log.info("Enable video: %s", enable)
        if not enable:
            self.close()
            return
        if self._pipeline is not None:
            log.warning("Pipeline exists already, doing nothing")
            return
        if self.hardware.name == "tegra_nano":
            self.quality = _NANO_QUALITY
        camera = os.environ.get(CAMERA_ENV) or DEFAULT_CAMERA
        description = build_video_pipeline(
            self.hardware, self.video_source, self.quality, self.bitrate, camera
        )
        log.info("Using pipeline: %s", description)
        pipeline = self.process_factory(description, self._emit_video)
        pipeline.start()
        self._pipeline = pipeline

    def set_video_source(self, index: int) -> None:
        """Select the camera (0) or the test pattern (1) for the next start."""
        if index == 0:
            self.video_source = self.hardware.camera_src
        elif index == 1:
            self.video_source = VIDEO_TEST_SOURCE
        else:
            raise ValueError(f"Unknown video source index: {index}")

    def set_video_quality(self, quality: int) -> None:
        """Set the quality level; a running pipeline is restarted to apply it."""
        self.quality = quality
        self.bitrate = bitrate_for_quality(quality)
        log.info("Bitrate: %d", self.bitrate)
        if self._pipeline is not None:
            self.close()
            self.enable_sending(True)

    def close(self) -> None:
        """Stop the encoding pipeline if it runs."""
        pipeline, self._pipeline = self._pipeline, None
        if pipeline is not None:
            log.info("Stopping video encoding")
            pipeline.stop()