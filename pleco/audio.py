"""Opus audio streaming from ALSA through a GStreamer pipeline."""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from pleco.gst import PipelineError, PipelineProcess
from pleco.hardware import Hardware

log = logging.getLogger(__name__)

ALSA_DEVICE_ENV = "PLECO_SLAVE_ALSA_DEVICE"

ProcessFactory = Callable[[str, Callable[[bytes], None]], PipelineProcess]


def build_audio_pipeline(alsa_device: Optional[str] = None) -> str:
    """Build the launch description for the mono Opus encoding pipeline.

    The pipeline writes RTP packets framed with a 16-bit length to stdout.
    """
    source = "alsasrc name=source"
    if alsa_device:
        source += f' device="{alsa_device}"'
    elements = [
        source,
        'capsfilter caps="audio/x-raw,channels=1"',
        "opusenc",
        "rtpopuspay mtu=500",
        "queue max-size-buffers=1 leaky=downstream",
        "rtpstreampay",
        "fdsink fd=1 sync=false",
    ]
    return " ! ".join(elements)


class AudioSender:
    """Starts and stops audio encoding; packets go to ``on_audio``."""

    def __init__(
        self,
        hardware: Optional[Hardware],
        process_factory: ProcessFactory = PipelineProcess,
    ) -> None:
        self.hardware = hardware
        self.process_factory = process_factory
        self.on_audio: Optional[Callable[[bytes], None]] = None
        self._pipeline: Optional[PipelineProcess] = None

    @property
    def sending(self) -> bool:
        """Whether an encoding pipeline has been started."""
        return self._pipeline is not None

    def _emit_audio(self, data: bytes) -> None:
        if self.on_audio is not None:
            self.on_audio(data)

    def enable_sending(self, enable: bool) -> None:
        """Start or stop the encoding pipeline.

        Raises PipelineError if there is no hardware or the pipeline
        cannot be started.
        """
        log.info("Enable audio: %s", enable)
        if not enable:
            self.close()
            return
        if self._pipeline is not None:
            log.warning("Pipeline exists already, doing nothing")
            return
        if self.hardware is None:
            raise PipelineError("No hardware plugin")
        description = build_audio_pipeline(os.environ.get(ALSA_DEVICE_ENV))
        log.info("Using pipeline: %s", description)
        pipeline = self.process_factory(description, self._emit_audio)
        pipeline.start()
        self._pipeline = pipeline

    def close(self) -> None:
        """Stop the encoding pipeline if it runs."""
        pipeline, self._pipeline = self._pipeline, None
        if pipeline is not None:
            log.info("Stopping audio encoding")
            pipeline.stop()