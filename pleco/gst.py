"""Run a GStreamer pipeline in a child process and receive its packets."""

from __future__ import annotations

import logging
import os
import struct
import subprocess
import threading
from typing import BinaryIO, Callable, Iterator, Optional

log = logging.getLogger(__name__)

GST_LAUNCH = "gst-launch-1.0"
GST_LAUNCH_ENV = "PLECO_GST_LAUNCH"
STOP_TIMEOUT = 5.0

_FRAME_HEADER = struct.Struct(">H")

PacketCallback = Callable[[bytes], None]


class PipelineError(Exception):
    """A pipeline process could not be started."""


def _iter_frames(stream: BinaryIO) -> Iterator[bytes]:
    """Yield packets framed with a 16-bit big-endian length prefix."""
    while True:
        header = stream.read(_FRAME_HEADER.size)
        if len(header) < _FRAME_HEADER.size:
            return
        (size,) = _FRAME_HEADER.unpack(header)
        payload = stream.read(size)
        if len(payload) < size:
            log.warning("Truncated packet: %d < %d", len(payload), size)
            return
        yield payload


class PipelineProcess:
    """A GStreamer launch process whose stdout carries length-framed packets.

    The pipeline description is expected to end in ``rtpstreampay ! fdsink
    fd=1``; every packet it writes is handed to ``on_packet`` from a
    background thread. The launcher executable is taken from
    $PLECO_GST_LAUNCH, defaulting to gst-launch-1.0.
    """

    def __init__(self, description: str, on_packet: PacketCallback) -> None:
        self.description = description
        self.on_packet = on_packet
        self._process: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        """Whether the pipeline process is alive."""
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        """Launch the pipeline; does nothing if it is already running.

        Raises PipelineError if the launcher cannot be executed.
        """
        if self.running:
            log.warning("Pipeline exists already, doing nothing")
            return
        self.stop()
        launcher = os.environ.get(GST_LAUNCH_ENV, GST_LAUNCH)
        try:
            process = subprocess.Popen(
                [launcher, "-q", self.description],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
            )
        except OSError as exc:
            raise PipelineError(f"Failed to launch pipeline: {exc}") from exc
        reader = threading.Thread(
            target=self._read_packets,
            args=(process.stdout,),
            name="pipeline-reader",
            daemon=True,
        )
        self._process = process
        self._reader = reader
        reader.start()

    def _read_packets(self, stream: BinaryIO) -> None:
        for packet in _iter_frames(stream):
            try:
                self.on_packet(packet)
            except Exception:
                log.exception("Packet callback failed")

    def stop(self) -> None:
        """Terminate the pipeline process and wait for its reader to finish."""
        process, self._process = self._process, None
        reader, self._reader = self._reader, None
        if process is None:
            return
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=STOP_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        if reader is not None and reader is not threading.current_thread():
            reader.join(STOP_TIMEOUT)
        if process.stdout is not None:
            process.stdout.close()