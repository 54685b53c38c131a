# pleco

Building blocks for the onboard software of a small remote-controlled
vehicle, plus the UDP relay that sits between the vehicle and its
controller. Linux only: the serial, camera and statistics code uses
`termios`, V4L2 ioctls and files under `/proc` and `/sys`.

## Relay

The relay listens on two UDP ports: one for the controller side (8500 by
default) and one for the vehicle side (12347 by default). A packet arriving
on one port is forwarded to the last address seen on the other port; packets
arriving before the other side is known are dropped.

```
pleco-netrelay [--host ADDR] [--client-port PORT] [--server-port PORT]
```

From Python:

```python
from pleco.relay import UdpRelay

with UdpRelay(8500, 12347, "0.0.0.0") as relay:
    relay.serve_forever()
```

`UdpRelay.poll(timeout)` handles whatever is pending and returns the number
of packets received; `handle_client_packet` and `handle_server_packet`
return the address the data was forwarded to, or `None`. `open_udp_socket`
raises `OSError` if a port cannot be bound.

## Vehicle modules

- `pleco.hardware` — `Hardware(name)` selects a `HardwareProfile` (encoder
  pipeline fragment, camera source element, whether the bitrate is given in
  kilobits); unknown names select the first profile. `detect_hardware_name`
  guesses a name from the texts of system files and `read_hardware_name`
  reads `/proc/cpuinfo` and `/proc/device-tree/model`, falling back to
  `generic_x86`.
- `pleco.controlboard` — `ControlBoard(serial_device)` speaks the
  line-based serial protocol of the motor/sensor microcontroller at
  115200 baud. `init()` opens the device (raising `OSError` and retrying in
  the background on failure) and starts a reader thread; a watchdog reopens
  the device when no data arrives for two seconds. Commands:
  `set_pwm_freq`, `set_pwm_duty` (duty in hundredths of a percent, above
  10000 raises `ValueError`), `stop_pwm`, `set_gpio`, `send_ping`.
  Incoming lines are parsed by `parse_message` into `Reading`s and passed
  to the `on_temperature`, `on_distance`, `on_current`, `on_voltage` and
  `on_debug` callbacks; `feed(data)` does this for raw bytes and returns the
  readings. `Pwm` and `Gpio` name the board's channels.
- `pleco.camera` — `Camera` sets brightness, zoom and focus on a V4L2
  device in percent of each control's range (`scale_control`); focus 0
  selects auto focus. Failures raise `CameraError`.
- `pleco.gst` — `PipelineProcess` runs a GStreamer launch description in a
  child process (`gst-launch-1.0`, or the program named by
  `PLECO_GST_LAUNCH`) and hands every length-framed packet it writes to
  stdout to a callback. A launch failure raises `PipelineError`.
- `pleco.video` — `VideoSender` builds an H.264/RTP pipeline with
  `build_video_pipeline` for the hardware, source (camera or
  `videotestsrc`) and quality level (`bitrate_for_quality`), and delivers
  packets to `on_video`. Changing the quality restarts a running pipeline.
- `pleco.audio` — `AudioSender` runs a mono Opus/RTP pipeline from ALSA
  (`build_audio_pipeline`) and delivers packets to `on_audio`.
- `pleco.drive` — `DriveController(board, ackerman=False)` turns packed
  speed/turn and camera X/Y values into PWM and GPIO commands, with tank or
  Ackermann steering, head and rear lights, and `stop_all`.
- `pleco.sysstats` — `collect_stats` reads wireless signal strength, CPU
  load, uptime and temperature into a `SystemStats`; each reader returns
  `None` when its file cannot be read.

Environment variables: `PLECO_SLAVE_CAMERA` (camera device, default
`/dev/video0`), `PLECO_SLAVE_ALSA_DEVICE` (audio capture device) and
`PLECO_GST_LAUNCH` (pipeline launcher).

## What it does not do

There is no vehicle program here: no command starts the vehicle side, and
nothing connects it to the relay or encodes messages to or from the
controller. The modules above are meant to be wired together by the caller,
for example by passing received control values to `DriveController` and
sending `on_video`, `on_audio` and `SystemStats` values over a transport of
your own.

## Tests

```
pip install -e .[test]
pytest
```