import os
import select
import threading

import pytest

from pleco.controlboard import (
    ControlBoard,
    Gpio,
    Pwm,
    Reading,
    format_gpio_command,
    parse_message,
)


@pytest.fixture
def pty_board():
    master, slave = os.openpty()
    board = ControlBoard(os.ttyname(slave))
    board.init()
    yield board, master
    board.close()
    os.close(slave)
    os.close(master)


def _read_master(master, timeout=2.0):
    ready, _, _ = select.select([master], [], [], timeout)
    assert ready, "no data written to the serial device"
    return os.read(master, 1024)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("tmp: 42", (Reading.TEMPERATURE, 42)),
        ("dst: 150", (Reading.DISTANCE, 150)),
        ("amp: 300\r", (Reading.CURRENT, 300)),
        ("vlt: 1200", (Reading.VOLTAGE, 1200)),
        ("d: hello board", (Reading.DEBUG, "hello board")),
    ],
)
def test_parse_message_known(line, expected):
    assert parse_message(line) == expected


def test_parse_message_unknown_returns_none():
    assert parse_message("pong") is None
    assert parse_message("tmp:42") is None


def test_parse_message_leading_integer_only():
    assert parse_message("tmp: 17abc") == (Reading.TEMPERATURE, 17)


def test_parse_message_wraps_to_uint16():
    assert parse_message("tmp: -1") == (Reading.TEMPERATURE, 65535)


def test_parse_message_invalid_value_raises():
    with pytest.raises(ValueError):
        parse_message("vlt: abc")


def test_format_gpio_command():
    assert format_gpio_command(0, 1) == "led 1"
    assert format_gpio_command(3, 0) == "gpio 3 0"
    assert format_gpio_command(5, 7) == "gpio 5 1"


def test_enum_mappings_in_commands():
    assert format_gpio_command(Gpio.LED1, 0) == "led 0"
    assert format_gpio_command(Gpio.HEAD_LIGHTS, 1) == "gpio 5 1"
    assert format_gpio_command(Gpio.SPEED_ENABLE_RIGHT, 1) == "gpio 5 1"
    assert format_gpio_command(Gpio.REAR_LIGHTS, 1) == "gpio 1 1"
    assert Pwm.SPEED_LEFT == Pwm.PWM5


def test_feed_dispatches_callbacks():
    board = ControlBoard("/nonexistent/tty")
    temps, debug = [], []
    board.on_temperature = temps.append
    board.on_debug = debug.append
    readings = board.feed(b"tmp: 21\r\nd: msg\nvlt: 5\n")
    assert temps == [21]
    assert debug == ["msg"]
    assert readings == [
        (Reading.TEMPERATURE, 21),
        (Reading.DEBUG, "msg"),
        (Reading.VOLTAGE, 5),
    ]


def test_feed_keeps_partial_line():
    board = ControlBoard("/nonexistent/tty")
    distances = []
    board.on_distance = distances.append
    assert board.feed(b"dst: 1") == []
    assert distances == []
    assert board.feed(b"23\n") == [(Reading.DISTANCE, 123)]
    assert distances == [123]


def test_feed_malformed_line_is_dropped():
    board = ControlBoard("/nonexistent/tty")
    with pytest.raises(ValueError):
        board.feed(b"amp: x\n")
    assert board.feed(b"amp: 9\n") == [(Reading.CURRENT, 9)]


def test_init_missing_device_raises():
    board = ControlBoard("/nonexistent/pleco-tty")
    try:
        with pytest.raises(OSError):
            board.init()
        assert board.enabled is False
    finally:
        board.close()


def test_commands_written_to_device(pty_board):
    board, master = pty_board
    assert board.enabled is True
    board.set_gpio(Gpio.LED1, 1)
    assert _read_master(master) == b"led 1\r"
    board.set_pwm_duty(Pwm.CAMERA_X, 750)
    assert _read_master(master) == b"pwm_duty 3 750\r"
    board.stop_pwm(Pwm.SPEED)
    assert _read_master(master) == b"pwm_stop 1\r"
    board.send_ping()
    assert _read_master(master) == b"ping\r"


def test_pwm_duty_out_of_range(pty_board):
    board, _ = pty_board
    with pytest.raises(ValueError):
        board.set_pwm_duty(Pwm.SPEED, 10001)


def test_reads_telemetry_from_device(pty_board):
    board, master = pty_board
    received = []
    done = threading.Event()

    def on_voltage(value):
        received.append(value)
        done.set()

    board.on_voltage = on_voltage
    os.write(master, b"vlt: 1150\r\n")
    assert done.wait(2.0) is True
    assert received == [1150]
    assert board.enabled is True