import sys
import time

import pytest

from pleco.gst import GST_LAUNCH_ENV, PipelineError, PipelineProcess


def _write_script(tmp_path, body):
    script = tmp_path / "fake_pipeline.py"
    script.write_text(body)
    return str(script)


def _wait_until(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def python_launcher(monkeypatch):
    monkeypatch.setenv(GST_LAUNCH_ENV, sys.executable)


def test_packets_are_delivered_in_order(tmp_path, python_launcher):
    packets = [b"abc", b"", b"xyz12", bytes(range(200))]
    script = _write_script(
        tmp_path,
        "import sys\n"
        "out = sys.stdout.buffer\n"
        f"for p in {packets!r}:\n"
        "    out.write(len(p).to_bytes(2, 'big') + p)\n"
        "out.flush()\n",
    )
    received = []
    proc = PipelineProcess(script, received.append)
    proc.start()
    assert _wait_until(lambda: not proc.running)
    proc.stop()
    assert received == packets


def test_truncated_packet_is_dropped(tmp_path, python_launcher):
    script = _write_script(
        tmp_path,
        "import sys\n"
        "out = sys.stdout.buffer\n"
        "out.write((2).to_bytes(2, 'big') + b'ok')\n"
        "out.write((10).to_bytes(2, 'big') + b'abc')\n"
        "out.flush()\n",
    )
    received = []
    proc = PipelineProcess(script, received.append)
    proc.start()
    assert _wait_until(lambda: not proc.running)
    proc.stop()
    assert received == [b"ok"]


def test_stop_terminates_running_process(tmp_path, python_launcher):
    script = _write_script(tmp_path, "import time\ntime.sleep(60)\n")
    proc = PipelineProcess(script, lambda packet: None)
    proc.start()
    assert proc.running is True
    proc.stop()
    assert proc.running is False


def test_callback_errors_do_not_stop_reading(tmp_path, python_launcher):
    script = _write_script(
        tmp_path,
        "import sys\n"
        "out = sys.stdout.buffer\n"
        "for p in [b'a', b'b']:\n"
        "    out.write(len(p).to_bytes(2, 'big') + p)\n"
        "out.flush()\n",
    )
    seen = []

    def on_packet(packet):
        seen.append(packet)
        raise RuntimeError("boom")

    proc = PipelineProcess(script, on_packet)
    proc.start()
    assert _wait_until(lambda: not proc.running) is True
    proc.stop()
    assert proc.running is False
    assert seen == [b"a", b"b"]


def test_missing_launcher_raises(tmp_path, monkeypatch):
    monkeypatch.setenv(GST_LAUNCH_ENV, str(tmp_path / "no-such-launcher"))
    proc = PipelineProcess("videotestsrc ! fakesink", lambda packet: None)
    with pytest.raises(PipelineError):
        proc.start()
    assert proc.running is False