import pytest

from pleco.hardware import (
    PROFILES,
    Hardware,
    HardwareProfile,
    detect_hardware_name,
    read_hardware_name,
)


def test_known_hardware_selected():
    hw = Hardware("tegra_nano")
    assert hw.name == "tegra_nano"
    assert hw.camera_src == "nvarguscamerasrc"
    assert hw.encoding_pipeline == "omxh264enc name=encoder"
    assert hw.bitrate_in_kilobits is False


def test_generic_x86_uses_kilobits():
    hw = Hardware("generic_x86")
    assert hw.encoding_pipeline == "openh264enc name=encoder"
    assert hw.bitrate_in_kilobits is True
    assert hw.camera_src == "v4l2src"


@pytest.mark.parametrize("name", ["unknown", "raspberry_pi", ""])
def test_unknown_hardware_falls_back_to_first(name):
    hw = Hardware(name)
    assert hw.name == "gumstix_overo"
    assert hw.profile == PROFILES[0]


@pytest.mark.parametrize("profile", PROFILES)
def test_every_profile_round_trips(profile):
    hw = Hardware(profile.name)
    assert hw.profile == profile
    assert "name=encoder" in hw.encoding_pipeline


def test_profile_is_frozen():
    hw = Hardware("tegrax1")
    profile = hw.profile
    assert isinstance(profile, HardwareProfile)
    with pytest.raises(AttributeError):
        profile.name = "other"  # type: ignore[misc]
    assert hw.name == "tegrax1"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hardware : Gumstix Overo", "gumstix_overo"),
        ("Hardware : BCM2708", "raspberry_pi"),
        ("Hardware : grouper", "tegra3"),
        ("Hardware : cardhu", "tegra3"),
        ("jetson-tk1", "tegrak1"),
        ("jetson_tx1", "tegrax1"),
        ("quill", "tegrax2"),
        ("NVIDIA Jetson Nano Developer Kit", "tegra_nano"),
        ("vendor_id : GenuineIntel", "generic_x86"),
    ],
)
def test_detect_single_file(text, expected):
    assert detect_hardware_name([text]) == expected


def test_detect_nothing_returns_none():
    assert detect_hardware_name([]) is None
    assert detect_hardware_name(["AuthenticAMD"]) is None


def test_non_conclusive_match_is_overridden_by_later_file():
    assert detect_hardware_name(["GenuineIntel", "Jetson Nano"]) == "tegra_nano"
    assert detect_hardware_name(["grouper", "Gumstix Overo"]) == "gumstix_overo"


def test_conclusive_match_stops_search():
    assert detect_hardware_name(["cardhu", "GenuineIntel"]) == "tegra3"
    assert detect_hardware_name(["jetson-tk1", "quill"]) == "tegrak1"


def test_earlier_signature_wins_within_one_file():
    assert detect_hardware_name(["quill GenuineIntel"]) == "tegrax2"


def test_read_hardware_name_from_files(tmp_path):
    cpuinfo = tmp_path / "cpuinfo"
    model = tmp_path / "model"
    cpuinfo.write_text("vendor_id : GenuineIntel\n")
    model.write_text("NVIDIA Jetson Nano Developer Kit\x00")
    assert read_hardware_name([str(cpuinfo), str(model)]) == "tegra_nano"


def test_read_hardware_name_skips_missing_files(tmp_path):
    cpuinfo = tmp_path / "cpuinfo"
    cpuinfo.write_text("Hardware : cardhu\n")
    missing = tmp_path / "missing"
    assert read_hardware_name([str(missing), str(cpuinfo)]) == "tegra3"


def test_read_hardware_name_defaults_to_generic(tmp_path):
    assert read_hardware_name([str(tmp_path / "nope")]) == "generic_x86"
    other = tmp_path / "other"
    other.write_text("nothing useful")
    assert read_hardware_name([str(other)]) == "generic_x86"