import pytest
from photobooth.config.models import EncoderConfig
from photobooth.domain.errors import CommandFailed, CommandTimeout, NormalizeError, ProbeError
from photobooth.domain.models import MediaInfo
from photobooth.pipeline.normalizer import InputNormalizer


@pytest.fixture
def raw_input(tmp_path):
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\x00" * 4096)
    return path


@pytest.fixture
def normalizer(fake_runner, fake_prober):
    return InputNormalizer(fake_runner, fake_prober, EncoderConfig())


def vf(cmd):
    return cmd[cmd.index("-vf") + 1]


def test_metadata_tier_rotates_landscape_90(normalizer, fake_runner, raw_input):
    output = normalizer.normalize(raw_input)

    assert output.name == "normalized.mp4"
    assert output.exists()
    assert not raw_input.exists()
    assert fake_runner.labels() == ["normalize:metadata"]

    cmd = fake_runner.command("normalize:metadata")
    assert "-noautorotate" in cmd
    assert cmd.index("-noautorotate") < cmd.index("-i")
    # The display matrix is reset on the input so the transpose is the only rotation
    assert cmd[cmd.index("-display_rotation") + 1] == "0"
    assert cmd.index("-display_rotation") < cmd.index("-i")
    assert "rotate=0" not in cmd
    assert vf(cmd).startswith("transpose=1,")
    assert "scale=480:854:force_original_aspect_ratio=decrease" in vf(cmd)
    assert "pad=480:854:(ow-iw)/2:(oh-ih)/2" in vf(cmd)
    assert "-an" in cmd
    assert cmd[cmd.index("-r") + 1] == "24"
    assert cmd[cmd.index("-preset") + 1] == "ultrafast"


@pytest.mark.parametrize("degrees,expected", [
    (0, None),
    (180, "transpose=2,transpose=2"),
    (270, "transpose=2"),
])
def test_metadata_tier_rotation_filters(fake_runner, fake_prober, raw_input, degrees, expected):
    fake_prober.probe.return_value = MediaInfo(width=1080, height=1920, rotation=degrees)
    InputNormalizer(fake_runner, fake_prober, EncoderConfig()).normalize(raw_input)

    video_filter = vf(fake_runner.command("normalize:metadata"))
    if expected is None:
        assert video_filter.startswith("scale=")
    else:
        assert video_filter.startswith(expected + ",scale=")


def test_falls_back_to_auto_orient(normalizer, fake_runner, raw_input):
    fake_runner.fail("normalize:metadata", CommandFailed("normalize:metadata", 1, "Error"))

    output = normalizer.normalize(raw_input)

    assert output.exists()
    assert not raw_input.exists()
    assert fake_runner.labels() == ["normalize:metadata", "normalize:auto_orient"]
    cmd = fake_runner.command("normalize:auto_orient")
    assert "-noautorotate" not in cmd
    assert "-display_rotation" not in cmd
    assert "transpose" not in vf(cmd)
    assert cmd[cmd.index("-preset") + 1] == "veryfast"


def test_timeout_also_falls_through(normalizer, fake_runner, raw_input):
    fake_runner.fail("normalize:metadata", CommandTimeout("normalize:metadata", 120))
    fake_runner.fail("normalize:auto_orient", CommandFailed("normalize:auto_orient", 1, "Error"))

    output = normalizer.normalize(raw_input)

    assert output.exists()
    assert fake_runner.labels()[-1] == "normalize:plain"
    cmd = fake_runner.command("normalize:plain")
    assert "-noautorotate" in cmd
    assert cmd.index("-display_rotation") < cmd.index("-i")
    assert cmd[cmd.index("-preset") + 1] == "medium"


def test_all_tiers_fail_keeps_raw_input(normalizer, fake_runner, raw_input):
    fake_runner.fail("normalize:", CommandFailed("normalize", 1, "Error"))

    with pytest.raises(NormalizeError):
        normalizer.normalize(raw_input)

    assert raw_input.exists()
    assert not (raw_input.parent / "normalized.mp4").exists()
    assert len(fake_runner.calls) == 3


def test_probe_error_skips_metadata_tier(normalizer, fake_runner, fake_prober, raw_input):
    fake_prober.probe.side_effect = ProbeError("unreadable")

    normalizer.normalize(raw_input)

    assert fake_runner.labels() == ["normalize:auto_orient"]
