import errno
import pytest
from photobooth.config.models import CatalogConfig
from photobooth.domain.catalog import MusicCatalog, FontCatalog
from photobooth.domain.errors import (
    CommandFailed, CommandTimeout, FailureKind, OverlayError, ProbeError, SegmentError, ValidationError,
    classify_failure,
)
from photobooth.domain.models import JobStatus, ProcessingJob, StyleDescriptor
from photobooth.pipeline.filters import rotation_info, scale_pad_filter


def make_job(tmp_path) -> ProcessingJob:
    return ProcessingJob(
        source_path=tmp_path / "in.mp4",
        overlay_path=tmp_path / "overlay.png",
        style=StyleDescriptor(),
        normal_seconds=5,
        slow_seconds=5,
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "out",
    )


class TestStyleDescriptor:

    def test_client_payload(self):
        style = StyleDescriptor.model_validate({
            "music": "beggin", "frame": "custom", "frameColor": "#8B5CF6",
            "text": "Happy birthday", "textFont": "chewy", "textColor": "#FFFFFF",
            "unknownKey": 1,
        })
        assert style.frame_color == "#8B5CF6"
        assert style.text_font == "chewy"
        assert style.wants_music

    @pytest.mark.parametrize("music", [None, "", "none"])
    def test_missing_music_means_none(self, music):
        style = StyleDescriptor.model_validate({"music": music})
        assert style.music == "none"
        assert not style.wants_music

    def test_frozen(self):
        style = StyleDescriptor(music="beggin")
        with pytest.raises(Exception):
            style.music = "none"


class TestJobStateMachine:

    def test_happy_path(self, tmp_path):
        job = make_job(tmp_path)
        for status in (JobStatus.NORMALIZING, JobStatus.SEGMENTING, JobStatus.CONCATENATING,
                       JobStatus.OVERLAYING, JobStatus.MIXING_AUDIO, JobStatus.COMPLETED):
            job.advance(status)
        assert job.status.is_terminal

    def test_cannot_skip_stages(self, tmp_path):
        job = make_job(tmp_path)
        with pytest.raises(ValueError):
            job.advance(JobStatus.OVERLAYING)

    def test_terminal_states_are_final(self, tmp_path):
        job = make_job(tmp_path)
        job.advance(JobStatus.NORMALIZING)
        job.advance(JobStatus.SEGMENTING)
        job.advance(JobStatus.FAILED)
        with pytest.raises(ValueError):
            job.advance(JobStatus.CONCATENATING)

    def test_expected_duration(self, tmp_path):
        assert make_job(tmp_path).expected_duration() == 15


class TestCatalog:

    def test_resolve(self, tmp_path):
        (tmp_path / "beggin.mp3").write_bytes(b"ID3")
        catalog = MusicCatalog(CatalogConfig().music, tmp_path)

        assert catalog.resolve("beggin") == tmp_path / "beggin.mp3"
        assert catalog.resolve("none") is None
        assert catalog.resolve(None) is None
        assert catalog.resolve("unknown") is None
        # Listed but missing on disk
        assert catalog.resolve("night_dancer") is None

    def test_availability(self, tmp_path):
        (tmp_path / "Chewy-Regular.ttf").write_bytes(b"\x00")
        catalog = FontCatalog(CatalogConfig().fonts, tmp_path)

        assert catalog.availability() == {"montserrat": False, "playfair": False, "chewy": True}
        assert "chewy" in catalog
        assert len(catalog) == 3


class TestClassifyFailure:

    def test_timeout(self):
        assert classify_failure(CommandTimeout("segment:slow", 120)) == FailureKind.TIMEOUT

    def test_validation_and_probe(self):
        assert classify_failure(ValidationError("too small")) == FailureKind.INVALID_SOURCE
        assert classify_failure(ProbeError("unreadable")) == FailureKind.INVALID_SOURCE

    def test_wrapped_corrupt_input(self):
        try:
            try:
                raise CommandFailed("segment:normal", 1, "moov atom not found")
            except CommandFailed as e:
                raise SegmentError("could not build") from e
        except SegmentError as wrapped:
            assert classify_failure(wrapped) == FailureKind.INVALID_SOURCE

    def test_resources(self):
        assert classify_failure(OSError(errno.ENOSPC, "No space left on device")) == FailureKind.INSUFFICIENT_RESOURCES
        failed = CommandFailed("overlay", 1, "Cannot allocate memory")
        assert classify_failure(failed) == FailureKind.INSUFFICIENT_RESOURCES

    def test_internal(self):
        assert classify_failure(OverlayError("bad overlay")) == FailureKind.INTERNAL
        assert classify_failure(RuntimeError("boom")) == FailureKind.INTERNAL

    def test_outward_statuses_are_distinct(self):
        assert len({k.http_status for k in FailureKind}) == len(FailureKind)
        assert len({k.exit_code for k in FailureKind}) == len(FailureKind)
        assert FailureKind.TIMEOUT.http_status == 504


class TestFilters:

    @pytest.mark.parametrize("degrees,needs,expression", [
        (0, False, None),
        (90, True, "transpose=1"),
        (180, True, "transpose=2,transpose=2"),
        (270, True, "transpose=2"),
        (-90, True, "transpose=2"),
        (450, True, "transpose=1"),
    ])
    def test_rotation_info(self, degrees, needs, expression):
        info = rotation_info(degrees)
        assert info.needs_rotation is needs
        assert info.filter_expression == expression
        assert info.degrees in {0, 90, 180, 270}

    def test_scale_pad_filter(self):
        assert scale_pad_filter(480, 854) == (
            "scale=480:854:force_original_aspect_ratio=decrease,pad=480:854:(ow-iw)/2:(oh-ih)/2,setsar=1"
        )
