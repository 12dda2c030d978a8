import pytest
from unittest.mock import MagicMock
from photobooth.domain.errors import CommandFailed, CommandTimeout, FailureKind, ValidationError
from photobooth.domain.events import FeatureDegraded, JobCompleted, JobFailed, JobProgressUpdated, StageStarted
from photobooth.domain.models import JobRequest, JobStatus, StyleDescriptor
from photobooth.pipeline.orchestrator import Orchestrator


@pytest.fixture
def orchestrator(app_config, event_bus, fake_prober, fake_runner):
    return Orchestrator(
        config=app_config,
        event_bus=event_bus,
        ffprobe_adapter=fake_prober,
        ffmpeg_runner=fake_runner,
    )


@pytest.fixture
def events(event_bus):
    received = []
    for event_type in (StageStarted, JobProgressUpdated, FeatureDegraded, JobCompleted, JobFailed):
        event_bus.subscribe(event_type, received.append)
    return received


def test_completed_job(orchestrator, fake_runner, events, source_video, overlay_png, app_config):
    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.status == JobStatus.COMPLETED
    assert job.failure is None
    assert job.output_path == app_config.paths.output_dir / f"processed-{job.job_id}.mp4"
    assert job.output_path.is_file()
    assert not job.work_dir.exists()
    assert job.progress_percent == 100
    assert job.duration_seconds is not None

    # Uploaded inputs are left for the caller
    assert source_video.exists() and overlay_png.exists()

    assert fake_runner.labels() == [
        "normalize:metadata", "segment:normal", "segment:slow", "concat", "overlay", "audio:strip",
    ]
    stages = [e.stage for e in events if isinstance(e, StageStarted)]
    assert stages == [
        JobStatus.NORMALIZING, JobStatus.SEGMENTING, JobStatus.CONCATENATING,
        JobStatus.OVERLAYING, JobStatus.MIXING_AUDIO,
    ]
    percents = [e.progress_percent for e in events if isinstance(e, JobProgressUpdated)]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert isinstance(events[-1], JobCompleted)


def test_overlay_failure_fails_job_and_cleans_up(orchestrator, fake_runner, events, source_video, overlay_png):
    fake_runner.fail("overlay", CommandFailed("overlay", 1, "Invalid PNG signature"))

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.status == JobStatus.FAILED
    assert job.failure.error_type == "OverlayError"
    assert job.failure.kind == FailureKind.INTERNAL
    assert job.output_path is None
    assert not job.work_dir.exists()
    assert "audio:strip" not in fake_runner.labels()
    failed = [e for e in events if isinstance(e, JobFailed)]
    assert len(failed) == 1
    assert not any(isinstance(e, JobCompleted) for e in events)


def test_tiny_source_rejected_before_any_command(orchestrator, fake_runner, fake_prober, tmp_path, overlay_png, app_config):
    corrupt = tmp_path / "corrupt.mp4"
    corrupt.write_bytes(b"\x00" * 500)

    with pytest.raises(ValidationError):
        orchestrator.process(JobRequest(source_path=corrupt, overlay_path=overlay_png))

    assert fake_runner.calls == []
    fake_prober.probe.assert_not_called()
    assert not app_config.paths.work_dir.exists() or not any(app_config.paths.work_dir.iterdir())


def test_segment_timeout_is_reported_as_timeout(orchestrator, fake_runner, source_video, overlay_png):
    fake_runner.fail("segment:slow", CommandTimeout("segment:slow", 60))

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.status == JobStatus.FAILED
    assert job.failure.kind == FailureKind.TIMEOUT
    assert job.failure.kind.http_status == 504
    assert not job.work_dir.exists()


def test_corrupt_input_is_reported_as_invalid_source(orchestrator, fake_runner, source_video, overlay_png):
    fake_runner.fail("segment:", CommandFailed("segment:normal", 1, "moov atom not found"))

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.failure.kind == FailureKind.INVALID_SOURCE
    assert job.failure.error_type == "SegmentError"


def test_normalization_failure_degrades(orchestrator, fake_runner, events, source_video, overlay_png):
    fake_runner.fail("normalize:", CommandFailed("normalize", 1, "Error"))

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.status == JobStatus.COMPLETED
    assert "normalization" in job.degraded
    assert fake_runner.labels()[:3] == ["normalize:metadata", "normalize:auto_orient", "normalize:plain"]
    # Segments are cut from the raw copy
    segment = fake_runner.command("segment:normal")
    assert segment[segment.index("-i") + 1].endswith("input.mp4")
    assert any(isinstance(e, FeatureDegraded) and e.feature == "normalization" for e in events)


def test_music_is_mixed(orchestrator, fake_runner, source_video, overlay_png, music_asset):
    request = JobRequest(source_path=source_video, overlay_path=overlay_png, style=StyleDescriptor(music="beggin"))

    job = orchestrator.process(request)

    assert job.status == JobStatus.COMPLETED
    assert fake_runner.labels()[-1] == "audio:mux"
    assert job.degraded == []


def test_missing_music_and_font_degrade(orchestrator, fake_runner, source_video, overlay_png):
    style = StyleDescriptor.model_validate({"music": "night_dancer", "text": "Hi", "textFont": "chewy"})

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png, style=style))

    assert job.status == JobStatus.COMPLETED
    assert job.font_path is None
    assert sorted(job.degraded) == ["caption font", "music"]
    assert fake_runner.labels()[-1] == "audio:strip"


def test_cleanup_is_idempotent(orchestrator, source_video, overlay_png):
    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    orchestrator.cleanup(job)
    orchestrator.cleanup(job)

    assert not job.work_dir.exists()


def test_unexpected_error_is_internal(orchestrator, source_video, overlay_png):
    orchestrator.concatenator.concatenate = MagicMock(side_effect=RuntimeError("boom"))

    job = orchestrator.process(JobRequest(source_path=source_video, overlay_path=overlay_png))

    assert job.status == JobStatus.FAILED
    assert job.failure.kind == FailureKind.INTERNAL
    assert job.failure.error_type == "RuntimeError"
    assert not job.work_dir.exists()


def test_each_job_gets_its_own_work_dir(orchestrator, source_video, overlay_png):
    request = JobRequest(source_path=source_video, overlay_path=overlay_png)
    first = orchestrator.create_job(request)
    second = orchestrator.create_job(request)

    assert first.job_id != second.job_id
    assert first.work_dir != second.work_dir
    assert first.work_dir.parent == second.work_dir.parent
