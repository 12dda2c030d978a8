import concurrent.futures
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple
from photobooth.config.models import AppConfig
from photobooth.domain.catalog import MusicCatalog, FontCatalog
from photobooth.domain.errors import NormalizeError, PipelineError, ValidationError, classify_failure
from photobooth.domain.events import (
    JobStarted, StageStarted, JobProgressUpdated, FeatureDegraded, JobCompleted, JobFailed
)
from photobooth.domain.models import JobFailure, JobRequest, JobStatus, ProcessingJob
from photobooth.infrastructure.event_bus import EventBus
from photobooth.infrastructure.ffmpeg import FFmpegRunner
from photobooth.infrastructure.ffprobe import FFprobeAdapter
from photobooth.infrastructure.housekeeping import HousekeepingService
from photobooth.pipeline.audio import AudioMixer
from photobooth.pipeline.concat import Concatenator
from photobooth.pipeline.normalizer import InputNormalizer
from photobooth.pipeline.overlay import OverlayCompositor
from photobooth.pipeline.segments import SegmentBuilder
from photobooth.pipeline.validation import validate_request

# (status, progress step, percent, stage method name)
Stage = Tuple[JobStatus, str, float, str]


class Orchestrator:
    """Runs processing jobs: one sequential stage list per job, many jobs at once."""

    STAGES: List[Stage] = [
        (JobStatus.NORMALIZING, "Normalizing input", 20, "_normalize"),
        (JobStatus.SEGMENTING, "Speed effects", 35, "_segment"),
        (JobStatus.CONCATENATING, "Joining segments", 50, "_concatenate"),
        (JobStatus.OVERLAYING, "Applying overlay", 70, "_overlay"),
        (JobStatus.MIXING_AUDIO, "Applying music", 85, "_mix_audio"),
    ]

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_runner: FFmpegRunner,
        housekeeping: Optional[HousekeepingService] = None
    ):
        self.config = config
        self.event_bus = event_bus
        self.housekeeping = housekeeping or HousekeepingService()
        self.logger = logging.getLogger(__name__)

        paths = config.paths
        self.music_catalog = MusicCatalog(config.catalog.music, paths.music_dir)
        self.font_catalog = FontCatalog(config.catalog.fonts, paths.fonts_dir)

        encoder = config.encoder
        self.normalizer = InputNormalizer(ffmpeg_runner, ffprobe_adapter, encoder)
        self.segment_builder = SegmentBuilder(ffmpeg_runner, encoder)
        self.concatenator = Concatenator(ffmpeg_runner)
        self.compositor = OverlayCompositor(ffmpeg_runner, encoder)
        self.mixer = AudioMixer(ffmpeg_runner, self.music_catalog, encoder)

    def create_job(self, request: JobRequest) -> ProcessingJob:
        job_id = uuid.uuid4().hex
        return ProcessingJob(
            job_id=job_id,
            source_path=request.source_path,
            overlay_path=request.overlay_path,
            style=request.style,
            normal_seconds=request.normal_seconds,
            slow_seconds=request.slow_seconds,
            work_dir=self.config.paths.work_dir / job_id,
            output_dir=self.config.paths.output_dir,
        )

    def process(self, request: JobRequest) -> ProcessingJob:
        """Processes one request. Raises ValidationError before any work starts."""
        validate_request(request, self.config.intake)

        job = self.create_job(request)
        self.logger.info(
            f"JOB_START: {job.job_id} source={job.source_path.name} "
            f"normal={job.normal_seconds:g}s slow={job.slow_seconds:g}s music={job.style.music}"
        )
        self.event_bus.publish(JobStarted(job=job))
        start_time = time.monotonic()

        try:
            self._run(job)
        except Exception as e:
            self._fail(job, e)
        finally:
            job.duration_seconds = time.monotonic() - start_time
            self.cleanup(job)

        return job

    def cleanup(self, job: ProcessingJob):
        """Removes the job's working directory; safe to call more than once."""
        self.housekeeping.cleanup_job_dir(job.work_dir)

    def _run(self, job: ProcessingJob):
        job.work_dir.mkdir(parents=True, exist_ok=False)
        self._progress(job, "Preparing files", 10)

        raw = job.work_dir / f"input{job.source_path.suffix or '.mp4'}"
        shutil.copyfile(job.source_path, raw)
        overlay = job.work_dir / f"overlay{job.overlay_path.suffix or '.png'}"
        shutil.copyfile(job.overlay_path, overlay)
        self._resolve_style(job)

        current: Any = raw
        for status, step, percent, method in self.STAGES:
            job.advance(status)
            self.logger.info(f"JOB_STAGE: {job.job_id} {status.value}")
            self.event_bus.publish(StageStarted(job=job, stage=status))
            self._progress(job, step, percent)
            current = getattr(self, method)(job, current, overlay)

        self._progress(job, "Finalizing", 95)
        job.output_dir.mkdir(parents=True, exist_ok=True)
        final = job.output_dir / f"processed-{job.job_id}.mp4"
        shutil.move(str(current), str(final))
        job.output_path = final
        job.advance(JobStatus.COMPLETED)
        self._progress(job, "Completed", 100)

        self.logger.info(f"JOB_END: {job.job_id} status=completed output={final}")
        self.event_bus.publish(JobCompleted(job=job))

    def _resolve_style(self, job: ProcessingJob):
        style = job.style
        if style.text and style.text_font:
            job.font_path = self.font_catalog.resolve(style.text_font)
            if job.font_path is None:
                self._degrade(job, "caption font", f"font '{style.text_font}' unavailable")
        if style.wants_music and self.music_catalog.resolve(style.music) is None:
            self.logger.info(f"JOB_STYLE: {job.job_id} music '{style.music}' will be skipped")

    def _normalize(self, job: ProcessingJob, raw: Path, overlay: Path) -> Path:
        try:
            return self.normalizer.normalize(raw)
        except NormalizeError as e:
            self.logger.warning(f"JOB_NORMALIZE: {job.job_id} continuing with raw input: {e}")
            self._degrade(job, "normalization", str(e))
            return raw

    def _segment(self, job: ProcessingJob, source: Path, overlay: Path) -> List[Path]:
        return self.segment_builder.build_segments(source, job.normal_seconds, job.slow_seconds)

    def _concatenate(self, job: ProcessingJob, segments: List[Path], overlay: Path) -> Path:
        return self.concatenator.concatenate(segments)

    def _overlay(self, job: ProcessingJob, video: Path, overlay: Path) -> Path:
        styled = self.compositor.apply_overlay(video, overlay)
        overlay.unlink(missing_ok=True)
        return styled

    def _mix_audio(self, job: ProcessingJob, video: Path, overlay: Path) -> Path:
        return self.mixer.apply_audio(video, job.style, on_degraded=lambda reason: self._degrade(job, "music", reason))

    def _progress(self, job: ProcessingJob, step: str, percent: float):
        job.progress_percent = percent
        self.event_bus.publish(JobProgressUpdated(job=job, step=step, progress_percent=percent))

    def _degrade(self, job: ProcessingJob, feature: str, reason: str):
        job.degraded.append(feature)
        self.event_bus.publish(FeatureDegraded(job=job, feature=feature, reason=reason))

    def _fail(self, job: ProcessingJob, error: Exception):
        kind = classify_failure(error)
        job.failure = JobFailure(kind=kind, error_type=type(error).__name__, message=str(error))
        if job.status.is_terminal:
            self.logger.error(f"JOB_ERROR: {job.job_id} error after {job.status.value}: {error}")
            return
        stage = job.status.value
        job.advance(JobStatus.FAILED)
        if isinstance(error, PipelineError):
            self.logger.error(f"JOB_END: {job.job_id} status=failed stage={stage} kind={kind.value}: {error}")
        else:
            self.logger.exception(f"JOB_END: {job.job_id} status=failed stage={stage} kind={kind.value}")
        self.event_bus.publish(JobFailed(job=job, error_message=str(error)))

    def _reject(self, request: JobRequest, error: ValidationError) -> ProcessingJob:
        job = self.create_job(request)
        job.failure = JobFailure(kind=classify_failure(error), error_type=type(error).__name__, message=str(error))
        job.advance(JobStatus.FAILED)
        self.logger.warning(f"JOB_REJECTED: {request.source_path.name}: {error}")
        self.event_bus.publish(JobFailed(job=job, error_message=str(error)))
        return job

    def _process_or_reject(self, request: JobRequest) -> ProcessingJob:
        try:
            return self.process(request)
        except ValidationError as e:
            return self._reject(request, e)

    def process_many(self, requests: List[JobRequest],
                     on_done: Optional[Callable[[ProcessingJob], None]] = None) -> List[ProcessingJob]:
        """Runs independent jobs concurrently; results keep the request order."""
        results: List[Optional[ProcessingJob]] = [None] * len(requests)
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.max_concurrent_jobs) as executor:
            futures = {
                executor.submit(self._process_or_reject, request): index
                for index, request in enumerate(requests)
            }
            for future in concurrent.futures.as_completed(futures):
                job = future.result()
                results[futures[future]] = job
                if on_done:
                    on_done(job)
        return results
