from pathlib import Path
from photobooth.config.models import IntakeConfig
from photobooth.domain.errors import ValidationError
from photobooth.domain.models import JobRequest
from photobooth.pipeline.segments import MIN_SEGMENT_SECONDS


def validate_request(request: JobRequest, intake: IntakeConfig):
    """Rejects unusable input before any encoder is started."""
    source: Path = request.source_path
    if not source.exists():
        raise ValidationError(f"Source video not found: {source}")
    if not source.is_file():
        raise ValidationError(f"Source video is not a regular file: {source}")

    size = source.stat().st_size
    if size == 0:
        raise ValidationError(f"Source video is empty: {source.name}")
    if size < intake.min_source_bytes:
        raise ValidationError(
            f"Source video too small ({size} bytes, minimum {intake.min_source_bytes}): {source.name}"
        )
    if size > intake.max_source_bytes:
        raise ValidationError(
            f"Source video too large ({size} bytes, maximum {intake.max_source_bytes}): {source.name}"
        )

    overlay: Path = request.overlay_path
    if not overlay.is_file():
        raise ValidationError(f"Overlay image not found: {overlay}")
    if overlay.stat().st_size == 0:
        raise ValidationError(f"Overlay image is empty: {overlay.name}")

    if request.normal_seconds < MIN_SEGMENT_SECONDS or request.slow_seconds < MIN_SEGMENT_SECONDS:
        raise ValidationError(f"Segment durations must be at least {MIN_SEGMENT_SECONDS}s")
