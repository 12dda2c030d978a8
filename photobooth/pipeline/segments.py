import logging
from pathlib import Path
from typing import List
from photobooth.config.models import EncoderConfig
from photobooth.domain.errors import CommandFailed, SegmentError
from photobooth.infrastructure.ffmpeg import FFmpegRunner
from photobooth.pipeline.filters import scale_pad_filter, join_filters, h264_args

SEGMENT_NAMES = ("seg_a.mp4", "seg_b.mp4")
# Durations are passed to the encoder with millisecond resolution
MIN_SEGMENT_SECONDS = 0.001


def _seconds(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


class SegmentBuilder:
    """Cuts the normal-speed and slow-motion segments from one input."""

    def __init__(self, runner: FFmpegRunner, config: EncoderConfig):
        self.runner = runner
        self.config = config
        self.logger = logging.getLogger(__name__)

    def _segment_command(self, source: Path, output: Path, start: float, length: float, slow: bool) -> List[str]:
        canvas = scale_pad_filter(self.config.canvas_width, self.config.canvas_height)
        speed = f"setpts={self.config.slow_motion_factor:g}*PTS" if slow else None
        seek = ["-ss", _seconds(start)] if start > 0 else []
        # Every segment gets identical codec parameters so concat can stream-copy
        return self.runner.build(
            *seek,
            "-t", _seconds(length),
            "-i", str(source),
            "-map", "0:v:0",
            "-vf", join_filters(speed, canvas),
            "-an",
            "-r", str(self.config.frame_rate),
            *h264_args(self.config, self.config.segment),
            str(output),
        )

    def build_segments(self, source: Path, normal_seconds: float, slow_seconds: float) -> List[Path]:
        """Returns [normal, slow-motion]; the consumed input is deleted afterwards."""
        if normal_seconds < MIN_SEGMENT_SECONDS or slow_seconds < MIN_SEGMENT_SECONDS:
            raise SegmentError(
                f"Segment durations must be at least {MIN_SEGMENT_SECONDS}s "
                f"(normal={normal_seconds}, slow={slow_seconds})"
            )

        seg_a = source.with_name(SEGMENT_NAMES[0])
        seg_b = source.with_name(SEGMENT_NAMES[1])
        plan = [
            ("segment:normal", seg_a, 0.0, normal_seconds, False),
            ("segment:slow", seg_b, normal_seconds, slow_seconds, True),
        ]

        for label, output, start, length, slow in plan:
            cmd = self._segment_command(source, output, start, length, slow)
            try:
                self.runner.run(cmd, label=label)
            except CommandFailed as e:
                raise SegmentError(f"Could not build {label}: {e}") from e
            if not output.is_file() or output.stat().st_size == 0:
                raise SegmentError(f"{label} produced no output")

        source.unlink(missing_ok=True)
        self.logger.info(
            f"SEGMENTS: normal={normal_seconds:g}s slow={slow_seconds:g}s "
            f"(x{self.config.slow_motion_factor:g}) built"
        )
        return [seg_a, seg_b]
