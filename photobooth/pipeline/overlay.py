import logging
from pathlib import Path
from photobooth.config.models import EncoderConfig
from photobooth.domain.errors import CommandFailed, OverlayError
from photobooth.infrastructure.ffmpeg import FFmpegRunner
from photobooth.pipeline.filters import h264_args

STYLED_NAME = "styled.mp4"


class OverlayCompositor:
    """Blends the pre-rendered transparent overlay over every frame."""

    def __init__(self, runner: FFmpegRunner, config: EncoderConfig):
        self.runner = runner
        self.config = config
        self.logger = logging.getLogger(__name__)

    def apply_overlay(self, video_path: Path, overlay_image_path: Path) -> Path:
        if not overlay_image_path.is_file() or overlay_image_path.stat().st_size == 0:
            raise OverlayError(f"Overlay image missing or empty: {overlay_image_path}")

        output = video_path.with_name(STYLED_NAME)
        cmd = self.runner.build(
            "-i", str(video_path),
            "-i", str(overlay_image_path),
            "-filter_complex", "[0:v][1:v]overlay=0:0:format=auto[out]",
            "-map", "[out]",
            "-an",
            "-r", str(self.config.frame_rate),
            *h264_args(self.config, self.config.overlay),
            str(output),
        )
        try:
            self.runner.run(cmd, label="overlay")
        except CommandFailed as e:
            output.unlink(missing_ok=True)
            raise OverlayError(f"Could not apply overlay {overlay_image_path.name}: {e}") from e
        if not output.is_file() or output.stat().st_size == 0:
            raise OverlayError("Overlay step produced no output")

        video_path.unlink(missing_ok=True)
        self.logger.info(f"OVERLAY: {overlay_image_path.name} applied")
        return output
