import logging
from pathlib import Path
from typing import Iterator, List, Tuple
from photobooth.config.models import EncoderConfig, EncodeProfile
from photobooth.domain.errors import CommandFailed, CommandTimeout, NormalizeError, ProbeError
from photobooth.infrastructure.ffmpeg import FFmpegRunner
from photobooth.infrastructure.ffprobe import FFprobeAdapter
from photobooth.pipeline.filters import rotation_info, scale_pad_filter, join_filters, h264_args

NORMALIZED_NAME = "normalized.mp4"


class InputNormalizer:
    """Rotates and letterboxes arbitrary input into the fixed portrait canvas.

    Three attempts, each less ambitious than the last:

    1. ``metadata``: rotation read by the prober, applied as an explicit
       transpose with the encoder's own autorotation disabled.
    2. ``auto_orient``: the encoder's built-in orientation correction.
    3. ``plain``: no orientation handling at all.

    Any attempt that fails or times out falls through to the next one.
    """

    def __init__(self, runner: FFmpegRunner, prober: FFprobeAdapter, config: EncoderConfig):
        self.runner = runner
        self.prober = prober
        self.config = config
        self.logger = logging.getLogger(__name__)

    @property
    def canvas_filter(self) -> str:
        return scale_pad_filter(self.config.canvas_width, self.config.canvas_height)

    def _encode(self, raw_path: Path, output: Path, video_filter: str, profile: EncodeProfile, autorotate: bool) -> List[str]:
        # Without autorotation the input display matrix is copied to the output
        # unless it is reset, and later readers would rotate a second time
        args = [] if autorotate else ["-noautorotate", "-display_rotation", "0"]
        args += [
            "-i", str(raw_path),
            "-map", "0:v:0",
            "-vf", video_filter,
            "-an",  # captured microphone audio never survives normalization
            "-r", str(self.config.frame_rate),
            *h264_args(self.config, profile),
            "-map_metadata", "-1",
            str(output),
        ]
        return self.runner.build(*args)

    def _attempts(self, raw_path: Path, output: Path) -> Iterator[Tuple[str, List[str]]]:
        try:
            media = self.prober.probe(raw_path)
        except ProbeError as e:
            self.logger.warning(f"NORMALIZE: probe failed for {raw_path.name}, skipping metadata rotation: {e}")
        else:
            rotation = rotation_info(media.rotation)
            self.logger.info(
                f"NORMALIZE: {raw_path.name} {media.width}x{media.height} "
                f"rotation={rotation.degrees} codec={media.codec} fps={media.fps:g}"
            )
            yield "metadata", self._encode(
                raw_path, output,
                join_filters(rotation.filter_expression, self.canvas_filter),
                self.config.normalize_primary, autorotate=False,
            )

        yield "auto_orient", self._encode(
            raw_path, output, self.canvas_filter, self.config.normalize_auto_orient, autorotate=True,
        )
        yield "plain", self._encode(
            raw_path, output, self.canvas_filter, self.config.normalize_plain, autorotate=False,
        )

    def normalize(self, raw_path: Path) -> Path:
        """Returns the normalized file; the raw input is deleted on success."""
        output = raw_path.with_name(NORMALIZED_NAME)
        failures = []

        for tier, cmd in self._attempts(raw_path, output):
            try:
                self.runner.run(cmd, label=f"normalize:{tier}")
            except (CommandFailed, CommandTimeout) as e:
                self.logger.warning(f"NORMALIZE: tier {tier} failed: {e}")
                failures.append(f"{tier}: {e}")
                output.unlink(missing_ok=True)
                continue

            if not output.is_file() or output.stat().st_size == 0:
                self.logger.warning(f"NORMALIZE: tier {tier} produced no output")
                failures.append(f"{tier}: no output")
                output.unlink(missing_ok=True)
                continue

            raw_path.unlink(missing_ok=True)
            self.logger.info(f"NORMALIZE: {raw_path.name} normalized with tier {tier}")
            return output

        raise NormalizeError(f"All normalization tiers failed for {raw_path.name}: " + "; ".join(failures))
