import logging
from pathlib import Path
from typing import Callable, Optional
from photobooth.config.models import EncoderConfig
from photobooth.domain.catalog import MusicCatalog
from photobooth.domain.errors import CommandFailed, CommandTimeout
from photobooth.domain.models import StyleDescriptor
from photobooth.infrastructure.ffmpeg import FFmpegRunner

OUTPUT_NAME = "output.mp4"


class AudioMixer:
    """Attaches the selected music track, or strips audio entirely.

    Never fails the job: every problem degrades to a silent video.
    """

    def __init__(self, runner: FFmpegRunner, catalog: MusicCatalog, config: EncoderConfig):
        self.runner = runner
        self.catalog = catalog
        self.config = config
        self.logger = logging.getLogger(__name__)

    def _silent_command(self, video_path: Path, output: Path):
        return self.runner.build(
            "-i", str(video_path),
            "-map", "0:v:0",
            "-c:v", "copy",
            "-an",
            "-movflags", "+faststart",
            str(output),
        )

    def _mux_command(self, video_path: Path, music_path: Path, output: Path):
        return self.runner.build(
            "-i", str(video_path),
            "-i", str(music_path),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", self.config.audio_codec,
            "-b:a", self.config.audio_bitrate,
            "-shortest",
            "-avoid_negative_ts", "make_zero",
            "-movflags", "+faststart",
            str(output),
        )

    def _silent(self, video_path: Path, output: Path) -> Path:
        try:
            self.runner.run(self._silent_command(video_path, output), label="audio:strip")
        except (CommandFailed, CommandTimeout) as e:
            # Upstream stages already drop audio, so the input is silent
            self.logger.error(f"AUDIO: silent copy failed, keeping {video_path.name}: {e}")
            output.unlink(missing_ok=True)
            return video_path
        video_path.unlink(missing_ok=True)
        return output

    def apply_audio(self, video_path: Path, style: StyleDescriptor,
                    on_degraded: Optional[Callable[[str], None]] = None) -> Path:
        output = video_path.with_name(OUTPUT_NAME)

        if not style.wants_music:
            self.logger.info("AUDIO: no music selected, stripping audio")
            return self._silent(video_path, output)

        music_path = self.catalog.resolve(style.music)
        if music_path is None:
            self.logger.warning(f"AUDIO: music '{style.music}' unavailable, continuing without audio")
            if on_degraded:
                on_degraded(f"music '{style.music}' unavailable")
            return self._silent(video_path, output)

        try:
            self.runner.run(self._mux_command(video_path, music_path, output), label="audio:mux")
        except (CommandFailed, CommandTimeout) as e:
            self.logger.warning(f"AUDIO: mixing {music_path.name} failed, continuing without audio: {e}")
            output.unlink(missing_ok=True)
            if on_degraded:
                on_degraded(f"music '{style.music}' could not be mixed")
            return self._silent(video_path, output)

        video_path.unlink(missing_ok=True)
        self.logger.info(f"AUDIO: {music_path.name} mixed")
        return output
