import logging
from pathlib import Path
from typing import List
from photobooth.domain.errors import CommandFailed, ConcatError
from photobooth.infrastructure.ffmpeg import FFmpegRunner

MANIFEST_NAME = "concat_list.txt"
CONCAT_NAME = "concatenated.mp4"


def escape_concat_path(name: str) -> str:
    """Quotes a path for the concat demuxer manifest."""
    return "'" + name.replace("'", "'\\''") + "'"


class Concatenator:
    """Joins segments with the concat demuxer, without re-encoding."""

    def __init__(self, runner: FFmpegRunner):
        self.runner = runner
        self.logger = logging.getLogger(__name__)

    def write_manifest(self, segments: List[Path]) -> Path:
        manifest = segments[0].with_name(MANIFEST_NAME)
        lines = [f"file {escape_concat_path(s.name)}" for s in segments]
        manifest.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return manifest

    def concatenate(self, segments: List[Path]) -> Path:
        if not segments:
            raise ConcatError("Nothing to concatenate")
        missing = [s.name for s in segments if not s.is_file()]
        if missing:
            raise ConcatError(f"Missing segments: {', '.join(missing)}")

        output = segments[0].with_name(CONCAT_NAME)
        manifest = self.write_manifest(segments)
        cmd = self.runner.build(
            "-f", "concat",
            "-safe", "0",
            "-i", str(manifest),
            "-c", "copy",
            "-an",
            "-movflags", "+faststart",
            str(output),
        )
        try:
            self.runner.run(cmd, label="concat")
        except CommandFailed as e:
            raise ConcatError(f"Could not concatenate segments: {e}") from e
        if not output.is_file() or output.stat().st_size == 0:
            raise ConcatError("Concatenation produced no output")

        for segment in segments:
            segment.unlink(missing_ok=True)
        manifest.unlink(missing_ok=True)
        self.logger.info(f"CONCAT: {len(segments)} segments -> {output.name}")
        return output
