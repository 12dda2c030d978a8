import json
import logging
import math
import re
import subprocess
from pathlib import Path
from typing import Dict, Any, Optional, List
from photobooth.config.models import EncoderConfig
from photobooth.domain.errors import ProbeError
from photobooth.domain.models import MediaInfo

DEFAULT_FPS = 24.0
MAX_FPS = 60.0

_MATRIX_NUMBER = re.compile(r"-?\d+")


def normalize_degrees(value: float) -> int:
    """Maps any angle into {0, 90, 180, 270} (nearest quarter turn)."""
    return int(round(value / 90.0)) * 90 % 360


def _to_float(value: Any) -> Optional[float]:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def parse_frame_rate(value: Any) -> Optional[float]:
    """Parses '30000/1001' or '30' style rates; None when unusable."""
    if value is None:
        return None
    text = str(value)
    if "/" in text:
        num, _, den = text.partition("/")
        num_f, den_f = _to_float(num), _to_float(den)
        if num_f is None or not den_f:
            return None
        return num_f / den_f
    return _to_float(text)


def parse_display_matrix(text: str) -> Optional[float]:
    """Clockwise display rotation from ffprobe's textual displaymatrix dump.

    The dump lists nine coefficients, optionally prefixed by row offsets
    ('00000000:'); only the first two (a, b) are needed.
    """
    coefficients: List[int] = []
    for row in text.strip().splitlines():
        if ":" in row:
            row = row.split(":", 1)[1]
        coefficients.extend(int(n) for n in _MATRIX_NUMBER.findall(row))
    if len(coefficients) < 2:
        return None
    a, b = coefficients[0], coefficients[1]
    if a == 0 and b == 0:
        return None
    return math.degrees(math.atan2(b, a))


class FFprobeAdapter:
    """Wrapper around ffprobe to extract stream information."""

    def __init__(self, config: Optional[EncoderConfig] = None):
        self.config = config or EncoderConfig()
        self.logger = logging.getLogger(__name__)

    def _run(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            self.config.ffprobe_binary,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, errors="replace",
                timeout=self.config.probe_timeout_seconds
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffprobe timed out after {self.config.probe_timeout_seconds:g}s for {file_path}") from e
        except OSError as e:
            raise ProbeError(f"ffprobe could not be started: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {file_path}: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe returned malformed output for {file_path}") from e
        if not isinstance(data, dict):
            raise ProbeError(f"ffprobe returned malformed output for {file_path}")
        return data

    def probe(self, file_path: Path) -> MediaInfo:
        """Probes a media file; individual fields fall back to defaults."""
        if not file_path.is_file():
            raise ProbeError(f"File not found: {file_path}")

        data = self._run(file_path)
        streams = [s for s in data.get("streams") or [] if isinstance(s, dict)]
        fmt = data.get("format") if isinstance(data.get("format"), dict) else {}

        video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
        if not video_stream:
            raise ProbeError(f"No video stream found in {file_path}")

        info = MediaInfo(
            width=self._dimension(video_stream.get("width")),
            height=self._dimension(video_stream.get("height")),
            duration=self._duration(fmt, video_stream),
            fps=self._fps(video_stream),
            codec=str(video_stream.get("codec_name") or "unknown"),
            rotation=self._rotation(video_stream, fmt),
            has_audio=any(s.get("codec_type") == "audio" for s in streams),
        )
        self.logger.debug(f"PROBE: {file_path.name} {info.model_dump()}")
        return info

    @staticmethod
    def _dimension(value: Any) -> int:
        parsed = _to_float(value)
        if parsed is None or parsed < 0:
            return 0
        return int(parsed)

    @staticmethod
    def _duration(fmt: Dict[str, Any], stream: Dict[str, Any]) -> float:
        for candidate in (fmt.get("duration"), stream.get("duration")):
            parsed = _to_float(candidate)
            if parsed is not None and parsed > 0:
                return parsed
        return 0.0

    @staticmethod
    def _fps(stream: Dict[str, Any]) -> float:
        # Prefer avg_frame_rate; r_frame_rate is often the timebase
        for key in ("avg_frame_rate", "r_frame_rate"):
            candidate = parse_frame_rate(stream.get(key))
            if candidate is not None and 1.0 < candidate <= MAX_FPS:
                return candidate
        return DEFAULT_FPS

    def _rotation(self, stream: Dict[str, Any], fmt: Dict[str, Any]) -> int:
        """Clockwise rotation: stream tag, then display matrix, then container tag."""
        for source, value in (
            ("stream tag", self._tag_rotation(stream)),
            ("display matrix", self._side_data_rotation(stream)),
            ("container tag", self._tag_rotation(fmt)),
        ):
            if value is None:
                continue
            degrees = normalize_degrees(value)
            if degrees:
                self.logger.debug(f"PROBE: rotation {degrees} from {source}")
                return degrees
        return 0

    @staticmethod
    def _tag_rotation(section: Dict[str, Any]) -> Optional[float]:
        tags = section.get("tags")
        if not isinstance(tags, dict):
            return None
        return _to_float(tags.get("rotate"))

    @staticmethod
    def _side_data_rotation(stream: Dict[str, Any]) -> Optional[float]:
        side_data = stream.get("side_data_list")
        if not isinstance(side_data, list):
            return None
        for entry in side_data:
            if not isinstance(entry, dict):
                continue
            # ffprobe reports the counter-clockwise angle
            rotation = _to_float(entry.get("rotation"))
            if rotation:
                return -rotation
            matrix = entry.get("displaymatrix")
            if isinstance(matrix, str):
                try:
                    angle = parse_display_matrix(matrix)
                except ValueError:
                    angle = None
                if angle:
                    return angle
        return None
