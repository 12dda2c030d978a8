import shutil
import pytest
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock
from photobooth.config.models import AppConfig, EncoderConfig, PathsConfig
from photobooth.domain.models import CommandExecution, CommandOutcome, MediaInfo
from photobooth.infrastructure.event_bus import EventBus
from photobooth.infrastructure.ffmpeg import FFmpegRunner

HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


class FakeRunner(FFmpegRunner):
    """Records commands and creates their output file instead of running ffmpeg."""

    def __init__(self, event_bus: Optional[EventBus] = None, config: Optional[EncoderConfig] = None):
        super().__init__(event_bus or EventBus(), config or EncoderConfig())
        self.calls: List[Tuple[str, List[str]]] = []
        self.failures: Dict[str, Exception] = {}

    def fail(self, label_prefix: str, error: Exception):
        self.failures[label_prefix] = error

    def labels(self) -> List[str]:
        return [label for label, _ in self.calls]

    def command(self, label: str) -> List[str]:
        return next(cmd for l, cmd in self.calls if l == label)

    def run(self, command, label, timeout=None):
        self.calls.append((label, list(command)))
        for prefix, error in self.failures.items():
            if label.startswith(prefix):
                raise error
        Path(command[-1]).write_bytes(b"\x00" * 2048)
        execution = CommandExecution(label=label, command=list(command), timeout_seconds=timeout or 1.0)
        execution.resolve(CommandOutcome.SUCCEEDED)
        return execution


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def fake_runner(event_bus):
    return FakeRunner(event_bus)


@pytest.fixture
def fake_prober():
    prober = MagicMock()
    prober.probe.return_value = MediaInfo(width=1920, height=1080, duration=10.0, fps=30.0, codec="h264", rotation=90)
    return prober


@pytest.fixture
def app_config(tmp_path):
    paths = PathsConfig(
        assets_dir=tmp_path / "assets",
        work_dir=tmp_path / "temp",
        output_dir=tmp_path / "processed",
        upload_dir=tmp_path / "uploads",
        log_dir=tmp_path / "logs",
    )
    return AppConfig(paths=paths, encoder=EncoderConfig(command_timeout_seconds=60))


@pytest.fixture
def source_video(tmp_path):
    path = tmp_path / "uploads" / "clip.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 8192)
    return path


@pytest.fixture
def overlay_png(tmp_path):
    path = tmp_path / "uploads" / "overlay.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 256)
    return path


@pytest.fixture
def music_asset(app_config):
    music_dir = app_config.paths.music_dir
    music_dir.mkdir(parents=True, exist_ok=True)
    path = music_dir / "beggin.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 512)
    return path
