from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

class EncodeProfile(BaseModel):
    """x264 speed/quality pair used by one encoding step."""
    preset: str = "ultrafast"
    crf: int = Field(default=30, ge=0, le=51)

    @field_validator('preset')
    @classmethod
    def validate_preset(cls, v: str) -> str:
        allowed = {"ultrafast", "superfast", "veryfast", "faster", "fast", "medium", "slow", "slower", "veryslow"}
        if v not in allowed:
            raise ValueError(f"Invalid x264 preset {v}. Must be one of {sorted(allowed)}.")
        return v

class EncoderConfig(BaseModel):
    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    canvas_width: int = Field(default=480, gt=0)
    canvas_height: int = Field(default=854, gt=0)
    frame_rate: int = Field(default=24, gt=0, le=60)
    # Normalization tiers, each one more conservative than the last
    normalize_primary: EncodeProfile = Field(default_factory=lambda: EncodeProfile(preset="ultrafast", crf=23))
    normalize_auto_orient: EncodeProfile = Field(default_factory=lambda: EncodeProfile(preset="veryfast", crf=23))
    normalize_plain: EncodeProfile = Field(default_factory=lambda: EncodeProfile(preset="medium", crf=23))
    segment: EncodeProfile = Field(default_factory=lambda: EncodeProfile(preset="ultrafast", crf=30))
    overlay: EncodeProfile = Field(default_factory=lambda: EncodeProfile(preset="ultrafast", crf=30))
    h264_profile: str = "baseline"
    h264_level: str = "3.0"
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    slow_motion_factor: float = Field(default=2.0, gt=1.0)
    command_timeout_seconds: float = Field(default=120.0, gt=0)
    kill_grace_seconds: float = Field(default=2.0, ge=0)
    probe_timeout_seconds: float = Field(default=15.0, gt=0)
    diagnostic_limit: int = Field(default=4096, ge=256)

    @field_validator('canvas_width', 'canvas_height')
    @classmethod
    def validate_even(cls, v: int) -> int:
        if v % 2:
            raise ValueError(f"Canvas dimension {v} must be even for yuv420p output.")
        return v

class PathsConfig(BaseModel):
    assets_dir: Path = Path("assets")
    music_subdir: str = "music"
    fonts_subdir: str = "fonts"
    work_dir: Path = Path("temp")
    output_dir: Path = Path("processed")
    upload_dir: Path = Path("uploads")
    log_dir: Path = Path("logs")

    @property
    def music_dir(self) -> Path:
        return self.assets_dir / self.music_subdir

    @property
    def fonts_dir(self) -> Path:
        return self.assets_dir / self.fonts_subdir

class IntakeConfig(BaseModel):
    min_source_bytes: int = Field(default=1024, ge=0)
    max_source_bytes: int = Field(default=100 * 1024 * 1024, gt=0)
    default_normal_seconds: float = Field(default=5.0, gt=0)
    default_slow_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode='after')
    def validate_limits(self) -> "IntakeConfig":
        if self.min_source_bytes >= self.max_source_bytes:
            raise ValueError("min_source_bytes must be smaller than max_source_bytes")
        return self

class HousekeepingConfig(BaseModel):
    retention_seconds: float = Field(default=3600.0, gt=0)
    interval_seconds: float = Field(default=3600.0, gt=0)

class CatalogEntry(BaseModel, frozen=True):
    id: str
    name: str
    file: Optional[str] = None

def _default_music() -> List[CatalogEntry]:
    return [
        CatalogEntry(id="none", name="No music"),
        CatalogEntry(id="beggin", name="Beggin - Maneskin", file="beggin.mp3"),
        CatalogEntry(id="master_puppets", name="Master of Puppets - Metallica", file="master_puppets.mp3"),
        CatalogEntry(id="night_dancer", name="Night Dancer - Imase", file="night_dancer.mp3"),
    ]

def _default_fonts() -> List[CatalogEntry]:
    return [
        CatalogEntry(id="montserrat", name="Montserrat", file="Montserrat-Regular.ttf"),
        CatalogEntry(id="playfair", name="Playfair Display", file="PlayfairDisplay-Regular.ttf"),
        CatalogEntry(id="chewy", name="Chewy", file="Chewy-Regular.ttf"),
    ]

class CatalogConfig(BaseModel):
    music: List[CatalogEntry] = Field(default_factory=_default_music)
    fonts: List[CatalogEntry] = Field(default_factory=_default_fonts)
    frames: List[CatalogEntry] = Field(default_factory=lambda: [
        CatalogEntry(id="none", name="No frame"),
        CatalogEntry(id="custom", name="Custom"),
    ])
    colors: List[str] = Field(default_factory=lambda: [
        "#8B5CF6", "#EC4899", "#EF4444", "#F97316", "#EAB308",
        "#22C55E", "#06B6D4", "#3B82F6", "#6366F1", "#FFFFFF", "#000000",
    ])

    @field_validator('music', 'fonts', 'frames')
    @classmethod
    def validate_unique_ids(cls, v: List[CatalogEntry]) -> List[CatalogEntry]:
        seen = set()
        for entry in v:
            if entry.id in seen:
                raise ValueError(f"Duplicate catalog id {entry.id}")
            seen.add(entry.id)
        return v

class AppConfig(BaseModel):
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    housekeeping: HousekeepingConfig = Field(default_factory=HousekeepingConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    max_concurrent_jobs: int = Field(default=2, gt=0)
    debug: bool = False
