import subprocess
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, FrozenSet
from pydantic import BaseModel, ConfigDict, Field, field_validator
from photobooth.domain.errors import FailureKind

class JobStatus(str, Enum):
    CREATED = "CREATED"
    NORMALIZING = "NORMALIZING"
    SEGMENTING = "SEGMENTING"
    CONCATENATING = "CONCATENATING"
    OVERLAYING = "OVERLAYING"
    MIXING_AUDIO = "MIXING_AUDIO"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

_STAGE_ORDER = [
    JobStatus.CREATED,
    JobStatus.NORMALIZING,
    JobStatus.SEGMENTING,
    JobStatus.CONCATENATING,
    JobStatus.OVERLAYING,
    JobStatus.MIXING_AUDIO,
    JobStatus.COMPLETED,
]

# Each stage may only advance to its successor or fail
_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    current: frozenset({following, JobStatus.FAILED})
    for current, following in zip(_STAGE_ORDER, _STAGE_ORDER[1:])
}
_TRANSITIONS[JobStatus.COMPLETED] = frozenset()
_TRANSITIONS[JobStatus.FAILED] = frozenset()


class StyleDescriptor(BaseModel):
    """Visual/audio style chosen by the user; frozen once a job starts."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    music: str = "none"
    frame: Optional[str] = None
    frame_color: Optional[str] = Field(default=None, alias="frameColor")
    text: Optional[str] = None
    text_font: Optional[str] = Field(default=None, alias="textFont")
    text_color: Optional[str] = Field(default=None, alias="textColor")

    @field_validator('music', mode='before')
    @classmethod
    def default_music(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "none"
        return v

    @property
    def wants_music(self) -> bool:
        return self.music != "none"


class RotationInfo(BaseModel, frozen=True):
    needs_rotation: bool
    degrees: int
    filter_expression: Optional[str] = None

    @field_validator('degrees')
    @classmethod
    def validate_degrees(cls, v: int) -> int:
        if v not in {0, 90, 180, 270}:
            raise ValueError(f"Invalid rotation angle {v}. Must be 0, 90, 180, or 270.")
        return v


class MediaInfo(BaseModel):
    width: int = 0
    height: int = 0
    duration: float = 0.0
    fps: float = 24.0
    codec: str = "unknown"
    rotation: int = 0
    has_audio: bool = False

    @property
    def display_width(self) -> int:
        return self.height if self.rotation in (90, 270) else self.width

    @property
    def display_height(self) -> int:
        return self.width if self.rotation in (90, 270) else self.height

    @property
    def is_portrait(self) -> bool:
        return self.display_height > self.display_width


class CommandOutcome(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


class CommandExecution(BaseModel):
    """A single encoder invocation; owns exactly one OS process."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    label: str
    command: List[str]
    timeout_seconds: float
    process: Optional[subprocess.Popen] = Field(default=None, exclude=True, repr=False)
    outcome: Optional[CommandOutcome] = None
    returncode: Optional[int] = None
    elapsed_seconds: float = 0.0
    diagnostic: str = ""

    def resolve(self, outcome: CommandOutcome) -> bool:
        """Records the outcome; returns False if it was already resolved."""
        if self.outcome is not None:
            return False
        self.outcome = outcome
        return True


class JobFailure(BaseModel):
    kind: FailureKind
    error_type: str
    message: str


class JobRequest(BaseModel):
    source_path: Path
    overlay_path: Path
    style: StyleDescriptor = Field(default_factory=StyleDescriptor)
    normal_seconds: float = Field(default=5.0, gt=0)
    slow_seconds: float = Field(default=5.0, gt=0)


class ProcessingJob(BaseModel):
    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_path: Path
    overlay_path: Path
    style: StyleDescriptor
    normal_seconds: float = Field(gt=0)
    slow_seconds: float = Field(gt=0)
    work_dir: Path
    output_dir: Path
    status: JobStatus = JobStatus.CREATED
    output_path: Optional[Path] = None
    font_path: Optional[Path] = None
    failure: Optional[JobFailure] = None
    progress_percent: float = 0.0
    degraded: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    duration_seconds: Optional[float] = None

    def expected_duration(self, slow_motion_factor: float = 2.0) -> float:
        return self.normal_seconds + slow_motion_factor * self.slow_seconds

    def advance(self, status: JobStatus):
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Illegal job transition {self.status.value} -> {status.value}")
        self.status = status
