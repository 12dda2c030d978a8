from typing import List, Optional
from pydantic import BaseModel
from .models import ProcessingJob, JobStatus

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class JobEvent(Event):
    job: ProcessingJob

class JobStarted(JobEvent):
    pass

class StageStarted(JobEvent):
    stage: JobStatus

class JobProgressUpdated(JobEvent):
    step: str
    progress_percent: float

class FeatureDegraded(JobEvent):
    feature: str
    reason: str

class JobCompleted(JobEvent):
    pass

class JobFailed(JobEvent):
    error_message: str

class CommandStarted(Event):
    label: str
    command: List[str]
    pid: Optional[int] = None

class CommandProgress(Event):
    label: str
    position_seconds: float
