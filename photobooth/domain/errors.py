import errno
from enum import Enum
from typing import Optional

class FailureKind(str, Enum):
    """Outward classification of a failed job, one per client reaction."""
    TIMEOUT = "TIMEOUT"
    INVALID_SOURCE = "INVALID_SOURCE"
    INSUFFICIENT_RESOURCES = "INSUFFICIENT_RESOURCES"
    INTERNAL = "INTERNAL"

    @property
    def http_status(self) -> int:
        return {
            FailureKind.TIMEOUT: 504,
            FailureKind.INVALID_SOURCE: 422,
            FailureKind.INSUFFICIENT_RESOURCES: 507,
            FailureKind.INTERNAL: 500,
        }[self]

    @property
    def exit_code(self) -> int:
        return {
            FailureKind.TIMEOUT: 3,
            FailureKind.INVALID_SOURCE: 2,
            FailureKind.INSUFFICIENT_RESOURCES: 4,
            FailureKind.INTERNAL: 1,
        }[self]

    @property
    def hint(self) -> str:
        return {
            FailureKind.TIMEOUT: "Processing took too long, try a shorter clip",
            FailureKind.INVALID_SOURCE: "The recorded video is invalid or corrupt, please record again",
            FailureKind.INSUFFICIENT_RESOURCES: "The server is out of resources, try again later",
            FailureKind.INTERNAL: "Internal error while processing the video",
        }[self]


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class ValidationError(PipelineError):
    """Source file rejected before any encoder invocation."""


class ProbeError(PipelineError):
    """Media metadata could not be read at all."""


class NormalizeError(PipelineError):
    """Every normalization tier failed; the raw input is still usable."""


class SegmentError(PipelineError):
    pass


class ConcatError(PipelineError):
    pass


class OverlayError(PipelineError):
    pass


class CommandFailed(PipelineError):
    """The encoder exited with an error."""

    def __init__(self, label: str, returncode: Optional[int], diagnostic: str = ""):
        self.label = label
        self.returncode = returncode
        self.diagnostic = diagnostic
        super().__init__(f"{label} failed (exit code {returncode}): {diagnostic.strip()[-500:]}")


class CommandTimeout(PipelineError):
    """The encoder did not finish within its time bound and was killed."""

    def __init__(self, label: str, timeout_seconds: float):
        self.label = label
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{label} timed out after {timeout_seconds:g}s")


_INVALID_SOURCE_MARKERS = (
    "Invalid data found when processing input",
    "moov atom not found",
    "does not contain any stream",
    "Invalid NAL unit size",
)

_RESOURCE_MARKERS = (
    "No space left on device",
    "Cannot allocate memory",
    "Too many open files",
)

_RESOURCE_ERRNOS = {errno.ENOSPC, errno.ENOMEM, errno.EMFILE, errno.ENFILE}


def _iter_chain(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def classify_failure(exc: BaseException) -> FailureKind:
    """Maps an exception (and its causes) to the outward failure kind."""
    for item in _iter_chain(exc):
        if isinstance(item, CommandTimeout):
            return FailureKind.TIMEOUT
        if isinstance(item, OSError) and item.errno in _RESOURCE_ERRNOS:
            return FailureKind.INSUFFICIENT_RESOURCES
        if isinstance(item, MemoryError):
            return FailureKind.INSUFFICIENT_RESOURCES
        if isinstance(item, CommandFailed):
            if any(marker in item.diagnostic for marker in _RESOURCE_MARKERS):
                return FailureKind.INSUFFICIENT_RESOURCES
            if any(marker in item.diagnostic for marker in _INVALID_SOURCE_MARKERS):
                return FailureKind.INVALID_SOURCE
        if isinstance(item, (ValidationError, ProbeError)):
            return FailureKind.INVALID_SOURCE
    return FailureKind.INTERNAL
