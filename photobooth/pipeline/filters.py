from typing import List
from photobooth.config.models import EncoderConfig, EncodeProfile
from photobooth.domain.models import RotationInfo

_ROTATION_FILTERS = {
    0: None,
    90: "transpose=1",
    180: "transpose=2,transpose=2",
    270: "transpose=2",
}


def rotation_info(degrees: int) -> RotationInfo:
    """Filter needed to display a stream tagged with `degrees` clockwise rotation upright."""
    degrees = int(round(degrees / 90.0)) * 90 % 360
    expression = _ROTATION_FILTERS[degrees]
    return RotationInfo(needs_rotation=expression is not None, degrees=degrees, filter_expression=expression)


def scale_pad_filter(width: int, height: int) -> str:
    """Letterbox into the canvas: fit inside, keep aspect ratio, pad with black."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
    )


def join_filters(*parts) -> str:
    return ",".join(p for p in parts if p)


def h264_args(config: EncoderConfig, profile: EncodeProfile) -> List[str]:
    """Mobile-compatible H.264 video encoding arguments."""
    return [
        "-c:v", "libx264",
        "-preset", profile.preset,
        "-crf", str(profile.crf),
        "-profile:v", config.h264_profile,
        "-level", config.h264_level,
        "-pix_fmt", config.pix_fmt,
        "-movflags", "+faststart",
    ]
