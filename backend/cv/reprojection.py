"""Map boxes from the working (detector) resolution onto the display surface."""
from __future__ import annotations

from typing import Iterable, List, Tuple

from common.types import Box, Detection
from cv.exceptions import InvalidDimensionError

Size = Tuple[int, int]


def _scale_factors(working_size: Size, display_size: Size) -> tuple[float, float]:
    working_w, working_h = working_size
    display_w, display_h = display_size
    if working_w <= 0 or working_h <= 0:
        raise InvalidDimensionError(f"Invalid working size {working_w}x{working_h}")
    if display_w <= 0 or display_h <= 0:
        raise InvalidDimensionError(f"Invalid display size {display_w}x{display_h}")
    return display_w / working_w, display_h / working_h


def reproject(box: Box, working_size: Size, display_size: Size) -> Box:
    """Scale each axis independently; aspect ratio follows the two sizes."""
    scale_x, scale_y = _scale_factors(working_size, display_size)
    return Box(
        x=box.x * scale_x,
        y=box.y * scale_y,
        width=box.width * scale_x,
        height=box.height * scale_y,
    )


def reproject_detection(detection: Detection, working_size: Size, display_size: Size) -> Detection:
    return detection.model_copy(update={"box": reproject(detection.box, working_size, display_size)})


def reproject_all(
    detections: Iterable[Detection],
    working_size: Size,
    display_size: Size,
) -> List[Detection]:
    # Validate once so an empty frame still rejects bad sizes.
    _scale_factors(working_size, display_size)
    return [reproject_detection(d, working_size, display_size) for d in detections]
