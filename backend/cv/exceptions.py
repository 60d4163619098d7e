"""Custom exceptions for the detection pipeline."""


class PipelineError(Exception):
    """Base pipeline exception."""


class InvalidDimensionError(PipelineError):
    """Raised when a frame size has a zero or negative dimension."""


class OutOfOrderTimestampError(PipelineError):
    """Raised when a completion timestamp precedes its capture timestamp."""


class DetectionFailure(PipelineError):
    """Raised when the detector fails on a single frame."""


class SourceNotReadyError(PipelineError):
    """Raised when the video source has no frame to hand out yet."""
