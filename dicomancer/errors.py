"""
errors.py - Exception types raised while loading and rendering DICOM files.

Every frame-rendering failure derives from FrameImageError so that the
loader can decide, per class, whether a file is still usable without a
preview or must be rejected outright.
"""


class DicomLoadError(Exception):
    """The file could not be read as a DICOM dataset at all."""


class FrameImageError(Exception):
    """Base class for failures of the frame image pipeline."""


class DecodeFailure(FrameImageError):
    """The pixel decoder could not produce samples for the dataset."""


class FrameOutOfRange(FrameImageError):
    """A frame index at or past the available frame count was requested."""

    def __init__(self, frame_idx: int, frame_count: int) -> None:
        self.frame_idx = frame_idx
        self.frame_count = frame_count
        super().__init__(
            f"Requested frame {frame_idx}, but only {frame_count} frame(s) are available"
        )


class MalformedBuffer(FrameImageError):
    """The materialized sample count does not match the declared layout."""


class UnsupportedInterpretation(FrameImageError):
    """The generic conversion for an unmodelled interpretation failed."""

    def __init__(self, interpretation: str, cause: Exception) -> None:
        self.interpretation = interpretation
        self.cause = cause
        super().__init__(
            f"Unsupported photometric interpretation `{interpretation}`: {cause}"
        )
