"""
image_pipeline.py - Turn one decoded DICOM frame into a displayable RGBA bitmap.

WHY THIS IS THE HARD PART
-------------------------
Pixel data arrives in whatever shape the modality wrote it.  Three
independent attributes decide how the samples must be read:

    PhotometricInterpretation   MONOCHROME1 (inverted gray), MONOCHROME2,
                                RGB, or something else (YBR_*, PALETTE COLOR)
    BitsAllocated               <= 8 is used directly, > 8 must be rescaled
    PlanarConfiguration         interleaved R1G1B1... or planar RRR...GGG...BBB...

The display layer only understands 8-bit RGBA, so every combination is
mapped to the same output shape here.  Samples wider than 8 bits are
stretched linearly between their own minimum and maximum:

    out = round(255 * (value - min) / (max - min))

Grayscale frames share one min/max across the frame.  RGB frames use one
min/max per channel, since color channels have independent ranges and a
shared stretch would shift the color balance.

Interpretations not listed above go through pydicom's generic conversion
and Pillow.  No VOI LUT / window-level is applied.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
from pydicom.dataset import Dataset

from dicomancer.decoder import (
    DecodedFrameSet,
    Photometric,
    PlanarConfiguration,
    decode_pixel_data,
)
from dicomancer.errors import (
    DecodeFailure,
    FrameOutOfRange,
    MalformedBuffer,
    UnsupportedInterpretation,
)

logger = logging.getLogger(__name__)

OPAQUE = 255


@dataclass(frozen=True)
class RgbaBitmap:
    """8-bit RGBA pixels, row-major from the top-left corner."""
    width: int
    height: int
    pixels: bytes

    def to_array(self) -> np.ndarray:
        """Return the pixels as a read-only ``(height, width, 4)`` uint8 array."""
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.width, 4)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def render_first_frame(ds: Dataset) -> Optional[RgbaBitmap]:
    """
    Render frame 0 of *ds*, or return None when it holds no frames.

    Parameters
    ----------
    ds : Dataset
        Loaded pydicom Dataset.

    Returns
    -------
    RgbaBitmap or None

    Raises
    ------
    FrameImageError
        DecodeFailure if the pixel data cannot be decoded; any other
        subclass if the frame cannot be converted.
    """
    frames = decode_pixel_data(ds)
    if frames.frame_count == 0:
        return None
    return convert_frame(frames, 0)


def convert_frame(frames: DecodedFrameSet, frame_idx: int) -> RgbaBitmap:
    """
    Convert frame *frame_idx* of *frames* to RGBA.

    Dispatch order: any monochrome interpretation, then RGB, then the
    generic fallback for everything else.

    Raises
    ------
    FrameOutOfRange
        If *frame_idx* is not below ``frames.frame_count``.
    """
    if frame_idx < 0 or frame_idx >= frames.frame_count:
        raise FrameOutOfRange(frame_idx, frames.frame_count)

    if frames.photometric.is_monochrome:
        return _monochrome_to_bitmap(frames, frame_idx)
    if frames.photometric is Photometric.RGB:
        return _rgb_to_bitmap(frames, frame_idx)
    return _fallback_to_generic(frames, frame_idx)


# ---------------------------------------------------------------------------
# Monochrome
# ---------------------------------------------------------------------------

def _monochrome_to_bitmap(frames: DecodedFrameSet, frame_idx: int) -> RgbaBitmap:
    pixel_count = frames.rows * frames.columns
    invert = frames.photometric is Photometric.MONOCHROME1

    if frames.bits_allocated <= 8:
        gray = frames.frame_samples(frame_idx, 8)
        _check_sample_count(gray, pixel_count)
    else:
        samples = frames.frame_samples(frame_idx, 16)
        _check_sample_count(samples, pixel_count)
        lo, hi = min_max(samples) or (0, 0)
        logger.debug("Grayscale stretch: min=%d, max=%d", lo, hi)
        gray = normalize_array(samples, lo, hi)

    # MONOCHROME1: low values are bright; invert after rescaling
    if invert:
        gray = 255 - gray

    return _pack_rgba(np.repeat(gray[:, np.newaxis], 3, axis=1), frames.columns, frames.rows)


def _check_sample_count(samples: np.ndarray, pixel_count: int) -> None:
    if samples.size != pixel_count:
        raise MalformedBuffer(
            f"Grayscale buffer length {samples.size} does not match {pixel_count} pixels"
        )


# ---------------------------------------------------------------------------
# RGB
# ---------------------------------------------------------------------------

def _rgb_to_bitmap(frames: DecodedFrameSet, frame_idx: int) -> RgbaBitmap:
    pixel_count = frames.rows * frames.columns
    planar = frames.planar is PlanarConfiguration.PLANAR

    if frames.bits_allocated <= 8:
        samples = frames.frame_samples(frame_idx, 8)
        if planar:
            rgb = rgb_planar_u8(samples, pixel_count)
        else:
            rgb = rgb_interleaved_u8(samples, pixel_count)
    else:
        samples = frames.frame_samples(frame_idx, 16)
        if planar:
            rgb = rgb_planar_u16(samples, pixel_count)
        else:
            rgb = rgb_interleaved_u16(samples, pixel_count)

    return _pack_rgba(rgb, frames.columns, frames.rows)


def _triplets(samples: np.ndarray, pixel_count: int) -> np.ndarray:
    """View an interleaved buffer as ``(pixel_count, 3)``."""
    if samples.size % 3 != 0:
        raise MalformedBuffer(f"RGB buffer length {samples.size} is not divisible by 3")
    triplets = samples.reshape(-1, 3)
    if len(triplets) < pixel_count:
        raise MalformedBuffer(
            f"RGB buffer length {samples.size} is too small for {pixel_count} pixels"
        )
    if len(triplets) > pixel_count:
        logger.debug("Dropping %d trailing RGB triplet(s)", len(triplets) - pixel_count)
    return triplets[:pixel_count]


def _planes(samples: np.ndarray, pixel_count: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a plane-sequential buffer into its R, G and B planes."""
    if samples.size < pixel_count * 3:
        raise MalformedBuffer(
            f"RGB buffer length {samples.size} is too small for {pixel_count} pixels"
        )
    return (
        samples[:pixel_count],
        samples[pixel_count:2 * pixel_count],
        samples[2 * pixel_count:3 * pixel_count],
    )


def rgb_interleaved_u8(samples: np.ndarray, pixel_count: int) -> np.ndarray:
    return _triplets(samples, pixel_count).astype(np.uint8)


def rgb_planar_u8(samples: np.ndarray, pixel_count: int) -> np.ndarray:
    return np.stack(_planes(samples, pixel_count), axis=1).astype(np.uint8)


def rgb_interleaved_u16(samples: np.ndarray, pixel_count: int) -> np.ndarray:
    """Rescale interleaved 16-bit RGB to 8 bits, one min/max per channel."""
    triplets = _triplets(samples, pixel_count)
    return np.stack(
        [_normalize_channel(triplets[:, channel]) for channel in range(3)],
        axis=1,
    )


def rgb_planar_u16(samples: np.ndarray, pixel_count: int) -> np.ndarray:
    """Rescale planar 16-bit RGB to 8 bits, one min/max per plane."""
    return np.stack(
        [_normalize_channel(plane) for plane in _planes(samples, pixel_count)],
        axis=1,
    )


def _normalize_channel(channel: np.ndarray) -> np.ndarray:
    lo, hi = min_max(channel) or (0, 0)
    return normalize_array(channel, lo, hi)


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------

def _fallback_to_generic(frames: DecodedFrameSet, frame_idx: int) -> RgbaBitmap:
    try:
        image = frames.to_image(frame_idx)
    except DecodeFailure:
        raise
    except Exception as exc:
        raise UnsupportedInterpretation(frames.photometric_name, exc) from exc

    rgba = image.convert("RGBA")
    width, height = rgba.size
    return RgbaBitmap(width=width, height=height, pixels=rgba.tobytes())


# ---------------------------------------------------------------------------
# Normalization helpers
# ---------------------------------------------------------------------------

def min_max(samples: Union[Sequence[int], np.ndarray]) -> Optional[tuple[int, int]]:
    """Return ``(min, max)`` of *samples*, or None if it is empty."""
    values = np.asarray(samples)
    if values.size == 0:
        return None
    return int(values.min()), int(values.max())


def normalize(value: int, lo: int, hi: int) -> int:
    """
    Linearly map *value* from ``[lo, hi]`` onto ``[0, 255]``.

    Returns 0 for every input when ``hi <= lo`` (constant or empty frame).
    The scaled value is clamped before rounding so float error can never
    produce 256.
    """
    if hi <= lo:
        return 0
    scaled = (value - lo) / (hi - lo) * 255.0
    return int(math.floor(min(max(scaled, 0.0), 255.0) + 0.5))


def normalize_array(values: np.ndarray, lo: int, hi: int) -> np.ndarray:
    """Vectorized :func:`normalize`; returns a uint8 array of the same shape."""
    values = np.asarray(values)
    if hi <= lo:
        return np.zeros(values.shape, dtype=np.uint8)
    scaled = (values.astype(np.float64) - lo) / (hi - lo) * 255.0
    return np.floor(np.clip(scaled, 0.0, 255.0) + 0.5).astype(np.uint8)


def _pack_rgba(rgb: np.ndarray, width: int, height: int) -> RgbaBitmap:
    rgba = np.empty((rgb.shape[0], 4), dtype=np.uint8)
    rgba[:, :3] = rgb
    rgba[:, 3] = OPAQUE
    return RgbaBitmap(width=width, height=height, pixels=rgba.tobytes())
