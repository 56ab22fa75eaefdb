"""
decoder.py - Pixel data description and frame materialization.

A thin adapter over pydicom's pixel decoding.  It reads the handful of
Image Pixel module attributes the frame image pipeline dispatches on and
hands out one frame at a time, either as a flat buffer of unsigned
samples in the layout the file declares or, for interpretations the
pipeline does not model, as a generic Pillow image.

Attributes used
---------------
    (0028,0002) SamplesPerPixel
    (0028,0004) PhotometricInterpretation
    (0028,0006) PlanarConfiguration   0 = R1G1B1 R2G2B2 ..., 1 = RRR... GGG... BBB...
    (0028,0008) NumberOfFrames
    (0028,0010) Rows
    (0028,0011) Columns
    (0028,0100) BitsAllocated
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

import numpy as np
from PIL import Image
from pydicom.dataset import Dataset
from pydicom.pixels import apply_color_lut, pixel_array

from dicomancer.errors import DecodeFailure

logger = logging.getLogger(__name__)

_PIXEL_DATA_KEYWORDS = ("PixelData", "FloatPixelData", "DoubleFloatPixelData")


class Photometric(Enum):
    """Photometric interpretations the pipeline tells apart."""

    MONOCHROME1 = "MONOCHROME1"
    MONOCHROME2 = "MONOCHROME2"
    RGB = "RGB"
    OTHER = "OTHER"

    @classmethod
    def from_name(cls, name: str) -> "Photometric":
        name = name.strip().upper()
        for member in (cls.MONOCHROME1, cls.MONOCHROME2, cls.RGB):
            if member.value == name:
                return member
        return cls.OTHER

    @property
    def is_monochrome(self) -> bool:
        return self in (Photometric.MONOCHROME1, Photometric.MONOCHROME2)


class PlanarConfiguration(IntEnum):
    INTERLEAVED = 0
    PLANAR = 1


@dataclass(frozen=True)
class DecodedFrameSet:
    """Pixel data description of one dataset plus per-frame accessors."""
    frame_count: int
    rows: int
    columns: int
    bits_allocated: int
    samples_per_pixel: int
    photometric: Photometric
    photometric_name: str
    planar: PlanarConfiguration
    dataset: Optional[Dataset] = field(default=None, repr=False, compare=False)

    def frame_samples(self, frame_idx: int, bits: int) -> np.ndarray:
        """
        Materialize one frame as a flat array of unsigned samples.

        Parameters
        ----------
        frame_idx : int
            Zero-based frame index.
        bits : int
            Sample width of the result: 8 gives ``uint8``, anything wider
            gives ``uint16``.

        Returns
        -------
        np.ndarray
            1-D array laid out as the dataset declares it: pixel-interleaved
            or plane-sequential for multi-sample data.
        """
        arr = self._decode(frame_idx, raw=True)
        if self.planar is PlanarConfiguration.PLANAR and arr.ndim == 3:
            # pydicom always returns (rows, columns, samples)
            arr = np.moveaxis(arr, -1, 0)
        return _to_unsigned(arr.ravel(), bits)

    def to_image(self, frame_idx: int) -> Image.Image:
        """
        Convert one frame to a Pillow image using pydicom's generic handling.

        YBR variants are converted to RGB by pydicom and palette color data
        is mapped through its lookup tables.  Samples wider than 8 bits are
        scaled down to 8 bits.
        """
        arr = self._decode(frame_idx, raw=False)
        if self.photometric_name == "PALETTE COLOR":
            arr = apply_color_lut(arr, self.dataset)
        if arr.dtype != np.uint8:
            wide = _to_unsigned(arr, 16)
            arr = np.rint(wide / 257.0).astype(np.uint8)
        return Image.fromarray(np.ascontiguousarray(arr))

    def _decode(self, frame_idx: int, raw: bool) -> np.ndarray:
        if self.dataset is None:
            raise DecodeFailure("No dataset attached to the decoded frame set")
        try:
            return pixel_array(self.dataset, index=frame_idx, raw=raw)
        except Exception as exc:
            raise DecodeFailure(f"Failed to materialize frame {frame_idx}: {exc}") from exc


def _to_unsigned(samples: np.ndarray, bits: int) -> np.ndarray:
    """
    Cast samples to uint8/uint16, shifting signed data into the unsigned range.

    Integer samples too large for the target width are right-shifted just
    far enough to fit, which keeps their order.
    """
    target = np.uint8 if bits <= 8 else np.uint16
    kind = samples.dtype.kind
    if kind == "i":
        samples = samples.astype(np.int64) - np.iinfo(samples.dtype).min
    if kind in "iu" and samples.size:
        excess = int(samples.max()).bit_length() - np.iinfo(target).bits
        if excess > 0:
            samples = samples.astype(np.uint64) >> np.uint64(excess)
    return np.clip(samples, 0, np.iinfo(target).max).astype(target)


def _frame_count(ds: Dataset) -> int:
    value = ds.get("NumberOfFrames")
    if value is None or value == "":
        return 1
    return int(value)


def decode_pixel_data(ds: Dataset) -> DecodedFrameSet:
    """
    Describe the pixel data of *ds* without decoding any frame yet.

    A dataset with no pixel data element (structured reports, presentation
    states, ...) yields a frame set with ``frame_count == 0``.

    Parameters
    ----------
    ds : Dataset
        Loaded pydicom Dataset.

    Returns
    -------
    DecodedFrameSet

    Raises
    ------
    DecodeFailure
        If the pixel description attributes are missing or invalid.
    """
    name = str(ds.get("PhotometricInterpretation", "") or "").strip().upper()
    photometric = Photometric.from_name(name)

    if not any(keyword in ds for keyword in _PIXEL_DATA_KEYWORDS):
        logger.debug("Dataset has no pixel data element; nothing to render.")
        return DecodedFrameSet(
            frame_count=0,
            rows=int(ds.get("Rows", 0) or 0),
            columns=int(ds.get("Columns", 0) or 0),
            bits_allocated=int(ds.get("BitsAllocated", 0) or 0),
            samples_per_pixel=int(ds.get("SamplesPerPixel", 1) or 1),
            photometric=photometric,
            photometric_name=name,
            planar=PlanarConfiguration.INTERLEAVED,
            dataset=ds,
        )

    try:
        frames = DecodedFrameSet(
            frame_count=_frame_count(ds),
            rows=int(ds.Rows),
            columns=int(ds.Columns),
            bits_allocated=int(ds.BitsAllocated),
            samples_per_pixel=int(ds.get("SamplesPerPixel", 1) or 1),
            photometric=photometric,
            photometric_name=name,
            planar=PlanarConfiguration(int(ds.get("PlanarConfiguration", 0) or 0)),
            dataset=ds,
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise DecodeFailure(f"Failed to decode pixel data: {exc}") from exc

    logger.debug(
        "Pixel data: %d frame(s) of %dx%d, %d bits, %s, %s",
        frames.frame_count, frames.columns, frames.rows,
        frames.bits_allocated, name or "<no interpretation>", frames.planar.name,
    )
    return frames
