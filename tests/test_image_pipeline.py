"""Tests for dicomancer/image_pipeline.py."""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import pydicom
import pytest
from PIL import Image
from pydicom.dataset import Dataset, FileDataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian

from dicomancer.decoder import Photometric, PlanarConfiguration, decode_pixel_data
from dicomancer.errors import (
    DecodeFailure,
    FrameOutOfRange,
    MalformedBuffer,
    UnsupportedInterpretation,
)
from dicomancer.image_pipeline import (
    RgbaBitmap,
    convert_frame,
    min_max,
    normalize,
    normalize_array,
    render_first_frame,
)


def _make_ds(
    samples,
    rows: int,
    columns: int,
    photometric: str = "MONOCHROME2",
    bits: int = 8,
    planar: Optional[int] = None,
    frames: int = 1,
) -> Dataset:
    """Build a minimal in-memory DICOM dataset holding *samples* as pixel data."""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = pydicom.uid.UID("1.2.840.10008.5.1.4.1.1.7")
    file_meta.MediaStorageSOPInstanceUID = pydicom.uid.generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset("test.dcm", {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.Rows = rows
    ds.Columns = columns
    ds.SamplesPerPixel = 1 if planar is None else 3
    if planar is not None:
        ds.PlanarConfiguration = planar
    if frames > 1:
        ds.NumberOfFrames = frames
    ds.PhotometricInterpretation = photometric
    ds.PixelRepresentation = 0
    ds.BitsAllocated = bits
    ds.BitsStored = bits
    ds.HighBit = bits - 1
    dtype = {8: np.uint8, 16: np.uint16, 32: np.uint32}[bits]
    ds.PixelData = np.asarray(samples, dtype=dtype).tobytes()
    return ds


@dataclass
class _StubFrames:
    """Stand-in decoder output that hands back a fixed buffer."""
    samples: np.ndarray
    rows: int
    columns: int
    bits_allocated: int = 8
    photometric: Photometric = Photometric.RGB
    photometric_name: str = "RGB"
    planar: PlanarConfiguration = PlanarConfiguration.INTERLEAVED
    frame_count: int = 1
    samples_per_pixel: int = 3
    image_factory: Optional[Callable[[int], Image.Image]] = None

    def frame_samples(self, frame_idx: int, bits: int) -> np.ndarray:
        dtype = np.uint8 if bits <= 8 else np.uint16
        return np.asarray(self.samples, dtype=dtype)

    def to_image(self, frame_idx: int) -> Image.Image:
        return self.image_factory(frame_idx)


def _pixels(bitmap: RgbaBitmap) -> list[int]:
    return list(bitmap.pixels)


class TestNormalize:
    def test_min_maps_to_zero_and_max_to_255(self):
        assert normalize(1000, 1000, 3000) == 0
        assert normalize(3000, 1000, 3000) == 255

    def test_degenerate_range_is_zero(self):
        for value in (0, 7, 65535):
            assert normalize(value, 7, 7) == 0
            assert normalize(value, 10, 5) == 0

    def test_monotonic_in_value(self):
        outputs = [normalize(v, 100, 4095) for v in range(100, 4096, 7)]
        assert outputs == sorted(outputs)

    def test_rounds_half_up(self):
        # 255 * 1 / 2 = 127.5
        assert normalize(1, 0, 2) == 128

    def test_clamps_out_of_range_values(self):
        assert normalize(5000, 0, 4095) == 255

    def test_array_matches_scalar(self):
        values = np.arange(0, 4096, 13, dtype=np.uint16)
        expected = [normalize(int(v), 0, 4095) for v in values]
        assert normalize_array(values, 0, 4095).tolist() == expected

    def test_array_degenerate_range_is_zero(self):
        result = normalize_array(np.array([7, 7, 7, 7], dtype=np.uint16), 7, 7)
        assert result.dtype == np.uint8
        assert result.tolist() == [0, 0, 0, 0]


class TestMinMax:
    def test_empty_is_none(self):
        assert min_max([]) is None
        assert min_max(np.array([], dtype=np.uint16)) is None

    def test_single_pass_values(self):
        assert min_max(np.array([5, 1, 9, 3], dtype=np.uint16)) == (1, 9)


class TestMonochrome:
    def test_mono2_32bit_stretched_not_saturated(self):
        ds = _make_ds([70000, 140000], rows=1, columns=2, bits=32)
        assert _pixels(render_first_frame(ds)) == [0, 0, 0, 255, 255, 255, 255, 255]

    def test_mono2_8bit_used_directly(self):
        ds = _make_ds([0, 64, 128, 255], rows=2, columns=2)
        bitmap = render_first_frame(ds)
        assert (bitmap.width, bitmap.height) == (2, 2)
        assert _pixels(bitmap) == [
            0, 0, 0, 255,
            64, 64, 64, 255,
            128, 128, 128, 255,
            255, 255, 255, 255,
        ]

    def test_mono1_8bit_inverted(self):
        ds = _make_ds([0, 64, 128, 255], rows=2, columns=2, photometric="MONOCHROME1")
        assert _pixels(render_first_frame(ds)) == [
            255, 255, 255, 255,
            191, 191, 191, 255,
            127, 127, 127, 255,
            0, 0, 0, 255,
        ]

    def test_16bit_stretched_to_full_range(self):
        ds = _make_ds([1000, 3000], rows=1, columns=2, bits=16)
        assert _pixels(render_first_frame(ds)) == [0, 0, 0, 255, 255, 255, 255, 255]

    def test_16bit_constant_frame_is_black(self):
        ds = _make_ds([7, 7, 7, 7], rows=2, columns=2, bits=16)
        assert _pixels(render_first_frame(ds)) == [0, 0, 0, 255] * 4

    def test_mono1_equals_inverted_mono2(self):
        samples = [0, 500, 1200, 4095, 2048, 17]
        mono2 = render_first_frame(_make_ds(samples, rows=2, columns=3, bits=16)).to_array()
        mono1 = render_first_frame(
            _make_ds(samples, rows=2, columns=3, bits=16, photometric="MONOCHROME1")
        ).to_array()
        np.testing.assert_array_equal(mono1[..., :3], 255 - mono2[..., :3])
        assert (mono1[..., 3] == 255).all()

    def test_short_buffer_is_malformed(self):
        frames = _StubFrames(
            samples=np.array([1, 2, 3]),
            rows=2,
            columns=2,
            photometric=Photometric.MONOCHROME2,
            photometric_name="MONOCHROME2",
            samples_per_pixel=1,
        )
        with pytest.raises(MalformedBuffer):
            convert_frame(frames, 0)


class TestRgb:
    def test_interleaved_8bit(self):
        ds = _make_ds([10, 20, 30, 40, 50, 60], rows=1, columns=2, photometric="RGB", planar=0)
        assert _pixels(render_first_frame(ds)) == [10, 20, 30, 255, 40, 50, 60, 255]

    def test_planar_8bit(self):
        # R plane, G plane, B plane
        ds = _make_ds([10, 40, 20, 50, 30, 60], rows=1, columns=2, photometric="RGB", planar=1)
        assert _pixels(render_first_frame(ds)) == [10, 20, 30, 255, 40, 50, 60, 255]

    def test_interleaved_16bit_per_channel_stretch(self):
        # R spans 0..1000, G spans 500..600, B is constant
        samples = [0, 500, 42, 1000, 600, 42]
        ds = _make_ds(samples, rows=1, columns=2, photometric="RGB", planar=0, bits=16)
        assert _pixels(render_first_frame(ds)) == [0, 0, 0, 255, 255, 255, 0, 255]

    def test_planar_16bit_per_channel_stretch(self):
        samples = [0, 1000, 500, 600, 42, 42]
        ds = _make_ds(samples, rows=1, columns=2, photometric="RGB", planar=1, bits=16)
        assert _pixels(render_first_frame(ds)) == [0, 0, 0, 255, 255, 255, 0, 255]

    def test_channels_do_not_share_range(self):
        # A saturated red channel must not compress green
        samples = [0, 100, 0, 65535, 200, 0]
        ds = _make_ds(samples, rows=1, columns=2, photometric="RGB", planar=0, bits=16)
        green = render_first_frame(ds).to_array()[0, :, 1]
        assert green.tolist() == [0, 255]

    def test_planar_8bit_and_16bit_pair_by_index(self):
        planes = [0, 255, 0, 255, 255, 0]  # R, G, B planes for two pixels
        pixels8 = render_first_frame(
            _make_ds(planes, rows=1, columns=2, photometric="RGB", planar=1)
        )
        pixels16 = render_first_frame(
            _make_ds(planes, rows=1, columns=2, photometric="RGB", planar=1, bits=16)
        )
        assert _pixels(pixels8) == _pixels(pixels16) == [0, 0, 255, 255, 255, 255, 0, 255]

    @pytest.mark.parametrize("length", [4, 5, 7])
    def test_interleaved_not_multiple_of_three_is_malformed(self, length):
        frames = _StubFrames(samples=np.arange(length), rows=1, columns=2)
        with pytest.raises(MalformedBuffer, match="not divisible by 3"):
            convert_frame(frames, 0)

    def test_interleaved_16bit_not_multiple_of_three_is_malformed(self):
        frames = _StubFrames(samples=np.arange(7), rows=1, columns=2, bits_allocated=16)
        with pytest.raises(MalformedBuffer):
            convert_frame(frames, 0)

    def test_interleaved_short_buffer_is_malformed(self):
        frames = _StubFrames(samples=np.arange(3), rows=1, columns=2)
        with pytest.raises(MalformedBuffer, match="too small"):
            convert_frame(frames, 0)

    def test_interleaved_trailing_triplets_dropped(self):
        frames = _StubFrames(samples=np.arange(9), rows=1, columns=2)
        bitmap = convert_frame(frames, 0)
        assert _pixels(bitmap) == [0, 1, 2, 255, 3, 4, 5, 255]

    @pytest.mark.parametrize("bits", [8, 16])
    def test_planar_short_buffer_is_malformed(self, bits):
        frames = _StubFrames(
            samples=np.arange(5),
            rows=1,
            columns=2,
            bits_allocated=bits,
            planar=PlanarConfiguration.PLANAR,
        )
        with pytest.raises(MalformedBuffer, match="too small"):
            convert_frame(frames, 0)


class TestFallback:
    def test_ybr_full_goes_through_generic_conversion(self):
        # Y only; neutral chroma converts to gray
        samples = [50, 128, 128, 200, 128, 128]
        ds = _make_ds(samples, rows=1, columns=2, photometric="YBR_FULL", planar=0)
        assert _pixels(render_first_frame(ds)) == [50, 50, 50, 255, 200, 200, 200, 255]

    @pytest.mark.parametrize("photometric", ["MONOCHROME2", "RGB", "YBR_FULL"])
    def test_truncated_pixel_data_is_decode_failure(self, photometric):
        planar = None if photometric == "MONOCHROME2" else 0
        ds = _make_ds([0] * 12, rows=2, columns=2, photometric=photometric, planar=planar)
        ds.PixelData = bytes(2)
        with pytest.raises(DecodeFailure):
            render_first_frame(ds)

    def test_generic_image_converted_to_rgba(self):
        image = Image.new("L", (3, 2), color=90)
        frames = _StubFrames(
            samples=np.zeros(0),
            rows=2,
            columns=3,
            photometric=Photometric.OTHER,
            photometric_name="PALETTE COLOR",
            image_factory=lambda idx: image,
        )
        bitmap = convert_frame(frames, 0)
        assert (bitmap.width, bitmap.height) == (3, 2)
        assert _pixels(bitmap) == [90, 90, 90, 255] * 6

    def test_failure_names_interpretation_and_cause(self):
        def broken(idx):
            raise RuntimeError("no decoder for this")

        frames = _StubFrames(
            samples=np.zeros(0),
            rows=1,
            columns=1,
            photometric=Photometric.OTHER,
            photometric_name="YBR_ICT",
            image_factory=broken,
        )
        with pytest.raises(UnsupportedInterpretation) as excinfo:
            convert_frame(frames, 0)
        assert "YBR_ICT" in str(excinfo.value)
        assert "no decoder for this" in str(excinfo.value)
        assert isinstance(excinfo.value.cause, RuntimeError)


class TestDispatch:
    def test_frame_index_equal_to_count_is_out_of_range(self):
        ds = _make_ds([0, 1, 2, 3], rows=2, columns=2)
        frames = decode_pixel_data(ds)
        with pytest.raises(FrameOutOfRange) as excinfo:
            convert_frame(frames, frames.frame_count)
        assert "Requested frame 1" in str(excinfo.value)
        assert "only 1 frame(s)" in str(excinfo.value)

    def test_later_frame_of_multiframe(self):
        samples = [0, 0, 0, 0, 9, 9, 9, 9]
        ds = _make_ds(samples, rows=2, columns=2, frames=2)
        bitmap = convert_frame(decode_pixel_data(ds), 1)
        assert _pixels(bitmap) == [9, 9, 9, 255] * 4

    def test_no_pixel_data_renders_nothing(self):
        ds = _make_ds([0, 0, 0, 0], rows=2, columns=2)
        del ds.PixelData
        assert render_first_frame(ds) is None

    def test_zero_frames_renders_nothing(self):
        ds = _make_ds([0, 0, 0, 0], rows=2, columns=2)
        ds.NumberOfFrames = 0
        assert render_first_frame(ds) is None

    def test_missing_rows_is_decode_failure(self):
        ds = _make_ds([0, 0, 0, 0], rows=2, columns=2)
        del ds.Rows
        with pytest.raises(DecodeFailure):
            render_first_frame(ds)

    def test_bitmap_array_view(self):
        ds = _make_ds([0, 64, 128, 255], rows=2, columns=2)
        arr = render_first_frame(ds).to_array()
        assert arr.shape == (2, 2, 4)
        assert arr[1, 1].tolist() == [255, 255, 255, 255]
