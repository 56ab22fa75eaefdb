"""
generate_sample_data.py - Create synthetic DICOM files covering every render path.

Writes small DICOM files to data/samples/ so the viewer can be tried
without real patient data.  Between them they exercise each branch of
the frame image pipeline: 8/16-bit grayscale in both polarities, signed
CT values, interleaved and planar RGB at both bit depths, a YBR file that
goes through the generic fallback, a multi-frame file, and a
metadata-only file with no pixel data at all.

Usage
-----
    python scripts/generate_sample_data.py               # writes data/samples/
    python scripts/generate_sample_data.py out/folder    # custom folder

Then open them with:
    dicomancer data/samples --mode uid_tree
"""

import os
import sys

import numpy as np
import pydicom
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.pixels import convert_color_space
from pydicom.uid import ExplicitVRLittleEndian

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
OUTPUT_FOLDER = os.path.join(_REPO_ROOT, "data", "samples")

_CT_IMAGE_STORAGE = "1.2.840.10008.5.1.4.1.1.2"
_SECONDARY_CAPTURE = "1.2.840.10008.5.1.4.1.1.7"
_BASIC_TEXT_SR = "1.2.840.10008.5.1.4.1.1.88.11"

# ---------------------------------------------------------------------------
# Sample profiles
# ---------------------------------------------------------------------------
_SAMPLE_PROFILES = [
    # (filename_stem, photometric, bits, planar, frames, signed, patient, note)
    ("mono2_8bit", "MONOCHROME2", 8, 0, 1, False, "00001", "grayscale, used directly"),
    ("mono1_8bit", "MONOCHROME1", 8, 0, 1, False, "00001", "inverted grayscale"),
    ("mono2_16bit", "MONOCHROME2", 16, 0, 1, False, "00001", "12-bit values, min/max stretch"),
    ("ct_signed_16bit", "MONOCHROME2", 16, 0, 1, True, "00001", "signed HU-like values"),
    ("rgb_8bit_interleaved", "RGB", 8, 0, 1, False, "00002", "R1G1B1 R2G2B2 ..."),
    ("rgb_8bit_planar", "RGB", 8, 1, 1, False, "00002", "RRR... GGG... BBB..."),
    ("rgb_16bit_interleaved", "RGB", 16, 0, 1, False, "00002", "per-channel stretch"),
    ("rgb_16bit_planar", "RGB", 16, 1, 1, False, "00002", "per-channel stretch"),
    ("ybr_full_8bit", "YBR_FULL", 8, 0, 1, False, "00002", "generic fallback"),
    ("mono2_multiframe", "MONOCHROME2", 8, 0, 3, False, "00003", "3 frames, first shown"),
]


def _gray_pixels(size: int, bits: int, signed: bool, seed: int) -> np.ndarray:
    """Noise plus a bright square, in the value range of *bits*."""
    rng = np.random.default_rng(seed)
    top = 255 if bits == 8 else 4095
    pixels = rng.normal(top * 0.4, top * 0.08, size=(size, size)).clip(0, top)
    sq = size // 4
    pixels[sq:sq * 2, sq:sq * 2] = top * 0.9
    if signed:
        return (pixels - 1024).astype(np.int16)
    return pixels.astype(np.uint8 if bits == 8 else np.uint16)


def _rgb_pixels(size: int, bits: int) -> np.ndarray:
    """Horizontal red ramp, vertical green ramp, constant blue."""
    top = 255 if bits == 8 else 1023
    ramp = np.linspace(0, top, size)
    rgb = np.empty((size, size, 3), dtype=np.float64)
    rgb[..., 0] = ramp[np.newaxis, :]
    rgb[..., 1] = ramp[:, np.newaxis]
    rgb[..., 2] = top * 0.5
    return rgb.astype(np.uint8 if bits == 8 else np.uint16)


def _base_dataset(path: str, sop_class: str, patient_id: str) -> FileDataset:
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = pydicom.uid.UID(sop_class)
    file_meta.MediaStorageSOPInstanceUID = pydicom.uid.generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset(path, {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.SOPClassUID = file_meta.MediaStorageSOPClassUID
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID
    ds.PatientName = f"Synthetic^Patient{patient_id}"
    ds.PatientID = patient_id
    # One study per patient, one series per sample kind
    ds.StudyInstanceUID = pydicom.uid.generate_uid(entropy_srcs=["study", patient_id])
    ds.SeriesInstanceUID = pydicom.uid.generate_uid()
    ds.StudyDate = "20230601"
    ds.StudyTime = "120000"
    return ds


def _make_dicom(
    path: str,
    photometric: str,
    bits: int,
    planar: int,
    frames: int,
    signed: bool,
    patient_id: str,
    size: int = 64,
    seed: int = 42,
) -> None:
    """Write a single synthetic image file."""
    color = photometric not in ("MONOCHROME1", "MONOCHROME2")
    ds = _base_dataset(path, _SECONDARY_CAPTURE if color else _CT_IMAGE_STORAGE, patient_id)
    ds.Modality = "OT" if color else "CT"

    if color:
        pixels = _rgb_pixels(size, bits)
        if photometric == "YBR_FULL":
            pixels = convert_color_space(pixels, "RGB", "YBR_FULL")
        if planar:
            pixels = pixels.transpose(2, 0, 1)
        data = pixels.tobytes()
        ds.SamplesPerPixel = 3
        ds.PlanarConfiguration = planar
    else:
        data = b"".join(
            _gray_pixels(size, bits, signed, seed + idx).tobytes() for idx in range(frames)
        )
        ds.SamplesPerPixel = 1
        if signed:
            ds.RescaleSlope = 1.0
            ds.RescaleIntercept = 0.0

    if frames > 1:
        ds.NumberOfFrames = frames
    ds.Rows = size
    ds.Columns = size
    ds.PhotometricInterpretation = photometric
    ds.PixelRepresentation = 1 if signed else 0
    ds.BitsAllocated = bits
    ds.BitsStored = bits if bits == 8 else (16 if signed else 12)
    ds.HighBit = ds.BitsStored - 1
    ds.PixelData = data

    ds.save_as(path)


def _make_metadata_only(path: str, patient_id: str) -> None:
    """Write a text report with no pixel data."""
    ds = _base_dataset(path, _BASIC_TEXT_SR, patient_id)
    ds.Modality = "SR"
    ds.ContentDate = "20230601"
    ds.ContentTime = "121500"
    ds.save_as(path)


def generate(output_folder: str = OUTPUT_FOLDER) -> None:
    """Generate all synthetic DICOM files into *output_folder*."""
    os.makedirs(output_folder, exist_ok=True)

    total = len(_SAMPLE_PROFILES) + 1
    print(f"Writing {total} synthetic DICOM files to: {output_folder}")
    print("-" * 60)

    for i, profile in enumerate(_SAMPLE_PROFILES, start=1):
        stem, photometric, bits, planar, frames, signed, patient_id, note = profile
        filename = f"{stem}.dcm"
        _make_dicom(
            os.path.join(output_folder, filename),
            photometric=photometric,
            bits=bits,
            planar=planar,
            frames=frames,
            signed=signed,
            patient_id=patient_id,
            seed=42 + i,
        )
        print(f"  [{i:02d}/{total}] {filename}  ({note})")

    _make_metadata_only(os.path.join(output_folder, "report_no_pixels.dcm"), "00003")
    print(f"  [{total:02d}/{total}] report_no_pixels.dcm  (no pixel data)")

    print("-" * 60)
    print("Done.  Open them with:")
    print(f"  dicomancer {output_folder} --mode uid_tree")


if __name__ == "__main__":
    generate(sys.argv[1] if len(sys.argv) > 1 else OUTPUT_FOLDER)
