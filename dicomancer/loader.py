"""
loader.py - Read DICOM files into viewer entries.

Each file is parsed with pydicom, flattened into metadata rows, and its
first frame rendered through the frame image pipeline.  Several files are
loaded concurrently on a thread pool; every result is keyed by the path
it was requested for, so completion order does not matter.

Failure policy
--------------
- The file cannot be parsed, or its pixel data cannot be decoded at all:
  the entry is rejected and the error is reported with the batch.
- Only the preview cannot be built (unsupported interpretation, malformed
  buffer): a warning is logged and the entry is kept without an image.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Iterable, Optional

import pydicom
from pydicom.dataset import Dataset

from dicomancer.config import CONFIG
from dicomancer.errors import DecodeFailure, DicomLoadError, FrameImageError
from dicomancer.image_pipeline import RgbaBitmap, render_first_frame
from dicomancer.metadata import MAX_VALUE_LEN, MetadataRow, attribute_text, extract_metadata

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class DicomView:
    """What the viewer shows for one instance."""
    file_path: str
    metadata: list[MetadataRow]
    image: Optional[RgbaBitmap] = None


@dataclass
class DicomEntry:
    """A loaded instance and the identifiers used to place it in the tree."""
    patient_id: str
    study_instance_uid: str
    series_instance_uid: str
    sop_instance_uid: str
    view: DicomView


@dataclass
class LoadResult:
    """Outcome of loading a single file."""
    path: str
    entry: Optional[DicomEntry] = None
    error: Optional[str] = None
    duration_s: float = 0.0

    @property
    def success(self) -> bool:
        return self.entry is not None


@dataclass
class LoadReport:
    """Aggregate report for one batch of requested files."""
    total_files: int = 0
    loaded: int = 0
    failed: int = 0
    elapsed_s: float = 0.0
    results: list[LoadResult] = field(default_factory=list)

    @property
    def entries(self) -> list[DicomEntry]:
        return [r.entry for r in self.results if r.entry is not None]

    @property
    def errors(self) -> list[str]:
        return [r.error for r in self.results if r.error is not None]

    def summary(self) -> str:
        lines = [
            "=" * 50,
            "LOAD SUMMARY",
            "=" * 50,
            f"Files requested : {self.total_files}",
            f"Loaded          : {self.loaded}",
            f"Failed          : {self.failed}",
            f"Total time      : {self.elapsed_s:.2f}s",
        ]
        if self.failed > 0:
            lines.append("\nFailed files:")
            for r in self.results:
                if not r.success:
                    lines.append(f"  - {r.error}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Single file
# ---------------------------------------------------------------------------

def _extract_image(ds: Dataset, path: str) -> Optional[RgbaBitmap]:
    try:
        return render_first_frame(ds)
    except DecodeFailure:
        raise
    except FrameImageError as exc:
        logger.warning("Unable to build frame preview for %s: %s", path, exc)
        return None


def load_dicom(path: str, max_value_len: int = MAX_VALUE_LEN) -> DicomEntry:
    """
    Parse *path* and build its viewer entry.

    Parameters
    ----------
    path : str
        DICOM file to read.
    max_value_len : int
        Truncation length for rendered metadata values.

    Returns
    -------
    DicomEntry

    Raises
    ------
    DicomLoadError
        If the file cannot be parsed or its pixel data cannot be decoded.
    """
    path = str(path)
    logger.info("Loading DICOM file: %s", path)
    try:
        ds = pydicom.dcmread(path)
    except Exception as exc:
        message = f"{path}: failed to open DICOM file ({exc})"
        logger.error(message)
        raise DicomLoadError(message) from exc

    metadata = extract_metadata(ds, max_len=max_value_len)

    try:
        image = _extract_image(ds, path)
    except DecodeFailure as exc:
        message = f"{path}: {exc}"
        logger.error(message)
        raise DicomLoadError(message) from exc

    return DicomEntry(
        patient_id=attribute_text(ds, "PatientID") or UNKNOWN,
        study_instance_uid=attribute_text(ds, "StudyInstanceUID") or UNKNOWN,
        series_instance_uid=attribute_text(ds, "SeriesInstanceUID") or UNKNOWN,
        sop_instance_uid=attribute_text(ds, "SOPInstanceUID") or UNKNOWN,
        view=DicomView(file_path=path, metadata=metadata, image=image),
    )


def _load_one(path: str, max_value_len: int) -> LoadResult:
    start = time.time()
    result = LoadResult(path=path)
    try:
        result.entry = load_dicom(path, max_value_len=max_value_len)
    except DicomLoadError as exc:
        result.error = str(exc)
    except Exception as exc:
        result.error = f"{path}: {exc}"
        logger.exception("Error loading %s: %s", path, exc)
    result.duration_s = time.time() - start
    return result


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def collect_paths(inputs: Iterable[str], recursive: bool = True) -> list[str]:
    """
    Expand *inputs* into a list of candidate files.

    Files are kept as given.  Directories contribute their non-hidden
    files in sorted order, descending into subdirectories when
    *recursive* is set.  Missing paths are logged and skipped.
    """
    paths: list[str] = []
    for item in inputs:
        item = str(item)
        if os.path.isfile(item):
            paths.append(item)
        elif os.path.isdir(item):
            for root, dirs, files in os.walk(item):
                dirs[:] = sorted(d for d in dirs if not d.startswith("."))
                paths.extend(
                    os.path.join(root, f) for f in sorted(files) if not f.startswith(".")
                )
                if not recursive:
                    break
        else:
            logger.error("Path not found: %s", item)
    return paths


def load_files(
    paths: Iterable[str],
    max_workers: Optional[int] = None,
    max_value_len: Optional[int] = None,
) -> LoadReport:
    """
    Load every file in *paths* concurrently.

    Parameters
    ----------
    paths : iterable of str
        Files to load.
    max_workers : int, optional
        Thread pool size.  Defaults to config value.
    max_value_len : int, optional
        Metadata truncation length.  Defaults to config value.

    Returns
    -------
    LoadReport
        Results in the order the paths were given.
    """
    paths = [str(p) for p in paths]
    max_workers = max_workers or CONFIG["loading"]["max_workers"]
    max_value_len = max_value_len or CONFIG["metadata"]["max_value_len"]

    report = LoadReport(total_files=len(paths))
    batch_start = time.time()
    results: list[Optional[LoadResult]] = [None] * len(paths)

    if paths:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(_load_one, path, max_value_len): idx
                for idx, path in enumerate(paths)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

    report.results = [r for r in results if r is not None]
    report.loaded = sum(1 for r in report.results if r.success)
    report.failed = report.total_files - report.loaded
    report.elapsed_s = time.time() - batch_start
    logger.info(report.summary())
    return report
