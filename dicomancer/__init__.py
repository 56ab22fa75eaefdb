"""Dicomancer - a small DICOM metadata and first-frame viewer."""

__version__ = "0.3.0"
