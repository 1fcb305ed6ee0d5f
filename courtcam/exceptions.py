"""Error types raised by the courtcam pipeline."""

from __future__ import annotations


class CourtCamError(Exception):
    """Base error for the pipeline."""


class CalibrationError(CourtCamError):
    """Too few correspondence points, mismatched counts, or a degenerate homography."""


class AssetLoadError(CourtCamError):
    """A class-name list or camera settings file is missing or unreadable."""


class UnsupportedSchemaError(CourtCamError, ValueError):
    """Raw detector output does not match any known tensor layout."""


class UncalibratedProjectionError(CourtCamError, RuntimeError):
    """A court projection was requested before calibration completed."""


class ClassIndexOutOfRangeError(CourtCamError, IndexError):
    """A decoded class id has no matching class name or colour."""


class InferenceError(CourtCamError):
    """The inference backend failed on a frame."""
