"""
Correspondence data for frame-to-court calibration.

The interactive calibration session collects court points first and frame
points second; the N-th frame click pairs with the N-th court click. Once a
:class:`CorrespondenceSet` is built it is immutable, so the detection stage can
read it from another thread without locking.

Saved calibration files use this JSON layout:

    {
        "frame_points": [[x1, y1], [x2, y2], ...],
        "court_points": [[x1, y1], [x2, y2], ...]
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence, Tuple

import numpy as np

from .data_structures import CorrespondencePoint, Point2D
from .exceptions import CalibrationError

MIN_POINTS = 4
MAX_POINTS = 15


@dataclass(frozen=True)
class CorrespondenceSet:
    """
    Ordered, validated collection of :class:`CorrespondencePoint`.

    Attributes:
        points: Correspondences in capture order.
    """

    points: Tuple[CorrespondencePoint, ...]

    def __post_init__(self) -> None:
        if not MIN_POINTS <= len(self.points) <= MAX_POINTS:
            raise CalibrationError(
                f"A correspondence set needs between {MIN_POINTS} and {MAX_POINTS} "
                f"points, got {len(self.points)}."
            )

    @classmethod
    def from_point_lists(
        cls,
        frame_points: Sequence[Point2D],
        court_points: Sequence[Point2D],
    ) -> "CorrespondenceSet":
        """
        Pair frame and court points by index.

        Raises:
            CalibrationError: If the two lists differ in length or hold fewer
                than four / more than fifteen points.
        """
        if len(frame_points) != len(court_points):
            raise CalibrationError(
                f"Frame and court point counts must match "
                f"({len(frame_points)} frame vs {len(court_points)} court)."
            )
        points = tuple(
            CorrespondencePoint(
                frame_point=(float(fx), float(fy)),
                court_point=(float(cx), float(cy)),
            )
            for (fx, fy), (cx, cy) in zip(frame_points, court_points)
        )
        return cls(points=points)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[CorrespondencePoint]:
        return iter(self.points)

    @property
    def frame_points(self) -> np.ndarray:
        """
        ``(N, 2)`` float array of frame-plane points.
        """
        return np.array([p.frame_point for p in self.points], dtype=np.float64)

    @property
    def court_points(self) -> np.ndarray:
        """
        ``(N, 2)`` float array of court-plane points.
        """
        return np.array([p.court_point for p in self.points], dtype=np.float64)

    def to_dict(self) -> Mapping[str, object]:
        """
        Convert to a JSON-serializable dictionary.
        """
        return {
            "frame_points": [list(p.frame_point) for p in self.points],
            "court_points": [list(p.court_point) for p in self.points],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CorrespondenceSet":
        """
        Construct a set from a mapping (e.g., loaded JSON).
        """
        try:
            frame_points = [(float(x), float(y)) for x, y in data["frame_points"]]
            court_points = [(float(x), float(y)) for x, y in data["court_points"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise CalibrationError(f"Malformed calibration data: {exc}") from exc
        return cls.from_point_lists(frame_points, court_points)


def load_correspondences(path: Path | str) -> CorrespondenceSet:
    """
    Load a correspondence set from ``path``.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(
            f"Calibration file {path} not found. "
            f"Run the interactive calibration with --save_calibration first."
        )
    with path.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise CalibrationError(f"Calibration file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CalibrationError(f"Calibration file {path} must contain a JSON object.")
    return CorrespondenceSet.from_dict(data)


def save_correspondences(correspondences: CorrespondenceSet, path: Path | str) -> None:
    """
    Save a correspondence set to JSON at ``path``.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(correspondences.to_dict(), f, indent=2)
