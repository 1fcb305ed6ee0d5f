"""
Frame-to-court projection through a planar homography.

The camera sees the court in perspective; the court schematic is a top-down
drawing. A homography estimated from the calibration correspondences maps a
point on the floor in the camera frame ``(u, v)`` to the matching point on the
schematic ``(x, y)``. Only points on the court plane map correctly, which is
why detections are projected from the bottom-centre of their box (where the
player touches the floor) rather than the box centre.

Estimation uses RANSAC so a mis-clicked correspondence does not ruin the
transform as long as most points are accurate.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Iterable, List, Optional

import cv2
import numpy as np

from .calibration_data import CorrespondenceSet
from .data_structures import Point2D
from .exceptions import CalibrationError, UncalibratedProjectionError

logger = logging.getLogger(__name__)

HomographyMatrix = np.ndarray[Any, np.dtype[np.float64]]

# Twice the triangle area (pixels squared) below which three points count as collinear.
COLLINEAR_TOLERANCE = 1e-6


def _has_collinear_triple(points: np.ndarray) -> bool:
    for a, b, c in itertools.combinations(points, 3):
        cross = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
        if abs(cross) <= COLLINEAR_TOLERANCE:
            return True
    return False


def is_degenerate(points: np.ndarray) -> bool:
    """
    Whether ``points`` cannot anchor a homography.

    Four points must have no three on a line. Larger sets only need to span
    the plane; RANSAC skips collinear samples among them.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) == 4:
        return _has_collinear_triple(pts)
    return int(np.linalg.matrix_rank(pts - pts.mean(axis=0))) < 2


def compute_homography(
    frame_points: np.ndarray,
    court_points: np.ndarray,
    ransac_reproj_threshold: float = 3.0,
) -> HomographyMatrix:
    """
    Estimate a 3x3 homography matrix from corresponding points.

    Args:
        frame_points: ``(N, 2)`` points in camera-frame pixels.
        court_points: ``(N, 2)`` corresponding points on the court schematic.
        ransac_reproj_threshold: Maximum reprojection error (court units) for
            a correspondence to count as a RANSAC inlier.

    Returns:
        A ``3x3`` matrix ``H`` mapping ``(u, v, 1)`` to ``(x, y, w)``.

    Raises:
        CalibrationError: If the point sets are mismatched, too small, or
            degenerate (e.g., collinear).
    """
    src = np.asarray(frame_points, dtype=np.float64).reshape(-1, 2)
    dst = np.asarray(court_points, dtype=np.float64).reshape(-1, 2)
    if src.shape != dst.shape or src.shape[0] < 4:
        raise CalibrationError(
            "Homography requires at least 4 point pairs with matching shapes."
        )
    if is_degenerate(src) or is_degenerate(dst):
        raise CalibrationError("Correspondence points are collinear; pick points spread over the court.")
    H, _ = cv2.findHomography(src, dst, cv2.RANSAC, ransac_reproj_threshold)
    if H is None or H.shape != (3, 3) or not np.isfinite(H).all() or abs(np.linalg.det(H)) < 1e-12:
        raise CalibrationError("Failed to compute homography; check your points.")
    return np.asarray(H, dtype=np.float64)


def frame_to_court(points: Iterable[Point2D], H: HomographyMatrix) -> List[Point2D]:
    """
    Transform a batch of frame points to court coordinates.
    """
    pts_list = list(points)
    if not pts_list:
        return []
    pts = np.asarray(pts_list, dtype=np.float64).reshape(-1, 1, 2)
    projected = cv2.perspectiveTransform(pts, H).reshape(-1, 2)
    return [(float(x), float(y)) for x, y in projected]


class CourtProjector:
    """
    Maps camera-frame points onto the court schematic.

    The homography is re-estimated from the correspondence set on every call
    unless ``cache_homography`` is set, in which case the first estimate is
    reused. The correspondence set is immutable, so caching never goes stale.
    """

    def __init__(
        self,
        correspondences: Optional[CorrespondenceSet] = None,
        cache_homography: bool = False,
        ransac_reproj_threshold: float = 3.0,
    ) -> None:
        self._correspondences = correspondences
        self._cache_homography = cache_homography
        self._ransac_reproj_threshold = ransac_reproj_threshold
        self._cached: Optional[HomographyMatrix] = None

    @property
    def is_calibrated(self) -> bool:
        return self._correspondences is not None

    @property
    def correspondences(self) -> Optional[CorrespondenceSet]:
        return self._correspondences

    def homography(self) -> HomographyMatrix:
        """
        Estimate (or return the cached) frame-to-court homography.

        Raises:
            UncalibratedProjectionError: If no correspondence set was supplied.
        """
        if self._correspondences is None:
            raise UncalibratedProjectionError(
                "Court projection requested before calibration completed."
            )
        if self._cached is not None:
            return self._cached
        H = compute_homography(
            self._correspondences.frame_points,
            self._correspondences.court_points,
            ransac_reproj_threshold=self._ransac_reproj_threshold,
        )
        if self._cache_homography:
            self._cached = H
        return H

    def project(self, point: Point2D) -> Point2D:
        """
        Map a single frame point ``(u, v)`` to court coordinates ``(x, y)``.
        """
        return frame_to_court([point], self.homography())[0]

    def project_many(self, points: Iterable[Point2D]) -> List[Point2D]:
        """
        Map several frame points with a single homography estimate.
        """
        H = self.homography()
        return frame_to_court(points, H)
