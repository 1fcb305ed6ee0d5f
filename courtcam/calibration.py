"""
Interactive frame-to-court calibration session.

The operator clicks reference points on the court schematic first, then the
same physical spots, in the same order, on a live camera frame. The N-th frame
click is paired with the N-th court click; nothing is matched spatially.

The session is a small state machine driven by UI events::

    IDLE -> COLLECTING_COURT_POINTS -> COLLECTING_FRAME_POINTS -> CALIBRATED
                     |                          |
                     +------------> FAILED <----+

- :class:`PointClicked` adds a point to the active plane (up to
  ``max_points``; further clicks are ignored).
- :class:`UndoLastPoint` removes the most recent point on the active plane.
- :class:`FinishRequested` ends collection on the active plane. On the court
  plane it moves on to the frame plane; on the frame plane it validates both
  lists and ends the session. Validation includes a trial homography
  estimate, so collinear clicks fail here rather than on every later frame.

Validation failures do not raise. The session ends in ``FAILED`` and the
returned :class:`CalibrationResult` carries the :class:`CalibrationError`, so
the caller can decide whether to run a fresh session or give up.

The calibrator owns its working images. UI code reads :attr:`CourtCalibrator.active_view`
to display the current plane with its numbered markers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from .calibration_data import MAX_POINTS, MIN_POINTS, CorrespondenceSet
from .data_structures import Image, Point2D
from .exceptions import CalibrationError
from .projection import compute_homography
from .visualization import draw_prompt, mark_clicked_point

logger = logging.getLogger(__name__)


class CalibrationState(Enum):
    IDLE = "idle"
    COLLECTING_COURT_POINTS = "collecting_court_points"
    COLLECTING_FRAME_POINTS = "collecting_frame_points"
    CALIBRATED = "calibrated"
    FAILED = "failed"


_COLLECTING = (
    CalibrationState.COLLECTING_COURT_POINTS,
    CalibrationState.COLLECTING_FRAME_POINTS,
)


@dataclass(frozen=True)
class PointClicked:
    """Left click at ``(x, y)`` on the image of the active plane."""

    x: float
    y: float


@dataclass(frozen=True)
class UndoLastPoint:
    """Remove the last point captured on the active plane."""


@dataclass(frozen=True)
class FinishRequested:
    """Stop collecting points on the active plane."""


CalibrationEvent = Union[PointClicked, UndoLastPoint, FinishRequested]


@dataclass(frozen=True)
class CalibrationResult:
    """
    Outcome of a calibration session.

    Attributes:
        state: ``CALIBRATED`` or ``FAILED``.
        correspondences: The validated point set when calibrated.
        error: Why the session failed, when it did.
    """

    state: CalibrationState
    correspondences: Optional[CorrespondenceSet] = None
    error: Optional[CalibrationError] = None

    @property
    def ok(self) -> bool:
        return self.state is CalibrationState.CALIBRATED

    def unwrap(self) -> CorrespondenceSet:
        """
        Return the correspondence set or raise the session's error.
        """
        if self.correspondences is None:
            raise self.error or CalibrationError("Calibration did not complete.")
        return self.correspondences


class CourtCalibrator:
    """
    Collects court/frame point correspondences from a stream of UI events.

    Args:
        court_image: Top-down court schematic (BGR).
        frame_image: Camera frame to click matching points on (BGR).
        min_points: Minimum points required on each plane.
        max_points: Maximum points accepted on each plane.
    """

    def __init__(
        self,
        court_image: Image,
        frame_image: Image,
        min_points: int = MIN_POINTS,
        max_points: int = MAX_POINTS,
    ) -> None:
        if not MIN_POINTS <= min_points <= max_points <= MAX_POINTS:
            raise ValueError(
                f"Point limits must satisfy {MIN_POINTS} <= min_points <= max_points <= {MAX_POINTS}"
            )
        self.min_points = min_points
        self.max_points = max_points
        self._court_base = court_image.copy()
        self._frame_base = frame_image.copy()
        self._court_points: List[Point2D] = []
        self._frame_points: List[Point2D] = []
        self._state = CalibrationState.IDLE
        self._result: Optional[CalibrationResult] = None
        self._render()

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def is_finished(self) -> bool:
        return self._state in (CalibrationState.CALIBRATED, CalibrationState.FAILED)

    @property
    def result(self) -> Optional[CalibrationResult]:
        return self._result

    @property
    def court_points(self) -> Tuple[Point2D, ...]:
        return tuple(self._court_points)

    @property
    def frame_points(self) -> Tuple[Point2D, ...]:
        return tuple(self._frame_points)

    @property
    def court_view(self) -> Image:
        return self._court_view

    @property
    def frame_view(self) -> Image:
        return self._frame_view

    @property
    def active_view(self) -> Optional[Image]:
        """
        Working image for the plane currently being clicked, if any.
        """
        if self._state is CalibrationState.COLLECTING_COURT_POINTS:
            return self._court_view
        if self._state is CalibrationState.COLLECTING_FRAME_POINTS:
            return self._frame_view
        return None

    def start(self) -> None:
        """
        Begin collecting court points.
        """
        if self._state is not CalibrationState.IDLE:
            raise RuntimeError(f"Calibration already started (state: {self._state.value})")
        self._state = CalibrationState.COLLECTING_COURT_POINTS
        logger.info(
            "Collecting court points (%d-%d, finish early with ESC)",
            self.min_points,
            self.max_points,
        )

    def handle(self, event: CalibrationEvent) -> CalibrationState:
        """
        Apply one UI event and return the resulting state.

        Events that arrive outside a collecting state are ignored.
        """
        if self._state not in _COLLECTING:
            logger.debug("Ignoring %r in state %s", event, self._state.value)
            return self._state

        if isinstance(event, PointClicked):
            self._add_point(event.x, event.y)
        elif isinstance(event, UndoLastPoint):
            self._undo_point()
        elif isinstance(event, FinishRequested):
            self._finish_plane()
        else:
            raise TypeError(f"Unknown calibration event: {event!r}")
        return self._state

    def run(self, events: Iterable[CalibrationEvent]) -> CalibrationResult:
        """
        Drive a whole session from ``events``.

        If the events run out before the session finishes, the points
        collected so far are validated as if the operator had finished.
        """
        if self._state is CalibrationState.IDLE:
            self.start()
        for event in events:
            self.handle(event)
            if self.is_finished:
                break
        if self._result is None:
            return self._finalize()
        return self._result

    def _active_points(self) -> List[Point2D]:
        if self._state is CalibrationState.COLLECTING_COURT_POINTS:
            return self._court_points
        return self._frame_points

    def _plane_name(self) -> str:
        return "Court" if self._state is CalibrationState.COLLECTING_COURT_POINTS else "Frame"

    def _add_point(self, x: float, y: float) -> None:
        points = self._active_points()
        if len(points) >= self.max_points:
            logger.debug("%s already has %d points; click ignored", self._plane_name(), self.max_points)
            return
        points.append((float(x), float(y)))
        logger.info("%s point %d,%d captured", self._plane_name(), int(x), int(y))
        if len(points) == self.max_points:
            logger.info("Finished capturing %s points", self._plane_name().lower())
        self._render()

    def _undo_point(self) -> None:
        points = self._active_points()
        if points:
            x, y = points.pop()
            logger.info("%s point %d,%d removed", self._plane_name(), int(x), int(y))
            self._render()

    def _finish_plane(self) -> None:
        if self._state is CalibrationState.COLLECTING_COURT_POINTS:
            self._state = CalibrationState.COLLECTING_FRAME_POINTS
            logger.info("Collecting frame points (%d-%d)", self.min_points, self.max_points)
        else:
            self._finalize()

    def _finalize(self) -> CalibrationResult:
        n_court = len(self._court_points)
        n_frame = len(self._frame_points)
        error: Optional[CalibrationError] = None
        correspondences: Optional[CorrespondenceSet] = None

        if n_court < self.min_points or n_frame < self.min_points:
            error = CalibrationError(
                f"Must select at least {self.min_points} points for each plane "
                f"(got {n_court} court, {n_frame} frame)."
            )
        elif n_court != n_frame:
            error = CalibrationError(
                f"Frame and court selected points must match "
                f"(got {n_court} court, {n_frame} frame)."
            )
        else:
            try:
                correspondences = CorrespondenceSet.from_point_lists(
                    self._frame_points, self._court_points
                )
                compute_homography(correspondences.frame_points, correspondences.court_points)
            except CalibrationError as exc:
                correspondences = None
                error = exc

        if error is None:
            self._state = CalibrationState.CALIBRATED
            logger.info("Calibrated with %d correspondences", n_court)
        else:
            self._state = CalibrationState.FAILED
            logger.error("Calibration failed: %s", error)
        self._result = CalibrationResult(
            state=self._state, correspondences=correspondences, error=error
        )
        return self._result

    def _render(self) -> None:
        limits = f"{self.min_points}-{self.max_points}"
        self._court_view = draw_prompt(self._court_base.copy(), f"Click {limits} court points")
        for number, (x, y) in enumerate(self._court_points, start=1):
            mark_clicked_point(self._court_view, number, x, y)
        self._frame_view = draw_prompt(self._frame_base.copy(), f"Click {limits} frame points")
        for number, (x, y) in enumerate(self._frame_points, start=1):
            mark_clicked_point(self._frame_view, number, x, y)
