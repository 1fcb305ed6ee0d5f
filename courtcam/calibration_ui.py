"""
OpenCV window front-end for :class:`~courtcam.calibration.CourtCalibrator`.

Mouse callbacks only enqueue :class:`~courtcam.calibration.PointClicked`
events; the calibrator is driven from the polling loop, so no state is shared
across the HighGUI callback boundary.

Keys:
    - left click: add point
    - backspace: remove last point
    - esc: finish the current plane
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Iterator

import cv2

from .calibration import (
    CalibrationEvent,
    CalibrationResult,
    CalibrationState,
    CourtCalibrator,
    FinishRequested,
    PointClicked,
    UndoLastPoint,
)

COURT_WINDOW = "Court"
FRAME_WINDOW = "Frame"
ESC_KEY = 27
BACKSPACE_KEYS = (8, 127)


class OpenCVEventSource:
    """
    Turns HighGUI mouse and keyboard input into calibration events.

    Iterating yields events until the calibrator reaches a terminal state.
    Each collecting state gets its own window; the window is created when its
    plane becomes active and destroyed when the plane is done.
    """

    def __init__(self, calibrator: CourtCalibrator, poll_ms: int = 20) -> None:
        self._calibrator = calibrator
        self._poll_ms = poll_ms
        self._pending: Deque[CalibrationEvent] = deque()
        self._window: str | None = None

    def _on_mouse(self, event: int, x: int, y: int, flags: int, param: Any) -> None:  # noqa: ARG002
        if event == cv2.EVENT_LBUTTONDOWN:
            self._pending.append(PointClicked(float(x), float(y)))

    def _sync_window(self) -> None:
        state = self._calibrator.state
        wanted = {
            CalibrationState.COLLECTING_COURT_POINTS: COURT_WINDOW,
            CalibrationState.COLLECTING_FRAME_POINTS: FRAME_WINDOW,
        }.get(state)
        if wanted == self._window:
            return
        if self._window is not None:
            cv2.destroyWindow(self._window)
        self._window = wanted
        if wanted is not None:
            cv2.namedWindow(wanted)
            cv2.setMouseCallback(wanted, self._on_mouse)

    def _window_closed(self) -> bool:
        if self._window is None:
            return False
        return cv2.getWindowProperty(self._window, cv2.WND_PROP_VISIBLE) < 1

    def __iter__(self) -> Iterator[CalibrationEvent]:
        try:
            while not self._calibrator.is_finished:
                self._sync_window()
                view = self._calibrator.active_view
                if self._window is not None and view is not None:
                    cv2.imshow(self._window, view)
                key = cv2.waitKey(self._poll_ms) & 0xFF
                while self._pending:
                    yield self._pending.popleft()
                if self._window_closed():
                    # Closing the window ends the stream; the session validates what it has.
                    self._window = None
                    return
                if key == ESC_KEY:
                    yield FinishRequested()
                elif key in BACKSPACE_KEYS:
                    yield UndoLastPoint()
        finally:
            if self._window is not None:
                cv2.destroyWindow(self._window)
                self._window = None


def run_interactive_calibration(calibrator: CourtCalibrator) -> CalibrationResult:
    """
    Run a calibration session in OpenCV windows and return its result.
    """
    print("Click frame and court points")
    print(
        f"Up to {calibrator.max_points} points can be captured per image. "
        f"Press ESC to finish with fewer, backspace to undo."
    )
    calibrator.start()
    return calibrator.run(OpenCVEventSource(calibrator))
