import cv2
import numpy as np
import pytest

from courtcam.calibration import CalibrationState, CourtCalibrator
from courtcam.calibration_ui import COURT_WINDOW, ESC_KEY, FRAME_WINDOW, OpenCVEventSource

COURT = [(10, 10), (200, 20), (180, 150), (20, 140)]


@pytest.fixture
def highgui(monkeypatch):
    """
    Replace HighGUI calls with recorders; tests set ``visible`` and ``on_wait``.
    """
    state = {"visible": 1.0, "on_wait": lambda: -1, "destroyed": []}
    monkeypatch.setattr(cv2, "namedWindow", lambda name: None)
    monkeypatch.setattr(cv2, "setMouseCallback", lambda name, callback: None)
    monkeypatch.setattr(cv2, "imshow", lambda name, image: None)
    monkeypatch.setattr(cv2, "waitKey", lambda delay: state["on_wait"]())
    monkeypatch.setattr(cv2, "getWindowProperty", lambda name, prop: state["visible"])
    monkeypatch.setattr(cv2, "destroyWindow", lambda name: state["destroyed"].append(name))
    return state


def _calibrator():
    image = np.zeros((240, 320, 3), dtype=np.uint8)
    calibrator = CourtCalibrator(image, image)
    calibrator.start()
    return calibrator


def test_closing_the_window_ends_the_session(highgui):
    highgui["visible"] = 0.0
    calibrator = _calibrator()

    result = calibrator.run(OpenCVEventSource(calibrator))

    assert result.state is CalibrationState.FAILED
    assert highgui["destroyed"] == []


def test_clicks_and_keys_drive_a_full_session(highgui):
    calibrator = _calibrator()
    source = OpenCVEventSource(calibrator)
    script = [
        *[("click", p) for p in COURT],
        ("key", ESC_KEY),
        *[("click", (x + 5, y + 5)) for x, y in COURT],
        ("key", ESC_KEY),
    ]

    def on_wait():
        kind, value = script.pop(0)
        if kind == "click":
            source._on_mouse(cv2.EVENT_LBUTTONDOWN, value[0], value[1], 0, None)
            return -1
        return value

    highgui["on_wait"] = on_wait

    result = calibrator.run(source)

    assert result.ok
    assert result.unwrap().points[3].frame_point == (25.0, 145.0)
    assert highgui["destroyed"] == [COURT_WINDOW, FRAME_WINDOW]
