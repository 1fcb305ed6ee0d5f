"""
Drawing helpers for detections, calibration markers and projected positions.

All functions draw in place on BGR images and return the same image so calls
can be chained. Boxes are clipped to the image before drawing; detections may
legitimately reach past the frame edge.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .data_structures import DetectionCandidate, Image, Point2D
from .exceptions import ClassIndexOutOfRangeError

Color = Tuple[int, int, int]

GREEN: Color = (0, 255, 0)
BLACK: Color = (0, 0, 0)
# Used for boxes when no class list could be loaded.
DEFAULT_BOX_COLOR: Color = (0, 0, 255)
COLOR_SEED = 12345


def class_colors(count: int, seed: int = COLOR_SEED) -> List[Color]:
    """
    Deterministic pseudo-random colour per class id.
    """
    rng = np.random.default_rng(seed)
    values = rng.integers(0, 255, size=(count, 3))
    return [(int(b), int(g), int(r)) for b, g, r in values]


def _resolve_class(
    class_id: int, class_names: Sequence[str], colors: Sequence[Color]
) -> Tuple[str, Color]:
    if not class_names:
        return "", DEFAULT_BOX_COLOR
    if not 0 <= class_id < len(class_names):
        raise ClassIndexOutOfRangeError(
            f"Class id {class_id} outside class list of size {len(class_names)}"
        )
    if class_id >= len(colors):
        raise ClassIndexOutOfRangeError(
            f"Class id {class_id} has no colour (only {len(colors)} defined)"
        )
    return class_names[class_id], colors[class_id]


def draw_prediction(
    frame: Image,
    detection: DetectionCandidate,
    class_names: Sequence[str],
    colors: Sequence[Color],
) -> Image:
    """
    Draw a detection box and a ``name:confidence`` label on ``frame``.

    With an empty ``class_names`` list the label is the confidence alone.

    Raises:
        ClassIndexOutOfRangeError: If the class id has no name or colour.
    """
    name, color = _resolve_class(detection.class_id, class_names, colors)
    h, w = frame.shape[:2]
    box = detection.box.clip(w, h)
    cv2.rectangle(frame, (box.left, box.top), (box.right, box.bottom), color, 2)

    label = f"{detection.confidence:.2f}"
    if name:
        label = f"{name}:{label}"
    (_, label_height), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
    top = max(box.top, label_height)
    cv2.putText(frame, label, (box.left, top), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 2)
    return frame


def draw_inference_time(frame: Image, inference_ms: float) -> Image:
    label = f"Inference time for a frame : {inference_ms:.2f} ms"
    cv2.putText(frame, label, (0, 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 255))
    return frame


def draw_prompt(image: Image, text: str) -> Image:
    """
    Write an instruction line at the top-left of ``image``.
    """
    cv2.putText(image, text, (0, 25), cv2.FONT_HERSHEY_PLAIN, 2, GREEN, 2)
    return image


def mark_clicked_point(image: Image, number: int, x: float, y: float) -> Image:
    """
    Draw a numbered calibration marker, outlined in black so it shows on any background.
    """
    center = (int(round(x)), int(round(y)))
    text_org = (center[0] - 5, center[1] - 10)
    cv2.circle(image, center, 1, BLACK, 5)
    cv2.circle(image, center, 1, GREEN, 2)
    cv2.putText(image, str(number), text_org, cv2.FONT_HERSHEY_PLAIN, 1, BLACK, 5)
    cv2.putText(image, str(number), text_org, cv2.FONT_HERSHEY_PLAIN, 1, GREEN, 2)
    return image


def draw_court_position(court: Image, point: Point2D, color: Color) -> Image:
    """
    Plot a projected position on the court schematic.

    Points at infinity (on the homography's horizon line) are skipped.
    """
    if not np.all(np.isfinite(point)):
        return court
    center = (int(round(point[0])), int(round(point[1])))
    cv2.circle(court, center, 3, color, 2, cv2.LINE_8)
    return court
