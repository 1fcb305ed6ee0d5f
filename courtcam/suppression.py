"""
Greedy non-maximum suppression (NMS) for decoded detections.

Suppression is class-agnostic: a confident box suppresses any overlapping
box, whatever its class id. Candidates are visited by descending confidence;
on equal confidence the candidate that came first in the input wins, so the
result is reproducible for a given decoder output order.
"""

from __future__ import annotations

from typing import List, Sequence

from .data_structures import BoundingBox, DetectionCandidate

DEFAULT_CONF_THRESHOLD = 0.5
DEFAULT_IOU_THRESHOLD = 0.4


def iou(box_a: BoundingBox, box_b: BoundingBox) -> float:
    """
    Compute Intersection over Union (IoU) between two boxes.
    """
    inter_x1 = max(box_a.left, box_b.left)
    inter_y1 = max(box_a.top, box_b.top)
    inter_x2 = min(box_a.right, box_b.right)
    inter_y2 = min(box_a.bottom, box_b.bottom)

    if inter_x2 <= inter_x1 or inter_y2 <= inter_y1:
        return 0.0

    inter_area = (inter_x2 - inter_x1) * (inter_y2 - inter_y1)
    union = box_a.area + box_b.area - inter_area
    if union <= 0:
        return 0.0
    return inter_area / float(union)


def nms_indices(
    boxes: Sequence[BoundingBox],
    confidences: Sequence[float],
    conf_threshold: float = DEFAULT_CONF_THRESHOLD,
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
) -> List[int]:
    """
    Run greedy NMS and return the indices of retained boxes.

    Args:
        boxes: Candidate boxes.
        confidences: Confidence per box, same length as ``boxes``.
        conf_threshold: Boxes with confidence not above this are dropped first.
        iou_threshold: A box is suppressed when its IoU with an already
            retained box exceeds this value.

    Returns:
        Indices into ``boxes``, ordered by descending confidence (input order
        on ties).
    """
    if len(boxes) != len(confidences):
        raise ValueError("boxes and confidences must have the same length")

    candidates = [i for i, score in enumerate(confidences) if score > conf_threshold]
    # sorted() is stable, so equal confidences keep their input order.
    order = sorted(candidates, key=lambda i: -confidences[i])

    kept: List[int] = []
    for idx in order:
        if all(iou(boxes[idx], boxes[k]) <= iou_threshold for k in kept):
            kept.append(idx)
    return kept


def non_max_suppression(
    candidates: Sequence[DetectionCandidate],
    conf_threshold: float = DEFAULT_CONF_THRESHOLD,
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
) -> List[DetectionCandidate]:
    """
    Reduce ``candidates`` to the retained detections, each with its class id
    and confidence.
    """
    indices = nms_indices(
        [c.box for c in candidates],
        [c.confidence for c in candidates],
        conf_threshold=conf_threshold,
        iou_threshold=iou_threshold,
    )
    return [candidates[i] for i in indices]
