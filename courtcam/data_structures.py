"""
Core data structures shared by the capture, detection and calibration stages.

Frames travel between pipeline stages through a :class:`~courtcam.frame_channel.FrameChannel`.
A frame is either an ordinary payload carrying an image, or the explicit
end-of-stream marker that tells every downstream stage to shut down.

Bounding boxes are kept in ``(left, top, width, height)`` pixel form, the same
layout the detector decoders produce. Boxes may extend past the frame edges;
drawing code clips them with :meth:`BoundingBox.clip`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import numpy as np

Image = np.ndarray[Any, np.dtype[np.uint8]]
Point2D = Tuple[float, float]


class FrameKind(Enum):
    """Discriminator for :class:`Frame`."""

    PAYLOAD = "payload"
    END_OF_STREAM = "end_of_stream"


@dataclass(frozen=True)
class Frame:
    """
    Unit of work passed between pipeline stages.

    Attributes:
        kind: Whether this frame carries an image or marks end-of-stream.
        image: BGR image for payload frames, ``None`` for end-of-stream.
        index: Zero-based index assigned by the capture stage.
        court_image: Optional annotated court schematic produced alongside
            the camera image (projected player positions).
    """

    kind: FrameKind
    image: Optional[Image] = None
    index: int = -1
    court_image: Optional[Image] = None

    def __post_init__(self) -> None:
        if self.kind is FrameKind.PAYLOAD and self.image is None:
            raise ValueError("payload frames require an image")
        if self.kind is FrameKind.END_OF_STREAM and self.image is not None:
            raise ValueError("end-of-stream frames carry no image")

    @classmethod
    def payload(
        cls, image: Image, index: int, court_image: Optional[Image] = None
    ) -> "Frame":
        return cls(FrameKind.PAYLOAD, image=image, index=index, court_image=court_image)

    @classmethod
    def end_of_stream(cls) -> "Frame":
        return cls(FrameKind.END_OF_STREAM)

    @property
    def is_end_of_stream(self) -> bool:
        return self.kind is FrameKind.END_OF_STREAM


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in frame pixel coordinates.

    Attributes:
        left: x coordinate of the left edge.
        top: y coordinate of the top edge.
        width: Box width in pixels.
        height: Box height in pixels.
    """

    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    @property
    def bottom_center(self) -> Point2D:
        """
        Midpoint of the bottom edge, i.e. where a standing player touches the floor.
        """
        return (self.left + self.width / 2.0, float(self.bottom))

    def clip(self, frame_width: int, frame_height: int) -> "BoundingBox":
        """
        Return the part of the box that lies inside a ``frame_width x frame_height`` image.

        Boxes entirely outside the frame collapse to zero width/height.
        """
        x1 = min(max(self.left, 0), frame_width)
        y1 = min(max(self.top, 0), frame_height)
        x2 = min(max(self.right, 0), frame_width)
        y2 = min(max(self.bottom, 0), frame_height)
        return BoundingBox(x1, y1, max(0, x2 - x1), max(0, y2 - y1))


@dataclass(frozen=True)
class DetectionCandidate:
    """
    Single decoded detection.

    Attributes:
        class_id: Index into the class-name list.
        confidence: Detector confidence in ``[0, 1]``.
        box: Bounding box in frame pixels.
    """

    class_id: int
    confidence: float
    box: BoundingBox


@dataclass(frozen=True)
class CorrespondencePoint:
    """
    A camera-frame point and the court-schematic point showing the same spot.
    """

    frame_point: Point2D
    court_point: Point2D
