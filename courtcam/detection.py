"""
Object detection: running the network and decoding its raw output tensors.

Two raw output layouts are supported:

- **Region** (YOLO ``Region`` output layer): one row per anchor,
  ``[center_x, center_y, width, height, objectness, score_0, score_1, ...]``
  with coordinates as fractions of the frame size.
- **Detection table** (SSD ``DetectionOutput`` layer): one tensor of 7-wide rows
  ``[image_id, class_id, confidence, left, top, right, bottom]`` with
  normalized corner coordinates.

The layout is decided once, when the network is loaded, and travels with every
forward pass as a :class:`DetectionSchema` tag. Decoding an unknown layout is
an error rather than an empty result, so a model/decoder mismatch is visible.

The main entrypoints are :func:`create_detector`, which returns an object with
an ``infer(image)`` method, and :func:`decode_outputs`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

import cv2
import numpy as np

from .data_structures import BoundingBox, DetectionCandidate, Image
from .exceptions import UnsupportedSchemaError

logger = logging.getLogger(__name__)

CONF_THRESHOLD = 0.5
# Columns before the per-class scores in a region row.
REGION_SCORE_OFFSET = 5
DETECTION_TABLE_ROW_WIDTH = 7


class DetectionSchema(Enum):
    """Raw output layouts the decoder understands."""

    REGION = "region"
    DETECTION_TABLE = "detection-table"

    @classmethod
    def from_layer_type(cls, layer_type: str) -> "DetectionSchema":
        """
        Map an OpenCV DNN output layer type to a schema.
        """
        if layer_type == "Region":
            return cls.REGION
        if layer_type == "DetectionOutput":
            return cls.DETECTION_TABLE
        raise UnsupportedSchemaError(f"Unsupported output layer type: {layer_type!r}")


@dataclass(frozen=True)
class RawDetections:
    """
    Output of one forward pass.

    Attributes:
        tensors: Raw output blobs, one per unconnected output layer.
        schema: Layout of ``tensors``.
    """

    tensors: Sequence[np.ndarray]
    schema: DetectionSchema


def decode_region(
    tensors: Sequence[np.ndarray],
    frame_width: int,
    frame_height: int,
    conf_threshold: float = CONF_THRESHOLD,
) -> List[DetectionCandidate]:
    """
    Decode region-style tensors.

    For each row the best-scoring class is selected; rows whose best score
    exceeds ``conf_threshold`` become candidates. Centre and size are scaled
    to frame pixels and converted to a top-left corner box.
    """
    candidates: List[DetectionCandidate] = []
    for tensor in tensors:
        data = np.asarray(tensor, dtype=np.float32)
        if data.size == 0:
            continue
        rows = data.reshape(-1, data.shape[-1])
        if rows.shape[1] <= REGION_SCORE_OFFSET:
            raise UnsupportedSchemaError(
                f"Region rows need more than {REGION_SCORE_OFFSET} columns, got {rows.shape[1]}"
            )
        scores = rows[:, REGION_SCORE_OFFSET:]
        # argmax returns the first maximum, so ties go to the lower class id.
        class_ids = np.argmax(scores, axis=1)
        best = scores[np.arange(len(rows)), class_ids]
        # Rows with a non-finite box or score are dropped.
        keep = (best > conf_threshold) & np.isfinite(rows[:, :4]).all(axis=1)
        for row, class_id, confidence in zip(rows[keep], class_ids[keep], best[keep]):
            center_x = int(row[0] * frame_width)
            center_y = int(row[1] * frame_height)
            width = int(row[2] * frame_width)
            height = int(row[3] * frame_height)
            candidates.append(
                DetectionCandidate(
                    class_id=int(class_id),
                    confidence=float(confidence),
                    box=BoundingBox(center_x - width // 2, center_y - height // 2, width, height),
                )
            )
    return candidates


def decode_detection_table(
    tensors: Sequence[np.ndarray],
    frame_width: int,
    frame_height: int,
    conf_threshold: float = CONF_THRESHOLD,
) -> List[DetectionCandidate]:
    """
    Decode a single detection-table tensor (e.g. shape ``(1, 1, N, 7)``).
    """
    if not tensors:
        return []
    data = np.asarray(tensors[0], dtype=np.float32)
    if data.size == 0:
        return []
    if data.shape[-1] != DETECTION_TABLE_ROW_WIDTH:
        raise UnsupportedSchemaError(
            f"Detection-table rows must have {DETECTION_TABLE_ROW_WIDTH} columns, got {data.shape[-1]}"
        )
    candidates: List[DetectionCandidate] = []
    for row in data.reshape(-1, DETECTION_TABLE_ROW_WIDTH):
        confidence = float(row[2])
        if not confidence > conf_threshold or not np.isfinite(row[1:]).all():
            continue
        left = int(row[3] * frame_width)
        top = int(row[4] * frame_height)
        right = int(row[5] * frame_width)
        bottom = int(row[6] * frame_height)
        candidates.append(
            DetectionCandidate(
                class_id=int(row[1]),
                confidence=confidence,
                box=BoundingBox(left, top, right - left, bottom - top),
            )
        )
    return candidates


Decoder = Callable[[Sequence[np.ndarray], int, int, float], List[DetectionCandidate]]

_DECODERS: Dict[DetectionSchema, Decoder] = {
    DetectionSchema.REGION: decode_region,
    DetectionSchema.DETECTION_TABLE: decode_detection_table,
}


def decode_outputs(
    tensors: Sequence[np.ndarray],
    schema: Union[DetectionSchema, str],
    frame_width: int,
    frame_height: int,
    conf_threshold: float = CONF_THRESHOLD,
) -> List[DetectionCandidate]:
    """
    Decode raw tensors according to ``schema``.

    Args:
        tensors: Raw network outputs.
        schema: A :class:`DetectionSchema` or its string value
            (``"region"`` / ``"detection-table"``).
        frame_width: Width of the frame the detections refer to.
        frame_height: Height of the frame the detections refer to.
        conf_threshold: Minimum confidence (exclusive).

    Raises:
        UnsupportedSchemaError: If ``schema`` is not a known layout.
    """
    if not isinstance(schema, DetectionSchema):
        try:
            schema = DetectionSchema(schema)
        except ValueError as exc:
            raise UnsupportedSchemaError(f"Unsupported detection schema: {schema!r}") from exc
    return _DECODERS[schema](tensors, frame_width, frame_height, conf_threshold)


class Detector(Protocol):
    """
    Protocol for inference backends.

    Concrete implementations must provide an :meth:`infer` method.
    """

    def infer(self, image: Image) -> RawDetections:
        """
        Run a forward pass on a BGR image and return the raw output tensors.
        """
        ...


@dataclass
class OpenCVDnnDetector:
    """
    Inference backend built on ``cv2.dnn``.

    Attributes:
        model_configuration: Network description (Darknet ``.cfg`` or Caffe ``.prototxt``).
        model_weights: Trained weights (``.weights`` or ``.caffemodel``).
        input_size: ``(width, height)`` the frame is resized to.
        scale: Pixel scale factor applied when building the input blob.
        mean: Value subtracted from each channel before scaling.
        swap_rb: Whether to convert BGR frames to RGB.
    """

    model_configuration: str
    model_weights: str
    input_size: Tuple[int, int] = (288, 288)
    scale: float = 1 / 255.0
    mean: float = 0.0
    swap_rb: bool = True
    schema: DetectionSchema = field(init=False)

    def __post_init__(self) -> None:
        self._net = cv2.dnn.readNet(self.model_weights, self.model_configuration)
        self._net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
        self._net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)
        self._output_names = self._net.getUnconnectedOutLayersNames()

        layer_names = self._net.getLayerNames()
        last_layer = self._net.getLayer(self._net.getLayerId(layer_names[-1]))
        self.schema = DetectionSchema.from_layer_type(last_layer.type)
        logger.info(
            "Loaded %s (%s output, input %dx%d)",
            self.model_weights,
            self.schema.value,
            self.input_size[0],
            self.input_size[1],
        )

    def infer(self, image: Image) -> RawDetections:
        blob = cv2.dnn.blobFromImage(
            image,
            self.scale,
            self.input_size,
            (self.mean, self.mean, self.mean),
            self.swap_rb,
            False,
        )
        self._net.setInput(blob)
        outs = self._net.forward(self._output_names)
        return RawDetections(tensors=list(outs), schema=self.schema)

    @property
    def last_inference_ms(self) -> float:
        """
        Duration of the most recent forward pass in milliseconds.
        """
        ticks, _ = self._net.getPerfProfile()
        return ticks * 1000.0 / cv2.getTickFrequency()


class DummyDetector:
    """
    Fallback detector that returns no detections.

    Useful for exercising capture, calibration and display when model files
    are not available.
    """

    schema = DetectionSchema.REGION

    def infer(self, image: Image) -> RawDetections:
        return RawDetections(tensors=[], schema=self.schema)


def create_detector(
    model_configuration: str,
    model_weights: str,
    input_size: Tuple[int, int] = (288, 288),
    scale: float = 1 / 255.0,
    mean: float = 0.0,
    swap_rb: bool = True,
    use_dummy_if_unavailable: bool = True,
) -> Detector:
    """
    Factory for creating a detector instance.

    Args:
        model_configuration: Path to the network description file.
        model_weights: Path to the weights file.
        input_size: Network input ``(width, height)``.
        scale: Blob pixel scale factor.
        mean: Blob mean subtraction value.
        swap_rb: Convert BGR to RGB when building the blob.
        use_dummy_if_unavailable: If True, fall back to :class:`DummyDetector`
            when the model files do not exist.

    Returns:
        An object implementing the :class:`Detector` protocol.
    """
    missing: Optional[str] = next(
        (p for p in (model_configuration, model_weights) if not Path(p).exists()),
        None,
    )
    if missing is not None:
        if use_dummy_if_unavailable:
            logger.warning("Model file %s not found; running without detections.", missing)
            return DummyDetector()
        raise FileNotFoundError(f"Model file not found: {missing}")
    return OpenCVDnnDetector(
        model_configuration=model_configuration,
        model_weights=model_weights,
        input_size=input_size,
        scale=scale,
        mean=mean,
        swap_rb=swap_rb,
    )
