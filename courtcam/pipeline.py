"""
Multi-stage capture -> detect -> display pipeline.

Stages are connected by bounded :class:`~courtcam.frame_channel.FrameChannel`
instances and run concurrently:

- capture (worker thread): reads the video source and pushes payload frames,
  then an end-of-stream frame.
- detect (worker thread): runs inference, decoding, suppression and drawing
  through a :class:`DetectionStage`.
- display (calling thread, since HighGUI windows belong on the main thread):
  hands finished frames to a sink.

Channel push/pop are the only blocking points. Each stage checks the shared
:class:`~courtcam.frame_channel.CancellationToken` once per iteration. A frame
that fails to decode or draw is logged and dropped; the pipeline keeps going.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

import cv2

from .data_structures import DetectionCandidate, Frame, Image
from .detection import Detector, decode_outputs
from .exceptions import CourtCamError, InferenceError
from .frame_channel import DEFAULT_CAPACITY, CancellationToken, FrameChannel
from .projection import CourtProjector
from .suppression import DEFAULT_CONF_THRESHOLD, DEFAULT_IOU_THRESHOLD, non_max_suppression
from .team_classifier import DummyTeamClassifier, TeamClassifier
from .visualization import Color, draw_court_position, draw_inference_time, draw_prediction

logger = logging.getLogger(__name__)

FrameHandler = Callable[[Frame], Optional[Frame]]
FrameSink = Callable[[Frame], None]

# Per-frame failures that drop the frame instead of stopping the stage.
FRAME_ERRORS = (CourtCamError, cv2.error, ValueError)


@dataclass
class DetectionStage:
    """
    Per-frame detection work: infer, decode, suppress, draw, project.

    Attributes:
        detector: Inference backend, used only from the detect thread.
        class_names: Class-name list; may be empty.
        colors: One colour per class name.
        conf_threshold: Minimum detection confidence.
        nms_threshold: IoU threshold for suppression.
        projector: Optional calibrated projector for court positions.
        court_image: Court schematic to plot projected positions on.
        team_classifier: Chooses the colour of each projected position.
        show_inference_time: Overlay the forward-pass time.
    """

    detector: Detector
    class_names: Sequence[str] = field(default_factory=list)
    colors: Sequence[Color] = field(default_factory=list)
    conf_threshold: float = DEFAULT_CONF_THRESHOLD
    nms_threshold: float = DEFAULT_IOU_THRESHOLD
    projector: Optional[CourtProjector] = None
    court_image: Optional[Image] = None
    team_classifier: TeamClassifier = field(default_factory=DummyTeamClassifier)
    show_inference_time: bool = False

    def detect(self, image: Image) -> List[DetectionCandidate]:
        """
        Run inference on ``image`` and return the detections that survive NMS.

        Raises:
            InferenceError: If the backend fails on this image.
        """
        try:
            raw = self.detector.infer(image)
        except CourtCamError:
            raise
        except Exception as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc
        h, w = image.shape[:2]
        candidates = decode_outputs(raw.tensors, raw.schema, w, h, self.conf_threshold)
        kept = non_max_suppression(candidates, self.conf_threshold, self.nms_threshold)
        logger.debug("%d candidates, %d after NMS", len(candidates), len(kept))
        return kept

    def __call__(self, frame: Frame) -> Frame:
        image = frame.image
        if image is None:
            raise ValueError("DetectionStage needs a payload frame")
        detections = self.detect(image)
        for detection in detections:
            draw_prediction(image, detection, self.class_names, self.colors)

        if self.show_inference_time:
            inference_ms = getattr(self.detector, "last_inference_ms", None)
            if inference_ms is not None:
                draw_inference_time(image, inference_ms)

        court_view: Optional[Image] = None
        if self.projector is not None and self.court_image is not None:
            court_view = self.court_image.copy()
            if detections:
                positions = self.projector.project_many(d.box.bottom_center for d in detections)
                for detection, position in zip(detections, positions):
                    color = self.team_classifier.classify(image, detection.box)
                    draw_court_position(court_view, position, color)
        return Frame.payload(image, frame.index, court_image=court_view)


def capture_stage(
    source: Iterable[Image],
    outbound: FrameChannel,
    cancel: CancellationToken,
    start_index: int = 0,
) -> None:
    """
    Push every image from ``source`` as a payload frame, then end-of-stream.
    """
    index = start_index
    try:
        for image in source:
            if not outbound.push(Frame.payload(image, index), cancel):
                break
            index += 1
            if cancel.is_cancelled:
                break
    finally:
        outbound.push(Frame.end_of_stream(), cancel)
        logger.info("Capture stage finished after %d frames", index - start_index)


def processing_stage(
    inbound: FrameChannel,
    outbound: Optional[FrameChannel],
    handler: FrameHandler,
    cancel: CancellationToken,
    name: str = "stage",
) -> None:
    """
    Pop frames, apply ``handler`` and push results until end-of-stream.

    The end-of-stream frame is forwarded to ``outbound`` before returning, so
    any number of stages can be chained. A handler returning ``None`` drops
    the frame.
    """
    processed = 0
    try:
        while True:
            frame = inbound.pop(cancel)
            if frame.is_end_of_stream:
                break
            try:
                result = handler(frame)
            except FRAME_ERRORS:
                logger.exception("%s: dropping frame %d", name, frame.index)
                result = None
            if result is not None and outbound is not None:
                outbound.push(result, cancel)
            processed += 1
            if cancel.is_cancelled:
                break
    finally:
        if outbound is not None and not outbound.closed:
            outbound.push(Frame.end_of_stream(), cancel)
        logger.info("%s finished after %d frames", name, processed)


def display_stage(
    inbound: FrameChannel,
    sink: FrameSink,
    cancel: CancellationToken,
) -> None:
    """
    Terminal stage: hand every frame to ``sink`` until end-of-stream.
    """
    processing_stage(inbound, None, _as_handler(sink), cancel, name="display")


def _as_handler(sink: FrameSink) -> FrameHandler:
    def handler(frame: Frame) -> Optional[Frame]:
        sink(frame)
        return None

    return handler


class Pipeline:
    """
    Wires capture, detection and display stages together.

    Args:
        source: Frames to process (e.g., a :class:`~courtcam.video_io.VideoReader`).
        detection: Per-frame detection handler.
        capacity: Bound of each frame channel.
        cancel: Token shared by all stages; created if not given.
    """

    def __init__(
        self,
        source: Iterable[Image],
        detection: FrameHandler,
        capacity: int = DEFAULT_CAPACITY,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        self.source = source
        self.detection = detection
        self.cancel = cancel if cancel is not None else CancellationToken()
        self.captured = FrameChannel(capacity)
        self.annotated = FrameChannel(capacity)

    def run(self, sink: FrameSink) -> None:
        """
        Run until the source is exhausted or the pipeline is cancelled.

        Capture and detection run in worker threads; ``sink`` is called on
        the calling thread.
        """
        workers = [
            threading.Thread(
                target=capture_stage,
                args=(self.source, self.captured, self.cancel),
                name="capture",
                daemon=True,
            ),
            threading.Thread(
                target=processing_stage,
                args=(self.captured, self.annotated, self.detection, self.cancel, "detect"),
                name="detect",
                daemon=True,
            ),
        ]
        logger.info("Starting pipeline (channel capacity %d)", self.captured.capacity)
        for worker in workers:
            worker.start()
        try:
            display_stage(self.annotated, sink, self.cancel)
        finally:
            # Unblock workers if the display stage stopped early.
            self.cancel.cancel()
            for worker in workers:
                worker.join()
        logger.info("Pipeline stopped")
