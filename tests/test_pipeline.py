import itertools

import numpy as np

from courtcam.calibration_data import CorrespondenceSet
from courtcam.data_structures import Frame
from courtcam.detection import DetectionSchema, RawDetections
from courtcam.frame_channel import CancellationToken
from courtcam.pipeline import DetectionStage, Pipeline
from courtcam.projection import CourtProjector
from courtcam.visualization import class_colors

FRAME = [(100, 400), (540, 400), (420, 150), (220, 150)]
COURT = [(0, 0), (280, 0), (280, 150), (0, 150)]


class FakeDetector:
    """
    Returns two overlapping region rows and one weak row for every image.
    """

    last_inference_ms = 12.5

    def __init__(self, schema=DetectionSchema.REGION):
        self.schema = schema
        self.calls = 0

    def infer(self, image):
        self.calls += 1
        rows = np.array(
            [
                [0.5, 0.5, 0.1, 0.1, 0.9, 0.1, 0.95],
                [0.505, 0.5, 0.1, 0.1, 0.9, 0.8, 0.2],
                [0.2, 0.2, 0.1, 0.1, 0.9, 0.3, 0.1],
            ],
            dtype=np.float32,
        )
        return RawDetections(tensors=[rows], schema=self.schema)


def _image(value=0):
    return np.full((480, 640, 3), value, dtype=np.uint8)


def _stage(**kwargs):
    return DetectionStage(
        detector=kwargs.pop("detector", FakeDetector()),
        class_names=["ball", "player"],
        colors=class_colors(2),
        **kwargs,
    )


def test_detect_decodes_and_suppresses():
    detections = _stage().detect(_image())

    assert len(detections) == 1
    assert detections[0].class_id == 1
    assert detections[0].box.left == 288
    assert detections[0].box.width == 64


def test_stage_draws_and_projects_onto_a_court_copy():
    court = np.full((200, 300, 3), 255, dtype=np.uint8)
    projector = CourtProjector(CorrespondenceSet.from_point_lists(FRAME, COURT))
    stage = _stage(projector=projector, court_image=court, show_inference_time=True)

    out = stage(Frame.payload(_image(), 7))

    assert out.index == 7
    assert out.image is not None and out.image.any()
    assert out.court_image is not None
    assert not np.array_equal(out.court_image, court)
    assert (court == 255).all()


def test_stage_without_projector_has_no_court_view():
    out = _stage()(Frame.payload(_image(), 0))

    assert out.court_image is None


def test_pipeline_runs_all_frames_in_order():
    detector = FakeDetector()
    seen = []

    Pipeline([_image(i) for i in range(5)], _stage(detector=detector), capacity=2).run(
        lambda frame: seen.append(frame.index)
    )

    assert seen == [0, 1, 2, 3, 4]
    assert detector.calls == 5


def test_frames_with_unknown_schema_are_dropped():
    seen = []
    stage = _stage(detector=FakeDetector(schema="yolov8"))

    Pipeline([_image(), _image()], stage, capacity=2).run(lambda frame: seen.append(frame))

    assert seen == []


def test_sink_can_stop_an_endless_source():
    cancel = CancellationToken()
    seen = []

    def sink(frame):
        seen.append(frame.index)
        if len(seen) == 3:
            cancel.cancel()

    source = (_image() for _ in itertools.count())
    Pipeline(source, _stage(), capacity=2, cancel=cancel).run(sink)

    assert seen == [0, 1, 2]
    assert cancel.is_cancelled


class FlakyDetector(FakeDetector):
    """
    Fails or returns a corrupt row on the second call only.
    """

    def __init__(self, failure):
        super().__init__()
        self.failure = failure

    def infer(self, image):
        raw = super().infer(image)
        if self.calls != 2:
            return raw
        if isinstance(self.failure, Exception):
            raise self.failure
        return RawDetections(tensors=[np.array([self.failure], dtype=np.float32)], schema=self.schema)


def test_corrupt_rows_do_not_stop_the_pipeline():
    seen = []
    stage = _stage(detector=FlakyDetector([np.nan, 0.5, 0.1, 0.1, 1.0, 0.9]))

    Pipeline([_image() for _ in range(5)], stage, capacity=2).run(lambda frame: seen.append(frame.index))

    assert seen == [0, 1, 2, 3, 4]


def test_backend_failure_drops_only_that_frame():
    for failure in (ValueError("bad blob"), RuntimeError("backend crashed")):
        seen = []
        stage = _stage(detector=FlakyDetector(failure))

        Pipeline([_image() for _ in range(5)], stage, capacity=2).run(lambda frame: seen.append(frame.index))

        assert seen == [0, 2, 3, 4]
