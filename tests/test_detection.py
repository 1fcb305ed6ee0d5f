import numpy as np
import pytest

from courtcam.data_structures import BoundingBox
from courtcam.detection import (
    DetectionSchema,
    DummyDetector,
    RawDetections,
    create_detector,
    decode_detection_table,
    decode_outputs,
    decode_region,
)
from courtcam.exceptions import UnsupportedSchemaError


def _region_row(cx, cy, w, h, scores, objectness=1.0):
    return [cx, cy, w, h, objectness, *scores]


def test_region_row_decodes_to_pixel_box():
    tensor = np.array([_region_row(0.5, 0.5, 0.2, 0.2, [0.1, 0.9, 0.3])], dtype=np.float32)

    candidates = decode_outputs([tensor], DetectionSchema.REGION, 300, 300, 0.5)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.class_id == 1
    assert candidate.confidence == pytest.approx(0.9)
    assert candidate.box == BoundingBox(left=120, top=120, width=60, height=60)


def test_region_rows_at_or_below_threshold_are_dropped():
    tensor = np.array(
        [
            _region_row(0.5, 0.5, 0.2, 0.2, [0.5, 0.1]),
            _region_row(0.3, 0.3, 0.1, 0.1, [0.2, 0.4]),
            _region_row(0.6, 0.6, 0.1, 0.1, [0.2, 0.51]),
        ],
        dtype=np.float32,
    )

    candidates = decode_region([tensor], 100, 100, 0.5)

    assert [c.class_id for c in candidates] == [1]


def test_region_decodes_every_output_tensor():
    first = np.array([_region_row(0.5, 0.5, 0.2, 0.2, [0.9, 0.0])], dtype=np.float32)
    second = np.array(
        [
            _region_row(0.25, 0.25, 0.1, 0.1, [0.0, 0.8]),
            _region_row(0.75, 0.75, 0.1, 0.1, [0.0, 0.1]),
        ],
        dtype=np.float32,
    )

    candidates = decode_region([first, second], 200, 200, 0.5)

    assert [c.class_id for c in candidates] == [0, 1]


def test_region_tie_selects_lowest_class_id():
    tensor = np.array([_region_row(0.5, 0.5, 0.2, 0.2, [0.1, 0.8, 0.8])], dtype=np.float32)

    (candidate,) = decode_region([tensor], 100, 100, 0.5)

    assert candidate.class_id == 1


def test_region_rows_without_scores_are_rejected():
    tensor = np.zeros((2, 5), dtype=np.float32)

    with pytest.raises(UnsupportedSchemaError):
        decode_region([tensor], 100, 100, 0.5)


def test_decoded_candidates_all_exceed_threshold():
    rng = np.random.default_rng(0)
    tensor = rng.uniform(0.0, 1.0, size=(200, 9)).astype(np.float32)

    candidates = decode_region([tensor], 640, 480, 0.5)

    assert candidates
    assert all(c.confidence > 0.5 for c in candidates)
    expected = int((tensor[:, 5:].max(axis=1) > 0.5).sum())
    assert len(candidates) == expected


def test_detection_table_rows_become_corner_boxes():
    table = np.zeros((1, 1, 3, 7), dtype=np.float32)
    table[0, 0, 0] = [0, 3, 0.8, 0.1, 0.2, 0.5, 0.6]
    table[0, 0, 1] = [0, 1, 0.3, 0.1, 0.1, 0.2, 0.2]
    table[0, 0, 2] = [0, 2, 0.5, 0.1, 0.1, 0.2, 0.2]

    candidates = decode_outputs([table], "detection-table", 200, 100, 0.5)

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.class_id == 3
    assert candidate.confidence == pytest.approx(0.8)
    assert candidate.box == BoundingBox(left=20, top=20, width=80, height=40)


def test_detection_table_skips_non_finite_rows():
    table = np.zeros((1, 1, 3, 7), dtype=np.float32)
    table[0, 0, 0] = [0, 1, np.nan, 0.1, 0.1, 0.2, 0.2]
    table[0, 0, 1] = [0, 1, 0.9, np.nan, 0.1, 0.2, 0.2]
    table[0, 0, 2] = [0, 2, 0.7, 0.1, 0.1, 0.2, 0.2]

    candidates = decode_detection_table([table], 100, 100, 0.5)

    assert [c.class_id for c in candidates] == [2]


def test_region_skips_non_finite_rows():
    tensor = np.array(
        [
            _region_row(np.nan, 0.5, 0.1, 0.1, [0.9, 0.1]),
            _region_row(0.5, 0.5, np.inf, 0.1, [0.9, 0.1]),
            _region_row(0.5, 0.5, 0.1, 0.1, [np.nan, 0.2]),
            _region_row(0.5, 0.5, 0.2, 0.2, [0.1, 0.8]),
        ],
        dtype=np.float32,
    )

    candidates = decode_region([tensor], 300, 300, 0.5)

    assert len(candidates) == 1
    assert candidates[0].box == BoundingBox(left=120, top=120, width=60, height=60)


def test_detection_table_with_wrong_row_width_is_rejected():
    with pytest.raises(UnsupportedSchemaError):
        decode_detection_table([np.zeros((1, 1, 2, 6), dtype=np.float32)], 100, 100, 0.5)


def test_unsupported_schema_raises_instead_of_returning_nothing():
    with pytest.raises(UnsupportedSchemaError):
        decode_outputs([np.zeros((1, 7), dtype=np.float32)], "yolov8", 100, 100, 0.5)


def test_schema_from_layer_type():
    assert DetectionSchema.from_layer_type("Region") is DetectionSchema.REGION
    assert DetectionSchema.from_layer_type("DetectionOutput") is DetectionSchema.DETECTION_TABLE
    with pytest.raises(UnsupportedSchemaError):
        DetectionSchema.from_layer_type("Softmax")


def test_empty_outputs_decode_to_nothing():
    assert decode_outputs([], DetectionSchema.REGION, 100, 100) == []
    assert decode_outputs([], DetectionSchema.DETECTION_TABLE, 100, 100) == []


def test_dummy_detector_yields_no_tensors():
    raw = DummyDetector().infer(np.zeros((10, 10, 3), dtype=np.uint8))

    assert isinstance(raw, RawDetections)
    assert list(raw.tensors) == []


def test_create_detector_falls_back_when_model_files_missing(tmp_path):
    detector = create_detector(str(tmp_path / "net.cfg"), str(tmp_path / "net.weights"))
    assert isinstance(detector, DummyDetector)

    with pytest.raises(FileNotFoundError):
        create_detector(
            str(tmp_path / "net.cfg"),
            str(tmp_path / "net.weights"),
            use_dummy_if_unavailable=False,
        )
