import numpy as np
import pytest

from courtcam.data_structures import BoundingBox, DetectionCandidate
from courtcam.exceptions import ClassIndexOutOfRangeError
from courtcam.visualization import (
    DEFAULT_BOX_COLOR,
    class_colors,
    draw_court_position,
    draw_prediction,
    mark_clicked_point,
)


def _blank(h=100, w=100):
    return np.zeros((h, w, 3), dtype=np.uint8)


def test_class_colors_are_deterministic():
    colors = class_colors(3)

    assert len(colors) == 3
    assert colors == class_colors(3)
    assert all(0 <= c < 256 for color in colors for c in color)


def test_prediction_uses_class_colour():
    colors = [(10, 20, 30), (0, 255, 0)]
    frame = draw_prediction(
        _blank(), DetectionCandidate(1, 0.9, BoundingBox(20, 30, 40, 40)), ["ball", "player"], colors
    )

    assert tuple(frame[50, 20]) == (0, 255, 0)


def test_prediction_without_class_names_uses_default_colour():
    frame = draw_prediction(_blank(), DetectionCandidate(5, 0.9, BoundingBox(20, 30, 40, 40)), [], [])

    assert tuple(frame[50, 20]) == DEFAULT_BOX_COLOR


def test_box_past_the_edge_is_clipped():
    frame = draw_prediction(
        _blank(), DetectionCandidate(0, 0.7, BoundingBox(-20, -20, 200, 200)), ["ball"], [(255, 0, 0)]
    )

    assert tuple(frame[50, 0]) == (255, 0, 0)


@pytest.mark.parametrize("class_id", [2, -1])
def test_unknown_class_id_raises(class_id):
    with pytest.raises(ClassIndexOutOfRangeError):
        draw_prediction(
            _blank(), DetectionCandidate(class_id, 0.9, BoundingBox(0, 0, 5, 5)), ["a", "b"], class_colors(2)
        )


def test_class_without_colour_raises():
    with pytest.raises(ClassIndexOutOfRangeError):
        draw_prediction(_blank(), DetectionCandidate(1, 0.9, BoundingBox(0, 0, 5, 5)), ["a", "b"], [(0, 0, 0)])


def test_clicked_point_marker_is_drawn_around_the_click():
    image = mark_clicked_point(np.full((100, 100, 3), 128, dtype=np.uint8), 1, 50, 60)

    assert tuple(image[60, 50]) != (128, 128, 128)
    assert (image[57:64, 47:54] == (0, 255, 0)).all(axis=-1).any()


def test_court_position_skips_points_at_infinity():
    court = draw_court_position(_blank(), (float("inf"), 3.0), (0, 0, 255))
    assert not court.any()

    court = draw_court_position(_blank(), (50.0, 50.0), (0, 0, 255))
    assert court.any()
