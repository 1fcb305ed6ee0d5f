import cv2
import numpy as np
import pytest

from courtcam.assets import CameraSettings, load_camera_settings, load_class_names
from courtcam.exceptions import AssetLoadError


def test_class_names_are_read_one_per_line(tmp_path):
    path = tmp_path / "basketball.names"
    path.write_text("ball\nplayer\nreferee\n")

    assert load_class_names(path) == ["ball", "player", "referee"]


def test_missing_class_names_file_raises(tmp_path):
    with pytest.raises(AssetLoadError):
        load_class_names(tmp_path / "missing.names")


def test_camera_settings_round_trip_through_file_storage(tmp_path):
    path = tmp_path / "camera.yml"
    matrix = np.array([[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]])
    distortion = np.array([[0.1, -0.05, 0.0, 0.0, 0.01]])
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    fs.write("camera_matrix", matrix)
    fs.write("distortion_coefficients", distortion)
    fs.release()

    settings = load_camera_settings(path)

    assert not settings.is_empty
    np.testing.assert_allclose(settings.camera_matrix, matrix)
    np.testing.assert_allclose(settings.distortion_coefficients, distortion)


def test_missing_camera_settings_raise(tmp_path):
    with pytest.raises(AssetLoadError):
        load_camera_settings(tmp_path / "camera.yml")


def test_default_camera_settings_are_empty():
    assert CameraSettings().is_empty
