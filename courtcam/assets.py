"""
Loaders for externally supplied assets: class names and camera settings.

Both loaders raise :class:`~courtcam.exceptions.AssetLoadError`; callers decide
whether to degrade. The CLI continues without class labels when the class list
is missing, and with empty camera matrices when the settings file is missing.

Camera settings are OpenCV ``FileStorage`` files (YAML/XML) with
``camera_matrix`` and ``distortion_coefficients`` nodes. They are loaded and
carried through the application but not yet applied to projection.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from .exceptions import AssetLoadError


def load_class_names(path: Path | str) -> List[str]:
    """
    Read one class name per line; line ``i`` names class id ``i``.
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            return [line.rstrip("\r\n") for line in f]
    except OSError as exc:
        raise AssetLoadError(f"Could not read class names from {path}: {exc}") from exc


@dataclass(frozen=True)
class CameraSettings:
    """
    Camera intrinsics.

    Attributes:
        camera_matrix: ``3x3`` intrinsic matrix, or ``None`` if not loaded.
        distortion_coefficients: Lens distortion vector, or ``None`` if not loaded.
    """

    camera_matrix: Optional[np.ndarray] = None
    distortion_coefficients: Optional[np.ndarray] = None

    @property
    def is_empty(self) -> bool:
        return self.camera_matrix is None and self.distortion_coefficients is None


def load_camera_settings(path: Path | str) -> CameraSettings:
    """
    Load ``camera_matrix`` and ``distortion_coefficients`` from a FileStorage file.
    """
    path = Path(path)
    if not path.exists():
        raise AssetLoadError(f"Camera settings file {path} not found.")
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except cv2.error as exc:
        raise AssetLoadError(f"Could not parse camera settings {path}: {exc}") from exc
    if not fs.isOpened():
        raise AssetLoadError(f"Could not open camera settings {path}.")
    try:
        camera_matrix = fs.getNode("camera_matrix").mat()
        distortion = fs.getNode("distortion_coefficients").mat()
    finally:
        fs.release()
    return CameraSettings(camera_matrix=camera_matrix, distortion_coefficients=distortion)
