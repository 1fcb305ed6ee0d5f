"""
Configuration for the courtcam pipeline.

This module centralizes configurable parameters such as:
- The video source and model files.
- Detection and suppression thresholds.
- Calibration limits and the court schematic.

Values come from the :class:`Config` defaults, optionally overridden by a YAML
file (see :func:`load_config`) and then by command-line flags.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, cast

import yaml


@dataclass(frozen=True)
class ModelPreset:
    """
    Files and input-blob parameters for one supported network.

    Attributes:
        model_configuration: Network description file.
        model_weights: Trained weights file.
        classes_file: One class name per line.
        input_size: ``(width, height)`` of the network input.
        scale: Pixel scale factor for the input blob.
        mean: Per-channel mean subtracted before scaling.
        swap_rb: Whether the network expects RGB input.
    """

    model_configuration: str
    model_weights: str
    classes_file: str
    input_size: Tuple[int, int]
    scale: float
    mean: float
    swap_rb: bool


MODEL_PRESETS: Dict[str, ModelPreset] = {
    "yolo": ModelPreset(
        model_configuration="yolo/basketball-yolov3-tiny.cfg",
        model_weights="yolo/Weights/basketball-yolov3-tiny_7000.weights",
        classes_file="yolo/basketball.names",
        input_size=(288, 288),
        scale=1 / 255.0,
        mean=0.0,
        swap_rb=True,
    ),
    "mobilenet_ssd": ModelPreset(
        model_configuration="mobilenetSSD/deploy.prototxt",
        model_weights="mobilenetSSD/deploy.caffemodel",
        classes_file="mobilenetSSD/classes.txt",
        input_size=(300, 300),
        scale=0.007843,
        mean=127.5,
        swap_rb=False,
    ),
}


@dataclass
class Config:
    """
    High-level configuration for a single run.

    Attributes:
        video_source: Video file path, or a camera index such as ``"0"``.
        frame_stride: Process every N-th frame.
        model_preset: Key into :data:`MODEL_PRESETS`.
        model_configuration: Overrides the preset's network description path.
        model_weights: Overrides the preset's weights path.
        classes_file: Overrides the preset's class-name list path.
        conf_threshold: Minimum detection confidence (exclusive).
        nms_threshold: IoU above which overlapping detections are suppressed.
        channel_capacity: Bound of every frame channel between stages.
        court_image: Top-down court schematic image.
        camera_settings_file: OpenCV FileStorage file with camera intrinsics.
        min_calibration_points: Minimum clicks per plane.
        max_calibration_points: Maximum clicks per plane.
        calibration_attempts: Interactive sessions to try before giving up.
        skip_calibration: Run detection only, without court projection.
        calibration_file: Saved correspondences; skips the interactive session.
        save_calibration_file: Where to save correspondences from a session.
        cache_homography: Estimate the homography once instead of per frame.
        ransac_reproj_threshold: RANSAC inlier threshold in court pixels.
        team_classifier: Team classifier type (``"dummy"``).
        show_inference_time: Overlay the forward-pass time on each frame.
        display: Show OpenCV windows.
        output_video: Optional path for an annotated output video.
        log_level: Logging level name.
    """

    video_source: str = "0"
    frame_stride: int = 1

    model_preset: str = "yolo"
    model_configuration: Optional[str] = None
    model_weights: Optional[str] = None
    classes_file: Optional[str] = None

    conf_threshold: float = 0.5
    nms_threshold: float = 0.4

    channel_capacity: int = 8

    court_image: Path = Path("court.png")
    camera_settings_file: Optional[Path] = None

    min_calibration_points: int = 4
    max_calibration_points: int = 15
    calibration_attempts: int = 1
    skip_calibration: bool = False
    calibration_file: Optional[Path] = None
    save_calibration_file: Optional[Path] = None

    cache_homography: bool = False
    ransac_reproj_threshold: float = 3.0

    team_classifier: str = "dummy"
    show_inference_time: bool = True
    display: bool = True
    output_video: Optional[Path] = None

    log_level: str = "INFO"

    @property
    def preset(self) -> ModelPreset:
        try:
            return MODEL_PRESETS[self.model_preset]
        except KeyError:
            raise ValueError(
                f"Unknown model preset {self.model_preset!r}; "
                f"choose from {sorted(MODEL_PRESETS)}"
            ) from None

    @property
    def resolved_model_configuration(self) -> str:
        return self.model_configuration or self.preset.model_configuration

    @property
    def resolved_model_weights(self) -> str:
        return self.model_weights or self.preset.model_weights

    @property
    def resolved_classes_file(self) -> str:
        return self.classes_file or self.preset.classes_file

    def update(self, values: Mapping[str, Any]) -> None:
        """
        Override fields from a mapping, converting path-typed fields to :class:`Path`.

        Raises:
            ValueError: For keys that are not configuration fields.
        """
        known = {f.name: f for f in fields(self)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        for key, value in values.items():
            if value is not None and "Path" in str(known[key].type):
                value = Path(value)
            setattr(self, key, value)


def _load_yaml(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a top-level mapping.")
    return cast(Dict[str, Any], data)


def load_config(config_path: Path | str, base: Optional[Config] = None) -> Config:
    """
    Build a :class:`Config` from code defaults overridden by a YAML file.
    """
    config = base if base is not None else Config()
    config.update(_load_yaml(Path(config_path)))
    return config


DEFAULT_CONFIG = Config()
