"""
Entry point for the courtcam pipeline.

This script wires together:
- Video capture from a file or camera
- Interactive court calibration (or a saved calibration file)
- Object detection, decoding and non-maximum suppression
- Projection of detected players onto the court schematic
- Display and optional recording of the annotated output

It can be run from the command line, for example:

    courtcam \\
        --video_source data/game.mp4 \\
        --court_image data/court.png \\
        --save_calibration data/calibration.json

Settings can also be read from a YAML file passed with ``--config``.
"""

from __future__ import annotations

import argparse
import itertools
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import cv2

from .assets import CameraSettings, load_camera_settings, load_class_names
from .calibration import CourtCalibrator
from .calibration_data import CorrespondenceSet, load_correspondences, save_correspondences
from .calibration_ui import run_interactive_calibration
from .config import Config, load_config
from .data_structures import Image
from .detection import create_detector
from .exceptions import AssetLoadError, CalibrationError
from .frame_channel import CancellationToken
from .pipeline import DetectionStage, Pipeline
from .projection import CourtProjector
from .team_classifier import create_team_classifier
from .video_io import OpenCVDisplay, open_video
from .visualization import class_colors

logger = logging.getLogger(__name__)

# CLI destination -> Config field, for flags that map one to one.
_ARG_FIELDS = {
    "video_source": "video_source",
    "frame_stride": "frame_stride",
    "model_preset": "model_preset",
    "model_config": "model_configuration",
    "model_weights": "model_weights",
    "classes_file": "classes_file",
    "court_image": "court_image",
    "camera_settings": "camera_settings_file",
    "calibration_file": "calibration_file",
    "save_calibration": "save_calibration_file",
    "calibration_attempts": "calibration_attempts",
    "output_video": "output_video",
    "log_level": "log_level",
}


def build_config_from_args(args: argparse.Namespace) -> Config:
    """
    Construct a :class:`Config` from code defaults, optional YAML, then CLI flags.
    """
    config = load_config(args.config) if args.config is not None else Config()
    config.update(
        {
            field_name: getattr(args, dest)
            for dest, field_name in _ARG_FIELDS.items()
            if getattr(args, dest, None) is not None
        }
    )
    if args.no_display:
        config.display = False
    if args.cache_homography:
        config.cache_homography = True
    if args.skip_calibration:
        config.skip_calibration = True
    return config


def _load_class_names(config: Config) -> List[str]:
    try:
        names = load_class_names(config.resolved_classes_file)
    except AssetLoadError as exc:
        logger.warning("%s Detections will be unlabeled.", exc)
        return []
    logger.info("Loaded %d class names", len(names))
    return names


def _load_camera_settings(config: Config) -> CameraSettings:
    if config.camera_settings_file is None:
        return CameraSettings()
    try:
        settings = load_camera_settings(config.camera_settings_file)
    except AssetLoadError as exc:
        logger.warning("%s Continuing with empty camera matrices.", exc)
        return CameraSettings()
    logger.info("Loaded camera settings (not applied to projection)")
    return settings


def _calibrate(config: Config, court: Image, frame: Image) -> Optional[CorrespondenceSet]:
    """
    Load or interactively collect the correspondence set; ``None`` on failure.
    """
    if config.calibration_file is not None:
        try:
            correspondences = load_correspondences(config.calibration_file)
        except (CalibrationError, FileNotFoundError) as exc:
            logger.error("Could not use calibration file: %s", exc)
            return None
        logger.info("Loaded %d correspondences from %s", len(correspondences), config.calibration_file)
        return correspondences

    attempts = max(1, config.calibration_attempts)
    for attempt in range(1, attempts + 1):
        calibrator = CourtCalibrator(
            court,
            frame,
            min_points=config.min_calibration_points,
            max_points=config.max_calibration_points,
        )
        result = run_interactive_calibration(calibrator)
        if result.ok:
            correspondences = result.unwrap()
            if config.save_calibration_file is not None:
                save_correspondences(correspondences, config.save_calibration_file)
                logger.info("Saved calibration to %s", config.save_calibration_file)
            return correspondences
        logger.error("Calibration attempt %d/%d failed", attempt, attempts)
    return None


def run(config: Config) -> int:
    """
    Calibrate, then run the capture/detect/display pipeline.

    Returns:
        Process exit status.
    """
    video = open_video(config.video_source, stride=config.frame_stride)
    try:
        first_frame = video.read()
        if first_frame is None:
            logger.error("Video source %s produced no frames", config.video_source)
            return 1

        class_names = _load_class_names(config)
        camera_settings = _load_camera_settings(config)
        logger.debug("Camera settings empty: %s", camera_settings.is_empty)

        court: Optional[Image] = None
        projector: Optional[CourtProjector] = None
        if not config.skip_calibration:
            court = cv2.imread(str(config.court_image))
            if court is None:
                logger.error("Could not read court image %s", config.court_image)
                return 1
            correspondences = _calibrate(config, court, first_frame)
            if correspondences is None:
                return 1
            projector = CourtProjector(
                correspondences,
                cache_homography=config.cache_homography,
                ransac_reproj_threshold=config.ransac_reproj_threshold,
            )

        preset = config.preset
        detector = create_detector(
            model_configuration=config.resolved_model_configuration,
            model_weights=config.resolved_model_weights,
            input_size=preset.input_size,
            scale=preset.scale,
            mean=preset.mean,
            swap_rb=preset.swap_rb,
        )
        stage = DetectionStage(
            detector=detector,
            class_names=class_names,
            colors=class_colors(len(class_names)),
            conf_threshold=config.conf_threshold,
            nms_threshold=config.nms_threshold,
            projector=projector,
            court_image=court,
            team_classifier=create_team_classifier(config.team_classifier),
            show_inference_time=config.show_inference_time,
        )

        cancel = CancellationToken()
        display = OpenCVDisplay(
            cancel,
            show=config.display,
            output_path=config.output_video,
            fps=video.fps,
        )
        pipeline = Pipeline(
            itertools.chain([first_frame], video),
            stage,
            capacity=config.channel_capacity,
            cancel=cancel,
        )
        try:
            pipeline.run(display)
        finally:
            display.close()
    finally:
        video.release()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courtcam",
        description="Basketball player detection with court-plane projection.",
    )
    parser.add_argument("--config", type=Path, help="Optional YAML config file.")
    parser.add_argument("--video_source", type=str, help="Video file path or camera index.")
    parser.add_argument("--frame_stride", type=int, help="Process every N-th frame.")
    parser.add_argument("--model_preset", choices=["yolo", "mobilenet_ssd"], help="Detector preset.")
    parser.add_argument("--model_config", type=str, help="Network description file (overrides preset).")
    parser.add_argument("--model_weights", type=str, help="Network weights file (overrides preset).")
    parser.add_argument("--classes_file", type=str, help="Class names, one per line (overrides preset).")
    parser.add_argument("--court_image", type=Path, help="Top-down court schematic image.")
    parser.add_argument("--camera_settings", type=Path, help="OpenCV FileStorage file with camera intrinsics.")
    parser.add_argument("--calibration_file", type=Path, help="Use saved correspondences instead of clicking.")
    parser.add_argument("--save_calibration", type=Path, help="Save clicked correspondences to this JSON file.")
    parser.add_argument("--calibration_attempts", type=int, help="Interactive calibration attempts before giving up.")
    parser.add_argument("--skip_calibration", action="store_true", help="Run detection only, no court projection.")
    parser.add_argument("--cache_homography", action="store_true", help="Estimate the homography once.")
    parser.add_argument("--output_video", type=Path, help="Record annotated frames to this file.")
    parser.add_argument("--no_display", action="store_true", help="Do not open OpenCV windows.")
    parser.add_argument("--log_level", type=str, help="Logging level (DEBUG, INFO, ...).")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI entrypoint. Use ``courtcam --help`` for available options.
    """
    args = build_parser().parse_args(argv)
    config = build_config_from_args(args)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(config)


if __name__ == "__main__":
    raise SystemExit(main())
