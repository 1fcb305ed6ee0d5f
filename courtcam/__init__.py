"""
Top-level package for the courtcam basketball video pipeline.

This package provides a modular pipeline for:
- Moving frames between capture, detection and display stages.
- Decoding raw object-detector tensors into bounding boxes.
- Suppressing overlapping detections (greedy IoU NMS).
- Calibrating the camera view against a top-down court schematic.
- Projecting detected player positions onto that schematic.

See individual submodules for more detailed documentation.
"""

__version__ = "0.1.0"
