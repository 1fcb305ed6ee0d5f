"""
Thin OpenCV wrappers for the video source and the display sink.

:class:`VideoReader` opens either a video file or a live camera (by index) and
exposes an iterator over frames so the rest of the codebase stays free of
capture details. :class:`OpenCVDisplay` is the terminal pipeline sink: it shows
the annotated frame and court schematic, optionally records the frames, and
cancels the pipeline when the operator presses ``q`` or ESC.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Generator, Optional, Tuple, Union

import cv2

from .data_structures import Frame, Image
from .frame_channel import CancellationToken

FRAME_WINDOW = "Frame"
COURT_WINDOW = "Court"


@dataclass
class VideoReader:
    """
    Read frames with optional subsampling.

    Attributes:
        source: Path to a video file, or an integer camera index.
        stride: Keep every N-th frame (1 = keep all).
    """

    source: Union[str, int]
    stride: int = 1

    def __post_init__(self) -> None:
        if self.stride < 1:
            raise ValueError("stride must be >= 1")
        self._cap = cv2.VideoCapture(self.source)
        if not self._cap.isOpened():
            raise FileNotFoundError(f"Could not open video source: {self.source}")
        self._index = 0

    @property
    def fps(self) -> float:
        """
        Frames per second reported by the source (defaults to 25 if missing).
        """
        return float(self._cap.get(cv2.CAP_PROP_FPS) or 25.0)

    @property
    def width(self) -> int:
        return int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)

    @property
    def height(self) -> int:
        return int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)

    def read(self) -> Optional[Image]:
        """
        Read the next frame, or ``None`` at the end of the stream.
        """
        ret, frame = self._cap.read()
        if not ret:
            return None
        self._index += 1
        return frame

    def __iter__(self) -> Generator[Image, None, None]:
        """
        Iterate over the remaining frames, honouring ``stride``.
        """
        while True:
            idx = self._index
            frame = self.read()
            if frame is None:
                break
            if idx % self.stride == 0:
                yield frame

    def release(self) -> None:
        self._cap.release()

    def __enter__(self) -> "VideoReader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()


def open_video(source: Union[str, int], stride: int = 1) -> VideoReader:
    """
    Open a video file, or a camera when ``source`` is a bare integer such as ``"0"``.
    """
    source = str(source)
    return VideoReader(source=int(source) if source.isdigit() else source, stride=stride)


@dataclass
class VideoWriter:
    """
    Simple OpenCV-based video writer for annotated outputs.

    Attributes:
        path: Path to the output video file.
        fps: Target frames per second.
        frame_size: (width, height) in pixels.
        codec: FourCC codec string, e.g., "mp4v", "XVID".
    """

    path: Path
    fps: float
    frame_size: Tuple[int, int]
    codec: str = "mp4v"

    def __post_init__(self) -> None:
        fourcc = cv2.VideoWriter_fourcc(*self.codec)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._writer = cv2.VideoWriter(str(self.path), fourcc, self.fps, self.frame_size)
        if not self._writer.isOpened():
            raise IOError(f"Could not open video writer: {self.path}")

    def write(self, frame: Image) -> None:
        self._writer.write(frame)

    def release(self) -> None:
        self._writer.release()


class OpenCVDisplay:
    """
    Pipeline sink that shows and/or records annotated frames.

    Args:
        cancel: Token cancelled when the operator presses ``q`` or ESC.
        show: Open HighGUI windows.
        output_path: Record annotated frames to this video file.
        fps: Frame rate for the recording.
    """

    def __init__(
        self,
        cancel: CancellationToken,
        show: bool = True,
        output_path: Optional[Path] = None,
        fps: float = 25.0,
    ) -> None:
        self._cancel = cancel
        self._show = show
        self._output_path = output_path
        self._fps = fps
        self._writer: Optional[VideoWriter] = None

    def __call__(self, frame: Frame) -> None:
        image = frame.image
        if image is None:
            return
        if self._output_path is not None:
            if self._writer is None:
                h, w = image.shape[:2]
                self._writer = VideoWriter(self._output_path, fps=self._fps, frame_size=(w, h))
            self._writer.write(image)
        if self._show:
            cv2.imshow(FRAME_WINDOW, image)
            if frame.court_image is not None:
                cv2.imshow(COURT_WINDOW, frame.court_image)
            key = cv2.waitKey(1) & 0xFF
            if key in (ord("q"), 27):
                self._cancel.cancel()

    def close(self) -> None:
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        if self._show:
            cv2.destroyAllWindows()
