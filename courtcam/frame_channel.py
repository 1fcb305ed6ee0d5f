"""
Bounded frame hand-off between pipeline stages.

Each stage pops frames from one :class:`FrameChannel` and pushes results to the
next. The channel bound gives backpressure: a fast capture stage blocks on
``push`` instead of buffering an unbounded backlog for a slow detector.

Shutdown is signalled two ways:

- An end-of-stream :class:`~courtcam.data_structures.Frame`, pushed last by a
  producer and forwarded by every stage that pops it.
- A shared :class:`CancellationToken`, checked by stages once per iteration.
  Blocking calls also watch the token so a cancelled pipeline never deadlocks
  on a full or empty channel.
"""

from __future__ import annotations

import queue
import threading
from typing import Optional

from .data_structures import Frame

DEFAULT_CAPACITY = 8
# How often blocked push/pop calls re-check the cancellation token.
POLL_INTERVAL_S = 0.05


class CancellationToken:
    """
    Cooperative cancellation flag shared by all stages of one pipeline run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until cancelled or ``timeout`` elapses; return the flag.
        """
        return self._event.wait(timeout)


class FrameChannel:
    """
    FIFO queue of frames with a fixed capacity.

    Safe for one producer thread and one consumer thread per instance.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._queue: "queue.Queue[Frame]" = queue.Queue(maxsize=capacity)
        self._closed = False
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        """
        True once an end-of-stream frame has been pushed.
        """
        return self._closed

    def __len__(self) -> int:
        return self._queue.qsize()

    def push(self, frame: Frame, cancel: Optional[CancellationToken] = None) -> bool:
        """
        Append ``frame``, blocking while the channel is full.

        Returns:
            ``True`` if the frame was enqueued, ``False`` if ``cancel`` fired
            while waiting for space (the frame is dropped).

        Raises:
            ValueError: If end-of-stream was already pushed to this channel.
        """
        with self._lock:
            if self._closed:
                raise ValueError("cannot push to a channel after end-of-stream")
            if frame.is_end_of_stream:
                self._closed = True
        if cancel is None:
            self._queue.put(frame)
            return True
        while True:
            try:
                self._queue.put(frame, timeout=POLL_INTERVAL_S)
                return True
            except queue.Full:
                if cancel.is_cancelled:
                    return False

    def pop(self, cancel: Optional[CancellationToken] = None) -> Frame:
        """
        Remove and return the oldest frame, blocking while the channel is empty.

        If ``cancel`` fires while the channel is empty, an end-of-stream frame
        is returned so the caller shuts down the same way it would at the end
        of the stream.
        """
        if cancel is None:
            return self._queue.get()
        while True:
            try:
                return self._queue.get(timeout=POLL_INTERVAL_S)
            except queue.Empty:
                if cancel.is_cancelled:
                    return Frame.end_of_stream()
