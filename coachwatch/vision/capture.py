"""
OpenCV frame sources for webcams, RTSP streams and video files.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Optional

try:
    import cv2  # type: ignore
except Exception:
    cv2 = None  # type: ignore

from ..core.errors import ModelUnavailable


class OpenCVFrameSource:
    """Hand out the next available frame from a ``cv2.VideoCapture``.

    ``source`` is a device index, an RTSP URL or a file path. A capture that
    fails to open or read yields ``None``; the capture is reopened on the
    next call.
    """

    def __init__(self, source: "int | str" = 0) -> None:
        if cv2 is None:
            raise ModelUnavailable("opencv is not installed; install the 'vision' extra to capture frames")
        self.logger = logging.getLogger("capture")
        self.source = source
        self._cap: Optional[Any] = None
        self._lock = threading.Lock()

    def _is_realtime(self) -> bool:
        return isinstance(self.source, int) or str(self.source).lower().startswith(("rtsp://", "rtmp://", "http"))

    def _open_capture(self) -> Optional[Any]:
        if self._is_realtime() and not isinstance(self.source, int):
            os.environ.setdefault(
                "OPENCV_FFMPEG_CAPTURE_OPTIONS",
                "rtsp_transport;tcp|fflags;nobuffer|flags;low_delay",
            )
            cap = cv2.VideoCapture(self.source, cv2.CAP_FFMPEG)
            if not cap.isOpened():
                cap = cv2.VideoCapture(self.source)
        else:
            cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            self.logger.warning("Unable to open capture source %s", self.source)
            return None
        if self._is_realtime():
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        return cap

    def next_frame(self) -> Optional[Any]:
        with self._lock:
            if self._cap is None:
                self._cap = self._open_capture()
                if self._cap is None:
                    return None
            ok, frame = self._cap.read()
            if not ok or frame is None:
                self.logger.warning("Frame read failed from %s; reopening on next call", self.source)
                self._cap.release()
                self._cap = None
                return None
            return frame

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None


def load_image(path: str) -> Optional[Any]:
    """Read an enrollment image from disk, or ``None`` if it cannot be read."""
    if cv2 is None:
        raise ModelUnavailable("opencv is not installed; install the 'vision' extra to load images")
    if not os.path.exists(path):
        return None
    return cv2.imread(path)


__all__ = ["OpenCVFrameSource", "load_image"]
