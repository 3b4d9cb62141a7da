"""
Capabilities the surveillance core consumes from its collaborators.

Collaborators are duck-typed; these protocols document the expected
shape and are used for type hints only.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple

BBox = List[int]
FaceDetection = Tuple[BBox, Sequence[float]]


class FrameSource(Protocol):
    def next_frame(self) -> Optional[Any]:
        """Return the next frame, or ``None`` when none is available."""


class FaceDetector(Protocol):
    def detect(self, frame: Any) -> List[FaceDetection]:
        """Return (bbox, embedding) pairs; bbox is ``[x1, y1, x2, y2]``."""


class NotificationSink(Protocol):
    def publish(self, zone_id: str, alert: Any) -> None:
        """Deliver an alert on a best-effort basis."""


__all__ = ["BBox", "FaceDetection", "FrameSource", "FaceDetector", "NotificationSink"]
