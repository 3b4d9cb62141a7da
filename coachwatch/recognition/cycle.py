"""
One detect, embed and match pass over a single frame.

The cycle only talks to its collaborators and returns an outcome; all
security-state mutation happens downstream in the zone state registry.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from ..core.errors import DetectionUnavailable, InvalidEmbeddingDimension, log_exception
from ..interfaces import FaceDetector, FrameSource
from ..matching.matcher import Matcher, MatchResult


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class CycleOutcome:
    """Result of one recognition cycle.

    An empty ``results`` list with no ``error`` means the frame was
    observed and contained no faces. ``error`` means the scene could not
    be observed at all.
    """

    zone_id: str
    completed_at: datetime.datetime
    results: List[MatchResult] = field(default_factory=list)
    error: Optional[DetectionUnavailable] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def unauthorized(self) -> List[MatchResult]:
        return [r for r in self.results if r.is_unauthorized]


class RecognitionCycle:
    def __init__(
        self,
        *,
        frame_source: Optional[FrameSource],
        detector: FaceDetector,
        matcher: Matcher,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.frame_source = frame_source
        self.detector = detector
        self.matcher = matcher
        self.clock = clock

    def ensure_ready(self) -> None:
        """Raise ``ModelUnavailable`` if the detector cannot be initialized."""
        check = getattr(self.detector, "ensure_ready", None)
        if callable(check):
            check()

    def _failed(self, zone_id: str, reason: str) -> CycleOutcome:
        self.logger.warning("Detection unavailable: zone=%s reason=%s", zone_id, reason)
        return CycleOutcome(zone_id=zone_id, completed_at=self.clock(), error=DetectionUnavailable(reason))

    def run(self, zone_id: str) -> CycleOutcome:
        """Pull the next frame from the frame source and process it."""
        if self.frame_source is None:
            return self._failed(zone_id, "no frame source configured")
        try:
            frame = self.frame_source.next_frame()
        except Exception as exc:
            log_exception(self.logger, "Frame capture failed", extra={"zone": zone_id}, exc=exc)
            return self._failed(zone_id, f"frame capture failed: {exc}")
        if frame is None:
            return self._failed(zone_id, "frame unavailable")
        return self.process_frame(frame, zone_id)

    def process_frame(self, frame: Any, zone_id: str) -> CycleOutcome:
        """
        Detect faces in ``frame`` and match each one.

        Returns one ``MatchResult`` per detected face in detection order.
        """
        try:
            faces = list(self.detector.detect(frame) or [])
        except DetectionUnavailable as exc:
            return self._failed(zone_id, exc.reason)
        except Exception as exc:
            log_exception(self.logger, "Face detection failed", extra={"zone": zone_id}, exc=exc)
            return self._failed(zone_id, f"detection failed: {exc}")

        results: List[MatchResult] = []
        for idx, detection in enumerate(faces):
            try:
                bbox, embedding = detection
                box = [int(v) for v in bbox] if bbox is not None else None
            except (TypeError, ValueError, OverflowError) as exc:
                log_exception(self.logger, "Detector produced a malformed detection", extra={"zone": zone_id}, exc=exc)
                return self._failed(zone_id, f"malformed detection #{idx}: {exc}")
            try:
                result = self.matcher.match(embedding, probe_box=box)
            except InvalidEmbeddingDimension as exc:
                log_exception(self.logger, "Detector produced a malformed embedding", extra={"zone": zone_id}, exc=exc)
                return self._failed(zone_id, f"invalid embedding: {exc}")
            if result.best_identity is None:
                self.logger.info(
                    "Face similarity: zone=%s bbox=%s distance=NA threshold=%.3f",
                    zone_id,
                    box,
                    self.matcher.threshold,
                )
            else:
                self.logger.info(
                    "Face similarity: zone=%s bbox=%s distance=%.3f threshold=%.3f identity=%s accepted=%s",
                    zone_id,
                    box,
                    result.distance,
                    self.matcher.threshold,
                    result.best_identity.identity_id,
                    result.accepted,
                )
            results.append(result)
        return CycleOutcome(zone_id=zone_id, completed_at=self.clock(), results=results)


__all__ = ["CycleOutcome", "RecognitionCycle", "utcnow"]
