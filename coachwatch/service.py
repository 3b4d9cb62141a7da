"""
Composition of the surveillance core.

``SurveillanceService`` owns the enrollment store, matcher, zone state
registry, detection history and alert emitter, and builds schedulers
around them. It is constructed explicitly and passed to whoever needs
it; nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from .alerts.emitter import AlertEmitter
from .config import Settings
from .core.errors import ModelUnavailable
from .enrollment.store import EmbeddingStore
from .interfaces import FaceDetector, FrameSource, NotificationSink
from .matching.matcher import Matcher
from .recognition.cycle import CycleOutcome, RecognitionCycle
from .runtime.scheduler import SurveillanceScheduler
from .security.history import DetectionHistory
from .security.zone_state import ZoneStateRegistry


class SurveillanceService:
    def __init__(self, settings: Settings, sinks: Optional[Sequence[NotificationSink]] = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.settings = settings
        self.store = EmbeddingStore(dimension=settings.matching.dimension)
        self.matcher = Matcher(self.store, threshold=settings.matching.threshold)
        self.zone_states = ZoneStateRegistry()
        for zone_id in settings.zone_ids():
            self.zone_states.get(zone_id)
        self.history = DetectionHistory()
        self.emitter = AlertEmitter(sinks)

    def check_detector(self, detector: FaceDetector) -> None:
        """Raise ``ModelUnavailable`` if the detector's vectors cannot match the store."""
        produced = getattr(detector, "embedding_dimension", None)
        if produced is None or int(produced) == self.store.dimension:
            return
        raise ModelUnavailable(
            f"{detector.__class__.__name__} emits {produced}-d embeddings but matching.dimension is "
            f"{self.store.dimension}; set matching.dimension (or COACHWATCH_EMBEDDING_DIM) to {produced}"
        )

    def build_scheduler(
        self,
        frame_source: FrameSource,
        detector: FaceDetector,
        *,
        preview: bool = False,
        on_cycle: Optional[Callable[[CycleOutcome], None]] = None,
    ) -> SurveillanceScheduler:
        interval = (
            self.settings.scheduler.preview_interval_sec
            if preview
            else self.settings.scheduler.background_interval_sec
        )
        cycle = RecognitionCycle(frame_source=frame_source, detector=detector, matcher=self.matcher)
        return SurveillanceScheduler(
            cycle,
            self.zone_states,
            emitter=self.emitter,
            history=self.history,
            interval=interval,
            on_cycle=on_cycle,
        )

    def close(self) -> None:
        self.emitter.close()


__all__ = ["SurveillanceService"]
