"""
Bounded history of recent detections for the security log views.
"""

from __future__ import annotations

import datetime
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from ..matching.matcher import MatchResult
from ..recognition.cycle import CycleOutcome


@dataclass(frozen=True)
class DetectionRecord:
    zone_id: str
    detected_at: datetime.datetime
    result: MatchResult


class DetectionHistory:
    """Most recent detections first, capped at ``maxlen`` entries."""

    def __init__(self, maxlen: int = 100) -> None:
        self._records: Deque[DetectionRecord] = deque(maxlen=max(1, int(maxlen)))
        self._lock = threading.Lock()

    def record(self, outcome: CycleOutcome) -> None:
        if outcome.degraded:
            return
        with self._lock:
            for result in outcome.results:
                self._records.appendleft(
                    DetectionRecord(zone_id=outcome.zone_id, detected_at=outcome.completed_at, result=result)
                )

    def recent(self, zone_id: Optional[str] = None, limit: Optional[int] = None) -> List[DetectionRecord]:
        with self._lock:
            records = [r for r in self._records if zone_id is None or r.zone_id == zone_id]
        return records[:limit] if limit is not None else records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["DetectionRecord", "DetectionHistory"]
