"""
Per-zone security posture derived from recognition cycles.
"""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from ..matching.matcher import MatchResult
from ..recognition.cycle import CycleOutcome


class AlertLevel(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    HIGH = "high"


@dataclass
class ZoneSecurityState:
    """Mutable security state for one zone (e.g. one coach)."""

    zone_id: str
    # Accepted matches against unauthorized identities since the last reset
    unauthorized_count: int = 0
    # Cycles that produced at least one unauthorized hit since the last reset
    security_alerts: int = 0
    alert_level: AlertLevel = AlertLevel.NORMAL
    last_scan_at: Optional[datetime.datetime] = None
    monitoring_active: bool = False
    # Set by a cycle that could not observe the zone; cleared by the next good one
    last_cycle_degraded: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def copy(self) -> "ZoneSecurityState":
        with self._lock:
            return replace(self, _lock=threading.Lock())


class ZoneStateRegistry:
    """Holds one ``ZoneSecurityState`` per zone, created on first reference.

    The registry lock only guards zone creation; updates take the zone's own
    lock so zones never block each other.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger("zone_state")
        self._zones: Dict[str, ZoneSecurityState] = {}
        self._lock = threading.Lock()

    def get(self, zone_id: str) -> ZoneSecurityState:
        with self._lock:
            state = self._zones.get(zone_id)
            if state is None:
                state = ZoneSecurityState(zone_id=zone_id)
                self._zones[zone_id] = state
            return state

    def apply_cycle(self, outcome: CycleOutcome) -> List[MatchResult]:
        """
        Fold one completed cycle into its zone's state.

        Returns the unauthorized hits so the caller can raise alerts.
        A degraded cycle only refreshes ``last_scan_at`` and the degraded
        flag; counters and level are left untouched.
        """
        state = self.get(outcome.zone_id)
        hits: List[MatchResult] = []
        with state._lock:
            state.last_scan_at = outcome.completed_at
            if outcome.degraded:
                state.last_cycle_degraded = True
                return hits
            state.last_cycle_degraded = False
            for result in outcome.results:
                if result.is_unauthorized:
                    state.unauthorized_count += 1
                    hits.append(result)
            if hits:
                state.security_alerts += 1
                # No automatic decay; only reset() lowers the level.
                state.alert_level = AlertLevel.HIGH
        if hits:
            self.logger.warning(
                "Security alert: %d unauthorized entr%s in zone %s (total=%d)",
                len(hits),
                "y" if len(hits) == 1 else "ies",
                outcome.zone_id,
                state.unauthorized_count,
            )
        return hits

    def set_monitoring(self, zone_id: str, active: bool) -> None:
        state = self.get(zone_id)
        with state._lock:
            state.monitoring_active = active

    def reset(self, zone_id: str) -> None:
        state = self.get(zone_id)
        with state._lock:
            state.unauthorized_count = 0
            state.security_alerts = 0
            state.alert_level = AlertLevel.NORMAL
        self.logger.info("Security state reset for zone %s", zone_id)

    def reset_all(self) -> None:
        for zone_id in self.zone_ids():
            self.reset(zone_id)

    def zone_ids(self) -> List[str]:
        with self._lock:
            return list(self._zones)

    def snapshot(self) -> Dict[str, ZoneSecurityState]:
        """Detached copies of every zone state, safe to hand to readers."""
        with self._lock:
            states = list(self._zones.values())
        return {state.zone_id: state.copy() for state in states}

    def totals(self) -> Dict[str, int]:
        states = self.snapshot().values()
        return {
            "total_unauthorized": sum(s.unauthorized_count for s in states),
            "total_alerts": sum(s.security_alerts for s in states),
            "zones_high": sum(1 for s in states if s.alert_level is AlertLevel.HIGH),
        }


__all__ = ["AlertLevel", "ZoneSecurityState", "ZoneStateRegistry"]
