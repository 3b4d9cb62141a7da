"""Zone security state and detection history."""

from .history import DetectionHistory, DetectionRecord
from .zone_state import AlertLevel, ZoneSecurityState, ZoneStateRegistry

__all__ = ["AlertLevel", "DetectionHistory", "DetectionRecord", "ZoneSecurityState", "ZoneStateRegistry"]
