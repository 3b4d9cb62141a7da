"""
CoachWatch: identity matching and continuous surveillance for rail coaches.
"""

from .alerts.emitter import AlertEmitter
from .enrollment.store import EmbeddingStore
from .matching.matcher import Matcher, MatchResult
from .models.identity import Identity, Role
from .recognition.cycle import CycleOutcome, RecognitionCycle
from .runtime.scheduler import SchedulerState, SurveillanceScheduler
from .security.zone_state import AlertLevel, ZoneSecurityState, ZoneStateRegistry
from .service import SurveillanceService

__version__ = "0.1.0"

__all__ = [
    "AlertEmitter",
    "AlertLevel",
    "CycleOutcome",
    "EmbeddingStore",
    "Identity",
    "MatchResult",
    "Matcher",
    "RecognitionCycle",
    "Role",
    "SchedulerState",
    "SurveillanceScheduler",
    "SurveillanceService",
    "ZoneSecurityState",
    "ZoneStateRegistry",
]
