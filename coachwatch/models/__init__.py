"""Domain and wire models."""

from .alert import AlertEvent, AlertMeta, SecurityLogEntry
from .identity import Identity, Role

__all__ = ["AlertEvent", "AlertMeta", "SecurityLogEntry", "Identity", "Role"]
