"""
Pydantic models for alerts and security-log entries produced by the core.

These models define the JSON contract consumed by notification channels
and the persistent security log. Using Pydantic ensures alerts are
validated and serialized consistently before they reach any sink.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AlertMeta(BaseModel):
    """Identity details attached to an unauthorized-entry alert."""

    identity_id: str
    display_name: str
    role: str
    ticket_reference: Optional[str] = None
    distance: float
    confidence: float
    extra: Dict[str, str] = Field(default_factory=dict)


class AlertEvent(BaseModel):
    """Structured alert for an accepted match against an unauthorized identity."""

    schema_version: str = Field("1.0")
    alert_id: str
    event_type: str = Field("UNAUTHORIZED_ENTRY")
    severity: str = Field("high")
    zone_id: str
    timestamp_utc: str
    bbox: Optional[List[int]] = None
    meta: AlertMeta


class SecurityLogEntry(BaseModel):
    """Security-log record handed to the persistent log collaborator."""

    event_type: str = Field("face_recognition")
    description: str
    location: str
    severity: str = Field("high")
    status: str = Field("pending")
    timestamp_utc: str
    metadata: Dict[str, object] = Field(default_factory=dict)


__all__ = [
    "AlertMeta",
    "AlertEvent",
    "SecurityLogEntry",
]
