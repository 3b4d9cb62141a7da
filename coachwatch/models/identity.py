"""
Enrolled identity records.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    PASSENGER = "passenger"
    STAFF_EXAMINER = "staff-examiner"
    SECURITY = "security"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        """Accept enum members, canonical values and the legacy ``tte`` label."""
        if isinstance(value, Role):
            return value
        raw = str(value).strip().lower().replace("_", "-")
        if raw in {"tte", "examiner", "ticket-examiner"}:
            return cls.STAFF_EXAMINER
        return cls(raw)


def new_identity_id() -> str:
    return f"face-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Identity:
    """An enrolled person. Immutable once created.

    ``authorized`` is true for roster members and false for the held-out
    set of known unauthorized individuals.
    """

    identity_id: str
    display_name: str
    authorized: bool
    role: Role = Role.PASSENGER
    ticket_reference: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.identity_id:
            raise ValueError("identity_id must be a non-empty string")
        object.__setattr__(self, "role", Role.parse(self.role))
        if self.ticket_reference and self.role is not Role.PASSENGER:
            raise ValueError(f"ticket_reference is only valid for passengers, not {self.role.value}")

    @classmethod
    def create(
        cls,
        display_name: str,
        *,
        authorized: bool = True,
        role: Role | str = Role.PASSENGER,
        ticket_reference: Optional[str] = None,
        identity_id: Optional[str] = None,
    ) -> "Identity":
        return cls(
            identity_id=identity_id or new_identity_id(),
            display_name=display_name,
            authorized=authorized,
            role=Role.parse(role),
            ticket_reference=ticket_reference or None,
        )


__all__ = ["Role", "Identity", "new_identity_id"]
