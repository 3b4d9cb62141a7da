"""Shared serialization contracts."""

from .enrollment import EnrollmentSnapshot, PortableRecord

__all__ = ["EnrollmentSnapshot", "PortableRecord"]
