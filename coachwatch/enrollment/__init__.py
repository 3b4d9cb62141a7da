"""Enrollment database and its persistence helpers."""

from .persistence import bulk_enroll, enroll_from_frame, load_snapshot, save_snapshot
from .store import EmbeddingStore

__all__ = ["EmbeddingStore", "bulk_enroll", "enroll_from_frame", "load_snapshot", "save_snapshot"]
