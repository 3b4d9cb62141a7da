"""
Enrollment snapshots on disk and enrollment from captured images.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Tuple

from ..core.errors import (
    DetectionUnavailable,
    InvalidEmbeddingDimension,
    NoFaceDetected,
    log_exception,
    safe_json_dump_atomic,
    safe_json_load,
)
from ..models.identity import Identity
from ..schemas.enrollment import EnrollmentSnapshot
from .store import EmbeddingStore

logger = logging.getLogger("enrollment")


def save_snapshot(store: EmbeddingStore, path: str | Path) -> bool:
    snapshot = EnrollmentSnapshot(items=store.export())
    ok = safe_json_dump_atomic(path, snapshot.model_dump(mode="json"), logger=logger)
    if ok:
        logger.info("Saved %d embeddings to %s", len(snapshot.items), path)
    return ok


def load_snapshot(store: EmbeddingStore, path: str | Path) -> int:
    """Import a snapshot written by ``save_snapshot``. Missing files import nothing."""
    path = Path(path)
    if not path.exists():
        logger.info("No enrollment snapshot at %s", path)
        return 0
    payload = safe_json_load(path, {}, logger=logger)
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        logger.warning("Enrollment snapshot %s has no item list", path)
        return 0
    return store.import_records(items)


def enroll_from_frame(store: EmbeddingStore, detector: Any, identity: Identity, frame: Any) -> str:
    """
    Detect a face in ``frame`` and enroll its embedding under ``identity``.

    Uses the first detected face. Raises ``NoFaceDetected`` when the
    detector finds nothing and ``DetectionUnavailable`` if it fails.
    """
    try:
        faces = detector.detect(frame)
    except DetectionUnavailable:
        raise
    except Exception as exc:
        raise DetectionUnavailable(f"detector failed during enrollment: {exc}") from exc
    if not faces:
        raise NoFaceDetected(f"no face detected in enrollment image for {identity.display_name}")
    _, embedding = faces[0]
    return store.enroll(identity, embedding)


def bulk_enroll(store: EmbeddingStore, detector: Any, items: Iterable[Tuple[Identity, Any]]) -> int:
    """Enroll (identity, frame) pairs, continuing past individual failures."""
    success = 0
    total = 0
    for identity, frame in items:
        total += 1
        if frame is None:
            logger.warning("Skipping %s: image could not be loaded", identity.display_name)
            continue
        try:
            enroll_from_frame(store, detector, identity, frame)
            success += 1
        except (NoFaceDetected, DetectionUnavailable, InvalidEmbeddingDimension) as exc:
            logger.warning("Failed to enroll %s: %s", identity.display_name, exc)
        except Exception as exc:
            log_exception(logger, "Unexpected enrollment failure", extra={"identity": identity.identity_id}, exc=exc)
    logger.info("Successfully loaded %d of %d faces", success, total)
    return success


__all__ = ["save_snapshot", "load_snapshot", "enroll_from_frame", "bulk_enroll"]
