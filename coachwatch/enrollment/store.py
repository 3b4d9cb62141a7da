"""
Enrollment database of identity embeddings.

The store is the single source of truth for matching. Embeddings are
kept per identity so multi-sample identities and removal stay cheap;
identities keep their enrollment order, which the matcher relies on for
its deterministic tie-break.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from pydantic import ValidationError

from ..core.errors import InvalidEmbeddingDimension, NoFaceDetected
from ..models.identity import Identity, new_identity_id
from ..schemas.enrollment import PortableRecord
from .codec import decode_vector, encode_vector


@dataclass
class EnrolledIdentity:
    identity: Identity
    embeddings: List[np.ndarray] = field(default_factory=list)


class EmbeddingStore:
    def __init__(self, dimension: int = 128) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.logger = logging.getLogger("enrollment")
        self.dimension = int(dimension)
        self.last_import_failures = 0
        self._entries: Dict[str, EnrolledIdentity] = {}
        self._lock = threading.Lock()
        # Bumped under self._lock on every mutation
        self._version = 0
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after every mutation."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def _coerce(self, embedding: "Sequence[float] | np.ndarray | None") -> np.ndarray:
        if embedding is None:
            raise NoFaceDetected("no face embedding was produced for enrollment")
        try:
            vec = np.array(embedding, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InvalidEmbeddingDimension(self.dimension, f"non-numeric input ({exc})") from exc
        if vec.ndim != 1 or vec.shape[0] != self.dimension:
            raise InvalidEmbeddingDimension(self.dimension, tuple(vec.shape))
        return vec

    def _append(self, identity: Identity, vec: np.ndarray) -> str:
        # Caller holds self._lock.
        entry = self._entries.get(identity.identity_id)
        if entry is None:
            entry = EnrolledIdentity(identity=identity)
            self._entries[identity.identity_id] = entry
        elif entry.identity != identity:
            self.logger.warning(
                "Re-enrollment metadata differs for %s; keeping original record",
                identity.identity_id,
            )
        entry.embeddings.append(vec)
        self._version += 1
        return identity.identity_id

    def enroll(self, identity: Identity, embedding: "Sequence[float] | np.ndarray | None") -> str:
        """
        Add one embedding for an identity, creating the identity if needed.

        Parameters
        ----------
        identity: Identity
            Metadata of the person. An ``identity_id`` already in the
            store appends a sample; ``Identity.create`` assigns a fresh id.
        embedding:
            Vector from the embedding model, or ``None`` when no face was
            found in the enrollment image.

        Returns
        -------
        str
            The identity id the embedding was stored under.
        """
        try:
            vec = self._coerce(embedding)
        except InvalidEmbeddingDimension as exc:
            self.logger.error("Enrollment rejected for %s: %s", identity.display_name, exc)
            raise
        with self._lock:
            identity_id = self._append(identity, vec)
        self.logger.info(
            "Enrolled embedding for %s (%s) authorized=%s",
            identity.display_name,
            identity_id,
            identity.authorized,
        )
        self._notify()
        return identity_id

    def remove(self, identity_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(identity_id, None)
            if entry is not None:
                self._version += 1
        if entry is None:
            return False
        self.logger.info(
            "Removed %s (%s) with %d embeddings",
            entry.identity.display_name,
            identity_id,
            len(entry.embeddings),
        )
        self._notify()
        return True

    def export(self) -> List[PortableRecord]:
        with self._lock:
            entries = [(e.identity, list(e.embeddings)) for e in self._entries.values()]
        records: List[PortableRecord] = []
        for identity, vectors in entries:
            for vec in vectors:
                records.append(
                    PortableRecord(
                        identity_id=identity.identity_id,
                        display_name=identity.display_name,
                        authorized=identity.authorized,
                        role=identity.role.value,
                        ticket_reference=identity.ticket_reference,
                        embedding_encoding=encode_vector(vec),
                    )
                )
        return records

    def _parse_record(self, item: "PortableRecord | dict") -> Tuple[Identity, np.ndarray]:
        record = item if isinstance(item, PortableRecord) else PortableRecord.model_validate(item)
        identity = Identity(
            identity_id=record.identity_id,
            display_name=record.display_name,
            authorized=record.authorized,
            role=record.role,
            ticket_reference=record.ticket_reference or None,
        )
        vec = decode_vector(record.embedding_encoding, self.dimension)
        return identity, vec

    def import_records(self, records: Iterable["PortableRecord | dict"]) -> int:
        """Import portable records; malformed ones are skipped and counted."""
        parsed: List[Tuple[Identity, np.ndarray]] = []
        failures = 0
        for idx, item in enumerate(records):
            try:
                parsed.append(self._parse_record(item))
            except (ValidationError, ValueError, TypeError, AttributeError) as exc:
                failures += 1
                self.logger.warning("Skipping malformed enrollment record #%d: %s", idx, exc)
        with self._lock:
            for identity, vec in parsed:
                self._append(identity, vec)
        self.last_import_failures = failures
        self.logger.info("Imported %d embeddings (%d failed)", len(parsed), failures)
        if parsed:
            self._notify()
        return len(parsed)

    def count(self) -> int:
        """Number of embeddings held, not identities."""
        with self._lock:
            return sum(len(e.embeddings) for e in self._entries.values())

    def identities(self) -> List[Identity]:
        with self._lock:
            return [e.identity for e in self._entries.values()]

    def get(self, identity_id: str) -> Optional[Identity]:
        with self._lock:
            entry = self._entries.get(identity_id)
            return entry.identity if entry else None

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> List[Tuple[Identity, np.ndarray]]:
        """Flat (identity, vector) pairs in scan order."""
        with self._lock:
            return [(e.identity, vec) for e in self._entries.values() for vec in e.embeddings]

    def versioned_snapshot(self) -> Tuple[int, List[Tuple[Identity, np.ndarray]]]:
        """Return ``snapshot()`` together with the version it was taken at."""
        with self._lock:
            pairs = [(e.identity, vec) for e in self._entries.values() for vec in e.embeddings]
            return self._version, pairs

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["EmbeddingStore", "EnrolledIdentity", "new_identity_id"]
