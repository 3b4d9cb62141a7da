"""
Nearest-neighbour matching of probe embeddings against the enrollment store.

The index is a flat matrix scanned by brute force: enrolled populations
are tens to low hundreds of identities, so an exact scan is both fast
enough and fully deterministic. Rows follow the store's scan order and
``argmin`` returns the first minimum, which gives the tie-break.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..core.errors import InvalidEmbeddingDimension
from ..enrollment.store import EmbeddingStore
from ..models.identity import Identity


@dataclass(frozen=True)
class MatchResult:
    """Outcome of matching one detected face.

    ``best_identity`` is the nearest enrolled identity even when it falls
    outside the threshold; ``accepted`` says whether it counts as a match.
    """

    probe_box: Optional[List[int]]
    best_identity: Optional[Identity]
    distance: Optional[float]
    accepted: bool

    @property
    def matched_identity(self) -> Optional[Identity]:
        return self.best_identity if self.accepted else None

    @property
    def is_unauthorized(self) -> bool:
        return self.accepted and self.best_identity is not None and not self.best_identity.authorized

    @property
    def confidence(self) -> float:
        if self.distance is None:
            return 0.0
        return max(0.0, 1.0 - self.distance)


class _FlatIndex:
    """Immutable (identity, vector) matrix built from one store snapshot."""

    def __init__(self, identities: List[Identity], matrix: Optional[np.ndarray], version: int = -1) -> None:
        self.identities = identities
        self._mat = matrix
        # Store version this index was built from; -1 never matches
        self.version = version

    @classmethod
    def build(cls, store: EmbeddingStore) -> "_FlatIndex":
        version, pairs = store.versioned_snapshot()
        if not pairs:
            return cls([], None, version)
        identities = [identity for identity, _ in pairs]
        matrix = np.vstack([vec for _, vec in pairs]).astype(np.float32)
        return cls(identities, matrix, version)

    def ready(self) -> bool:
        return bool(self.identities)

    def query(self, probe: np.ndarray) -> Optional[tuple[Identity, float]]:
        if self._mat is None or not self.ready():
            return None
        distances = np.linalg.norm(self._mat - probe.reshape(1, -1), axis=1)
        idx = int(distances.argmin())
        return self.identities[idx], float(distances[idx])


class Matcher:
    """
    Classify probe embeddings against an ``EmbeddingStore``.

    Parameters
    ----------
    store: EmbeddingStore
        Enrollment database. The matcher subscribes to its mutations and
        rebuilds its index lazily on the next ``match`` call.
    threshold: float
        Maximum Euclidean distance for an accepted match.
    """

    def __init__(self, store: EmbeddingStore, threshold: float = 0.6) -> None:
        if threshold <= 0:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.threshold = float(threshold)
        self._index = _FlatIndex([], None)
        self._rebuild_lock = threading.Lock()
        store.add_listener(self.invalidate)

    def invalidate(self) -> None:
        """Drop the cached index; the next match rebuilds it."""
        self._index = _FlatIndex([], None)

    def _current_index(self) -> _FlatIndex:
        index = self._index
        if index.version == self.store.version:
            return index
        with self._rebuild_lock:
            index = self._index
            if index.version != self.store.version:
                index = _FlatIndex.build(self.store)
                self._index = index
                self.logger.debug(
                    "Rebuilt match index with %d embeddings (version %d)", len(index.identities), index.version
                )
            return index

    def match(self, probe: "Sequence[float] | np.ndarray", probe_box: Optional[List[int]] = None) -> MatchResult:
        try:
            vec = np.asarray(probe, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise InvalidEmbeddingDimension(self.store.dimension, f"non-numeric probe ({exc})") from exc
        if vec.ndim != 1 or vec.shape[0] != self.store.dimension:
            raise InvalidEmbeddingDimension(self.store.dimension, tuple(vec.shape))
        index = self._current_index()
        result = index.query(vec)
        if result is None:
            return MatchResult(probe_box=probe_box, best_identity=None, distance=None, accepted=False)
        identity, distance = result
        return MatchResult(
            probe_box=probe_box,
            best_identity=identity,
            distance=distance,
            accepted=distance <= self.threshold,
        )


__all__ = ["Matcher", "MatchResult"]
