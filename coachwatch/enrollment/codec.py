"""
Binary text encoding of embedding vectors.

Vectors travel as standard base64 over little-endian float32 bytes so
that export followed by import reproduces bit-identical values.
"""

from __future__ import annotations

import base64
import binascii
from typing import Optional, Sequence

import numpy as np

_LE_FLOAT32 = np.dtype("<f4")


def encode_vector(vector: "Sequence[float] | np.ndarray") -> str:
    arr = np.asarray(vector, dtype=_LE_FLOAT32)
    return base64.b64encode(arr.tobytes()).decode("ascii")


def decode_vector(encoded: str, dimension: Optional[int] = None) -> np.ndarray:
    """Decode a base64 embedding, validating its length.

    Raises ``ValueError`` for undecodable text or a byte length that is not
    a whole number of float32 values, and when ``dimension`` is given and
    the decoded length differs.
    """
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 embedding: {exc}") from exc
    if not raw or len(raw) % _LE_FLOAT32.itemsize:
        raise ValueError(f"embedding byte length {len(raw)} is not a multiple of 4")
    arr = np.frombuffer(raw, dtype=_LE_FLOAT32).astype(np.float32)
    if dimension is not None and arr.shape[0] != dimension:
        raise ValueError(f"embedding has {arr.shape[0]} values, expected {dimension}")
    return arr
