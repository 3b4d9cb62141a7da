"""
Portable enrollment contracts for moving embeddings between processes.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class PortableRecord(BaseModel):
    """One embedding plus its owning identity's metadata.

    ``embedding_encoding`` is standard base64 over the little-endian
    float32 bytes of the vector.
    """

    identity_id: str = Field(min_length=1)
    display_name: str
    authorized: bool
    role: str = "passenger"
    ticket_reference: Optional[str] = None
    embedding_encoding: str = Field(min_length=1)


class EnrollmentSnapshot(BaseModel):
    version: int = 1
    items: List[PortableRecord] = Field(default_factory=list)


__all__ = ["PortableRecord", "EnrollmentSnapshot"]
