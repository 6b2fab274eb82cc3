"""
Pydantic schemas for the request bodies and envelopes with a fixed shape.

Feed item, image, group item and AI card bodies are untyped maps on purpose:
the sanitize functions in `lookbook.normalize` are their only validation.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class CategoryPayload(BaseModel):
    name: Optional[str] = None


class AddJsonDataPayload(BaseModel):
    collection: Optional[str] = None
    docId: Optional[str] = None
    data: Optional[dict] = None


class HealthResponse(BaseModel):
    ok: bool
    now: str


class PassthroughResponse(BaseModel):
    success: bool
    id: str
