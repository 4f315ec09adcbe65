"""
Pydantic schemas for the CRUD endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EntityRequest(BaseModel):
    """
    Body of POST/PUT/DELETE /api/ and POST /api/search.

    `type` names the entity; every other field is passed through untouched.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, max_length=100)
