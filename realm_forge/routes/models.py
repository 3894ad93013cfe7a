"""Pydantic request models for API endpoints."""

from pydantic import BaseModel


class CreateWorld(BaseModel):
    seed: str
    genre: str | None = None
    threat: str | None = None
    tone: str | None = None
