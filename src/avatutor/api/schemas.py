# src/avatutor/api/schemas.py
from __future__ import annotations
from pydantic import BaseModel
from avatutor.core.types import AdapterCapabilities, HealthStatus


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    llm: HealthStatus
    secondary_llm: HealthStatus | None = None
    tts: HealthStatus
    sessions: int = 0

    @property
    def all_healthy(self) -> bool:
        secondary_ok = self.secondary_llm is None or self.secondary_llm.healthy
        return self.llm.healthy and self.tts.healthy and secondary_ok


# ── Models/Capabilities ───────────────────────────────────────────────────────


class ModelsResponse(BaseModel):
    llm: AdapterCapabilities
    secondary_llm: AdapterCapabilities | None = None
    tts: AdapterCapabilities


# ── Characters ────────────────────────────────────────────────────────────────


class CharacterSummary(BaseModel):
    id: str
    name: str
    language: str
    description: str


class CharactersResponse(BaseModel):
    characters: list[CharacterSummary]
