# src/avatutor/adapters/base.py
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator
from avatutor.core.types import (
    AdapterCapabilities,
    EmotionLabel,
    HealthStatus,
    SynthesisResult,
)


class AdapterBase(ABC):
    name: str = "base"

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config

    async def load(self) -> None:
        """Establish connections or warm caches. Called once at startup."""

    async def close(self) -> None:
        """Release anything load() acquired."""

    @abstractmethod
    async def health(self) -> HealthStatus: ...

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities()


class LLMAdapter(AdapterBase):
    """Text provider. Raises ProviderError / MalformedResponseError, never httpx errors."""

    @abstractmethod
    async def infer_stream(self, prompt: str, context: dict[str, Any]) -> AsyncIterator[str]:
        """Stream output text fragments. Must be an async generator."""
        ...

    async def generate(self, prompt: str, context: dict[str, Any] | None = None) -> str:
        """One-shot convenience over infer_stream."""
        return "".join([chunk async for chunk in self.infer_stream(prompt, context or {})])


class TTSAdapter(AdapterBase):
    """Speech provider. Raises SynthesisError on any failure."""

    @abstractmethod
    async def synthesize(
        self,
        voice_id: str,
        text: str,
        emotion: EmotionLabel,
        intensity: float = 0.5,
    ) -> SynthesisResult: ...
