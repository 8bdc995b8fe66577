# src/avatutor/adapters/tts/mock_tts.py
from __future__ import annotations

import asyncio
import uuid
from typing import Any

from avatutor.adapters.base import TTSAdapter
from avatutor.core.errors import SynthesisError
from avatutor.core.registry import register
from avatutor.core.types import (
    AdapterCapabilities,
    EmotionLabel,
    HealthStatus,
    SynthesisResult,
)

# ~ one second of 128 kbps MP3 per 15 characters of speech
_BYTES_PER_CHAR = 16000 // 15


@register("mock_tts")
class MockTTSAdapter(TTSAdapter):
    """
    Deterministic pseudo-synthesis for offline/integration testing.
    Config keys: fail (bool), delay_s (float).
    """

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        self.requests: list[tuple[str, str, EmotionLabel]] = []

    async def synthesize(
        self,
        voice_id: str,
        text: str,
        emotion: EmotionLabel,
        intensity: float = 0.5,
    ) -> SynthesisResult:
        self.requests.append((voice_id, text, emotion))
        if self.config.get("delay_s"):
            await asyncio.sleep(self.config["delay_s"])
        if self.config.get("fail"):
            raise SynthesisError(self.name, "injected synthesis failure")
        return SynthesisResult(
            audio_url=f"/audio/mock/{uuid.uuid4().hex}.mp3",
            byte_size=max(1, len(text)) * _BYTES_PER_CHAR,
            encoding="mock_mp3",
        )

    async def health(self) -> HealthStatus:
        return HealthStatus(healthy=True, latency_ms=0.1, detail="mock tts")

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supports_streaming=False,
            supports_emotion=True,
            max_text_length=100000,
            supported_languages=["english", "spanish", "japanese"],
        )
