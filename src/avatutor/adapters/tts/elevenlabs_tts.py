# src/avatutor/adapters/tts/elevenlabs_tts.py
from __future__ import annotations
import asyncio
import time
import uuid
from pathlib import Path
import httpx
from avatutor.adapters.base import TTSAdapter
from avatutor.control.mapper import map_emotion_to_elevenlabs
from avatutor.core.config import settings
from avatutor.core.errors import SynthesisError
from avatutor.core.registry import register
from avatutor.core.types import (
    AdapterCapabilities,
    EmotionLabel,
    HealthStatus,
    SynthesisResult,
)


@register("elevenlabs_tts")
class ElevenLabsTTSAdapter(TTSAdapter):
    """
    Synthesizes MP3 via ElevenLabs and stores it under app.audio_dir.
    The returned URL is served by the API's static /audio mount.
    """

    _BASE = "https://api.elevenlabs.io/v1"

    async def synthesize(
        self,
        voice_id: str,
        text: str,
        emotion: EmotionLabel,
        intensity: float = 0.5,
    ) -> SynthesisResult:
        if not voice_id:
            raise SynthesisError(self.name, "no voice id configured for character")
        headers = {"xi-api-key": settings.elevenlabs_api_key, "accept": "audio/mpeg"}
        payload = {
            "text": text,
            "model_id": self.config.get("model", "eleven_multilingual_v2"),
            "voice_settings": map_emotion_to_elevenlabs(emotion, intensity),
        }
        try:
            async with httpx.AsyncClient(timeout=self.config.get("timeout_s", 60)) as client:
                resp = await client.post(
                    f"{self._BASE}/text-to-speech/{voice_id}",
                    headers=headers,
                    json=payload,
                )
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise SynthesisError(self.name, str(exc) or type(exc).__name__) from exc

        audio = resp.content
        if not audio:
            raise SynthesisError(self.name, "empty audio payload")

        file_name = f"speech_{uuid.uuid4().hex}.mp3"
        audio_dir = Path(self.config.get("audio_dir", settings.app.audio_dir))
        try:
            await asyncio.to_thread(_write_audio, audio_dir / file_name, audio)
        except OSError as exc:
            raise SynthesisError(self.name, f"could not store audio: {exc}") from exc

        prefix = self.config.get("audio_url_prefix", settings.app.audio_url_prefix).rstrip("/")
        return SynthesisResult(audio_url=f"{prefix}/{file_name}", byte_size=len(audio))

    async def health(self) -> HealthStatus:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                r = await client.get(
                    f"{self._BASE}/user",
                    headers={"xi-api-key": settings.elevenlabs_api_key},
                )
            return HealthStatus(
                healthy=r.status_code == 200,
                latency_ms=(time.monotonic() - t0) * 1000,
            )
        except httpx.HTTPError as exc:
            return HealthStatus(
                healthy=False,
                latency_ms=(time.monotonic() - t0) * 1000,
                detail=str(exc),
            )

    def capabilities(self) -> AdapterCapabilities:
        return AdapterCapabilities(
            supports_streaming=False,
            supports_emotion=True,  # via voice_settings stability/style
            supported_languages=["english", "spanish", "japanese"],
        )


def _write_audio(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
