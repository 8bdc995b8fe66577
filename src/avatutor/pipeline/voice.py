# src/avatutor/pipeline/voice.py
from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from avatutor.adapters.base import TTSAdapter
from avatutor.core.config import VoiceConfig, settings
from avatutor.core.errors import SynthesisError
from avatutor.core.logging import get_logger
from avatutor.core.types import (
    EmotionLabel,
    VisemeFrame,
    VoiceAudioEvent,
    estimate_mp3_duration_ms,
)
from avatutor.pipeline.channel import Channel

log = get_logger(__name__)


@dataclass
class VoiceResult:
    audio_url: str
    duration_ms: float
    timeline: list[VisemeFrame] = field(default_factory=list)


def viseme_timeline(duration_ms: float, window_ms: int, visemes: list[str]) -> list[VisemeFrame]:
    """
    Fixed-window mouth shapes cycling through the viseme set. A rough
    approximation: no phoneme alignment is attempted.
    """
    if duration_ms <= 0 or not visemes:
        return []
    return [
        VisemeFrame(t=t, v=visemes[i % len(visemes)])
        for i, t in enumerate(range(0, int(duration_ms), window_ms))
    ]


class VoiceCoordinator:
    """
    Runs speech synthesis off the turn's critical path. Each request becomes a
    tracked background task; tasks outlive the turn that started them and are
    only cancelled when the session closes.
    """

    def __init__(self, tts: TTSAdapter, config: VoiceConfig | None = None) -> None:
        self.tts = tts
        self.config = config or settings.voice
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def synthesize(
        self,
        voice_id: str,
        text: str,
        emotion: EmotionLabel,
        intensity: float = 0.5,
    ) -> VoiceResult:
        result = await self.tts.synthesize(voice_id, text, emotion, intensity)
        duration = estimate_mp3_duration_ms(result.byte_size, self.config.bitrate_kbps)
        return VoiceResult(
            audio_url=result.audio_url,
            duration_ms=round(duration, 1),
            timeline=viseme_timeline(duration, self.config.viseme_window_ms, self.config.visemes),
        )

    def start(
        self,
        channel: Channel,
        *,
        voice_id: str,
        text: str,
        emotion: EmotionLabel,
        intensity: float = 0.5,
        turn_id: str | None = None,
        gate: asyncio.Future[bool] | None = None,
    ) -> asyncio.Task[None]:
        """
        Synthesize in the background and emit voice_audio. When a gate is given,
        emission waits for it: True releases the event, False discards it.
        """

        async def _run() -> None:
            try:
                voice = await self.synthesize(voice_id, text, emotion, intensity)
            except SynthesisError as exc:
                log.warning("speech synthesis failed", turn_id=turn_id, error=str(exc))
                return
            except Exception as exc:
                log.warning("speech synthesis crashed", turn_id=turn_id, error=repr(exc))
                return
            if gate is not None and not await gate:
                log.debug("voice discarded, response never delivered", turn_id=turn_id)
                return
            await channel.emit(
                VoiceAudioEvent(
                    audio_url=voice.audio_url,
                    text=text,
                    emotion=emotion,
                    duration_ms=voice.duration_ms,
                    visemes=voice.timeline,
                    turn_id=turn_id,
                )
            )

        task = asyncio.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def join(self) -> None:
        """Wait for every pending synthesis to finish or give up."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
