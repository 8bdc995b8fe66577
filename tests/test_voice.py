# tests/test_voice.py
"""Voice coordination: duration, viseme timeline, gated emission."""

import asyncio

import pytest

from avatutor.adapters.tts.mock_tts import MockTTSAdapter
from avatutor.core.config import VoiceConfig
from avatutor.core.types import EmotionLabel
from avatutor.pipeline.channel import Channel
from avatutor.pipeline.voice import VoiceCoordinator, viseme_timeline

TEXT = "Hola, ¿qué tal?"  # 15 chars → ~1 s of mock audio


def _coordinator(**tts) -> VoiceCoordinator:
    return VoiceCoordinator(MockTTSAdapter(tts), VoiceConfig())


# ── Timeline ──────────────────────────────────────────────────────────────────


def test_viseme_timeline_windows():
    frames = viseme_timeline(1000, 200, ["A", "E", "I", "O", "U"])
    assert [f.t for f in frames] == [0, 200, 400, 600, 800]
    assert [f.v for f in frames] == ["A", "E", "I", "O", "U"]


def test_viseme_timeline_cycles():
    frames = viseme_timeline(700, 100, ["A", "O"])
    assert [f.v for f in frames] == ["A", "O", "A", "O", "A", "O", "A"]


def test_viseme_timeline_empty():
    assert viseme_timeline(0, 200, ["A"]) == []
    assert viseme_timeline(500, 200, []) == []


# ── synthesize ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_synthesize_estimates_duration():
    voice = await _coordinator().synthesize("v1", TEXT, EmotionLabel.HAPPY)
    assert voice.audio_url.startswith("/audio/mock/")
    assert voice.duration_ms == pytest.approx(1000, abs=5)
    assert len(voice.timeline) == 5


# ── Background emission ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_start_emits_voice_audio():
    coord, channel = _coordinator(), Channel()
    await coord.start(channel, voice_id="v1", text=TEXT, emotion=EmotionLabel.HAPPY, turn_id="t1")
    events = channel.drain_nowait()
    assert [e.type for e in events] == ["voice_audio"]
    assert events[0].turn_id == "t1"
    assert events[0].text == TEXT
    assert coord.pending == 0


@pytest.mark.asyncio
async def test_gate_holds_event_until_released():
    coord, channel = _coordinator(), Channel()
    gate = asyncio.get_running_loop().create_future()
    task = coord.start(channel, voice_id="v1", text=TEXT, emotion=EmotionLabel.NEUTRAL, gate=gate)
    await asyncio.sleep(0.01)
    assert channel.qsize() == 0
    gate.set_result(True)
    await task
    assert [e.type for e in channel.drain_nowait()] == ["voice_audio"]


@pytest.mark.asyncio
async def test_closed_gate_discards_event():
    coord, channel = _coordinator(), Channel()
    gate = asyncio.get_running_loop().create_future()
    task = coord.start(channel, voice_id="v1", text=TEXT, emotion=EmotionLabel.NEUTRAL, gate=gate)
    gate.set_result(False)
    await task
    assert channel.drain_nowait() == []


@pytest.mark.asyncio
async def test_synthesis_failure_emits_nothing():
    coord, channel = _coordinator(fail=True), Channel()
    await coord.start(channel, voice_id="v1", text=TEXT, emotion=EmotionLabel.SAD)
    assert channel.drain_nowait() == []


@pytest.mark.asyncio
async def test_join_waits_for_every_task():
    coord, channel = _coordinator(delay_s=0.02), Channel()
    for i in range(3):
        coord.start(channel, voice_id="v1", text=f"{TEXT} {i}", emotion=EmotionLabel.NEUTRAL)
    assert coord.pending == 3
    await coord.join()
    assert coord.pending == 0
    assert len(channel.drain_nowait()) == 3


@pytest.mark.asyncio
async def test_cancel_all_drops_pending_audio():
    coord, channel = _coordinator(delay_s=1.0), Channel()
    coord.start(channel, voice_id="v1", text=TEXT, emotion=EmotionLabel.NEUTRAL)
    await asyncio.sleep(0)
    await coord.cancel_all()
    assert coord.pending == 0
    assert channel.drain_nowait() == []
