# tests/conftest.py
"""Shared builders for orchestrator-level tests. Everything runs offline."""

import random

import pytest

from avatutor.adapters.llm.mock_llm import MockLLMAdapter
from avatutor.adapters.tts.mock_tts import MockTTSAdapter
from avatutor.core.config import (
    AnimationConfig,
    GenerationConfig,
    OrchestratorConfig,
    PromptBudget,
    VoiceConfig,
)
from avatutor.pipeline.channel import Channel
from avatutor.pipeline.orchestrator import Orchestrator
from avatutor.store.session_store import InMemorySessionStore


def make_orchestrator(
    llm: dict | None = None,
    secondary: dict | None = None,
    tts: dict | None = None,
    **orchestrator_overrides,
) -> Orchestrator:
    """Mock providers, no pacing, no backoff, idle loop effectively off."""
    return Orchestrator(
        llm=MockLLMAdapter(llm or {}),
        tts=MockTTSAdapter(tts or {}),
        store=InMemorySessionStore(),
        secondary_llm=MockLLMAdapter(secondary) if secondary is not None else None,
        config=OrchestratorConfig(**orchestrator_overrides),
        generation=GenerationConfig(backoff_base_s=0.0, pacing_ms=0),
        animation=AnimationConfig(idle_tick_s=3600),
        prompt=PromptBudget(),
        voice=VoiceConfig(),
        characters={},
        rng=random.Random(7),
    )


def types_of(events) -> list[str]:
    return [e.type for e in events if e.type != "vrm_idle"]


def for_turn(events, turn_id: str) -> list:
    return [e for e in events if getattr(e, "turn_id", None) == turn_id]


@pytest.fixture
def channel() -> Channel:
    return Channel(maxsize=512)
