"""Per-session turn pipeline: channel, generation, voice, idle loop, orchestrator."""

from avatutor.pipeline.channel import Channel
from avatutor.pipeline.generation import GenerationResult, GenerationStreamManager
from avatutor.pipeline.orchestrator import Orchestrator
from avatutor.pipeline.session import Session, SessionManager
from avatutor.pipeline.voice import VoiceCoordinator

__all__ = [
    "Channel",
    "GenerationResult",
    "GenerationStreamManager",
    "Orchestrator",
    "Session",
    "SessionManager",
    "VoiceCoordinator",
]
