"""Core types, config, errors, and registry."""

from avatutor.core.types import (
    EmotionLabel,
    EmotionState,
    AnimationState,
    AnimationCue,
    LanguageMixRecord,
    LanguageSegment,
    Turn,
    TurnStatus,
    SessionRecord,
    SessionState,
    SynthesisResult,
    HealthStatus,
    AdapterCapabilities,
    CharacterThinkingEvent,
    CharacterStreamEvent,
    CharacterResponseEvent,
    VrmAnimationEvent,
    VoiceAudioEvent,
    PerformanceMetricsEvent,
    StreamWarningEvent,
    ErrorEvent,
    InboundEvent,
)
from avatutor.core.errors import (
    AvatutorError,
    SessionBusy,
    SessionNotFound,
    InvalidMessage,
    ProviderError,
    MalformedResponseError,
    SynthesisError,
)
from avatutor.core.config import settings
from avatutor.core.registry import register, get, create, list_registered

__all__ = [
    # Types
    "EmotionLabel",
    "EmotionState",
    "AnimationState",
    "AnimationCue",
    "LanguageMixRecord",
    "LanguageSegment",
    "Turn",
    "TurnStatus",
    "SessionRecord",
    "SessionState",
    "SynthesisResult",
    "HealthStatus",
    "AdapterCapabilities",
    # Outbound events
    "CharacterThinkingEvent",
    "CharacterStreamEvent",
    "CharacterResponseEvent",
    "VrmAnimationEvent",
    "VoiceAudioEvent",
    "PerformanceMetricsEvent",
    "StreamWarningEvent",
    "ErrorEvent",
    # Inbound events
    "InboundEvent",
    # Errors
    "AvatutorError",
    "SessionBusy",
    "SessionNotFound",
    "InvalidMessage",
    "ProviderError",
    "MalformedResponseError",
    "SynthesisError",
    # Config
    "settings",
    # Registry
    "register",
    "get",
    "create",
    "list_registered",
]
