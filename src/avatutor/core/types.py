# src/avatutor/core/types.py
from __future__ import annotations
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ── Emotion ───────────────────────────────────────────────────────────────────


class EmotionLabel(str, Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    EXCITED = "excited"
    THOUGHTFUL = "thoughtful"
    ENCOURAGING = "encouraging"
    CONFUSED = "confused"
    SAD = "sad"
    SURPRISED = "surprised"
    ANGRY = "angry"


class EmotionHistoryEntry(BaseModel):
    label: EmotionLabel
    intensity: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utcnow)
    context: str = ""


class EmotionState(BaseModel):
    label: EmotionLabel = EmotionLabel.NEUTRAL
    intensity: float = Field(0.5, ge=0.0, le=1.0)
    last_transition: datetime = Field(default_factory=utcnow)
    last_decay: datetime | None = None
    decay_rate: float = Field(0.1, ge=0.0, le=1.0)  # intensity units per second
    transition_speed: float = Field(1.0, ge=0.1, le=5.0)
    sensitivity: float = Field(0.7, ge=0.0, le=1.0)
    auto_decay: bool = True
    history: list[EmotionHistoryEntry] = Field(default_factory=list)


# ── Animation ─────────────────────────────────────────────────────────────────

# Fixed blendshape key set. Anything else coming from a provider or the store
# is rejected at the boundary rather than silently carried around.
BLENDSHAPE_KEYS: tuple[str, ...] = (
    "Smile",
    "Frown",
    "EyeSquintLeft",
    "EyeSquintRight",
    "EyeWideLeft",
    "EyeWideRight",
    "EyeCloseLeft",
    "EyeCloseRight",
    "BrowDownLeft",
    "BrowDownRight",
    "BrowUpLeft",
    "BrowUpRight",
    "JawOpen",
    "MouthOpen",
    "Blink",
    "HeadTilt",
    "HeadNod",
)


def neutral_blendshapes() -> dict[str, float]:
    return {k: 0.0 for k in BLENDSHAPE_KEYS}


class AnimationState(BaseModel):
    blendshapes: dict[str, float] = Field(default_factory=neutral_blendshapes)
    active_animations: list[str] = Field(default_factory=list)
    last_gesture: str | None = None
    last_gesture_at: datetime | None = None
    gesture_frequency: float = Field(0.5, ge=0.0, le=1.0)
    idle_animation_enabled: bool = True
    last_turn_at: datetime | None = None
    last_blink_at: datetime | None = None

    @field_validator("blendshapes")
    @classmethod
    def _check_blendshapes(cls, v: dict[str, float]) -> dict[str, float]:
        unknown = set(v) - set(BLENDSHAPE_KEYS)
        if unknown:
            raise ValueError(f"Unknown blendshape keys: {sorted(unknown)}")
        for name, weight in v.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"Blendshape '{name}' weight {weight} outside [0, 1]")
        return {**neutral_blendshapes(), **v}


class AnimationCue(BaseModel):
    emotion: EmotionLabel
    animation: str  # expression name understood by the rig
    gesture: str | None = None
    duration_ms: int
    intensity: float = Field(ge=0.0, le=1.0)
    blendshapes: dict[str, float] = Field(default_factory=dict)
    easing: str = "easeInOut"


# ── Language mixing ───────────────────────────────────────────────────────────


class ScriptTag(str, Enum):
    LATIN = "latin"
    HIRAGANA = "hiragana"
    KATAKANA = "katakana"
    KANJI = "kanji"
    ROMAJI = "romaji"
    CYRILLIC = "cyrillic"
    ARABIC = "arabic"


class MixingType(str, Enum):
    CODE_SWITCHING = "code_switching"
    TRANSLITERATION = "transliteration"
    BORROWING = "borrowing"
    INTERFERENCE = "interference"


class LanguageSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    language: str
    confidence: float = Field(ge=0.0, le=1.0)
    start: int
    end: int
    script: ScriptTag = ScriptTag.LATIN
    is_transliterated: bool = False
    mixing: MixingType | None = None  # None for primary-language spans


class LanguageMixRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    turn_id: str
    original_text: str
    primary_language: str
    segments: tuple[LanguageSegment, ...] = ()
    secondary_languages: tuple[str, ...] = ()
    pattern: MixingType | None = None
    corrections: tuple[str, ...] = ()
    new_words: tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)


class LearningContext(BaseModel):
    new_words: list[str] = Field(default_factory=list)
    grammar_points: list[str] = Field(default_factory=list)
    cultural_references: list[str] = Field(default_factory=list)

    def notes(self) -> list[str]:
        """Flatten into prompt-ready lines, most useful first."""
        lines = [f"Grammar: {g}" for g in self.grammar_points]
        if self.new_words:
            lines.append("Vocabulary in play: " + ", ".join(self.new_words))
        lines.extend(f"Culture: {c}" for c in self.cultural_references)
        return lines


# ── Turns & sessions ──────────────────────────────────────────────────────────


class TurnStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


class Turn(BaseModel):
    turn_id: str = Field(default_factory=new_id)
    input_text: str
    output_text: str = ""
    emotion: EmotionLabel = EmotionLabel.NEUTRAL
    intensity: float = Field(0.0, ge=0.0, le=1.0)
    status: TurnStatus = TurnStatus.PENDING
    is_error: bool = False
    fallback: bool = False
    provider: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    latency_ms: float | None = None
    language_mix: LanguageMixRecord | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.status is TurnStatus.CANCELLED

    def finalized_copy(self) -> Turn:
        """Frozen snapshot stored in history once the turn is done."""
        return FinalizedTurn.model_validate(self.model_dump())


class FinalizedTurn(Turn):
    model_config = ConfigDict(frozen=True)


class SessionState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"


class SessionRecord(BaseModel):
    session_id: str = Field(default_factory=new_id)
    user_id: str
    character_id: str
    is_active: bool = True
    language: str = "spanish"
    state: SessionState = SessionState.IDLE
    history: list[FinalizedTurn] = Field(default_factory=list)
    learning_context: LearningContext = Field(default_factory=LearningContext)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.character_id)


# ── Provider results ──────────────────────────────────────────────────────────


class SynthesisResult(BaseModel):
    """What a TTS adapter hands back: where the audio lives and how big it is."""

    audio_url: str
    byte_size: int = Field(ge=0)
    encoding: str = "mp3"


class VisemeFrame(BaseModel):
    t: int  # ms from audio start
    v: str


def estimate_mp3_duration_ms(byte_size: int, bitrate_kbps: int = 128) -> float:
    """Duration of an MP3 payload at a known constant bitrate."""
    return (byte_size * 8) / (bitrate_kbps * 1000) * 1000


# ── Status ────────────────────────────────────────────────────────────────────


class HealthStatus(BaseModel):
    healthy: bool
    latency_ms: float | None = None
    detail: str = ""


class AdapterCapabilities(BaseModel):
    supports_streaming: bool = True
    supports_emotion: bool = False
    max_text_length: int = 5000
    supported_languages: list[str] = []


# ── Events (outbound to client) ───────────────────────────────────────────────


class OutboundEvent(BaseModel):
    """Base for server→client events. Wire payloads use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class ConnectionStatusEvent(OutboundEvent):
    type: Literal["connection_status"] = "connection_status"
    connected: bool


class CharacterThinkingEvent(OutboundEvent):
    type: Literal["character_thinking"] = "character_thinking"
    thinking: bool = True
    turn_id: str


class CharacterStreamEvent(OutboundEvent):
    type: Literal["character_stream"] = "character_stream"
    text: str
    is_complete: bool = False
    turn_id: str


class CharacterResponseEvent(OutboundEvent):
    type: Literal["character_response"] = "character_response"
    text: str
    emotion: EmotionLabel
    is_error: bool = False
    fallback: bool = False
    turn_id: str


class VrmAnimationEvent(OutboundEvent):
    type: Literal["vrm_animation"] = "vrm_animation"
    emotion: EmotionLabel
    animation: str
    duration: int
    gesture: str | None = None
    intensity: float = 0.5
    blendshapes: dict[str, float] = Field(default_factory=dict)
    turn_id: str


class VrmIdleEvent(OutboundEvent):
    type: Literal["vrm_idle"] = "vrm_idle"
    blendshapes: dict[str, float]
    blink: bool = False


class VoiceAudioEvent(OutboundEvent):
    type: Literal["voice_audio"] = "voice_audio"
    audio_url: str
    text: str
    emotion: EmotionLabel
    duration_ms: float
    visemes: list[VisemeFrame] = Field(default_factory=list)
    turn_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class PerformanceMetricsEvent(OutboundEvent):
    type: Literal["performance_metrics"] = "performance_metrics"
    response_time: float
    is_slow_response: bool
    timestamp: datetime = Field(default_factory=utcnow)
    turn_id: str


class StreamWarningEvent(OutboundEvent):
    type: Literal["stream_warning"] = "stream_warning"
    message: str
    duration: float
    turn_id: str


class ErrorEvent(OutboundEvent):
    """`type` carries the event name, so the error category travels as `errorType`."""

    type: Literal["error"] = "error"
    message: str
    error_type: str = "turn_error"
    turn_id: str | None = None


class CharacterSwitchedEvent(OutboundEvent):
    type: Literal["character_switched"] = "character_switched"
    character_id: str
    name: str
    session_id: str


class ConversationHistoryEvent(OutboundEvent):
    type: Literal["conversation_history"] = "conversation_history"
    turns: list[dict] = Field(default_factory=list)


class ConversationClearedEvent(OutboundEvent):
    type: Literal["conversation_cleared"] = "conversation_cleared"
    session_id: str


class LanguageFeedbackEvent(OutboundEvent):
    type: Literal["language_feedback"] = "language_feedback"
    pattern: MixingType | None = None
    secondary_languages: list[str] = Field(default_factory=list)
    corrections: list[str] = Field(default_factory=list)
    segments: list[LanguageSegment] = Field(default_factory=list)
    turn_id: str


# ── Events (inbound from client) ─────────────────────────────────────────────


class SwitchCharacterEvent(BaseModel):
    type: Literal["switch_character"] = "switch_character"
    character_id: str = Field(validation_alias=AliasChoices("characterId", "character_id"))
    language: str | None = None


class SendMessageEvent(BaseModel):
    type: Literal["send_message"] = "send_message"
    text: str


class RequestVoiceEvent(BaseModel):
    type: Literal["request_voice"] = "request_voice"
    text: str
    emotion: EmotionLabel = EmotionLabel.NEUTRAL


class ClearConversationEvent(BaseModel):
    type: Literal["clear_conversation"] = "clear_conversation"


class GetHistoryEvent(BaseModel):
    type: Literal["get_history"] = "get_history"


class ReconnectEvent(BaseModel):
    type: Literal["reconnect"] = "reconnect"


InboundEvent = (
    SwitchCharacterEvent
    | SendMessageEvent
    | RequestVoiceEvent
    | ClearConversationEvent
    | GetHistoryEvent
    | ReconnectEvent
)
