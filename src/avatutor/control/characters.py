# src/avatutor/control/characters.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from avatutor.core.types import EmotionLabel


class CharacterTraits(BaseModel):
    model_config = ConfigDict(frozen=True)

    warmth: float = Field(0.7, ge=0.0, le=1.0)
    enthusiasm: float = Field(0.6, ge=0.0, le=1.0)
    patience: float = Field(0.8, ge=0.0, le=1.0)
    formality: float = Field(0.3, ge=0.0, le=1.0)
    humor: float = Field(0.5, ge=0.0, le=1.0)
    empathy: float = Field(0.7, ge=0.0, le=1.0)


class CulturalContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    region: str = ""
    teaching_style: str = "conversational"
    focus: tuple[str, ...] = ()
    tip: str = ""


class CharacterProfile(BaseModel):
    """Immutable tutor persona. Loaded once and shared by reference."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    language: str
    voice_id: str
    description: str = ""
    traits: CharacterTraits = Field(default_factory=CharacterTraits)
    culture: CulturalContext = Field(default_factory=CulturalContext)
    expressions: dict[EmotionLabel, str] = Field(default_factory=dict)
    gestures: dict[EmotionLabel, tuple[str, ...]] = Field(default_factory=dict)
    gesture_frequency: float = Field(0.5, ge=0.0, le=1.0)
    tone_instruction: str = "Respond with patience and encouragement."
    fallback_question: str = "That's a great question! Let me think about it for a moment."
    fallback_statement: str = "I hear you! Tell me a bit more."
    error_messages: dict[str, str] = Field(default_factory=dict)

    def describe(self) -> str:
        """Personality block placed at the top of every prompt."""
        if self.description:
            return self.description
        t = self.traits
        return (
            f"You are {self.name}, a {self.language} tutor"
            + (f" from {self.culture.region}" if self.culture.region else "")
            + f". Teaching style: {self.culture.teaching_style}. "
            f"Warmth {t.warmth:.1f}, enthusiasm {t.enthusiasm:.1f}, "
            f"patience {t.patience:.1f}, formality {t.formality:.1f}. "
            f"Keep replies short, mix {self.language} with English where it helps, "
            f"and gently correct mistakes."
        )

    def fallback_for(self, message: str) -> str:
        return self.fallback_question if message.rstrip().endswith("?") else self.fallback_statement

    def error_message(self, kind: str = "ai_failure") -> str:
        return self.error_messages.get(
            kind, "Sorry, something went wrong on my side. Could you say that again?"
        )

    def gestures_for(self, emotion: EmotionLabel) -> tuple[str, ...]:
        return self.gestures.get(emotion, ())


_PRESETS: dict[str, CharacterProfile] = {
    "maria": CharacterProfile(
        id="maria",
        name="María",
        language="spanish",
        voice_id="EXAVITQu4vr4xnSDxMaL",
        traits=CharacterTraits(warmth=0.9, enthusiasm=0.8, patience=0.8, formality=0.2, humor=0.7),
        culture=CulturalContext(
            region="Mexico City",
            teaching_style="warm and conversational",
            focus=("everyday expressions", "food", "family"),
            tip="In Mexican Spanish, tone is expressive: add ¡ and ! for enthusiasm.",
        ),
        expressions={
            EmotionLabel.HAPPY: "big_smile",
            EmotionLabel.EXCITED: "wide_eyes_smile",
            EmotionLabel.ENCOURAGING: "encouraging_smile",
        },
        gestures={
            EmotionLabel.HAPPY: ("wave", "clap"),
            EmotionLabel.EXCITED: ("clap", "jump"),
            EmotionLabel.ENCOURAGING: ("thumbs_up", "nod"),
            EmotionLabel.THOUGHTFUL: ("chin_touch",),
            EmotionLabel.CONFUSED: ("head_tilt", "shrug"),
            EmotionLabel.SURPRISED: ("hands_up",),
        },
        gesture_frequency=0.7,
        tone_instruction="Respond with warmth and enthusiasm.",
        fallback_question="¡Qué buena pregunta! Dame un momento para pensarlo.",
        fallback_statement="¡Te escucho! Cuéntame un poco más.",
        error_messages={
            "ai_failure": "¡Ay, perdón! Tuve un pequeño problema. ¿Puedes repetirlo?",
            "unclear_input": "No entendí bien. ¿Me lo dices de otra forma?",
            "network": "Parece que la conexión está lenta. Intentemos de nuevo.",
        },
    ),
    "akira": CharacterProfile(
        id="akira",
        name="Akira",
        language="japanese",
        voice_id="ErXwobaYiN019PkySvjV",
        traits=CharacterTraits(warmth=0.7, enthusiasm=0.6, patience=0.9, formality=0.6, humor=0.4),
        culture=CulturalContext(
            region="Tokyo",
            teaching_style="patient and structured",
            focus=("politeness levels", "daily life", "pop culture"),
            tip="In Japanese, end sentences politely with です/ます to show respect.",
        ),
        expressions={
            EmotionLabel.HAPPY: "gentle_smile",
            EmotionLabel.THOUGHTFUL: "pondering",
            EmotionLabel.ENCOURAGING: "encouraging_smile",
        },
        gestures={
            EmotionLabel.HAPPY: ("bow", "nod"),
            EmotionLabel.EXCITED: ("clap",),
            EmotionLabel.ENCOURAGING: ("nod", "thumbs_up"),
            EmotionLabel.THOUGHTFUL: ("chin_touch",),
            EmotionLabel.CONFUSED: ("head_tilt",),
        },
        gesture_frequency=0.4,
        tone_instruction="Respond with polite understanding and respect.",
        fallback_question="いい質問ですね！少し考えさせてください。",
        fallback_statement="なるほど！もう少し教えてください。",
        error_messages={
            "ai_failure": "すみません、ちょっと問題がありました。もう一度言ってください。",
            "unclear_input": "よく分かりませんでした。別の言い方でお願いします。",
            "network": "接続が遅いようです。もう一度試しましょう。",
        },
    ),
    "default": CharacterProfile(
        id="default",
        name="Tutor",
        language="english",
        voice_id="21m00Tcm4TlvDq8ikWAM",
        gestures={
            EmotionLabel.HAPPY: ("nod",),
            EmotionLabel.ENCOURAGING: ("thumbs_up",),
        },
    ),
}


def get_character(character_id: str, overrides: dict[str, dict] | None = None) -> CharacterProfile:
    """Return the preset (with any configured overrides), falling back to 'default'."""
    profile = _PRESETS.get(character_id, _PRESETS["default"])
    if overrides and character_id in overrides:
        profile = profile.model_copy(update=overrides[character_id])
    return profile


def has_character(character_id: str) -> bool:
    return character_id in _PRESETS


def list_characters() -> list[str]:
    return list(_PRESETS.keys())
