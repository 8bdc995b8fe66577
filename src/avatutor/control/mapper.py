# src/avatutor/control/mapper.py
from __future__ import annotations
from avatutor.core.types import EmotionLabel


# ── ElevenLabs voice settings ─────────────────────────────────────────────────

# (stability, style): lower stability + higher style = more expressive delivery
_ELEVENLABS_STYLE: dict[EmotionLabel, tuple[float, float]] = {
    EmotionLabel.NEUTRAL: (0.60, 0.10),
    EmotionLabel.HAPPY: (0.45, 0.45),
    EmotionLabel.EXCITED: (0.30, 0.70),
    EmotionLabel.THOUGHTFUL: (0.70, 0.15),
    EmotionLabel.ENCOURAGING: (0.50, 0.40),
    EmotionLabel.CONFUSED: (0.55, 0.25),
    EmotionLabel.SAD: (0.65, 0.30),
    EmotionLabel.SURPRISED: (0.35, 0.60),
    EmotionLabel.ANGRY: (0.40, 0.50),
}


def map_emotion_to_elevenlabs(emotion: EmotionLabel, intensity: float = 0.5) -> dict:
    """
    ElevenLabs has no emotion parameter, so we proxy it via voice_settings:
    - stability drops as intensity rises (more variation)
    - style exaggeration scales with intensity
    """
    stability, style = _ELEVENLABS_STYLE.get(emotion, _ELEVENLABS_STYLE[EmotionLabel.NEUTRAL])
    intensity = max(0.0, min(1.0, intensity))
    return {
        "stability": round(max(0.0, min(1.0, stability - (intensity - 0.5) * 0.2)), 2),
        "similarity_boost": 0.75,
        "style": round(max(0.0, min(1.0, style * (0.5 + intensity))), 2),
        "use_speaker_boost": True,
    }


# ── Expression names ──────────────────────────────────────────────────────────

_DEFAULT_EXPRESSIONS: dict[EmotionLabel, str] = {
    EmotionLabel.NEUTRAL: "warm_smile",
    EmotionLabel.HAPPY: "big_smile",
    EmotionLabel.EXCITED: "wide_eyes_smile",
    EmotionLabel.THOUGHTFUL: "pondering",
    EmotionLabel.ENCOURAGING: "encouraging_smile",
    EmotionLabel.CONFUSED: "tilted_head",
    EmotionLabel.SAD: "concerned_frown",
    EmotionLabel.SURPRISED: "wide_eyes",
    EmotionLabel.ANGRY: "concerned_frown",
}


def map_emotion_to_expression(
    emotion: EmotionLabel, overrides: dict[EmotionLabel, str] | None = None
) -> str:
    """Character-specific expression name, falling back to the shared table."""
    if overrides and emotion in overrides:
        return overrides[emotion]
    return _DEFAULT_EXPRESSIONS.get(emotion, _DEFAULT_EXPRESSIONS[EmotionLabel.NEUTRAL])


def cue_duration_ms(intensity: float) -> int:
    """Stronger emotions hold longer; never shorter than one second."""
    return int(max(1000.0, intensity * 3000.0))
