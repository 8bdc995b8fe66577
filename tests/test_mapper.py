# tests/test_mapper.py
"""Unit tests for emotion → provider mapping and character profiles."""

import pytest

from avatutor.control.characters import (
    CharacterProfile,
    get_character,
    has_character,
    list_characters,
)
from avatutor.control.mapper import (
    cue_duration_ms,
    map_emotion_to_elevenlabs,
    map_emotion_to_expression,
)
from avatutor.core.types import EmotionLabel


# ── ElevenLabs voice settings ─────────────────────────────────────────────────


@pytest.mark.parametrize("label", list(EmotionLabel))
def test_elevenlabs_settings_in_range(label):
    for intensity in (0.0, 0.5, 1.0):
        s = map_emotion_to_elevenlabs(label, intensity)
        assert 0.0 <= s["stability"] <= 1.0
        assert 0.0 <= s["style"] <= 1.0
        assert s["similarity_boost"] == 0.75


def test_elevenlabs_more_intense_is_less_stable():
    calm = map_emotion_to_elevenlabs(EmotionLabel.EXCITED, 0.1)
    wild = map_emotion_to_elevenlabs(EmotionLabel.EXCITED, 0.9)
    assert wild["stability"] < calm["stability"]
    assert wild["style"] > calm["style"]


def test_elevenlabs_clamps_intensity():
    assert map_emotion_to_elevenlabs(EmotionLabel.HAPPY, 5.0) == map_emotion_to_elevenlabs(
        EmotionLabel.HAPPY, 1.0
    )


# ── Expressions ───────────────────────────────────────────────────────────────


def test_expression_default_table():
    assert map_emotion_to_expression(EmotionLabel.CONFUSED) == "tilted_head"


def test_expression_character_override():
    akira = get_character("akira")
    assert map_emotion_to_expression(EmotionLabel.HAPPY, akira.expressions) == "gentle_smile"
    # falls back to the shared table for labels the character does not define
    assert map_emotion_to_expression(EmotionLabel.SAD, akira.expressions) == "concerned_frown"


def test_cue_duration_floor_and_scale():
    assert cue_duration_ms(0.1) == 1000
    assert cue_duration_ms(0.5) == 1500
    assert cue_duration_ms(1.0) == 3000


# ── Characters ────────────────────────────────────────────────────────────────


def test_presets_listed():
    assert set(list_characters()) == {"maria", "akira", "default"}
    assert has_character("maria")
    assert not has_character("nobody")


def test_unknown_character_falls_back_to_default():
    assert get_character("nobody").id == "default"


def test_maria_preset():
    maria = get_character("maria")
    assert maria.language == "spanish"
    assert maria.voice_id == "EXAVITQu4vr4xnSDxMaL"
    assert "wave" in maria.gestures_for(EmotionLabel.HAPPY)


def test_profiles_are_immutable():
    maria = get_character("maria")
    with pytest.raises(Exception):
        maria.name = "Other"


def test_overrides_do_not_touch_presets():
    custom = get_character("maria", {"maria": {"voice_id": "custom-voice"}})
    assert custom.voice_id == "custom-voice"
    assert get_character("maria").voice_id == "EXAVITQu4vr4xnSDxMaL"


def test_fallback_depends_on_question():
    maria = get_character("maria")
    assert maria.fallback_for("¿Cómo estás?") == maria.fallback_question
    assert maria.fallback_for("Estoy bien") == maria.fallback_statement


def test_describe_mentions_name_and_language():
    p = CharacterProfile(id="x", name="Lucía", language="spanish", voice_id="v")
    text = p.describe()
    assert "Lucía" in text
    assert "spanish" in text


def test_error_message_default():
    p = CharacterProfile(id="x", name="X", language="english", voice_id="v")
    assert "Sorry" in p.error_message("ai_failure")
