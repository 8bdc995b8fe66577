# tests/test_prompt.py
"""Prompt assembly under a token budget: priority order and overflow."""

from avatutor.control.characters import get_character
from avatutor.control.prompt import PromptBuilder, estimate_tokens, history_cost
from avatutor.core.config import PromptBudget
from avatutor.core.types import (
    EmotionLabel,
    FinalizedTurn,
    LearningContext,
    SessionRecord,
    TurnStatus,
)


def _turn(i: int) -> FinalizedTurn:
    return FinalizedTurn(
        input_text=f"question number {i}",
        output_text=f"answer number {i}",
        status=TurnStatus.FINALIZED,
    )


def _record(history=None, words=None) -> SessionRecord:
    return SessionRecord(
        user_id="u1",
        character_id="default",
        history=history or [],
        learning_context=LearningContext(new_words=words or []),
    )


# ── estimate_tokens ───────────────────────────────────────────────────────────


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


# ── Layout ────────────────────────────────────────────────────────────────────


def test_prompt_sections_in_order():
    profile = get_character("maria")
    record = _record(history=[_turn(1)], words=["manzana"])
    prompt = PromptBuilder(PromptBudget()).build(record, profile, "¿Cómo se dice apple?")

    personality = prompt.index(profile.describe()[:40])
    history = prompt.index("Recent conversation:")
    learning = prompt.index("Learning notes:")
    message = prompt.index("Learner: ¿Cómo se dice apple?")
    assert personality < history < learning < message
    assert prompt.endswith("María:")
    assert "Learner: question number 1\nMaría: answer number 1" in prompt
    assert "- Vocabulary in play: manzana" in prompt


def test_empty_session_has_no_optional_sections():
    prompt = PromptBuilder(PromptBudget()).build(_record(), get_character("default"), "Hello")
    assert "Recent conversation:" not in prompt
    assert "Learning notes:" not in prompt
    assert prompt.endswith("Learner: Hello\nTutor:")


# ── Overflow ──────────────────────────────────────────────────────────────────


def test_overflow_keeps_most_recent_history_and_learning():
    budget = PromptBudget(
        total_tokens=100, personality_tokens=20, history_tokens=50, learning_tokens=30
    )
    record = _record(history=[_turn(i) for i in range(10)], words=["manzana", "perro"])
    message = "x" * 160  # 40 tokens

    prompt = PromptBuilder(budget).build(record, get_character("default"), message)

    # personality 20 + message 40 leaves 40: learning takes 9, history gets 31 (two turns)
    assert "question number 9" in prompt
    assert "question number 8" in prompt
    assert "question number 7" not in prompt
    assert "manzana, perro" in prompt
    assert message in prompt
    assert prompt.index("question number 8") < prompt.index("question number 9")


def test_personality_is_clipped_to_budget():
    budget = PromptBudget(personality_tokens=20)
    prompt = PromptBuilder(budget).build(_record(), get_character("maria"), "Hola")
    personality = prompt.split("\n\n")[0]
    assert estimate_tokens(personality) <= 20


def test_huge_message_squeezes_out_history_and_learning():
    record = _record(history=[_turn(1), _turn(2)], words=["gato"])
    message = "y" * 20000

    prompt = PromptBuilder(PromptBudget()).build(record, get_character("default"), message)

    assert message in prompt
    assert "You are Tutor" in prompt
    assert "Recent conversation:" not in prompt
    assert "Learning notes:" not in prompt


# ── history_cost ──────────────────────────────────────────────────────────────


def test_history_cost_sums_rendered_turns():
    profile = get_character("default")
    history = [_turn(1), _turn(2)]
    single = estimate_tokens("Learner: question number 1\nTutor: answer number 1")
    assert history_cost(history, profile) == 2 * single


# ── Learner mood ──────────────────────────────────────────────────────────────


def test_learner_mood_sits_just_before_the_message():
    maria = get_character("maria")
    prompt = PromptBuilder(PromptBudget()).build(
        _record(), maria, "No entiendo nada", (EmotionLabel.CONFUSED, 0.6)
    )
    mood = "The learner seems confused (intensity 0.60). Respond with warmth and enthusiasm."
    assert mood in prompt
    assert prompt.endswith(mood + "\n\nLearner: No entiendo nada\nMaría:")


def test_mood_line_follows_character_tone():
    prompt = PromptBuilder(PromptBudget()).build(
        _record(), get_character("akira"), "すごい！", (EmotionLabel.EXCITED, 0.8)
    )
    assert "Respond with polite understanding and respect." in prompt


def test_neutral_mood_is_left_out():
    prompt = PromptBuilder(PromptBudget()).build(
        _record(), get_character("default"), "ok", (EmotionLabel.NEUTRAL, 0.2)
    )
    assert "learner seems" not in prompt


def test_learning_notes_cover_grammar_and_culture():
    record = _record(words=["book"])
    record.learning_context.grammar_points.append("Spanish questions open with ¿: ¿Como estas?")
    record.learning_context.cultural_references.append("Say usted to elders.")
    prompt = PromptBuilder(PromptBudget()).build(record, get_character("maria"), "Hola")
    notes = prompt[prompt.index("Learning notes:") :]
    assert notes.index("- Grammar: Spanish questions") < notes.index("- Vocabulary in play: book")
    assert notes.index("- Vocabulary in play: book") < notes.index("- Culture: Say usted to elders.")
