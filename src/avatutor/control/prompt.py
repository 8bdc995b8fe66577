# src/avatutor/control/prompt.py
from __future__ import annotations
import math
from avatutor.control.characters import CharacterProfile
from avatutor.core.config import PromptBudget, settings
from avatutor.core.types import EmotionLabel, FinalizedTurn, SessionRecord

_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, at least one if non-empty."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / _CHARS_PER_TOKEN))


def _clip(text: str, tokens: int) -> str:
    if estimate_tokens(text) <= tokens:
        return text
    return text[: max(0, tokens * _CHARS_PER_TOKEN)].rstrip()


class PromptBuilder:
    """
    Assembles the provider prompt from four segments, in priority order:

        personality  capped at personality_tokens, always present
        history      most recent turns first, up to history_tokens
        learning     session notes, up to learning_tokens
        message      the learner's text, always present in full, preceded by
                     a one-line read of the learner's mood when it is not neutral

    When everything together would exceed total_tokens, history gives way
    first and learning notes second.
    """

    def __init__(self, budget: PromptBudget | None = None) -> None:
        self.budget = budget or settings.prompt

    def build(
        self,
        session: SessionRecord,
        profile: CharacterProfile,
        message: str,
        mood: tuple[EmotionLabel, float] | None = None,
    ) -> str:
        b = self.budget
        personality = _clip(profile.describe(), b.personality_tokens)
        mood_line = _mood_line(profile, mood)
        remaining = (
            b.total_tokens
            - estimate_tokens(personality)
            - estimate_tokens(mood_line)
            - estimate_tokens(message)
        )

        notes = session.learning_context.notes()
        learning_cost = sum(estimate_tokens(n) for n in notes)
        learning_alloc = max(0, min(learning_cost, b.learning_tokens, remaining))
        history_alloc = max(0, min(b.history_tokens, remaining - learning_alloc))

        history_lines = self._history_lines(session.history, profile, history_alloc)
        learning_lines = self._fit(notes, learning_alloc)

        parts = [personality]
        if history_lines:
            parts.append("Recent conversation:\n" + "\n".join(history_lines))
        if learning_lines:
            parts.append("Learning notes:\n" + "\n".join(f"- {n}" for n in learning_lines))
        if mood_line:
            parts.append(mood_line)
        parts.append(f"Learner: {message}\n{profile.name}:")
        return "\n\n".join(parts)

    @staticmethod
    def _render(turn: FinalizedTurn, profile: CharacterProfile) -> str:
        return f"Learner: {turn.input_text}\n{profile.name}: {turn.output_text}"

    def _history_lines(
        self, history: list[FinalizedTurn], profile: CharacterProfile, budget: int
    ) -> list[str]:
        picked: list[str] = []
        used = 0
        for turn in reversed(history):
            line = self._render(turn, profile)
            cost = estimate_tokens(line)
            if used + cost > budget:
                break
            picked.append(line)
            used += cost
        picked.reverse()  # chronological order in the prompt
        return picked

    @staticmethod
    def _fit(lines: list[str], budget: int) -> list[str]:
        out: list[str] = []
        used = 0
        for line in lines:
            cost = estimate_tokens(line)
            if used + cost > budget:
                break
            out.append(line)
            used += cost
        return out


def _mood_line(profile: CharacterProfile, mood: tuple[EmotionLabel, float] | None) -> str:
    if mood is None or mood[0] is EmotionLabel.NEUTRAL:
        return ""
    label, intensity = mood
    return f"The learner seems {label.value} (intensity {intensity:.2f}). {profile.tone_instruction}"


def history_cost(history: list[FinalizedTurn], profile: CharacterProfile) -> int:
    """Estimated token cost of the whole history as rendered in prompts."""
    return sum(estimate_tokens(PromptBuilder._render(t, profile)) for t in history)
