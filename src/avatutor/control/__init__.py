"""Character profiles, prompt assembly, emotion and animation control."""

from avatutor.control.animation import AnimationStateMachine, IdleFrame, Transition
from avatutor.control.characters import CharacterProfile, get_character, list_characters
from avatutor.control.emotion import classify
from avatutor.control.prompt import PromptBuilder, estimate_tokens

__all__ = [
    "AnimationStateMachine",
    "CharacterProfile",
    "IdleFrame",
    "PromptBuilder",
    "Transition",
    "classify",
    "estimate_tokens",
    "get_character",
    "list_characters",
]
