# src/avatutor/control/emotion.py
from __future__ import annotations
import re
from avatutor.core.types import EmotionLabel
from avatutor.language.slang import fold_accents

# Latin-script cues are matched as whole words on accent-folded lowercase text;
# Japanese cues and emoji are matched as substrings.
_LATIN_CUES: dict[EmotionLabel, tuple[str, ...]] = {
    EmotionLabel.HAPPY: (
        "happy", "glad", "great", "good", "nice", "wonderful", "love", "fun", "yay",
        "bueno", "buena", "bien", "genial", "feliz", "alegre", "encanta", "divertido",
        "que bien", "me gusta",
    ),
    EmotionLabel.EXCITED: (
        "amazing", "awesome", "wow", "incredible", "fantastic", "excited", "can't wait",
        "increible", "fantastico", "emocionante", "emocionado", "guau", "excelente",
    ),
    EmotionLabel.THOUGHTFUL: (
        "think", "consider", "perhaps", "maybe", "hmm", "interesting", "wonder",
        "pienso", "creo", "quizas", "tal vez", "interesante", "veamos",
    ),
    EmotionLabel.ENCOURAGING: (
        "try", "practice", "keep going", "you can", "well done", "good job", "almost",
        "don't worry", "animo", "sigue", "puedes", "intenta", "practica", "bravo",
        "muy bien", "no te preocupes",
    ),
    EmotionLabel.CONFUSED: (
        "confused", "don't understand", "not sure", "huh", "unclear", "what do you mean",
        "no entiendo", "confundido", "confundida", "no se",
    ),
    EmotionLabel.SAD: (
        "sad", "sorry", "unfortunately", "miss", "triste", "lo siento", "perdon", "lastima",
    ),
    EmotionLabel.SURPRISED: (
        "really", "surprise", "surprised", "no way", "oh", "de verdad", "en serio",
        "sorpresa", "vaya", "no me digas",
    ),
    EmotionLabel.ANGRY: (
        "angry", "annoyed", "frustrated", "mad", "hate", "enojado", "enojada", "molesto",
        "furioso",
    ),
}

_SUBSTRING_CUES: dict[EmotionLabel, tuple[str, ...]] = {
    EmotionLabel.HAPPY: ("嬉しい", "うれしい", "よかった", "楽しい", "たのしい", "😊", "😀", "😄", "🙂"),
    EmotionLabel.EXCITED: ("すごい", "最高", "わくわく", "🎉", "🤩"),
    EmotionLabel.THOUGHTFUL: ("考え", "なるほど", "🤔"),
    EmotionLabel.ENCOURAGING: ("頑張", "がんば", "大丈夫", "💪", "👍"),
    EmotionLabel.CONFUSED: ("分から", "わから", "😕"),
    EmotionLabel.SAD: ("悲しい", "残念", "ごめん", "😢"),
    EmotionLabel.SURPRISED: ("本当", "えっ", "びっくり", "😮", "😲"),
    EmotionLabel.ANGRY: ("怒", "😠"),
}

_LATIN_PATTERNS: dict[EmotionLabel, re.Pattern[str]] = {
    label: re.compile(r"(?<!\w)(?:" + "|".join(re.escape(c) for c in cues) + r")(?!\w)")
    for label, cues in _LATIN_CUES.items()
}

# Tie-break order when two labels score the same.
_PRIORITY = (
    EmotionLabel.EXCITED,
    EmotionLabel.HAPPY,
    EmotionLabel.ENCOURAGING,
    EmotionLabel.SURPRISED,
    EmotionLabel.CONFUSED,
    EmotionLabel.SAD,
    EmotionLabel.ANGRY,
    EmotionLabel.THOUGHTFUL,
)

UNMATCHED_INTENSITY = 0.2


def score(text: str) -> dict[EmotionLabel, float]:
    """Raw cue scores per label. Labels with no cue are absent."""
    folded = fold_accents(text).lower().replace("’", "'")
    scores: dict[EmotionLabel, float] = {}
    for label, pattern in _LATIN_PATTERNS.items():
        hits = len(pattern.findall(folded))
        hits += sum(text.count(cue) for cue in _SUBSTRING_CUES.get(label, ()))
        if hits:
            scores[label] = float(hits)

    exclamations = text.count("!") + text.count("！")
    if "?!" in text or "!?" in text:
        scores[EmotionLabel.SURPRISED] = scores.get(EmotionLabel.SURPRISED, 0.0) + 1.0
    if exclamations >= 3:
        scores[EmotionLabel.EXCITED] = scores.get(EmotionLabel.EXCITED, 0.0) + 1.0
    if text.rstrip().endswith(("?", "？")) and not scores:
        scores[EmotionLabel.THOUGHTFUL] = 0.5
    return scores


def classify(text: str) -> tuple[EmotionLabel, float]:
    """
    Deterministic (label, intensity) for a piece of character text.

    Intensity grows with the number of cues and with exclamation marks;
    text with no cue at all is neutral at 0.2.
    """
    scores = score(text)
    if not scores:
        return EmotionLabel.NEUTRAL, UNMATCHED_INTENSITY
    best = max(scores.values())
    label = next(l for l in _PRIORITY if scores.get(l) == best)
    exclamations = min(4, text.count("!") + text.count("！"))
    intensity = min(1.0, 0.4 + 0.15 * best + 0.05 * exclamations)
    return label, round(intensity, 2)
