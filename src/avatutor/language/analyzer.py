# src/avatutor/language/analyzer.py
from __future__ import annotations
import re
from collections import Counter
from dataclasses import dataclass
from avatutor.core.logging import get_logger
from avatutor.core.types import LanguageMixRecord, LanguageSegment, MixingType, ScriptTag
from avatutor.language import romaji, slang

log = get_logger(__name__)

# ── Lexicons ──────────────────────────────────────────────────────────────────

SPANISH_WORDS: frozenset[str] = frozenset(
    """
    el la los las un una unos unas de del al y o pero que como cuando donde porque
    por para con sin en es son esta estan estoy eres soy ser estar hay muy mas menos
    mucho poco bien mal hola adios gracias buenos buenas dias tardes noches si tambien
    yo tu usted nosotros ellos ella mi mis su sus tengo tiene quiero quieres puedo
    puedes hablar hablo comer como vivo vamos gusta me te se lo le nos
    hoy manana ayer ahora siempre nunca amigo amiga casa comida agua libro perro gato
    bueno buena genial claro vale nada todo todos algo aqui alli entonces pues
    donde cual quien cuanto aprender espanol ingles japones favor perdon
    """.split()
)

ENGLISH_WORDS: frozenset[str] = frozenset(
    """
    the a an and or but if of to in on at by for with from about as into is are was
    were be been am do does did have has had i you he she it we they me him her us them
    my your his its our their this that these those what which who when where why how
    not no yes hello hi hey bye thanks thank please sorry good great nice like love want
    need know think say said go going went can could will would should very really just
    also too so now today tomorrow yesterday friend house food water book dog cat want
    learn learning speak spanish english japanese word words mean means don't i'm it's
    there here some any all more much many time day night morning
    """.split()
)

# Words in both lists are ambiguous and resolved from their neighbours.
_AMBIGUOUS = SPANISH_WORDS & ENGLISH_WORDS

FUNCTION_WORDS: dict[str, frozenset[str]] = {
    "spanish": frozenset(
        "el la los las un una de del al y o pero que en por para con sin es son".split()
    ),
    "english": frozenset(
        "the a an and or but of to in on at by for with from is are was were".split()
    ),
    "japanese": romaji.ROMAJI_PARTICLES,
}

_SPANISH_CHARS = re.compile(r"[áéíóúñü¡¿]", re.IGNORECASE)
_LATIN_SCRIPT_LANGUAGES = frozenset({"spanish", "english"})

_TOKEN = re.compile(
    r"(?P<hiragana>[぀-ゟ]+)"
    r"|(?P<katakana>[゠-ヿㇰ-ㇿｦ-ﾟ]+)"
    r"|(?P<kanji>[一-鿿㐀-䶿]+)"
    r"|(?P<cyrillic>[Ѐ-ӿ]+)"
    r"|(?P<arabic>[؀-ۿ]+)"
    r"|(?P<latin>[¡¿]?[A-Za-zÀ-ÖØ-öø-ɏ'’]+)"
)

_SCRIPT_LANGUAGE: dict[str, tuple[str, float]] = {
    "hiragana": ("japanese", 0.95),
    "katakana": ("japanese", 0.9),
    "kanji": ("japanese", 0.75),
    "cyrillic": ("russian", 0.9),
    "arabic": ("arabic", 0.9),
}

# Mixing patterns in tie-break order.
_PATTERN_ORDER = (
    MixingType.CODE_SWITCHING,
    MixingType.TRANSLITERATION,
    MixingType.INTERFERENCE,
    MixingType.BORROWING,
)

_SENTENCE = re.compile(r"[^.!?。！？\n]+[.!?。！？]+|[^.!?。！？\n]+$")


@dataclass
class _Token:
    text: str
    start: int
    end: int
    script: ScriptTag
    language: str | None
    confidence: float
    transliterated: bool = False

    @property
    def word(self) -> str:
        return slang.fold_accents(self.text.strip("¡¿'’")).lower()


# ── Tokenization ──────────────────────────────────────────────────────────────


def _classify_latin(raw: str) -> tuple[str | None, float, bool]:
    """(language, confidence, is_romaji) for one Latin-letter word."""
    bare = raw.strip("¡¿'’")
    word = slang.fold_accents(bare).lower()
    if romaji.is_romaji_word(word):
        return "japanese", 0.85, True
    if _SPANISH_CHARS.search(raw):
        return "spanish", 0.9, False
    if word in _AMBIGUOUS:
        return None, 0.5, False
    if word in SPANISH_WORDS:
        return "spanish", 0.75, False
    if word in ENGLISH_WORDS:
        return "english", 0.75, False
    if word in slang.SPANISH_SLANG:
        return "spanish", 0.6, False
    return None, 0.4, False


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    for m in _TOKEN.finditer(text):
        kind = m.lastgroup or "latin"
        if kind == "latin":
            language, conf, is_romaji = _classify_latin(m.group(0))
            tokens.append(
                _Token(
                    text=m.group(0),
                    start=m.start(),
                    end=m.end(),
                    script=ScriptTag.ROMAJI if is_romaji else ScriptTag.LATIN,
                    language=language,
                    confidence=conf,
                    transliterated=is_romaji,
                )
            )
        else:
            language, conf = _SCRIPT_LANGUAGE[kind]
            tokens.append(
                _Token(m.group(0), m.start(), m.end(), ScriptTag(kind), language, conf)
            )
    return tokens


def _resolve(tokens: list[_Token], primary: str) -> None:
    """Fill in ambiguous Latin tokens from their neighbours, in place."""
    # particles and unknown kana-shaped words next to romaji are romaji too
    changed = True
    while changed:
        changed = False
        for i, tok in enumerate(tokens):
            if tok.script is not ScriptTag.LATIN:
                continue
            w = tok.word
            if w not in romaji.ROMAJI_PARTICLES and not (
                tok.language is None and romaji.is_convertible(w)
            ):
                continue
            neighbours = tokens[max(0, i - 1) : i] + tokens[i + 1 : i + 2]
            if any(n.transliterated for n in neighbours):
                tok.language, tok.confidence = "japanese", 0.7
                tok.script, tok.transliterated = ScriptTag.ROMAJI, True
                changed = True

    default = primary if primary in _LATIN_SCRIPT_LANGUAGES else "english"
    latin = [t for t in tokens if t.script is ScriptTag.LATIN]
    for i, tok in enumerate(latin):
        if tok.language is not None:
            continue
        before = next((t.language for t in reversed(latin[:i]) if t.language), None)
        after = next((t.language for t in latin[i + 1 :] if t.language), None)
        if before and (before == after or after is None):
            tok.language = before
        elif after and before is None:
            tok.language = after
        elif default in (before, after):
            tok.language = default
        else:
            tok.language = before or default
        tok.confidence = min(tok.confidence, 0.5)


def _merge(tokens: list[_Token]) -> list[list[_Token]]:
    groups: list[list[_Token]] = []
    for tok in tokens:
        if groups:
            last = groups[-1][-1]
            same_kind = last.transliterated == tok.transliterated
            if last.language == tok.language and same_kind:
                groups[-1].append(tok)
                continue
        groups.append([tok])
    return groups


# ── Classification ────────────────────────────────────────────────────────────


def _mixing_for(
    group: list[_Token], language: str, has_primary: bool
) -> MixingType:
    if group[0].transliterated:
        return MixingType.TRANSLITERATION
    if not has_primary:
        return MixingType.CODE_SWITCHING
    cjk = group[0].script in (ScriptTag.HIRAGANA, ScriptTag.KATAKANA, ScriptTag.KANJI)
    size = sum(len(t.text) for t in group) if cjk else len(group)
    if len(group) == 1 and group[0].word in FUNCTION_WORDS.get(language, frozenset()):
        return MixingType.INTERFERENCE
    if (cjk and size <= 4) or (not cjk and size <= 2):
        return MixingType.BORROWING
    return MixingType.CODE_SWITCHING


def _dominant_script(group: list[_Token]) -> ScriptTag:
    weights: Counter[ScriptTag] = Counter()
    for tok in group:
        weights[tok.script] += len(tok.text)
    return weights.most_common(1)[0][0]


def _punctuation_corrections(text: str, tokens: list[_Token]) -> list[str]:
    out: list[str] = []
    for m in _SENTENCE.finditer(text):
        if not any(t.language == "spanish" and m.start() <= t.start < m.end() for t in tokens):
            continue
        sentence = m.group(0).strip()
        if sentence.endswith("?") and "¿" not in sentence:
            out.append(f"Spanish questions open with ¿: ¿{sentence}")
        elif sentence.endswith("!") and "¡" not in sentence:
            out.append(f"Spanish exclamations open with ¡: ¡{sentence}")
    return out


class LanguageMixAnalyzer:
    """
    Splits learner text into per-language segments and flags every span that
    is not in the session's primary language.

    Pure: no I/O, no shared state. Safe to call from any task.
    """

    def __init__(self, max_new_words: int = 10) -> None:
        self.max_new_words = max_new_words

    def analyze(self, text: str, primary_language: str, turn_id: str) -> LanguageMixRecord:
        primary = primary_language.lower()
        tokens = _tokenize(text)
        _resolve(tokens, primary)
        groups = _merge(tokens)
        has_primary = any(g[0].language == primary and not g[0].transliterated for g in groups)

        segments: list[LanguageSegment] = []
        secondary: list[str] = []
        corrections: list[str] = []
        new_words: list[str] = []
        for group in groups:
            language = group[0].language or primary
            start, end = group[0].start, group[-1].end
            span = text[start:end]
            is_secondary = language != primary
            mixing: MixingType | None = None
            if is_secondary or group[0].transliterated:
                mixing = _mixing_for(group, language, has_primary)
            if is_secondary and language not in secondary:
                secondary.append(language)
            if group[0].transliterated:
                corrections.append(f"{span} → {romaji.to_hiragana(span)}")
            if is_secondary:
                for tok in group:
                    w = tok.word
                    if (
                        w
                        and w not in FUNCTION_WORDS.get(language, frozenset())
                        and w not in new_words
                        and len(new_words) < self.max_new_words
                    ):
                        new_words.append(w)
            segments.append(
                LanguageSegment(
                    text=span,
                    language=language,
                    confidence=round(sum(t.confidence for t in group) / len(group), 2),
                    start=start,
                    end=end,
                    script=_dominant_script(group),
                    is_transliterated=group[0].transliterated,
                    mixing=mixing,
                )
            )

        spanish_present = primary == "spanish" or "spanish" in secondary
        if spanish_present:
            corrections.extend(f"{orig} → {norm}" for orig, norm in slang.find_slang(text))
        corrections.extend(_punctuation_corrections(text, tokens))

        record = LanguageMixRecord(
            turn_id=turn_id,
            original_text=text,
            primary_language=primary,
            segments=tuple(segments),
            secondary_languages=tuple(secondary),
            pattern=_dominant_pattern(segments),
            corrections=tuple(corrections),
            new_words=tuple(new_words),
        )
        log.debug(
            "language mix analyzed",
            segments=len(segments),
            secondary=list(secondary),
            pattern=record.pattern.value if record.pattern else None,
        )
        return record


def _dominant_pattern(segments: list[LanguageSegment]) -> MixingType | None:
    counts: Counter[MixingType] = Counter(s.mixing for s in segments if s.mixing is not None)
    if not counts:
        return None
    best = max(counts.values())
    return next(p for p in _PATTERN_ORDER if counts[p] == best)


def analyze(text: str, primary_language: str, turn_id: str) -> LanguageMixRecord:
    """Module-level convenience over a default analyzer."""
    return _default.analyze(text, primary_language, turn_id)


_default = LanguageMixAnalyzer()


def needs_feedback(record: LanguageMixRecord) -> bool:
    return bool(record.secondary_languages or record.pattern)
