# src/avatutor/language/romaji.py
from __future__ import annotations
import re
import wanakana

# Words that are unmistakably Japanese when written in Latin letters.
ROMAJI_LEXICON: frozenset[str] = frozenset(
    {
        "watashi", "boku", "anata", "desu", "deshita", "masu", "mashita", "arigatou",
        "arigato", "arigatō", "gozaimasu", "konnichiwa", "konbanwa", "ohayou", "ohayo",
        "sayonara", "sayounara", "sumimasen", "gomen", "gomennasai", "onegaishimasu",
        "kudasai", "daijoubu", "daijobu", "sugoi", "kawaii", "oishii", "tanoshii",
        "hai", "iie", "nani", "naze", "doko", "itsu", "dare", "sensei", "gakusei",
        "nihongo", "nihon", "tomodachi", "taberu", "tabemasu", "nomimasu", "ikimasu",
        "wakarimasen", "wakarimasu", "wakaranai", "ganbatte", "ganbarimasu", "yoroshiku",
        "hajimemashite", "itadakimasu", "kore", "koko", "soko", "totemo", "chotto",
        "neko", "inu", "gohan", "mizu", "ocha", "senpai", "kohai",
    }
)

# Particles only count as Japanese next to other romaji; on their own they
# collide with Spanish and English ("de", "no", "a").
ROMAJI_PARTICLES: frozenset[str] = frozenset(
    {"wa", "ga", "wo", "ni", "de", "ka", "ne", "yo", "no", "to", "mo"}
)

_WORD = re.compile(r"[A-Za-zāīūēō']+")
_LATIN_LEFT = re.compile(r"[a-zāīūēō]")
# wanakana reads l/x as small kana and c/q/v loosely; learners writing Hepburn never use them
_NOT_HEPBURN = re.compile(r"[lqvx]|c(?!h)")
_MACRONS = str.maketrans({"ā": "aa", "ī": "ii", "ū": "uu", "ē": "ee", "ō": "ou"})


def _kana(word: str) -> str:
    return wanakana.to_hiragana(word.lower().translate(_MACRONS))


def is_convertible(word: str) -> bool:
    """True when every letter of the word maps onto hiragana."""
    w = word.lower()
    if not w or _NOT_HEPBURN.search(w):
        return False
    return not _LATIN_LEFT.search(_kana(w))


def is_romaji_word(word: str) -> bool:
    w = word.lower()
    return w in ROMAJI_LEXICON and is_convertible(w)


def to_hiragana(text: str) -> str:
    """Transliterate every fully-convertible Latin word; leave everything else as written."""

    def repl(m: re.Match[str]) -> str:
        word = m.group(0)
        return _kana(word) if is_convertible(word) else word

    return _WORD.sub(repl, text)


def is_romaji(text: str) -> bool:
    """
    True when the text reads as Japanese written in Latin letters: every word
    converts cleanly to kana and at least one is a recognisable Japanese word.
    """
    words = _WORD.findall(text)
    if not words or not wanakana.is_romaji(re.sub(r"\s+", "", text)):
        return False
    if not all(is_convertible(w) for w in words):
        return False
    return any(w.lower() in ROMAJI_LEXICON for w in words)
