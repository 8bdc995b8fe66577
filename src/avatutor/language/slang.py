# src/avatutor/language/slang.py
from __future__ import annotations
import re
import unicodedata


def fold_accents(text: str) -> str:
    """Strip diacritics from Latin characters only. Length-preserving, so offsets line up."""
    out: list[str] = []
    for ch in text:
        if ord(ch) < 0x250:
            base = [c for c in unicodedata.normalize("NFD", ch) if not unicodedata.combining(c)]
            out.append(base[0] if len(base) == 1 else ch)
        else:
            out.append(ch)
    return "".join(out)


# Casual / texting Spanish → standard written form. Keys are accent-folded, lowercase.
SPANISH_SLANG: dict[str, str] = {
    "q": "que",
    "k": "que",
    "xq": "porque",
    "pq": "porque",
    "porfa": "por favor",
    "pa": "para",
    "pa'": "para",
    "tmb": "también",
    "tb": "también",
    "ntp": "no te preocupes",
    "bn": "bien",
    "finde": "fin de semana",
    "profe": "profesor",
    "cole": "colegio",
    "compa": "compañero",
    "vale": "de acuerdo",
    "chido": "genial",
    "guay": "genial",
    "que onda": "¿qué tal?",
    "ta bien": "está bien",
    "toy": "estoy",
    "tas": "estás",
}

_SLANG_RE = re.compile(
    r"(?<![\w'])("
    + "|".join(re.escape(k) for k in sorted(SPANISH_SLANG, key=len, reverse=True))
    + r")(?![\w'])",
    re.IGNORECASE,
)


def find_slang(text: str) -> list[tuple[str, str]]:
    """All (original, normalized) slang pairs found in text, in order of appearance."""
    folded = fold_accents(text)
    return [
        (text[m.start() : m.end()], SPANISH_SLANG[m.group(1).lower()])
        for m in _SLANG_RE.finditer(folded)
    ]


def normalize(text: str) -> str:
    """Replace every casual expression with its standard form, leaving the rest verbatim."""
    folded = fold_accents(text)
    pieces: list[str] = []
    last = 0
    for m in _SLANG_RE.finditer(folded):
        pieces.append(text[last : m.start()])
        pieces.append(SPANISH_SLANG[m.group(1).lower()])
        last = m.end()
    pieces.append(text[last:])
    return "".join(pieces)
