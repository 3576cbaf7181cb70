# agentic_rag/domain/services/tokenization.py
# Pure domain services: no I/O, deterministic, no external libraries.
"""Language-aware tokenization for keyword search.

Pipeline: lowercase -> strip non-word characters -> split on whitespace ->
drop tokens of length <= 2 -> drop stop-words -> (Indonesian only) strip affixes.
"""

from __future__ import annotations

import re
from typing import Literal

Language = Literal["en", "id"]
LanguageOption = Literal["en", "id", "auto"]

_WHITESPACE_RE = re.compile(r"\s+")
# Keep word chars, whitespace and accented Latin letters (U+00C0..U+024F).
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s\u00C0-\u024F]")

_INDONESIAN_MARKERS = (
    re.compile(r"\b(yang|dengan|untuk|dalam|adalah|dapat|telah|sudah|akan)\b", re.IGNORECASE),
    re.compile(
        r"\b(berdasarkan|menurut|menunjukkan|menggunakan|terhadap|merupakan)\b", re.IGNORECASE
    ),
    re.compile(r"\b(mahasiswa|universitas|fakultas|jurusan|skripsi|tesis)\b", re.IGNORECASE),
)

INDONESIAN_STOP_WORDS = frozenset(
    """
    dan atau yang di ke dari ini itu dengan untuk pada adalah sebagai dalam tidak akan
    dapat telah oleh juga sudah saat setelah bisa ada mereka kami kita saya anda ia dia
    kamu beliau tersebut hal antara lain seperti serta bahwa karena secara namun tetapi
    hanya jika maka agar ketika hingga sampai masih pun lagi sangat lebih kurang hampir
    selalu sering kadang jarang begitu demikian yakni yaitu penelitian berdasarkan menurut
    menunjukkan menggunakan terhadap melalui terdapat merupakan dilakukan diperoleh apa
    siapa dimana kapan mengapa bagaimana berapa
    """.split()
)

ENGLISH_STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from up about into through during
    before after above below between under again further then once here there when where
    why how all each few more most other some such no nor not only own same so than too
    very can will just should now also been being have has had having do does did doing
    would could might must shall this that these those is are was were be it its as if
    """.split()
)

# Order matters: only the first match of each list is stripped.
INDONESIAN_SUFFIXES = ("kan", "an", "i", "lah", "kah", "nya")
INDONESIAN_PREFIXES = (
    "meng",
    "mem",
    "men",
    "me",
    "peng",
    "pem",
    "pen",
    "pe",
    "di",
    "ter",
    "ber",
    "ke",
    "se",
)


def detect_language(text: str) -> Language:
    """Heuristic en/id detection used to pick the tokenizer.

    More than five Indonesian marker words -> "id", otherwise "en".
    """
    score = sum(len(pattern.findall(text)) for pattern in _INDONESIAN_MARKERS)
    return "id" if score > 5 else "en"


def resolve_language(option: LanguageOption, sample: str) -> Language:
    if option == "auto":
        return detect_language(sample)
    return option


def stem_indonesian(word: str) -> str:
    """Lightweight affix stripper for Indonesian.

    At most one suffix, then at most one prefix, is removed. An affix is only
    removed while the word is longer than the affix plus two characters.
    """
    stem = word.lower()
    for suffix in INDONESIAN_SUFFIXES:
        if stem.endswith(suffix) and len(stem) > len(suffix) + 2:
            stem = stem[: -len(suffix)]
            break
    for prefix in INDONESIAN_PREFIXES:
        if stem.startswith(prefix) and len(stem) > len(prefix) + 2:
            stem = stem[len(prefix) :]
            break
    return stem


def tokenize(text: str, language: Language = "en") -> list[str]:
    stop_words = INDONESIAN_STOP_WORDS if language == "id" else ENGLISH_STOP_WORDS
    cleaned = _SPECIAL_CHARS_RE.sub(" ", text.lower())
    tokens = [
        tok
        for tok in _WHITESPACE_RE.split(cleaned)
        if len(tok) > 2 and tok not in stop_words
    ]
    if language == "id":
        return [stem_indonesian(tok) for tok in tokens]
    return tokens


def extract_keywords(text: str, language: LanguageOption = "auto", limit: int = 50) -> list[str]:
    """Most frequent tokens of a text, highest count first (ties keep first-seen order)."""
    lang = resolve_language(language, text)
    counts: dict[str, int] = {}
    for tok in tokenize(text, lang):
        counts[tok] = counts.get(tok, 0) + 1
    ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [term for term, _ in ordered[:limit]]
