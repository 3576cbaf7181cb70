"""Tests for language-aware tokenization and the Indonesian affix stripper."""

from agentic_rag.domain.services.tokenization import (
    detect_language,
    extract_keywords,
    resolve_language,
    stem_indonesian,
    tokenize,
)


def test_tokenize_lowercases_and_strips_punctuation():
    assert tokenize("The Quick, brown-fox jumps!", "en") == ["quick", "brown", "fox", "jumps"]


def test_tokenize_drops_short_tokens():
    """Tokens of length <= 2 never survive."""
    assert tokenize("an ox is up", "en") == []


def test_tokenize_keeps_accented_latin_letters():
    assert tokenize("café résumé", "en") == ["café", "résumé"]


def test_tokenize_removes_english_stop_words():
    assert tokenize("this should have been removed", "en") == ["removed"]


def test_tokenize_indonesian_removes_stop_words_and_stems():
    # "penelitian" is a stop-word, "menjalankan" -> "jalan"
    assert tokenize("Mahasiswa menjalankan penelitian", "id") == ["mahasiswa", "jalan"]


def test_stem_strips_one_suffix_then_one_prefix():
    assert stem_indonesian("menjalankan") == "jalan"
    assert stem_indonesian("pembelajaran") == "belajar"


def test_stem_strips_at_most_one_suffix():
    assert stem_indonesian("bukunya") == "buku"


def test_stem_guards_against_over_stemming():
    """An affix is kept when the word is not longer than affix + 2."""
    assert stem_indonesian("dia") == "dia"
    assert stem_indonesian("ikan") == "ikan"


def test_detect_language_needs_more_than_five_markers():
    five = "yang dengan untuk dalam adalah"
    six = "yang dengan untuk dalam adalah dapat"
    assert detect_language(five) == "en"
    assert detect_language(six) == "id"


def test_resolve_language_passthrough_and_auto():
    assert resolve_language("id", "plain english text") == "id"
    assert resolve_language("auto", "plain english text") == "en"


def test_extract_keywords_orders_by_frequency():
    text = "graph neural graph network graph neural"
    assert extract_keywords(text, language="en", limit=2) == ["graph", "neural"]
