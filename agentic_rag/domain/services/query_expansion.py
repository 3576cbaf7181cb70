# agentic_rag/domain/services/query_expansion.py
# Pure domain services: no I/O, deterministic, no external libraries.
"""Synonym-based query expansion and response-language detection."""

from __future__ import annotations

import re

from agentic_rag.domain.services.tokenization import Language

ACADEMIC_SYNONYMS: dict[str, tuple[str, ...]] = {
    # English terms
    "hypothesis": ("theory", "proposition", "assumption", "conjecture"),
    "methodology": ("methods", "approach", "procedure", "technique"),
    "analysis": ("examination", "evaluation", "assessment", "study"),
    "conclusion": ("findings", "results", "outcome", "summary"),
    "literature review": ("background", "prior work", "related work", "state of the art"),
    "experiment": ("study", "trial", "test", "investigation"),
    "data": ("evidence", "information", "findings", "results"),
    "significant": ("notable", "important", "meaningful", "substantial"),
    "correlation": ("relationship", "association", "connection", "link"),
    "variable": ("factor", "parameter", "element", "component"),
    # Indonesian terms
    "hipotesis": ("teori", "dugaan", "asumsi", "perkiraan"),
    "metodologi": ("metode", "pendekatan", "prosedur", "teknik", "cara"),
    "analisis": ("pembahasan", "evaluasi", "pengkajian", "telaah", "kajian"),
    "kesimpulan": ("simpulan", "konklusi", "ringkasan", "temuan"),
    "tinjauan pustaka": ("kajian pustaka", "studi literatur", "landasan teori", "kerangka teori"),
    "penelitian": ("riset", "studi", "kajian", "investigasi", "pengkajian"),
    "signifikan": ("bermakna", "penting", "berarti", "nyata"),
    "korelasi": ("hubungan", "keterkaitan", "relasi", "asosiasi"),
    "variabel": ("faktor", "parameter", "unsur", "komponen"),
    "dampak": ("pengaruh", "efek", "akibat", "implikasi"),
    "implementasi": ("penerapan", "pelaksanaan", "eksekusi"),
    "evaluasi": ("penilaian", "assessment", "pengukuran", "asesmen"),
}

INDONESIAN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "hipotesis": ("teori", "dugaan", "asumsi", "perkiraan"),
    "metodologi": ("metode", "pendekatan", "prosedur", "teknik", "cara"),
    "analisis": ("pembahasan", "evaluasi", "pengkajian", "telaah", "kajian"),
    "kesimpulan": ("simpulan", "konklusi", "ringkasan", "temuan"),
    "penelitian": ("riset", "studi", "kajian", "investigasi"),
    "signifikan": ("bermakna", "penting", "berarti", "nyata"),
    "korelasi": ("hubungan", "keterkaitan", "relasi", "asosiasi"),
    "variabel": ("faktor", "parameter", "unsur", "komponen"),
    "dampak": ("pengaruh", "efek", "akibat", "implikasi"),
    "implementasi": ("penerapan", "pelaksanaan", "eksekusi"),
    "evaluasi": ("penilaian", "pengukuran", "asesmen"),
    "mahasiswa": ("siswa", "pelajar", "peserta didik"),
    "dosen": ("pengajar", "instruktur", "guru besar"),
    "kuliah": ("perkuliahan", "kelas", "mata kuliah"),
    "skripsi": ("tugas akhir", "karya tulis", "laporan akhir"),
    "pustaka": ("literatur", "referensi", "sumber"),
}

_QUERY_LANGUAGE_MARKERS = (
    re.compile(r"\b(yang|dengan|untuk|dalam|adalah|dapat|telah|sudah|akan|dari)\b", re.IGNORECASE),
    re.compile(
        r"\b(berdasarkan|menurut|menunjukkan|menggunakan|terhadap|merupakan|dilakukan)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(apa|bagaimana|mengapa|kapan|dimana|siapa|apakah)\b", re.IGNORECASE),
    re.compile(
        r"\b(mahasiswa|dosen|universitas|fakultas|jurusan|skripsi|tesis|disertasi)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(jelaskan|sebutkan|uraikan|bandingkan|analisis)\b", re.IGNORECASE),
)


def detect_query_language(text: str) -> Language:
    """Two or more Indonesian marker words -> "id", otherwise "en".

    Used both for query routing and for the answer language-consistency check.
    """
    score = sum(len(p.findall(text)) for p in _QUERY_LANGUAGE_MARKERS)
    return "id" if score >= 2 else "en"


def _replace_all(text: str, term: str, replacement: str) -> str:
    return re.sub(re.escape(term), replacement, text, flags=re.IGNORECASE)


def _expand(query: str, table: dict[str, tuple[str, ...]]) -> list[str]:
    expanded = [query]
    lower = query.lower()
    for term, synonyms in table.items():
        if term in lower:
            expanded.extend(_replace_all(query, term, syn) for syn in synonyms)
        for syn in synonyms:
            if syn in lower:
                expanded.append(_replace_all(query, syn, term))
    # dict.fromkeys de-duplicates while keeping order
    return list(dict.fromkeys(expanded))


def expand_query(query: str, language: Language = "en") -> list[str]:
    """Query variants built from synonym substitution in both directions.

    The original query is always first.
    """
    table = INDONESIAN_SYNONYMS if language == "id" else ACADEMIC_SYNONYMS
    return _expand(query, table)
