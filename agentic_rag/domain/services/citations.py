# agentic_rag/domain/services/citations.py
# Pure domain services: no I/O, deterministic, no external libraries.
from __future__ import annotations

from agentic_rag.domain.models import Citation


class CitationManager:
    """
    Assigns stable, 1-based citation numbers to chunk ids in first-seen order.

    - assign() is idempotent per chunk id
    - numbers are never reused, even if a chunk later leaves the active set
    - clear() is the only way to restart numbering at 1
    """

    def __init__(self) -> None:
        self._numbers: dict[str, int] = {}
        self._titles: dict[str, str] = {}
        self._next = 1

    def assign(self, chunk_id: str, document_title: str = "") -> int:
        existing = self._numbers.get(chunk_id)
        if existing is not None:
            return existing
        number = self._next
        self._next += 1
        self._numbers[chunk_id] = number
        if document_title:
            self._titles[chunk_id] = document_title
        return number

    def number_of(self, chunk_id: str) -> int | None:
        return self._numbers.get(chunk_id)

    def list(self) -> list[Citation]:
        return [
            Citation(id=cid, document_title=self._titles.get(cid, ""), citation_number=num)
            for cid, num in self._numbers.items()
        ]

    def clear(self) -> None:
        self._numbers.clear()
        self._titles.clear()
        self._next = 1

    def __len__(self) -> int:
        return len(self._numbers)
