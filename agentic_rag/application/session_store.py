# agentic_rag/application/session_store.py
from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from agentic_rag.domain.models import Citation, RetrievedChunk
from agentic_rag.domain.services.citations import CitationManager

logger = structlog.get_logger(__name__)


@dataclass
class SessionState:
    """Per-conversation accumulation of retrieved chunks and citations.

    Mutations go through add_chunks(), which holds the session lock so that
    concurrent tool calls never assign the same citation number twice.
    """

    session_id: str
    retrieved_chunks: list[RetrievedChunk] = field(default_factory=list)
    citations: CitationManager = field(default_factory=CitationManager)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def add_chunks(self, chunks: Iterable[RetrievedChunk]) -> int:
        """Append chunks whose id is new to the session; returns how many were added."""
        async with self.lock:
            seen = {c.chunk_id for c in self.retrieved_chunks}
            added = 0
            for chunk in chunks:
                if chunk.chunk_id in seen:
                    continue
                seen.add(chunk.chunk_id)
                self.retrieved_chunks.append(chunk)
                self.citations.assign(chunk.chunk_id, chunk.document_title)
                added += 1
        if added:
            logger.debug(
                "session.chunks_added",
                session_id=self.session_id,
                added=added,
                total=len(self.retrieved_chunks),
            )
        return added

    def citation_number(self, chunk_id: str) -> int | None:
        return self.citations.number_of(chunk_id)

    def citation_list(self) -> list[Citation]:
        return self.citations.list()

    def snapshot(self) -> list[RetrievedChunk]:
        return list(self.retrieved_chunks)


class SessionStateStore:
    """Keyed store of SessionState, passed explicitly to whoever needs it.

    Sessions live until delete() is called.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionState] = {}

    def create(self, session_id: str) -> SessionState:
        """Start a fresh session, replacing any previous state under the same id."""
        state = SessionState(session_id=session_id)
        self._sessions[session_id] = state
        return state

    def get(self, session_id: str) -> SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = self.create(session_id)
        return state

    def peek(self, session_id: str) -> SessionState | None:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
