"""Tests for per-session chunk accumulation and citation numbering."""

import asyncio

import pytest

from agentic_rag.application.session_store import SessionState, SessionStateStore
from agentic_rag.domain.models import RetrievedChunk


def chunk(chunk_id: str, title: str = "Paper") -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id=chunk_id, document_id=f"doc-{chunk_id}", document_title=title, content="text"
    )


@pytest.mark.asyncio
async def test_add_chunks_deduplicates_by_chunk_id():
    state = SessionState(session_id="s1")

    added_first = await state.add_chunks([chunk("a"), chunk("b"), chunk("a")])
    added_second = await state.add_chunks([chunk("b"), chunk("c")])

    assert (added_first, added_second) == (2, 1)
    assert [c.chunk_id for c in state.snapshot()] == ["a", "b", "c"]
    assert [c.citation_number for c in state.citation_list()] == [1, 2, 3]


@pytest.mark.asyncio
async def test_concurrent_additions_never_share_citation_numbers():
    state = SessionState(session_id="s1")
    batches = [
        [chunk("a"), chunk("b")],
        [chunk("b"), chunk("c")],
        [chunk("c"), chunk("d"), chunk("a")],
    ]

    await asyncio.gather(*(state.add_chunks(batch) for batch in batches))

    ids = [c.chunk_id for c in state.snapshot()]
    numbers = sorted(state.citation_number(cid) for cid in ids)
    assert sorted(ids) == ["a", "b", "c", "d"]
    assert numbers == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_citation_titles_come_from_chunks():
    state = SessionState(session_id="s1")
    await state.add_chunks([chunk("a", "Deep Learning"), chunk("b", "Graph Theory")])
    assert [c.document_title for c in state.citation_list()] == ["Deep Learning", "Graph Theory"]


def test_snapshot_is_a_copy():
    state = SessionState(session_id="s1")
    snap = state.snapshot()
    snap.append(chunk("x"))
    assert state.snapshot() == []


def test_get_creates_and_reuses_state():
    store = SessionStateStore()
    first = store.get("s1")
    assert store.get("s1") is first
    assert "s1" in store
    assert len(store) == 1


@pytest.mark.asyncio
async def test_create_replaces_previous_state():
    store = SessionStateStore()
    await store.get("s1").add_chunks([chunk("a")])

    fresh = store.create("s1")

    assert fresh.snapshot() == []
    assert store.get("s1") is fresh


def test_delete_and_peek():
    store = SessionStateStore()
    assert store.peek("s1") is None
    store.get("s1")
    assert store.delete("s1") is True
    assert store.delete("s1") is False
    assert store.peek("s1") is None
