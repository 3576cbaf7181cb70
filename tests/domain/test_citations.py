"""Tests for citation numbering."""

from agentic_rag.domain.models import Citation
from agentic_rag.domain.services.citations import CitationManager


def test_assign_is_one_based_and_sequential():
    manager = CitationManager()
    assert manager.assign("c1") == 1
    assert manager.assign("c2") == 2
    assert len(manager) == 2


def test_assign_is_idempotent():
    manager = CitationManager()
    first = manager.assign("c1", "Paper A")
    manager.assign("c2", "Paper B")
    assert manager.assign("c1", "Paper A") == first
    assert len(manager) == 2


def test_number_of_unknown_chunk_is_none():
    manager = CitationManager()
    manager.assign("c1")
    assert manager.number_of("c1") == 1
    assert manager.number_of("missing") is None


def test_list_keeps_first_seen_order_with_titles():
    manager = CitationManager()
    manager.assign("c2", "Paper B")
    manager.assign("c1", "Paper A")
    assert manager.list() == [
        Citation(id="c2", document_title="Paper B", citation_number=1),
        Citation(id="c1", document_title="Paper A", citation_number=2),
    ]


def test_clear_restarts_numbering():
    manager = CitationManager()
    manager.assign("c1")
    manager.assign("c2")
    manager.clear()
    assert len(manager) == 0
    assert manager.assign("c3") == 1
