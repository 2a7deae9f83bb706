from __future__ import annotations

import math

import pytest

from voice_memory.memory.retriever import Retriever
from voice_memory.memory.types import MemoryRecord, MemorySnapshot
from stubs import StubEmbedder


def _unit(angle_cos: float) -> tuple[float, float]:
    """Unit vector whose cosine against (1, 0) is ``angle_cos``."""

    return (angle_cos, math.sqrt(1.0 - angle_cos * angle_cos))


def _record(text: str, embedding) -> MemoryRecord:
    return MemoryRecord(text=text, embedding=tuple(embedding))


QUERY = "what do I like"


@pytest.mark.anyio
async def test_below_threshold_returns_nothing():
    snapshot = MemorySnapshot(flash_memory=(_record("weak match", _unit(0.25)),))
    retriever = Retriever(StubEmbedder({QUERY: [1.0, 0.0]}), similarity_threshold=0.3)

    assert await retriever.query(QUERY, snapshot) == []


@pytest.mark.anyio
async def test_ranks_pooled_records_and_caps_results():
    snapshot = MemorySnapshot(
        flash_memory=(
            _record("f-0.5", _unit(0.5)),
            _record("f-0.9", _unit(0.9)),
            _record("f-0.1", _unit(0.1)),
        ),
        long_term_memory=(
            _record("l-0.7", _unit(0.7)),
            _record("l-0.95", _unit(0.95)),
        ),
    )
    retriever = Retriever(StubEmbedder({QUERY: [1.0, 0.0]}), max_context_items=3)

    assert await retriever.query(QUERY, snapshot) == ["l-0.95", "f-0.9", "l-0.7"]


@pytest.mark.anyio
async def test_equal_scores_keep_flash_then_long_term_order():
    snapshot = MemorySnapshot(
        flash_memory=(_record("flash a", (1.0, 0.0)), _record("flash b", (1.0, 0.0))),
        long_term_memory=(_record("long a", (1.0, 0.0)),),
    )
    retriever = Retriever(StubEmbedder({QUERY: [1.0, 0.0]}), max_context_items=3)

    assert await retriever.query(QUERY, snapshot) == ["flash a", "flash b", "long a"]


@pytest.mark.anyio
async def test_scored_results_expose_similarity():
    snapshot = MemorySnapshot(flash_memory=(_record("match", _unit(0.8)),))
    retriever = Retriever(StubEmbedder({QUERY: [1.0, 0.0]}))

    scored = await retriever.query_scored(QUERY, snapshot)

    assert len(scored) == 1
    assert scored[0].score == pytest.approx(0.8)


@pytest.mark.anyio
@pytest.mark.parametrize("text", ["", "   "])
async def test_blank_query_skips_embedding(text):
    embedder = StubEmbedder(default=[1.0, 0.0])
    snapshot = MemorySnapshot(flash_memory=(_record("x", (1.0, 0.0)),))

    assert await Retriever(embedder).query(text, snapshot) == []
    assert embedder.calls == []


@pytest.mark.anyio
async def test_no_embedded_records_skips_embedding():
    embedder = StubEmbedder(default=[1.0, 0.0])
    snapshot = MemorySnapshot(flash_memory=(_record("no vector", ()),))

    assert await Retriever(embedder).query(QUERY, MemorySnapshot.empty()) == []
    assert await Retriever(embedder).query(QUERY, snapshot) == []
    assert embedder.calls == []


@pytest.mark.anyio
async def test_embedding_failure_returns_nothing():
    snapshot = MemorySnapshot(flash_memory=(_record("x", (1.0, 0.0)),))
    retriever = Retriever(StubEmbedder(fail=True))

    assert await retriever.query(QUERY, snapshot) == []
