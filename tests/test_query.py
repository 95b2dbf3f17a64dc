import math
from pathlib import Path

import pytest

from conftest import FakeEmbeddingClient
from grokker.services.rag.query import cosine_similarity, find_chunks, similar_chunks
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import Chunk


def _chunks() -> list[Chunk]:
    return [
        Chunk(document_path="a.txt", text="a", embedding=[1.0, 0.0]),
        Chunk(document_path="b.txt", text="b", embedding=[0.0, 1.0]),
        Chunk(document_path="c.txt", text="c", embedding=[1.0, 1.0]),
        Chunk(document_path="d.txt", text="d", embedding=[-1.0, 0.2]),
        Chunk(document_path="e.txt", text="e", embedding=[2.0, 2.0]),
    ]


def test_cosine_similarity_of_vector_with_itself_is_one() -> None:
    vector = [0.3, -1.2, 4.5, 0.01]

    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_cosine_similarity_is_symmetric() -> None:
    a = [1.0, 2.0, 3.0]
    b = [-2.0, 0.5, 1.0]

    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_cosine_similarity_zero_vector_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_rejects_dimension_mismatch() -> None:
    with pytest.raises(ValueError, match="dimension mismatch"):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_similar_chunks_k_zero_returns_all_in_non_increasing_order() -> None:
    chunks = _chunks()

    hits = similar_chunks([1.0, 0.5], chunks, k=0)

    assert len(hits) == len(chunks)
    scores = [hit.score for hit in hits]
    assert all(left >= right for left, right in zip(scores, scores[1:]))


def test_similar_chunks_k_is_prefix_of_full_ranking() -> None:
    chunks = _chunks()
    full = similar_chunks([1.0, 0.5], chunks, k=0)

    top = similar_chunks([1.0, 0.5], chunks, k=2)

    assert [hit.chunk for hit in top] == [hit.chunk for hit in full[:2]]


def test_similar_chunks_breaks_ties_by_store_order() -> None:
    chunks = _chunks()

    hits = similar_chunks([1.0, 1.0], chunks, k=0)

    # c and e point the same way; c comes first in the store
    assert [hit.chunk.text for hit in hits[:2]] == ["c", "e"]
    assert math.isclose(hits[0].score, hits[1].score)


def test_similar_chunks_empty_and_negative_k() -> None:
    assert similar_chunks([1.0], [], k=0) == []
    with pytest.raises(ValueError, match="k must be >= 0"):
        similar_chunks([1.0], _chunks(), k=-1)


def test_find_chunks_embeds_query_and_ranks(
    tmp_path: Path, embedding_client: FakeEmbeddingClient
) -> None:
    doc = tmp_path / "doc.txt"
    doc.write_text("alpha alpha\n\nbeta gamma\n\ndelta", encoding="utf-8")
    store = ChunkStore(embedding_client, max_chunk_size=100)
    store.add_document(str(doc))

    hits = find_chunks(store, "  gamma  ", k=1)

    assert embedding_client.calls[-1] == ["gamma"]
    assert len(hits) == 1
    assert hits[0].text == "beta gamma"
    assert hits[0].source_path == str(doc)


def test_find_chunks_rejects_empty_query(embedding_client: FakeEmbeddingClient) -> None:
    store = ChunkStore(embedding_client)

    with pytest.raises(ValueError, match="must not be empty"):
        find_chunks(store, "   ")
