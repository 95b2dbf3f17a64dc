from __future__ import annotations

import logging
import math
from typing import Iterable

from grokker.services.rag.embedding_client import EmbeddingClientError
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import Chunk, QueryHit

LOGGER = logging.getLogger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Embedding dimension mismatch: {len(a)} != {len(b)}")

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def similar_chunks(
    query_embedding: list[float],
    chunks: Iterable[Chunk],
    *,
    k: int = 0,
) -> list[QueryHit]:
    """Rank ``chunks`` by cosine similarity to ``query_embedding``.

    ``k == 0`` returns every chunk, ranked. Equal scores keep store order.
    """
    if k < 0:
        raise ValueError("k must be >= 0")

    hits = [
        QueryHit(chunk=chunk, score=cosine_similarity(query_embedding, chunk.embedding))
        for chunk in chunks
    ]
    hits.sort(key=lambda hit: hit.score, reverse=True)
    if k:
        hits = hits[:k]

    LOGGER.debug("found %d similar chunks", len(hits))
    return hits


def find_chunks(store: ChunkStore, query_text: str, *, k: int = 0) -> list[QueryHit]:
    normalized_query = query_text.strip()
    if not normalized_query:
        raise ValueError("query_text must not be empty")

    chunks = store.snapshot()
    LOGGER.debug("chunks in store: %d", len(chunks))

    embeddings = store.embedding_client.embed_texts([normalized_query])
    if len(embeddings) != 1:
        raise EmbeddingClientError(f"expected 1 query embedding, got {len(embeddings)}")

    return similar_chunks(embeddings[0], chunks, k=k)
