from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
from typing import Protocol

import httpx

from grokker.http import RetryPolicy, is_transient, post_json

LOGGER = logging.getLogger(__name__)

# largest input list the provider accepts per request
MAX_BATCH_SIZE = 100


class EmbeddingClientError(RuntimeError):
    pass


class TransientEmbeddingError(EmbeddingClientError):
    pass


class EmbeddingClient(Protocol):
    def embed_texts(self, texts: list[str]) -> list[list[float]]: ...


def split_batches(texts: list[str], batch_size: int) -> list[list[str]]:
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    return [texts[start : start + batch_size] for start in range(0, len(texts), batch_size)]


class OpenAIEmbeddingClient:
    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str = "",
        timeout_seconds: float = 30.0,
        batch_size: int = MAX_BATCH_SIZE,
        max_workers: int = 1,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._max_workers = max(1, max_workers)
        self._retry = retry or RetryPolicy()

    @property
    def model(self) -> str:
        return self._model

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        batches = split_batches(texts, self._batch_size)
        if self._max_workers == 1 or len(batches) == 1:
            results = [self._embed_batch(batch) for batch in batches]
        else:
            # map() yields in submission order, so batch order is preserved
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(batches))) as executor:
                results = list(executor.map(self._embed_batch, batches))

        vectors = [vector for batch_vectors in results for vector in batch_vectors]
        LOGGER.debug("created %d embeddings in %d batches", len(vectors), len(batches))
        return vectors

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            payload = post_json(
                f"{self._base_url}/embeddings",
                payload={"model": self._model, "input": texts},
                api_key=self._api_key,
                timeout_seconds=self._timeout_seconds,
                retry=self._retry,
            )
        except httpx.HTTPError as exc:
            if is_transient(exc):
                raise TransientEmbeddingError(str(exc)) from exc
            raise EmbeddingClientError(str(exc)) from exc
        except ValueError as exc:
            raise EmbeddingClientError(str(exc)) from exc

        data = payload.get("data")
        if not isinstance(data, list):
            raise EmbeddingClientError("Invalid embeddings payload: missing data")

        if all(isinstance(item, dict) and isinstance(item.get("index"), int) for item in data):
            data = sorted(data, key=lambda item: item["index"])

        vectors: list[list[float]] = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise EmbeddingClientError("Invalid embeddings payload: missing embedding vector")
            vectors.append([float(value) for value in embedding])

        if len(vectors) != len(texts):
            raise EmbeddingClientError(
                f"Invalid embeddings payload: expected {len(texts)} vectors, got {len(vectors)}"
            )

        return vectors
