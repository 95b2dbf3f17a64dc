from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Any

from grokker.services.rag.embedding_client import EmbeddingClient
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import Chunk, Document

LOGGER = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class StoreFormatError(ValueError):
    pass


def store_to_payload(store: ChunkStore) -> dict[str, Any]:
    with store.lock:
        return {
            "version": STORE_FORMAT_VERSION,
            "max_chunk_size": store.max_chunk_size,
            "chars_per_token": store.chars_per_token,
            "default_model": store.default_model,
            "embedding_model": store.embedding_model,
            "documents": [{"path": document.path} for document in store.documents],
            "chunks": [
                {
                    "document_path": chunk.document_path,
                    "text": chunk.text,
                    "embedding": chunk.embedding,
                }
                for chunk in store.chunks
            ],
        }


def store_from_payload(payload: Any, *, embedding_client: EmbeddingClient) -> ChunkStore:
    if not isinstance(payload, dict):
        raise StoreFormatError("Invalid store payload: expected a JSON object")

    version = payload.get("version")
    if version != STORE_FORMAT_VERSION:
        raise StoreFormatError(f"Unsupported store format version: {version!r}")

    max_chunk_size = payload.get("max_chunk_size")
    chars_per_token = payload.get("chars_per_token")
    default_model = payload.get("default_model")
    embedding_model = payload.get("embedding_model", "")
    if not isinstance(max_chunk_size, int) or isinstance(max_chunk_size, bool) or max_chunk_size <= 0:
        raise StoreFormatError("Invalid store payload: 'max_chunk_size' must be a positive integer")
    if not isinstance(chars_per_token, (int, float)) or isinstance(chars_per_token, bool) or chars_per_token <= 0:
        raise StoreFormatError("Invalid store payload: 'chars_per_token' must be a positive number")
    if not isinstance(default_model, str) or not isinstance(embedding_model, str):
        raise StoreFormatError("Invalid store payload: model names must be strings")

    documents = payload.get("documents")
    chunks = payload.get("chunks")
    if not isinstance(documents, list) or not isinstance(chunks, list):
        raise StoreFormatError("Invalid store payload: 'documents' and 'chunks' must be lists")

    store = ChunkStore(
        embedding_client,
        max_chunk_size=max_chunk_size,
        chars_per_token=float(chars_per_token),
        default_model=default_model,
        embedding_model=embedding_model,
    )

    for record in documents:
        path = record.get("path") if isinstance(record, dict) else None
        if not isinstance(path, str) or not path:
            raise StoreFormatError("Invalid store payload: document without a path")
        if store.get_document(path) is not None:
            raise StoreFormatError(f"Invalid store payload: duplicate document {path}")
        store.documents.append(Document(path=path))

    dimension: int | None = None
    for record in chunks:
        if not isinstance(record, dict):
            raise StoreFormatError("Invalid store payload: chunk records must be objects")
        document_path = record.get("document_path")
        text = record.get("text")
        embedding = record.get("embedding")
        if (
            not isinstance(document_path, str)
            or not isinstance(text, str)
            or not isinstance(embedding, list)
            or not embedding
        ):
            raise StoreFormatError("Invalid store payload: malformed chunk record")
        if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in embedding):
            raise StoreFormatError("Invalid store payload: embedding values must be numbers")

        if dimension is None:
            dimension = len(embedding)
        elif len(embedding) != dimension:
            raise StoreFormatError(
                f"Invalid store payload: mixed embedding dimensions ({dimension} and {len(embedding)})"
            )

        store.chunks.append(
            Chunk(
                document_path=document_path,
                text=text,
                embedding=[float(value) for value in embedding],
            )
        )

    return store


def save_store(store: ChunkStore, path: Path) -> Path:
    """Write the whole store as one JSON document.

    The payload goes to a unique temporary file next to ``path`` which is then
    renamed over it, so readers never see a partial write and concurrent
    writers cannot interleave.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(store_to_payload(store), ensure_ascii=False)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    LOGGER.debug(
        "saved %d documents and %d chunks to %s", len(store.documents), len(store.chunks), path
    )
    return path


def load_store(
    path: Path,
    *,
    embedding_client: EmbeddingClient,
    embedding_model: str | None = None,
) -> ChunkStore:
    if not path.exists():
        raise FileNotFoundError(f"Store file not found: {path}. Run `grok init` first.")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StoreFormatError(f"Corrupt store file {path}: {exc}") from exc

    store = store_from_payload(payload, embedding_client=embedding_client)
    if embedding_model and store.embedding_model and store.embedding_model != embedding_model:
        raise StoreFormatError(
            f"Store {path} was built with embedding model {store.embedding_model!r}, "
            f"not {embedding_model!r}; rebuild it before querying with a different model"
        )
    LOGGER.debug(
        "loaded %d documents and %d chunks from %s", len(store.documents), len(store.chunks), path
    )
    return store
