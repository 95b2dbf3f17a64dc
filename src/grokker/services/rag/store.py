from __future__ import annotations

import logging
from pathlib import Path
from threading import RLock

from grokker.llm import DEFAULT_CHAT_MODEL
from grokker.services.rag.chunker import chunk_text
from grokker.services.rag.embedding_client import EmbeddingClient
from grokker.services.rag.types import Chunk, Document

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_SIZE = 4096 * 4
DEFAULT_CHARS_PER_TOKEN = 3.5


class ChunkStore:
    """Documents and their embedded chunks.

    Chunks point back at their document by path. Updating a document diffs the
    freshly chunked text against the chunks already held for that path, so
    unchanged paragraphs keep their embeddings and only new text is sent to the
    embedding client. Chunks that no longer match are parked as orphans and,
    like chunks of removed documents, are only discarded by :meth:`gc`.

    All mutating methods hold the store lock; readers that run alongside them
    should work from :meth:`snapshot`.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        *,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        chars_per_token: float = DEFAULT_CHARS_PER_TOKEN,
        default_model: str = DEFAULT_CHAT_MODEL,
        embedding_model: str = "",
    ) -> None:
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be > 0")
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be > 0")

        self.embedding_client = embedding_client
        self.max_chunk_size = max_chunk_size
        self.chars_per_token = chars_per_token
        self.default_model = default_model
        self.embedding_model = embedding_model
        self.documents: list[Document] = []
        self.chunks: list[Chunk] = []
        self._orphans: list[Chunk] = []
        self._lock = RLock()

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def orphan_count(self) -> int:
        return len(self._orphans)

    def snapshot(self) -> tuple[Chunk, ...]:
        with self._lock:
            return tuple(self.chunks)

    def get_document(self, path: str) -> Document | None:
        for document in self.documents:
            if document.path == path:
                return document
        return None

    def chunks_for(self, path: str) -> list[Chunk]:
        return [chunk for chunk in self.chunks if chunk.document_path == path]

    def chunk_strings(self, document: Document) -> list[str]:
        text = Path(document.path).read_text(encoding="utf-8")
        return chunk_text(text, max_chunk_size=self.max_chunk_size)

    def add_document(self, path: str) -> Document:
        with self._lock:
            document = self.get_document(path)
            created = document is None
            if document is None:
                document = Document(path=path)
                self.documents.append(document)
                LOGGER.debug("added document %s", path)
            try:
                self.update_document(document)
            except Exception:
                # a failed first add leaves no trace of the document
                if created:
                    self.documents.remove(document)
                raise
            return document

    def remove_document(self, document: Document | str) -> bool:
        path = document if isinstance(document, str) else document.path
        with self._lock:
            existing = self.get_document(path)
            if existing is None:
                return False
            self.documents.remove(existing)
            LOGGER.debug("removed document %s; its chunks remain until gc", path)
            return True

    def update_document(self, document: Document) -> bool:
        """Re-chunk ``document`` and embed whatever text is new.

        Returns True when at least one new chunk was created.
        """
        with self._lock:
            if self.get_document(document.path) is None:
                raise ValueError(f"Document not in store: {document.path}")
            candidates = list(dict.fromkeys(self.chunk_strings(document)))
            old_chunks = self.chunks_for(document.path)
            LOGGER.debug("%s: %d existing chunks", document.path, len(old_chunks))

            existing_texts = {chunk.text for chunk in old_chunks}
            new_texts = [text for text in candidates if text not in existing_texts]
            LOGGER.debug("%s: %d new chunks", document.path, len(new_texts))

            embeddings = self.embedding_client.embed_texts(new_texts) if new_texts else []
            if len(embeddings) != len(new_texts):
                raise ValueError(
                    f"expected {len(new_texts)} embeddings, got {len(embeddings)}"
                )

            # keep one chunk per surviving text; everything else is orphaned
            wanted = set(candidates)
            stale: list[Chunk] = []
            for chunk in old_chunks:
                if chunk.text in wanted:
                    wanted.discard(chunk.text)
                else:
                    stale.append(chunk)
            if stale:
                stale_ids = {id(chunk) for chunk in stale}
                self._orphans.extend(stale)
                self.chunks = [chunk for chunk in self.chunks if id(chunk) not in stale_ids]

            self.chunks.extend(
                Chunk(document_path=document.path, text=text, embedding=embedding)
                for text, embedding in zip(new_texts, embeddings)
            )
            return bool(new_texts)

    def gc(self) -> int:
        """Drop orphaned chunks and chunks whose document is gone."""
        with self._lock:
            live_paths = {document.path for document in self.documents}
            kept = [chunk for chunk in self.chunks if chunk.document_path in live_paths]
            removed = len(self.chunks) - len(kept) + len(self._orphans)
            self.chunks = kept
            self._orphans = []
            LOGGER.debug("garbage collected %d chunks", removed)
            return removed

    def update_embeddings(self, store_timestamp: float) -> bool:
        """Bring chunks in line with documents changed after ``store_timestamp``.

        Documents missing on disk are removed; documents modified after the
        timestamp are re-chunked. Finishes with a gc pass. Returns True when
        anything changed.
        """
        with self._lock:
            updated = False
            for document in list(self.documents):
                try:
                    mtime = Path(document.path).stat().st_mtime
                except FileNotFoundError:
                    self.remove_document(document)
                    updated = True
                    continue

                if mtime > store_timestamp:
                    LOGGER.debug("updating embeddings for %s", document.path)
                    updated = self.update_document(document) or updated

            if self.gc():
                updated = True
            return updated

    def refresh_embeddings(self) -> bool:
        with self._lock:
            updated = False
            for document in list(self.documents):
                updated = self.update_document(document) or updated
            if self.gc():
                updated = True
            return updated
