from grokker.services.rag.answer import AnswerResult, Answerer
from grokker.services.rag.index_store import StoreFormatError, load_store, save_store
from grokker.services.rag.query import find_chunks, similar_chunks
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import Chunk, Document, QueryHit

__all__ = [
    "AnswerResult",
    "Answerer",
    "Chunk",
    "ChunkStore",
    "Document",
    "QueryHit",
    "StoreFormatError",
    "find_chunks",
    "load_store",
    "save_store",
    "similar_chunks",
]
