from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from grokker.clients import get_chat_client, get_embedding_client
from grokker.config import get_settings
from grokker.llm import ChatClient, LLMClientError
from grokker.services.rag import Answerer, StoreFormatError, find_chunks, load_store
from grokker.services.rag.embedding_client import EmbeddingClient, EmbeddingClientError
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import QueryHit

app = FastAPI(title="grokker", version="0.1.0")


class AskRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question: str = Field(min_length=1)
    k: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum number of sources returned; the context itself is filled up to its size limit",
    )
    use_global: bool = False


def get_store(
    embedding_client: Annotated[EmbeddingClient, Depends(get_embedding_client)],
) -> ChunkStore:
    settings = get_settings()
    try:
        return load_store(
            Path(settings.store_path),
            embedding_client=embedding_client,
            embedding_model=settings.embed_model,
        )
    except FileNotFoundError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except StoreFormatError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _hit_payload(hit: QueryHit) -> dict[str, object]:
    return {
        "source_path": hit.source_path,
        "score": round(hit.score, 6),
        "text": hit.text,
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/search")
def search(
    q: str,
    store: Annotated[ChunkStore, Depends(get_store)],
    k: Annotated[int, Query(ge=0, le=50, description="Number of hits; 0 returns every chunk, ranked")] = 5,
) -> list[dict[str, object]]:
    if not q.strip():
        raise HTTPException(status_code=400, detail="q must not be empty")

    try:
        hits = find_chunks(store, q, k=k)
    except EmbeddingClientError as exc:
        raise HTTPException(status_code=502, detail=f"Embedding request failed: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return [_hit_payload(hit) for hit in hits]


@app.post("/ask")
def ask(
    request: AskRequest,
    store: Annotated[ChunkStore, Depends(get_store)],
    chat_client: Annotated[ChatClient, Depends(get_chat_client)],
) -> dict[str, Any]:
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=400, detail="question must not be empty")

    try:
        result = Answerer(store, chat_client).answer(question, use_global=request.use_global)
    except EmbeddingClientError as exc:
        raise HTTPException(status_code=502, detail=f"Embedding request failed: {exc}") from exc
    except LLMClientError as exc:
        raise HTTPException(status_code=502, detail=f"LLM request failed: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {
        "answer": result.response.content,
        "sources": [
            {"source_path": chunk.document_path, "text": chunk.text}
            for chunk in result.context_chunks[: request.k]
        ],
        "meta": {
            "model": result.response.model,
            "used_global": request.use_global,
            "context_chunks": len(result.context_chunks),
            "total_tokens": result.response.usage.total_tokens,
        },
    }


def run() -> None:
    import uvicorn

    uvicorn.run("grokker.main:app", host="127.0.0.1", port=8000, reload=False)


if __name__ == "__main__":
    run()
