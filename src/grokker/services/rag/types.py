from dataclasses import dataclass


@dataclass(frozen=True)
class Document:
    path: str


@dataclass(eq=False)
class Chunk:
    document_path: str
    text: str
    embedding: list[float]


@dataclass(frozen=True)
class QueryHit:
    chunk: Chunk
    score: float

    @property
    def source_path(self) -> str:
        return self.chunk.document_path

    @property
    def text(self) -> str:
        return self.chunk.text
