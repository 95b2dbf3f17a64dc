from collections.abc import Iterator

import pytest

from grokker.config import get_settings
from grokker.llm import ChatMessage, ChatResponse, ChatUsage

VOCABULARY = ("alpha", "beta", "gamma", "delta")


class FakeEmbeddingClient:
    """Bag-of-words vectors over a tiny vocabulary; records every call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors: list[list[float]] = []
        for text in texts:
            normalized = text.lower()
            vectors.append([float(normalized.count(word)) for word in VOCABULARY] + [0.1])
        return vectors

    @property
    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]


class FakeChatClient:
    def __init__(self, answers: list[str] | None = None) -> None:
        self.calls: list[tuple[list[ChatMessage], str | None]] = []
        self._answers = list(answers or [])

    def chat(self, messages: list[ChatMessage], *, model: str | None = None) -> ChatResponse:
        self.calls.append((list(messages), model))
        content = self._answers.pop(0) if self._answers else "mocked answer"
        return ChatResponse(
            content=content,
            model=model or "fake-model",
            usage=ChatUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def embedding_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient()
