from grokker.config import get_settings
from grokker.http import RetryPolicy
from grokker.llm import ChatClient, OpenAIChatClient
from grokker.services.rag.embedding_client import EmbeddingClient, OpenAIEmbeddingClient


def retry_policy() -> RetryPolicy:
    settings = get_settings()
    if not settings.retry_enabled:
        return RetryPolicy()
    return RetryPolicy(
        max_retries=settings.max_retries,
        base_seconds=settings.retry_base_seconds,
        max_seconds=settings.retry_max_seconds,
    )


def get_chat_client() -> ChatClient:
    settings = get_settings()
    return OpenAIChatClient(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        default_model=settings.chat_model,
        timeout_seconds=settings.timeout_seconds,
        retry=retry_policy(),
    )


def get_embedding_client() -> EmbeddingClient:
    settings = get_settings()
    return OpenAIEmbeddingClient(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        model=settings.embed_model,
        timeout_seconds=settings.timeout_seconds,
        batch_size=settings.embed_batch_size,
        max_workers=settings.embed_max_workers,
        retry=retry_policy(),
    )
