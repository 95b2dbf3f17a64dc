from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from pathlib import Path
import re
from typing import Iterable

from grokker.llm import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    ChatClient,
    ChatMessage,
    ChatResponse,
)
from grokker.services.rag.query import find_chunks
from grokker.services.rag.store import ChunkStore
from grokker.services.rag.types import Chunk

LOGGER = logging.getLogger(__name__)

SYSTEM_MESSAGE = "You are a helpful assistant."
CONTEXT_TEMPLATE = "Context:\n{context}"
CONTEXT_ACKNOWLEDGEMENT = "Great! I've read the context."
FILES_ACKNOWLEDGEMENT = "Great! I've read the input files."
CHUNK_SEPARATOR = "\n\n"

# share of max_chunk_size left free for the model's reply
RESPONSE_RESERVE = 0.5

FILE_LANGUAGES = {
    ".c": "c",
    ".go": "go",
    ".h": "c",
    ".js": "javascript",
    ".json": "json",
    ".md": "markdown",
    ".py": "python",
    ".rs": "rust",
    ".sh": "bash",
    ".toml": "toml",
    ".ts": "typescript",
    ".txt": "text",
    ".yaml": "yaml",
    ".yml": "yaml",
}

_FILE_BLOCK = re.compile(
    r"^File: (?P<path>\S+)[ \t]*\n```[^\n]*\n(?P<body>.*?)^```[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


@dataclass(frozen=True)
class AnswerResult:
    response: ChatResponse
    messages: list[ChatMessage]
    context_chunks: list[Chunk] = field(default_factory=list)


@dataclass(frozen=True)
class OutputFile:
    path: str
    language: str


def file_language(path: str) -> str:
    return FILE_LANGUAGES.get(Path(path).suffix.lower(), "text")


def token_count(text: str, *, chars_per_token: float) -> int:
    if chars_per_token <= 0:
        raise ValueError("chars_per_token must be > 0")
    return math.ceil(len(text) / chars_per_token)


def context_budget(max_chunk_size: int) -> int:
    return int(max_chunk_size * (1 - RESPONSE_RESERVE))


def build_context(chunks: Iterable[Chunk], *, max_chunk_size: int) -> tuple[str, list[Chunk]]:
    """Concatenate chunk texts, best first, until the budget is reached.

    A chunk that would push the rendered context message past the budget is
    left out entirely, and so is everything ranked below it.
    """
    budget = context_budget(max_chunk_size)
    overhead = len(CONTEXT_TEMPLATE.format(context=""))
    context = ""
    used: list[Chunk] = []

    for chunk in chunks:
        addition = chunk.text + CHUNK_SEPARATOR
        if len(context) + len(addition) + overhead > budget:
            break
        context += addition
        used.append(chunk)

    LOGGER.debug("using %d chunks as context (%d chars)", len(used), len(context))
    return context, used


def build_messages(
    question: str,
    context: str,
    *,
    global_answer: str | None = None,
) -> list[ChatMessage]:
    messages = [ChatMessage(role=ROLE_SYSTEM, content=SYSTEM_MESSAGE)]
    if global_answer is not None:
        messages.append(ChatMessage(role=ROLE_USER, content=question))
        messages.append(ChatMessage(role=ROLE_ASSISTANT, content=global_answer))

    messages.append(ChatMessage(role=ROLE_USER, content=CONTEXT_TEMPLATE.format(context=context)))
    messages.append(ChatMessage(role=ROLE_ASSISTANT, content=CONTEXT_ACKNOWLEDGEMENT))
    messages.append(ChatMessage(role=ROLE_USER, content=question))
    return messages


class Answerer:
    """Answers questions from the chunks of a store."""

    def __init__(self, store: ChunkStore, chat_client: ChatClient, *, model: str | None = None) -> None:
        self.store = store
        self.chat_client = chat_client
        self.model = model

    def answer(self, question: str, *, use_global: bool = False) -> AnswerResult:
        normalized_question = question.strip()
        if not normalized_question:
            raise ValueError("question must not be empty")

        model = self.model or self.store.default_model
        hits = find_chunks(self.store, normalized_question, k=0)
        context, used = build_context(
            (hit.chunk for hit in hits), max_chunk_size=self.store.max_chunk_size
        )

        global_answer = None
        if use_global:
            global_response = self.chat_client.chat(
                [
                    ChatMessage(role=ROLE_SYSTEM, content=SYSTEM_MESSAGE),
                    ChatMessage(role=ROLE_USER, content=normalized_question),
                ],
                model=model,
            )
            global_answer = global_response.content

        messages = build_messages(normalized_question, context, global_answer=global_answer)
        response = self.chat_client.chat(messages, model=model)
        return AnswerResult(response=response, messages=messages, context_chunks=used)


def _file_block(path: str, content: str) -> str:
    return f"File: {path}\n```{file_language(path)}\n{content}\n```"


def build_file_messages(
    *,
    sysmsg: str,
    messages: list[ChatMessage],
    input_files: list[str],
    output_files: list[OutputFile],
) -> list[ChatMessage]:
    result = [ChatMessage(role=ROLE_SYSTEM, content=sysmsg)]

    if input_files:
        blocks = [_file_block(path, Path(path).read_text(encoding="utf-8")) for path in input_files]
        result.append(ChatMessage(role=ROLE_USER, content="\n\n".join(blocks)))
        result.append(ChatMessage(role=ROLE_ASSISTANT, content=FILES_ACKNOWLEDGEMENT))

    result.extend(messages)

    if output_files:
        listing = "\n".join(f"- {item.path} ({item.language})" for item in output_files)
        result.append(
            ChatMessage(
                role=ROLE_USER,
                content=(
                    "Return the complete contents of each of the following files. "
                    "Put each file in its own fenced code block, preceded by a line "
                    "of the form `File: <path>`.\n" + listing
                ),
            )
        )
    return result


def send_with_files(
    chat_client: ChatClient,
    *,
    sysmsg: str,
    messages: list[ChatMessage],
    input_files: list[str],
    output_files: list[OutputFile],
    model: str | None = None,
) -> ChatResponse:
    """Send a conversation along with the full text of ``input_files``.

    Used by the code-generation driver; the reply is expected to contain one
    fenced block per requested output file (see :func:`extract_files`).
    """
    prompt = build_file_messages(
        sysmsg=sysmsg,
        messages=messages,
        input_files=input_files,
        output_files=output_files,
    )
    return chat_client.chat(prompt, model=model)


def extract_files(response_text: str, output_files: list[OutputFile]) -> dict[str, str]:
    wanted = {item.path for item in output_files}
    files: dict[str, str] = {}
    for match in _FILE_BLOCK.finditer(response_text):
        path = match.group("path")
        if path in wanted:
            files[path] = match.group("body")
    return files
