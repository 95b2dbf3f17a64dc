from __future__ import annotations

PARAGRAPH_SEPARATOR = "\n\n"


def chunk_text(text: str, *, max_chunk_size: int) -> list[str]:
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be > 0")

    chunks: list[str] = []
    for paragraph in text.split(PARAGRAPH_SEPARATOR):
        # oversize paragraphs are cut into consecutive fixed-size slices
        for cursor in range(0, len(paragraph), max_chunk_size):
            chunks.append(paragraph[cursor : cursor + max_chunk_size])

    return chunks
