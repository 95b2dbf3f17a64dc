from __future__ import annotations

from pathlib import Path
from typing import Iterable

SUPPORTED_EXTENSIONS = {".go", ".md", ".py", ".rst", ".txt"}


def resolve_document_paths(
    inputs: Iterable[Path],
    supported_extensions: set[str] | None = None,
) -> list[str]:
    """Expand files and directories into canonical document paths.

    Files named explicitly are taken as they are; directories contribute the
    files below them whose suffix is supported. Hidden entries are skipped.
    """
    extensions = supported_extensions or SUPPORTED_EXTENSIONS
    paths: list[str] = []

    for item in inputs:
        if item.is_dir():
            for path in sorted(item.rglob("*")):
                relative_parts = path.relative_to(item).parts
                if any(part.startswith(".") for part in relative_parts):
                    continue
                if path.is_file() and path.suffix.lower() in extensions:
                    paths.append(str(path.resolve()))
        elif item.is_file():
            paths.append(str(item.resolve()))
        else:
            raise FileNotFoundError(f"Document not found: {item}")

    return list(dict.fromkeys(paths))
