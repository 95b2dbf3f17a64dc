from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from threading import Event, Thread
from time import perf_counter

from grokker.clients import get_chat_client, get_embedding_client
from grokker.config import get_settings
from grokker.llm import CHAT_MODELS, select_model
from grokker.services.rag import Answerer, ChunkStore, load_store, save_store
from grokker.services.rag.answer import token_count
from grokker.services.rag.loader import resolve_document_paths


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else get_settings().log_level
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grok",
        description="Ask questions about a local set of documents",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create an empty store in the current directory")

    add = subparsers.add_parser("add", help="Add documents or directories to the store")
    add.add_argument("paths", nargs="+", type=Path)

    rm = subparsers.add_parser("rm", help="Remove documents from the store")
    rm.add_argument("paths", nargs="+", type=Path)

    refresh = subparsers.add_parser("refresh", help="Re-embed documents changed on disk")
    refresh.add_argument(
        "--all", action="store_true", help="Re-chunk every document regardless of timestamps"
    )

    q = subparsers.add_parser("q", help="Ask a question")
    q.add_argument("question")
    q.add_argument(
        "-g",
        "--global",
        dest="use_global",
        action="store_true",
        help="Include the model's global knowledge as well as the local documents",
    )

    subparsers.add_parser("ls", help="List documents in the store")
    subparsers.add_parser("models", help="List known chat models")

    model = subparsers.add_parser("model", help="Select the default chat model")
    model.add_argument("name")

    subparsers.add_parser("tc", help="Estimate the token count of stdin")

    serve = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _store_path() -> Path:
    return Path(get_settings().store_path)


def _open_store() -> ChunkStore:
    settings = get_settings()
    return load_store(
        _store_path(),
        embedding_client=get_embedding_client(),
        embedding_model=settings.embed_model,
    )


def _sync(store: ChunkStore, store_path: Path) -> bool:
    # the store file mtime is the last-sync marker
    return store.update_embeddings(store_path.stat().st_mtime)


def _refresh(store: ChunkStore, store_path: Path) -> None:
    if _sync(store, store_path):
        save_store(store, store_path)


def _print_dots(stop_event: Event) -> None:
    while not stop_event.wait(1.0):
        print(".", end="", file=sys.stderr, flush=True)


def _cmd_init(args: argparse.Namespace) -> None:
    settings = get_settings()
    store_path = _store_path()
    if store_path.exists():
        raise FileExistsError(f"Store already exists: {store_path}")

    store = ChunkStore(
        get_embedding_client(),
        max_chunk_size=settings.max_chunk_size,
        chars_per_token=settings.chars_per_token,
        default_model=settings.chat_model,
        embedding_model=settings.embed_model,
    )
    save_store(store, store_path)
    print(f"[grok] initialized {store_path}", flush=True)


def _cmd_add(args: argparse.Namespace) -> None:
    store_path = _store_path()
    store = _open_store()
    _sync(store, store_path)
    for path in resolve_document_paths(args.paths):
        print(f"[grok] adding {path}", flush=True)
        store.add_document(path)
    store.gc()
    save_store(store, store_path)


def _cmd_rm(args: argparse.Namespace) -> None:
    store_path = _store_path()
    store = _open_store()
    _sync(store, store_path)
    for path in args.paths:
        key = str(path.resolve())
        if not store.remove_document(key):
            print(f"[grok] not in store: {key}", file=sys.stderr, flush=True)
    store.gc()
    save_store(store, store_path)


def _cmd_refresh(args: argparse.Namespace) -> None:
    store_path = _store_path()
    store = _open_store()
    if args.all:
        store.refresh_embeddings()
        save_store(store, store_path)
    else:
        _refresh(store, store_path)


def _cmd_q(args: argparse.Namespace) -> None:
    store_path = _store_path()
    store = _open_store()
    _refresh(store, store_path)

    answerer = Answerer(store, get_chat_client())
    stop_event = Event()
    progress = None
    if sys.stderr.isatty():
        progress = Thread(target=_print_dots, args=(stop_event,), daemon=True)
        progress.start()

    start = perf_counter()
    try:
        result = answerer.answer(args.question, use_global=args.use_global)
    finally:
        stop_event.set()
        if progress is not None:
            progress.join()
            print(file=sys.stderr, flush=True)

    logging.getLogger(__name__).debug(
        "answered in %.1fs using %d chunks", perf_counter() - start, len(result.context_chunks)
    )
    print(result.response.content, flush=True)


def _cmd_ls(args: argparse.Namespace) -> None:
    store = _open_store()
    for document in store.documents:
        print(document.path)


def _cmd_models(args: argparse.Namespace) -> None:
    current = get_settings().chat_model
    if _store_path().exists():
        current = _open_store().default_model
    for name, window in sorted(CHAT_MODELS.items()):
        marker = "*" if name == current else " "
        print(f"{marker} {name:<16} {window:>7} tokens")


def _cmd_model(args: argparse.Namespace) -> None:
    store_path = _store_path()
    store = _open_store()
    _sync(store, store_path)
    store.default_model = select_model(args.name)
    save_store(store, store_path)
    print(f"[grok] default model is now {store.default_model}", flush=True)


def _cmd_tc(args: argparse.Namespace) -> None:
    print(token_count(sys.stdin.read(), chars_per_token=get_settings().chars_per_token))


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("grokker.main:app", host=args.host, port=args.port, reload=False)


COMMANDS = {
    "init": _cmd_init,
    "add": _cmd_add,
    "rm": _cmd_rm,
    "refresh": _cmd_refresh,
    "q": _cmd_q,
    "ls": _cmd_ls,
    "models": _cmd_models,
    "model": _cmd_model,
    "tc": _cmd_tc,
    "serve": _cmd_serve,
}


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        _setup_logging(args.verbose)
        COMMANDS[args.command](args)
    except Exception as exc:
        print(f"[grok] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
