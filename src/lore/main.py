import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

from filelock import FileLock, Timeout

from lore.core.engine import ContextEngine
from lore.core.errors import LoreError
from lore.core.models import BatchProgress
from lore.core.settings import settings
from lore.core.utils.logging import configure_logging, get_logger
from lore.version import __version__

logger = get_logger("lore.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_LOCKED = 3


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _print_err(text: str) -> None:
    print(text, file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lore", description="Index project history and surface related context.")
    parser.add_argument("--version", action="version", version=f"lore {__version__}")
    parser.add_argument("--root", default=None, help="workspace root (default: LORE_WORKSPACE_ROOT or cwd)")
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--json-logs", action="store_true", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="index new commits, documents and pull requests")
    sub.add_parser("resync", help="forget the commit cursor and index again")

    find = sub.add_parser("find", help="rank stored context against a file")
    find.add_argument("file")
    find.add_argument("--symbol", default=None)
    find.add_argument("--scores", action="store_true")
    find.add_argument("--json", action="store_true", dest="as_json")

    sub.add_parser("status", help="show index counts and cursor")

    watch = sub.add_parser("watch", help="keep the index current while files change")
    watch.add_argument("--no-initial-sync", action="store_true")
    return parser


def _lock_for(engine: ContextEngine) -> FileLock:
    db_path = getattr(engine.store, "db_path", "") or os.path.join(engine.root, ".lore", "index.db")
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    return FileLock(f"{db_path}.lock", timeout=0)


def _log_progress(progress: BatchProgress) -> None:
    logger.info("sync_progress", label=progress.label, processed=progress.processed, total=progress.total)


async def _watch(engine: ContextEngine, initial_sync: bool) -> None:
    if initial_sync:
        report = await engine.sync_now(_log_progress)
        _print_json(report.to_dict())
    if not engine.start_watching():
        raise LoreError("ERR_WATCH", f"Could not watch {engine.root}")
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()


def _cmd_sync(engine: ContextEngine, force: bool) -> int:
    coro = engine.force_resync(_log_progress) if force else engine.sync_now(_log_progress)
    report = asyncio.run(coro)
    _print_json(report.to_dict())
    return EXIT_OK


def _cmd_find(engine: ContextEngine, ns: argparse.Namespace) -> int:
    results = engine.find_relevant_scored(ns.file, ns.symbol)
    if ns.as_json:
        payload = []
        for entry, score in results:
            item = {
                "kind": entry.kind.value,
                "title": entry.title,
                "path": entry.path,
                "metadata": entry.metadata,
            }
            if ns.scores:
                item["score"] = round(score, 4)
            payload.append(item)
        _print_json(payload)
        return EXIT_OK
    if not results:
        print("no related context")
        return EXIT_OK
    for entry, score in results:
        prefix = f"{score:7.3f}  " if ns.scores else ""
        print(f"{prefix}[{entry.kind.value}] {entry.title}  ({entry.path})")
    return EXIT_OK


def _cmd_watch(engine: ContextEngine, initial_sync: bool) -> int:
    try:
        asyncio.run(_watch(engine, initial_sync))
    except KeyboardInterrupt:
        logger.info("watch_interrupted")
    return EXIT_OK


def _cmd_status(engine: ContextEngine) -> int:
    _print_json(engine.status().to_dict())
    return EXIT_OK


def _run_locked(engine: ContextEngine, fn) -> int:
    lock = _lock_for(engine)
    try:
        lock.acquire()
    except Timeout:
        _print_err("sync already running")
        return EXIT_LOCKED
    try:
        return fn()
    finally:
        lock.release()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    configure_logging(ns.log_level, ns.json_logs)

    try:
        engine = ContextEngine.from_workspace(ns.root, settings)
    except LoreError as e:
        _print_err(f"[{e.code}] {e.message}" + (f" ({e.hint})" if e.hint else ""))
        return EXIT_ERROR

    try:
        if ns.command == "sync":
            return _run_locked(engine, lambda: _cmd_sync(engine, force=False))
        if ns.command == "resync":
            return _run_locked(engine, lambda: _cmd_sync(engine, force=True))
        if ns.command == "find":
            return _cmd_find(engine, ns)
        if ns.command == "status":
            return _cmd_status(engine)
        if ns.command == "watch":
            return _run_locked(engine, lambda: _cmd_watch(engine, not ns.no_initial_sync))
        parser.print_help()
        return EXIT_USAGE
    except LoreError as e:
        logger.error("command_failed", command=ns.command, code=e.code, error=e.message)
        _print_err(f"[{e.code}] {e.message}" + (f" ({e.hint})" if e.hint else ""))
        return EXIT_ERROR
    finally:
        engine.close()


if __name__ == "__main__":
    sys.exit(main())
