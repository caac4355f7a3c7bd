import asyncio
import os
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

from lore.core.change_queue import ChangeQueue
from lore.core.config import Config
from lore.core.db import LocalEntryDB
from lore.core.documents import DocumentFilter, DocumentReader, to_rel_posix
from lore.core.git import GitLogProvider
from lore.core.github import pull_request_source_from_config
from lore.core.indexer import IncrementalIndexer
from lore.core.models import ContextEntry, SyncReport
from lore.core.scheduler import BatchScheduler
from lore.core.scheduler.batch import ProgressHandler
from lore.core.search_engine import ContextSearch
from lore.core.settings import Settings
from lore.core.utils.logging import get_logger
from lore.core.watcher import FileWatcher

logger = get_logger("lore.engine")


@dataclass
class EngineStatus:
    workspace_root: str
    db_path: str
    cursor: Optional[str]
    syncing: bool
    watching: bool
    pending_changes: int
    pull_requests_enabled: bool
    entries: Dict[str, int] = field(default_factory=dict)

    @property
    def total_entries(self) -> int:
        return sum(self.entries.values())

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["total_entries"] = self.total_entries
        return data


class ContextEngine:
    """
    The surface callers use: ranked lookups plus sync control.

    Wires the store, the indexer, the two change queues (document edits and
    ``.git`` activity) and the optional watcher for one workspace. Must be
    driven from a single event loop.
    """

    def __init__(self, cfg: Config, store=None, git: Optional[GitLogProvider] = None,
                 reader: Optional[DocumentReader] = None, scheduler: Optional[BatchScheduler] = None,
                 pr_source=None):
        s = cfg.settings
        self.config = cfg
        self.root = cfg.workspace_root
        self.store = store if store is not None else LocalEntryDB(cfg.db_path, search_cap=s.SEARCH_CAP)
        self.git = git or GitLogProvider(timeout=s.GIT_TIMEOUT_SEC)
        self.indexer = IncrementalIndexer(
            self.store,
            self.root,
            git=self.git,
            reader=reader or DocumentReader(s.MAX_DOC_BYTES),
            doc_filter=DocumentFilter.from_config(cfg),
            scheduler=scheduler or BatchScheduler(s.BATCH_SIZE, s.batch_delay_seconds),
            pr_source=pr_source,
            commit_limit=s.COMMIT_LIMIT,
            pr_limit=s.GITHUB_PR_LIMIT,
        )
        self.search = ContextSearch(self.store, limit=s.RESULT_LIMIT, k1=s.BM25_K1, b=s.BM25_B)
        self.changes = ChangeQueue(self.indexer.process_changes, s.debounce_seconds, name="files")
        self.git_activity = ChangeQueue(self._on_git_activity, s.git_debounce_seconds, name="git")
        self.watcher: Optional[FileWatcher] = None

    @classmethod
    def from_workspace(cls, workspace_root: Optional[str] = None,
                       settings_obj: Optional[Settings] = None, **kwargs) -> "ContextEngine":
        cfg = Config.load(workspace_root=workspace_root, settings_obj=settings_obj)
        git = kwargs.pop("git", None) or GitLogProvider(timeout=cfg.settings.GIT_TIMEOUT_SEC)
        if "pr_source" not in kwargs:
            kwargs["pr_source"] = pull_request_source_from_config(cfg, git)
        return cls(cfg, git=git, **kwargs)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def find_relevant(self, file_path: str, symbol: Optional[str] = None) -> List[ContextEntry]:
        return self.search.find_relevant(file_path, symbol)

    def find_relevant_scored(self, file_path: str, symbol: Optional[str] = None) -> List[Tuple[ContextEntry, float]]:
        return self.search.find_relevant_scored(file_path, symbol)

    def status(self) -> EngineStatus:
        counts = self.store.count_by_kind() if hasattr(self.store, "count_by_kind") else {}
        return EngineStatus(
            workspace_root=self.root,
            db_path=getattr(self.store, "db_path", ""),
            cursor=self.indexer.cursor.get(),
            syncing=self.indexer.in_flight,
            watching=bool(self.watcher and self.watcher.is_running),
            pending_changes=len(self.changes),
            pull_requests_enabled=self.indexer.pr_source is not None,
            entries=counts,
        )

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    async def sync_now(self, on_progress: Optional[ProgressHandler] = None) -> SyncReport:
        return await self.indexer.sync_now(on_progress)

    async def force_resync(self, on_progress: Optional[ProgressHandler] = None) -> SyncReport:
        return await self.indexer.force_resync(on_progress)

    def cancel(self) -> None:
        self.indexer.cancel()

    def notify_change(self, path: str) -> bool:
        """Queue a changed file for re-indexing. Non-document paths are ignored."""
        abs_path = path if os.path.isabs(path) else os.path.join(self.root, path)
        if not self.indexer.doc_filter.matches(to_rel_posix(self.root, abs_path)):
            return False
        return self.changes.enqueue(abs_path)

    def notify_git_activity(self, path: str) -> bool:
        return self.git_activity.enqueue(path)

    async def _on_git_activity(self, paths: List[str]) -> None:
        logger.info("git_activity_sync", events=len(paths))
        report = await self.indexer.sync_commits()
        if report.skipped:
            # the running pass re-reads the log before it finishes
            logger.info("git_activity_deferred", events=len(paths))

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def start_watching(self) -> bool:
        if self.watcher is None:
            self.watcher = FileWatcher(
                self.root,
                asyncio.get_running_loop(),
                on_change=self.notify_change,
                on_git_activity=self.notify_git_activity,
            )
        return self.watcher.start()

    async def stop(self) -> None:
        """Stop watching and let queued changes drain."""
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        await self.changes.join()
        await self.git_activity.join()

    def close(self) -> None:
        self.cancel()
        self.changes.cancel()
        self.git_activity.cancel()
        if hasattr(self.store, "close"):
            self.store.close()
