import asyncio
import os
from typing import Awaitable, Callable, Iterable, List, Optional

from lore.core.constants import DEFAULT_COMMIT_LIMIT, MIN_COMMIT_LIMIT
from lore.core.db import EntryStore
from lore.core.documents import DocumentFilter, DocumentReader, discover_documents, to_rel_posix
from lore.core.errors import DocumentReadError, ProviderUnavailableError
from lore.core.git import GitLogProvider
from lore.core.models import CommitRecord, EntryKind, PullRequestRecord, SyncReport
from lore.core.scheduler import BatchScheduler
from lore.core.scheduler.batch import ProgressHandler
from lore.core.utils.logging import get_logger
from .cursor import CommitCursor, select_new_commits
from .entries import commit_entry, document_entry, pull_request_entry

SyncStep = Callable[[SyncReport, Optional[ProgressHandler]], Awaitable[None]]


class IncrementalIndexer:
    """
    Keeps the entry store in step with the repository.

    A full pass indexes commits newer than the cursor, then documentation
    files, then pull requests when a source is configured. Every write goes
    through ``self._write_lock`` so a full pass and a change-queue drain never
    interleave. Provider failures skip only the affected step; store failures
    propagate to the caller.
    """

    def __init__(
            self,
            store: EntryStore,
            root: str,
            git: Optional[GitLogProvider] = None,
            reader: Optional[DocumentReader] = None,
            doc_filter: Optional[DocumentFilter] = None,
            scheduler: Optional[BatchScheduler] = None,
            pr_source=None,
            commit_limit: int = DEFAULT_COMMIT_LIMIT,
            pr_limit: int = 30):
        self.store = store
        self.root = root
        self.git = git or GitLogProvider()
        self.reader = reader or DocumentReader()
        self.doc_filter = doc_filter or DocumentFilter()
        self.scheduler = scheduler or BatchScheduler()
        self.pr_source = pr_source
        self.commit_limit = max(MIN_COMMIT_LIMIT, int(commit_limit))
        self.pr_limit = max(1, int(pr_limit))
        self.cursor = CommitCursor(store)
        self.logger = get_logger("lore.indexer")
        self._write_lock = asyncio.Lock()
        self._syncing = False
        self._commits_requested = False
        self._cancel_generation = 0

    @property
    def in_flight(self) -> bool:
        return self._syncing or self._write_lock.locked()

    def cancel(self) -> None:
        """Ask the running batch, and any writer still waiting for the lock, to stop."""
        if self.in_flight:
            self.logger.info("sync_cancel_requested")
        self._cancel_generation += 1
        self.scheduler.cancel()

    def _begin_write(self, generation: int) -> None:
        # a cancel issued after this writer was called must survive the lock wait
        if self._cancel_generation == generation:
            self.scheduler.reset()

    # ------------------------------------------------------------------
    # full passes
    # ------------------------------------------------------------------

    async def sync_now(self, on_progress: Optional[ProgressHandler] = None) -> SyncReport:
        """Run commits, documents and pull requests once. A call made while a pass is running is skipped."""
        steps: List[SyncStep] = [self._sync_commits, self._sync_documents]
        if self.pr_source is not None:
            steps.append(self._sync_pull_requests)
        return await self._run_exclusive("full", steps, on_progress)

    async def sync_commits(self, on_progress: Optional[ProgressHandler] = None) -> SyncReport:
        return await self._run_exclusive("commits", [self._sync_commits], on_progress)

    async def force_resync(self, on_progress: Optional[ProgressHandler] = None) -> SyncReport:
        """Forget the cursor (entries stay) and run a full pass."""
        self.cancel()
        async with self._write_lock:
            self.cursor.clear()
            self.logger.info("cursor_cleared")
        return await self.sync_now(on_progress)

    async def _run_exclusive(self, mode: str, steps: List[SyncStep],
                             on_progress: Optional[ProgressHandler]) -> SyncReport:
        if self._syncing:
            if mode == "commits":
                # the running pass may have fetched its window already
                self._commits_requested = True
            self.logger.info("sync_skipped", mode=mode, reason="already_running",
                             commits_requested=self._commits_requested)
            return SyncReport(skipped=True)

        generation = self._cancel_generation
        self._syncing = True
        try:
            async with self._write_lock:
                self._begin_write(generation)
                self._commits_requested = False
                report = SyncReport()
                self.logger.info("sync_start", mode=mode, root=self.root)
                for step in steps:
                    if self.scheduler.cancelled:
                        break
                    await step(report, on_progress)
                while self._commits_requested and not self.scheduler.cancelled:
                    self._commits_requested = False
                    self.logger.info("commit_sync_rerun", mode=mode)
                    await self._sync_commits(report, on_progress)
                report.cancelled = self.scheduler.cancelled
                report.cursor = self.cursor.get()
                self.logger.info("sync_finished", mode=mode, **report.to_dict())
                return report
        finally:
            self._syncing = False

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    async def _sync_commits(self, report: SyncReport, on_progress: Optional[ProgressHandler]) -> None:
        try:
            commits = await asyncio.to_thread(self.git.log, self.root, self.commit_limit)
        except ProviderUnavailableError as e:
            self.logger.error("commit_log_unavailable", code=e.code, error=e.message,
                              hint=e.hint, exc_info=True)
            report.errors.append(f"{e.code}: {e.message}")
            return

        cursor = self.cursor.get()
        new_commits, found = select_new_commits(commits, cursor)
        if cursor and not found:
            self.logger.warning("cursor_not_found", cursor=cursor, window=len(commits))

        processed = await self.scheduler.run_batches(
            new_commits, self._index_commit, on_progress=on_progress, label="commits")
        report.commits_indexed += processed

        if processed < len(new_commits):
            self.logger.info("cursor_held", cursor=cursor, processed=processed, pending=len(new_commits))
            return
        if commits:
            self.cursor.advance(commits[0].hash)
            self.logger.info("cursor_advanced", cursor=commits[0].hash, new_commits=len(new_commits))

    def _index_commit(self, commit: CommitRecord) -> None:
        self.store.upsert_entry(commit_entry(commit))

    async def _sync_documents(self, report: SyncReport, on_progress: Optional[ProgressHandler]) -> None:
        paths = await asyncio.to_thread(discover_documents, self.root, self.doc_filter)
        written = 0

        def index_one(path: str) -> None:
            nonlocal written
            if self._index_document(path):
                written += 1

        await self.scheduler.run_batches(paths, index_one, on_progress=on_progress, label="documents")
        report.documents_indexed = written

    def _index_document(self, abs_path: str) -> bool:
        try:
            text, size = self.reader.read_document(abs_path)
        except DocumentReadError as e:
            self.logger.warning("document_read_failed", path=e.path, error=e.message)
            return False
        self.store.upsert_entry(document_entry(self.root, abs_path, text, size))
        return True

    async def _sync_pull_requests(self, report: SyncReport, on_progress: Optional[ProgressHandler]) -> None:
        try:
            prs = await asyncio.to_thread(self.pr_source.list_pull_requests, self.pr_limit)
        except ProviderUnavailableError as e:
            self.logger.error("pull_request_source_unavailable", code=e.code, error=e.message,
                              hint=e.hint, exc_info=True)
            report.errors.append(f"{e.code}: {e.message}")
            return
        report.pull_requests_indexed = await self.scheduler.run_batches(
            prs, self._index_pull_request, on_progress=on_progress, label="pull_requests")

    def _index_pull_request(self, pr: PullRequestRecord) -> None:
        self.store.upsert_entry(pull_request_entry(pr))

    # ------------------------------------------------------------------
    # file changes
    # ------------------------------------------------------------------

    async def process_changes(self, paths: Iterable[str]) -> int:
        """Re-index one drained batch of changed paths. Returns how many were handled."""
        batch = list(paths)
        generation = self._cancel_generation
        async with self._write_lock:
            self._begin_write(generation)
            processed = await self.scheduler.run_batches(batch, self._apply_change, label="changes")
        if processed < len(batch):
            self.logger.info("changes_dropped", processed=processed, dropped=len(batch) - processed)
        return processed

    def _apply_change(self, path: str) -> None:
        abs_path = path if os.path.isabs(path) else os.path.join(self.root, path)
        rel_path = to_rel_posix(self.root, abs_path)
        if not self.doc_filter.matches(rel_path):
            return
        if not os.path.isfile(abs_path):
            if self.store.delete_entry(EntryKind.DOCUMENT, rel_path):
                self.logger.info("document_removed", path=rel_path)
            return
        if self._index_document(abs_path):
            self.logger.debug("document_reindexed", path=rel_path)
