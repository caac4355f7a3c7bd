import asyncio
import os
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from lore.core.utils.logging import get_logger

PathCallback = Callable[[str], None]

_WATCHED_EVENT_TYPES = {"created", "modified", "deleted", "moved"}
_GIT_REF_FILES = {"HEAD", "ORIG_HEAD", "FETCH_HEAD", "packed-refs", "index"}


def is_git_event(path: str) -> bool:
    if not path or not isinstance(path, str):
        return False
    norm = path.replace("\\", "/")
    return "/.git/" in norm or norm.endswith("/.git")


def is_git_ref_event(path: str) -> bool:
    """True for ``.git`` paths that move history: HEAD, refs, packed-refs, index."""
    if not is_git_event(path):
        return False
    inner = path.replace("\\", "/").split("/.git/", 1)[-1]
    if inner.endswith(".lock"):
        inner = inner[:-len(".lock")]
    return inner in _GIT_REF_FILES or inner.startswith("refs/")


class ChangeEventHandler(FileSystemEventHandler):
    """Turns watchdog events into path callbacks.

    Runs on the observer thread. Git internals go to ``git_callback`` (ref
    changes only); everything else goes to ``callback``, once for the source
    and once for the destination of a move.
    """

    def __init__(self, callback: PathCallback, git_callback: Optional[PathCallback] = None):
        self.callback = callback
        self.git_callback = git_callback
        self.logger = get_logger("lore.watcher")

    def on_any_event(self, event):
        if event.is_directory or event.event_type not in _WATCHED_EVENT_TYPES:
            return

        src_path = getattr(event, "src_path", "")
        if isinstance(src_path, bytes):
            src_path = os.fsdecode(src_path)
        dest_path = getattr(event, "dest_path", "") or ""
        if isinstance(dest_path, bytes):
            dest_path = os.fsdecode(dest_path)

        if is_git_event(src_path) or is_git_event(dest_path):
            if self.git_callback and (is_git_ref_event(src_path) or is_git_ref_event(dest_path)):
                self.logger.debug("git_activity", path=src_path, event_type=event.event_type)
                self.git_callback(dest_path or src_path)
            return

        self.callback(src_path)
        if dest_path:
            self.callback(dest_path)


class FileWatcher:
    """
    Watches the workspace recursively and forwards changed paths to the event loop.

    The observer thread never calls engine code directly: every path is
    handed over with ``loop.call_soon_threadsafe``.
    """

    def __init__(
        self,
        root: str,
        loop: asyncio.AbstractEventLoop,
        on_change: PathCallback,
        on_git_activity: Optional[PathCallback] = None,
        observer_factory: Optional[Callable[[], Observer]] = None,
    ):
        self.root = root
        self.loop = loop
        self.on_change = on_change
        self.on_git_activity = on_git_activity
        self._observer_factory = observer_factory or Observer
        self.observer = None
        self.logger = get_logger("lore.watcher")

    @property
    def is_running(self) -> bool:
        return self.observer is not None

    def _forward(self, callback: PathCallback) -> PathCallback:
        def forward(path: str) -> None:
            if self.loop.is_closed():
                return
            self.loop.call_soon_threadsafe(callback, path)
        return forward

    def build_handler(self) -> ChangeEventHandler:
        git_cb = self._forward(self.on_git_activity) if self.on_git_activity else None
        return ChangeEventHandler(self._forward(self.on_change), git_callback=git_cb)

    def start(self) -> bool:
        if self.observer is not None:
            return True
        if not os.path.isdir(self.root):
            self.logger.error("watch_root_missing", root=self.root)
            return False
        observer = self._observer_factory()
        try:
            observer.schedule(self.build_handler(), self.root, recursive=True)
            observer.start()
        except OSError as e:
            self.logger.error("watcher_start_failed", root=self.root, error=str(e), exc_info=True)
            return False
        self.observer = observer
        self.logger.info("watcher_started", root=self.root)
        return True

    def stop(self) -> None:
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join(timeout=5.0)
        self.observer = None
        self.logger.info("watcher_stopped", root=self.root)
