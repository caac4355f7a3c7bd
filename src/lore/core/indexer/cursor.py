from typing import List, Optional, Sequence, Tuple

from lore.core.constants import LAST_INDEXED_COMMIT_KEY
from lore.core.models import CommitRecord


def select_new_commits(commits: Sequence[CommitRecord], cursor: Optional[str]) -> Tuple[List[CommitRecord], bool]:
    """Split the newest-first ``commits`` window against ``cursor``.

    Returns ``(new_commits, cursor_found)``. Without a cursor, or when the
    cursor is not in the window (rewritten history), the whole window is new.
    """
    if not cursor:
        return list(commits), False
    for i, commit in enumerate(commits):
        if commit.hash == cursor:
            return list(commits[:i]), True
    return list(commits), False


class CommitCursor:
    """The last indexed commit, persisted in the store's metadata table."""

    def __init__(self, store, key: str = LAST_INDEXED_COMMIT_KEY):
        self.store = store
        self.key = key

    def get(self) -> Optional[str]:
        # an empty value is what older stores left behind after a reset
        return self.store.get_metadata(self.key) or None

    def advance(self, commit_hash: str) -> None:
        self.store.set_metadata(self.key, commit_hash)

    def clear(self) -> None:
        self.store.delete_metadata(self.key)
