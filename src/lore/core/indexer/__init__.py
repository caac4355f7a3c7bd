from .cursor import CommitCursor, select_new_commits
from .main import IncrementalIndexer

__all__ = ["CommitCursor", "IncrementalIndexer", "select_new_commits"]
