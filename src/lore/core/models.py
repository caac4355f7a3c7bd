from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class EntryKind(str, Enum):
    COMMIT = "commit"
    DOCUMENT = "document"
    PULL_REQUEST = "pull-request"
    INCIDENT = "incident"


class NewEntry(BaseModel):
    """An entry as produced by the indexer, before the store assigns id and timestamp.

    ``(kind, path)`` is the identity: writing the same pair twice replaces
    the earlier row.
    """
    model_config = ConfigDict(frozen=True)

    kind: EntryKind
    title: str
    path: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return entry_key(self)


class ContextEntry(NewEntry):
    id: int
    indexed_at: int


class CommitRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    author: str
    date: str
    subject: str
    body: str = ""
    files: List[str] = Field(default_factory=list)


class PullRequestRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    title: str
    url: str
    body: str = ""
    author: str = ""
    state: str = "open"
    created_at: str = ""
    merged_at: Optional[str] = None
    labels: List[str] = Field(default_factory=list)


def entry_key(entry: Any) -> str:
    kind = entry.kind.value if isinstance(entry.kind, EntryKind) else str(entry.kind)
    return f"{kind}:{entry.path}"


@dataclass
class Candidate:
    """A retrieved entry plus the query terms that surfaced it. Lives for one request."""
    entry: ContextEntry
    terms: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BatchProgress:
    processed: int
    total: int
    label: str = "items"

    @property
    def done(self) -> bool:
        return self.processed >= self.total


@dataclass
class SyncReport:
    commits_indexed: int = 0
    documents_indexed: int = 0
    pull_requests_indexed: int = 0
    cursor: Optional[str] = None
    cancelled: bool = False
    skipped: bool = False
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commits_indexed": self.commits_indexed,
            "documents_indexed": self.documents_indexed,
            "pull_requests_indexed": self.pull_requests_indexed,
            "cursor": self.cursor,
            "cancelled": self.cancelled,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }
