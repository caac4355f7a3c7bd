import os
import re

from lore.core.documents import to_rel_posix
from lore.core.models import CommitRecord, EntryKind, NewEntry, PullRequestRecord

_H1_RE = re.compile(r"^#[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)


def extract_title(text: str, fallback: str) -> str:
    """First level-1 markdown heading, else ``fallback``."""
    match = _H1_RE.search(text or "")
    if match and match.group(1).strip():
        return match.group(1).strip()
    return fallback


def commit_entry(commit: CommitRecord) -> NewEntry:
    files = ", ".join(commit.files)
    return NewEntry(
        kind=EntryKind.COMMIT,
        title=commit.subject or commit.hash[:12],
        path=commit.hash,
        content=f"{commit.subject}\n\n{commit.body}\n\nFiles: {files}",
        metadata={
            "hash": commit.hash,
            "author": commit.author,
            "date": commit.date,
            "files": list(commit.files),
        },
    )


def document_entry(root: str, abs_path: str, text: str, size: int) -> NewEntry:
    name = os.path.basename(abs_path)
    stem, ext = os.path.splitext(name)
    return NewEntry(
        kind=EntryKind.DOCUMENT,
        title=extract_title(text, stem),
        path=to_rel_posix(root, abs_path),
        content=text,
        metadata={
            "size": size,
            "extension": ext.lower(),
        },
    )


def pull_request_entry(pr: PullRequestRecord) -> NewEntry:
    parts = [pr.title, pr.body or ""]
    if pr.labels:
        parts.append("Labels: " + ", ".join(pr.labels))
    return NewEntry(
        kind=EntryKind.PULL_REQUEST,
        title=f"#{pr.number} {pr.title}",
        path=pr.url,
        content="\n\n".join(parts),
        metadata={
            "number": pr.number,
            "author": pr.author,
            "state": pr.state,
            "created_at": pr.created_at,
            "merged_at": pr.merged_at,
            "labels": list(pr.labels),
        },
    )
