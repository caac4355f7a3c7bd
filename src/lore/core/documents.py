import os
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Sequence, Tuple

from lore.core.constants import DEFAULT_DOC_EXTENSIONS, DEFAULT_EXCLUDE_DIRS, DEFAULT_MAX_DOC_BYTES
from lore.core.errors import DocumentReadError


def to_rel_posix(root: str, path: str) -> str:
    rel = os.path.relpath(os.path.abspath(path), root)
    return rel.replace(os.sep, "/")


class DocumentFilter:
    """Decides which files count as documentation.

    A file qualifies when its extension is markdown-like and no path segment
    is an excluded directory. When ``doc_dirs`` is non-empty, only README
    files and files below one of those directories qualify.
    """

    def __init__(
        self,
        extensions: Iterable[str] = DEFAULT_DOC_EXTENSIONS,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
        doc_dirs: Optional[Sequence[str]] = None,
    ):
        self.extensions = {e.lower() for e in extensions}
        self.exclude_dirs = set(exclude_dirs)
        self.doc_dirs = [d.strip("/") for d in (doc_dirs or []) if d.strip("/")]

    @classmethod
    def from_config(cls, cfg) -> "DocumentFilter":
        return cls(cfg.doc_extensions, cfg.exclude_dirs, cfg.doc_dirs)

    def is_excluded_dir(self, name: str) -> bool:
        return name in self.exclude_dirs

    def matches(self, rel_path: str) -> bool:
        if not rel_path or rel_path.startswith("../"):
            return False
        p = PurePosixPath(rel_path)
        if p.suffix.lower() not in self.extensions:
            return False
        if any(part in self.exclude_dirs for part in p.parts[:-1]):
            return False
        if not self.doc_dirs:
            return True
        if p.stem.lower() == "readme":
            return True
        return any(rel_path == d or rel_path.startswith(d + "/") or f"/{d}/" in f"/{rel_path}"
                   for d in self.doc_dirs)


def discover_documents(root: str, doc_filter: DocumentFilter) -> List[str]:
    """Walk ``root`` and return absolute paths of documentation files, sorted."""
    found: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not doc_filter.is_excluded_dir(d))
        for name in filenames:
            abs_path = os.path.join(dirpath, name)
            if doc_filter.matches(to_rel_posix(root, abs_path)):
                found.append(abs_path)
    found.sort()
    return found


class DocumentReader:
    def __init__(self, max_bytes: int = DEFAULT_MAX_DOC_BYTES):
        self.max_bytes = max_bytes

    def read(self, path: str) -> str:
        return self.read_document(path)[0]

    def read_document(self, path: str) -> Tuple[str, int]:
        """Decoded text plus the size of the file on disk in bytes."""
        try:
            size = os.path.getsize(path)
            if self.max_bytes and size > self.max_bytes:
                raise DocumentReadError(path, f"{size} bytes exceeds limit of {self.max_bytes}")
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise DocumentReadError(path, str(e)) from e
        return raw.decode("utf-8", errors="replace"), len(raw)
