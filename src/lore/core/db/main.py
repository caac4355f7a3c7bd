import json
import os
import time
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from peewee import PeeweeException, SqliteDatabase, fn

from lore.core.constants import DEFAULT_SEARCH_CAP
from lore.core.errors import StoreError
from lore.core.models import ContextEntry, EntryKind, NewEntry
from lore.core.utils.logging import get_logger
from .models import MODELS, EntryRow, IndexMetadata

logger = get_logger("lore.db")

KindFilter = Union[EntryKind, str, None]


@runtime_checkable
class EntryStore(Protocol):
    """What the indexer and search engine need from durable storage."""

    def upsert_entry(self, entry: NewEntry) -> int: ...

    def search_entries(self, query: str, kind: KindFilter = None) -> List[ContextEntry]: ...

    def get_metadata(self, key: str) -> Optional[str]: ...

    def set_metadata(self, key: str, value: str) -> None: ...

    def delete_metadata(self, key: str) -> None: ...

    def delete_entry(self, kind: KindFilter, path: str) -> bool: ...


def _kind_value(kind: KindFilter) -> Optional[str]:
    if kind is None:
        return None
    return kind.value if isinstance(kind, EntryKind) else str(kind)


def _row_to_entry(row: EntryRow) -> ContextEntry:
    try:
        metadata = json.loads(row.metadata_json or "{}")
    except ValueError:
        logger.warning("entry_metadata_corrupt", kind=row.kind, path=row.path)
        metadata = {}
    return ContextEntry(
        id=row.id,
        kind=EntryKind(row.kind),
        title=row.title,
        path=row.path,
        content=row.content,
        metadata=metadata,
        indexed_at=int(row.indexed_ts or 0),
    )


class LocalEntryDB:
    """
    SQLite-backed entry store.

    Writes are upserts keyed on ``(kind, path)``. Reads are case-insensitive
    substring matches over title and content, capped at ``search_cap`` rows
    in insertion order. Every peewee/SQLite failure is re-raised as
    ``StoreError`` so callers own the retry/abort decision.
    """

    def __init__(self, db_path: str, search_cap: int = DEFAULT_SEARCH_CAP, **kwargs):
        self.db_path = db_path
        self.search_cap = max(1, int(search_cap))
        if db_path != ":memory:":
            parent = os.path.dirname(os.path.abspath(db_path))
            os.makedirs(parent, exist_ok=True)
        self.db = SqliteDatabase(db_path, pragmas={
            "journal_mode": kwargs.get("journal_mode", "wal"),
            "cache_size": -4000,
            "synchronous": 1,
            # bounded wait on a locked database
            "busy_timeout": int(kwargs.get("busy_timeout_ms", 15000)),
        })
        try:
            self.db.connect(reuse_if_open=True)
            with self.db.bind_ctx(MODELS):
                self.db.create_tables(MODELS, safe=True)
        except PeeweeException as e:
            logger.error("store_init_failed", db_path=db_path, error=str(e), exc_info=True)
            raise StoreError(f"Failed to initialize entry store at {db_path}: {e}") from e

    # ------------------------------------------------------------------
    # entries
    # ------------------------------------------------------------------

    def upsert_entry(self, entry: NewEntry) -> int:
        """Insert or replace the row for ``(entry.kind, entry.path)`` and return its id."""
        kind = _kind_value(entry.kind)
        now = int(time.time())
        try:
            with self.db.bind_ctx(MODELS), self.db.atomic():
                (EntryRow
                 .insert(
                     kind=kind,
                     title=entry.title,
                     path=entry.path,
                     content=entry.content,
                     metadata_json=json.dumps(entry.metadata, ensure_ascii=False, default=str),
                     indexed_ts=now,
                 )
                 .on_conflict(
                     conflict_target=[EntryRow.kind, EntryRow.path],
                     preserve=[EntryRow.title, EntryRow.content, EntryRow.metadata_json, EntryRow.indexed_ts],
                 )
                 .execute())
                return (EntryRow
                        .select(EntryRow.id)
                        .where((EntryRow.kind == kind) & (EntryRow.path == entry.path))
                        .scalar())
        except PeeweeException as e:
            raise StoreError(f"Failed to write {kind}:{entry.path}: {e}") from e

    def search_entries(self, query: str, kind: KindFilter = None) -> List[ContextEntry]:
        """Substring search over title or content. An empty query matches everything up to the cap."""
        kind_value = _kind_value(kind)
        try:
            with self.db.bind_ctx(MODELS):
                q = EntryRow.select()
                if query:
                    q = q.where(EntryRow.title.contains(query) | EntryRow.content.contains(query))
                if kind_value:
                    q = q.where(EntryRow.kind == kind_value)
                rows = list(q.order_by(EntryRow.id).limit(self.search_cap))
        except PeeweeException as e:
            raise StoreError(f"Search failed for {query!r}: {e}") from e
        return [_row_to_entry(r) for r in rows]

    def get_entry(self, kind: KindFilter, path: str) -> Optional[ContextEntry]:
        try:
            with self.db.bind_ctx(MODELS):
                row = EntryRow.get_or_none(
                    (EntryRow.kind == _kind_value(kind)) & (EntryRow.path == path))
        except PeeweeException as e:
            raise StoreError(f"Lookup failed for {kind}:{path}: {e}") from e
        return _row_to_entry(row) if row else None

    def delete_entry(self, kind: KindFilter, path: str) -> bool:
        try:
            with self.db.bind_ctx(MODELS), self.db.atomic():
                deleted = (EntryRow
                           .delete()
                           .where((EntryRow.kind == _kind_value(kind)) & (EntryRow.path == path))
                           .execute())
        except PeeweeException as e:
            raise StoreError(f"Delete failed for {kind}:{path}: {e}") from e
        return deleted > 0

    def count_by_kind(self) -> Dict[str, int]:
        try:
            with self.db.bind_ctx(MODELS):
                rows = (EntryRow
                        .select(EntryRow.kind, fn.COUNT(EntryRow.id).alias("n"))
                        .group_by(EntryRow.kind)
                        .tuples())
                return {kind: int(n) for kind, n in rows}
        except PeeweeException as e:
            raise StoreError(f"Count failed: {e}") from e

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    def get_metadata(self, key: str) -> Optional[str]:
        try:
            with self.db.bind_ctx(MODELS):
                row = IndexMetadata.get_or_none(IndexMetadata.key == key)
        except PeeweeException as e:
            raise StoreError(f"Failed to read metadata {key}: {e}") from e
        return row.value if row else None

    def set_metadata(self, key: str, value: str) -> None:
        try:
            with self.db.bind_ctx(MODELS), self.db.atomic():
                (IndexMetadata
                 .insert(key=key, value=value, updated_ts=int(time.time()))
                 .on_conflict(
                     conflict_target=[IndexMetadata.key],
                     preserve=[IndexMetadata.value, IndexMetadata.updated_ts],
                 )
                 .execute())
        except PeeweeException as e:
            raise StoreError(f"Failed to write metadata {key}: {e}") from e

    def delete_metadata(self, key: str) -> None:
        try:
            with self.db.bind_ctx(MODELS), self.db.atomic():
                IndexMetadata.delete().where(IndexMetadata.key == key).execute()
        except PeeweeException as e:
            raise StoreError(f"Failed to delete metadata {key}: {e}") from e

    def close(self) -> None:
        if not self.db.is_closed():
            self.db.close()
