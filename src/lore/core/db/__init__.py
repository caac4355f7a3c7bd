from .main import EntryStore, LocalEntryDB
from .models import EntryRow, IndexMetadata

__all__ = ["EntryStore", "LocalEntryDB", "EntryRow", "IndexMetadata"]
