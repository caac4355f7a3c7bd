from .engine import ContextEngine, EngineStatus
from .indexer import IncrementalIndexer
from .config import Config
from .db import LocalEntryDB
from .settings import settings

__all__ = [
    "ContextEngine",
    "EngineStatus",
    "IncrementalIndexer",
    "Config",
    "LocalEntryDB",
    "settings",
]
