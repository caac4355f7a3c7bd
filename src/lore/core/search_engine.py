import os
from typing import List, Optional, Sequence, Tuple

from lore.core.constants import BM25_B, BM25_K1, DEFAULT_RESULT_LIMIT
from lore.core.db import EntryStore
from lore.core.models import Candidate, ContextEntry, entry_key
from lore.core.ranking import rank_with_scores
from lore.core.utils.logging import get_logger


def build_query_terms(file_path: str, symbol: Optional[str] = None) -> List[str]:
    """Base name without extension, then the symbol, then the containing directory's name."""
    norm = (file_path or "").replace("\\", "/").rstrip("/")
    base = os.path.splitext(os.path.basename(norm))[0]
    parent = os.path.basename(os.path.dirname(norm))
    terms = [base, (symbol or "").strip(), parent]
    return [t for t in terms if t and t.strip()]


def dedupe(entries: Sequence[ContextEntry]) -> List[ContextEntry]:
    """Keep the first entry for each ``kind:path``, in order of first appearance."""
    seen = set()
    out: List[ContextEntry] = []
    for entry in entries:
        key = entry_key(entry)
        if key in seen:
            continue
        seen.add(key)
        out.append(entry)
    return out


class ContextSearch:
    """
    Answers "what prior context is relevant to this file?".

    Each query term is one substring search against the store; the hits are
    pooled, collapsed per ``kind:path`` and re-ranked with BM25 against the
    full term list. Store errors propagate.
    """

    def __init__(self, store: EntryStore, limit: int = DEFAULT_RESULT_LIMIT,
                 k1: float = BM25_K1, b: float = BM25_B):
        self.store = store
        self.limit = max(1, int(limit))
        self.k1 = k1
        self.b = b
        self.logger = get_logger("lore.search")

    def collect_candidates(self, terms: Sequence[str]) -> List[Candidate]:
        """One substring search per term; hits are concatenated, duplicates included."""
        pool: List[Candidate] = []
        for term in terms:
            pool.extend(Candidate(entry=e, terms=(term,)) for e in self.store.search_entries(term))
        return pool

    def find_relevant_scored(self, file_path: str, symbol: Optional[str] = None) -> List[Tuple[ContextEntry, float]]:
        terms = build_query_terms(file_path, symbol)
        hits = self.collect_candidates(terms)
        pool = dedupe([c.entry for c in hits])
        ranked = rank_with_scores(terms, pool, self.k1, self.b)[:self.limit]
        self.logger.debug("find_relevant", file_path=file_path, symbol=symbol, terms=terms,
                          hits=len(hits), pool=len(pool), returned=len(ranked))
        return ranked

    def find_relevant(self, file_path: str, symbol: Optional[str] = None) -> List[ContextEntry]:
        return [entry for entry, _ in self.find_relevant_scored(file_path, symbol)]
