"""BM25 re-ranking over a request's candidate pool.

The corpus statistics (document count, average length, document frequency)
come from the entries being ranked, not from the whole store.
"""
import math
import re
from typing import List, Sequence, Tuple, TypeVar

from lore.core.constants import BM25_B, BM25_K1

E = TypeVar("E")

_NON_WORD_RE = re.compile(r"[\W_]+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Lowercase, split on non-alphanumeric runs, drop single-character tokens."""
    cleaned = _NON_WORD_RE.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) > 1]


def idf(n_docs: int, df: int) -> float:
    # smoothed, never negative; a term in no document still scores
    return max(0.0, math.log((n_docs - df + 0.5) / (df + 0.5) + 1.0))


def _document_text(entry) -> str:
    return f"{entry.title} {entry.content}"


def bm25_term_score(tf: int, term_idf: float, doc_len: int, avg_len: float,
                    k1: float = BM25_K1, b: float = BM25_B) -> float:
    if tf <= 0:
        return 0.0
    ratio = doc_len / avg_len if avg_len > 0 else 0.0
    return term_idf * (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * ratio))


def rank_with_scores(query_terms: Sequence[str], entries: Sequence[E],
                     k1: float = BM25_K1, b: float = BM25_B) -> List[Tuple[E, float]]:
    """Score every entry and return ``(entry, score)`` pairs, best first.

    Ties keep their input order. An empty tokenized query scores everything 0
    and leaves the order untouched.
    """
    if not entries:
        return []
    terms: List[str] = []
    for q in query_terms:
        terms.extend(tokenize(q))
    if not terms:
        return [(e, 0.0) for e in entries]

    texts = [_document_text(e).lower() for e in entries]
    docs = [tokenize(t) for t in texts]
    n_docs = len(docs)
    avg_len = sum(len(d) for d in docs) / n_docs

    # df is substring containment over the raw text, tf is exact token equality
    term_idf = {}
    for term in set(terms):
        df = sum(1 for t in texts if term in t)
        term_idf[term] = idf(n_docs, df)

    scored: List[Tuple[E, float]] = []
    for entry, tokens in zip(entries, docs):
        score = 0.0
        for term in terms:
            score += bm25_term_score(tokens.count(term), term_idf[term], len(tokens), avg_len, k1, b)
        scored.append((entry, score))

    scored.sort(key=lambda pair: -pair[1])
    return scored


def rank(query_terms: Sequence[str], entries: Sequence[E],
         k1: float = BM25_K1, b: float = BM25_B) -> List[E]:
    if not entries:
        return []
    return [entry for entry, _ in rank_with_scores(query_terms, entries, k1, b)]
