"""
Centralized constants for lore.

Defaults here are mirrored by ``Settings``; code that cannot reach a
settings object (pure functions, tests) reads them directly.
"""

# ============================================================================
# Batch Scheduling
# ============================================================================

DEFAULT_BATCH_SIZE = 10
"""Items processed between cooperative yields."""

DEFAULT_BATCH_DELAY_SECONDS = 0.05
"""Pause between slices so the host loop can run other work."""

# ============================================================================
# Change Queue
# ============================================================================

DEFAULT_DEBOUNCE_SECONDS = 0.5
"""Quiet period before queued file changes are drained."""

DEFAULT_GIT_DEBOUNCE_SECONDS = 3.0
"""Quiet period after .git activity before a commit sync runs."""

# ============================================================================
# Indexing
# ============================================================================

DEFAULT_COMMIT_LIMIT = 200
"""Commits fetched from the log provider per sync."""

MIN_COMMIT_LIMIT = 100

LAST_INDEXED_COMMIT_KEY = "last_indexed_commit"
"""Metadata key holding the commit cursor."""

DEFAULT_DOC_EXTENSIONS = (".md", ".markdown", ".mdx")

DEFAULT_EXCLUDE_DIRS = (
    ".git", "node_modules", ".venv", "venv", "dist", "build", "out",
    "target", "coverage", ".next", ".tox", ".pytest_cache", "__pycache__",
    "vendor", "bower_components", ".lore",
)

DEFAULT_MAX_DOC_BYTES = 1024 * 1024

# ============================================================================
# Retrieval & Ranking
# ============================================================================

DEFAULT_SEARCH_CAP = 100
"""Maximum hits returned by a single substring search."""

DEFAULT_RESULT_LIMIT = 10
"""Top-K entries returned by find_relevant."""

BM25_K1 = 1.5
BM25_B = 0.75
