import os

import pytest

from lore.core.models import CommitRecord, ContextEntry, EntryKind


@pytest.fixture(autouse=True)
def lore_env(monkeypatch):
    monkeypatch.delenv("LORE_GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("LORE_GITHUB_REPO", raising=False)
    monkeypatch.delenv("LORE_DB_PATH", raising=False)


@pytest.fixture
def db(tmp_path):
    from lore.core.db.main import LocalEntryDB
    db_file = tmp_path / f"lore_test_{os.getpid()}.db"
    db_inst = LocalEntryDB(str(db_file))
    yield db_inst
    db_inst.close()


@pytest.fixture
def workspace(tmp_path):
    """A small repository tree with docs, code and an excluded dependency folder."""
    root = tmp_path / "repo"
    (root / "docs").mkdir(parents=True)
    (root / "src" / "payments").mkdir(parents=True)
    (root / "node_modules" / "left-pad").mkdir(parents=True)

    (root / "README.md").write_text("# Payments Service\n\nHandles invoices and refunds.\n", encoding="utf-8")
    (root / "docs" / "refunds.md").write_text(
        "# Refund flow\n\nRefunds are issued by the RefundProcessor after review.\n", encoding="utf-8")
    (root / "docs" / "notes.markdown").write_text("no heading here, just notes about billing\n", encoding="utf-8")
    (root / "src" / "payments" / "refund.py").write_text("class RefundProcessor:\n    pass\n", encoding="utf-8")
    (root / "node_modules" / "left-pad" / "README.md").write_text("# left-pad\n", encoding="utf-8")
    return str(root)


def _hash(i: int) -> str:
    return format(0xabc000 + i, "040x")


@pytest.fixture
def make_commits():
    """Factory for newest-first commit windows: ``make_commits(5)`` -> c0 (newest) .. c4."""
    def _make(n: int, files=None):
        return [
            CommitRecord(
                hash=_hash(n - i),
                author="Dana",
                date=f"2024-01-{(n - i) % 28 + 1:02d}T10:00:00+00:00",
                subject=f"commit {n - i}: touch refund logic",
                body="",
                files=list(files or ["src/payments/refund.py"]),
            )
            for i in range(n)
        ]
    return _make


class FakeGit:
    def __init__(self, commits=None, error=None):
        self.commits = list(commits or [])
        self.error = error
        self.calls = []

    def log(self, repo_path, limit):
        self.calls.append((repo_path, limit))
        if self.error is not None:
            raise self.error
        return self.commits[:limit]

    def remote_url(self, repo_path, remote="origin"):
        return None


@pytest.fixture
def fake_git():
    return FakeGit


@pytest.fixture
def make_entry():
    counter = {"id": 0}

    def _make(title, content="", kind=EntryKind.DOCUMENT, path=None, **metadata):
        counter["id"] += 1
        return ContextEntry(
            id=counter["id"],
            kind=kind,
            title=title,
            path=path or f"docs/{title.lower().replace(' ', '-')}.md",
            content=content,
            metadata=metadata,
            indexed_at=0,
        )
    return _make
