import shutil
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from lore.core.errors import GitLogError, ProviderUnavailableError
from lore.core.git import (
    FIELD_SEP,
    RECORD_SEP,
    GitLogProvider,
    is_valid_commit_hash,
    is_valid_workspace_path,
    parse_git_log,
)

H1 = "a" * 40
H2 = "b" * 40


def _record(h, author="Dana", date="2024-03-01T10:00:00+00:00", subject="Fix refunds", body="", files=""):
    return f"{RECORD_SEP}{h}{FIELD_SEP}{author}{FIELD_SEP}{date}{FIELD_SEP}{subject}{FIELD_SEP}{body}{FIELD_SEP}{files}"


def test_parse_git_log_reads_fields_and_files():
    out = _record(H1, subject="Fix | pipe in subject", body="Longer body\nsecond line",
                  files="\nsrc/a.py\ndocs/b.md\n") + _record(H2, files="\nREADME.md\n")
    commits = parse_git_log(out)

    assert [c.hash for c in commits] == [H1, H2]
    assert commits[0].subject == "Fix | pipe in subject"
    assert commits[0].body == "Longer body\nsecond line"
    assert commits[0].files == ["src/a.py", "docs/b.md"]
    assert commits[1].files == ["README.md"]


def test_parse_git_log_drops_malformed_records():
    out = (
        _record(H1)
        + f"{RECORD_SEP}{H2}{FIELD_SEP}only-two-fields"
        + _record("not-a-hash")
        + _record(H2)
    )
    assert [c.hash for c in parse_git_log(out)] == [H1, H2]


def test_parse_git_log_empty():
    assert parse_git_log("") == []
    assert parse_git_log("\n\n") == []


def test_validation_helpers():
    assert is_valid_commit_hash("abc1234")
    assert is_valid_commit_hash(H1)
    assert not is_valid_commit_hash("abc12")
    assert not is_valid_commit_hash("xyz1234")
    assert not is_valid_commit_hash("")

    assert is_valid_workspace_path("/home/dev/my repo")
    assert not is_valid_workspace_path("")
    assert not is_valid_workspace_path("/tmp/x; rm -rf /")
    assert not is_valid_workspace_path("/tmp/$(whoami)")


def test_log_runs_git_with_limit():
    proc = MagicMock(returncode=0, stdout=_record(H1), stderr="")
    with patch("lore.core.git.subprocess.run", return_value=proc) as run:
        commits = GitLogProvider().log("/repo", 150)

    assert [c.hash for c in commits] == [H1]
    cmd = run.call_args.args[0]
    assert cmd[:3] == ["git", "-C", "/repo"]
    assert "-n150" in cmd
    assert "--name-only" in cmd


def test_log_on_empty_repository_is_empty_not_error():
    proc = MagicMock(returncode=128, stdout="",
                     stderr="fatal: your current branch 'main' does not have any commits yet")
    with patch("lore.core.git.subprocess.run", return_value=proc):
        assert GitLogProvider().log("/repo", 100) == []


def test_log_failure_is_explicit():
    proc = MagicMock(returncode=128, stdout="", stderr="fatal: not a git repository")
    with patch("lore.core.git.subprocess.run", return_value=proc):
        with pytest.raises(GitLogError, match="not a git repository"):
            GitLogProvider().log("/repo", 100)


def test_missing_git_binary():
    with patch("lore.core.git.subprocess.run", side_effect=FileNotFoundError("git")):
        with pytest.raises(ProviderUnavailableError) as exc:
            GitLogProvider().log("/repo", 100)
    assert exc.value.code == "ERR_GIT_LOG"
    assert exc.value.hint


def test_git_timeout():
    with patch("lore.core.git.subprocess.run", side_effect=subprocess.TimeoutExpired("git", 1)):
        with pytest.raises(GitLogError, match="timed out"):
            GitLogProvider(timeout=1).log("/repo", 100)


def test_suspicious_repo_path_never_reaches_subprocess():
    with patch("lore.core.git.subprocess.run") as run:
        with pytest.raises(GitLogError):
            GitLogProvider().log("/repo;reboot", 100)
    run.assert_not_called()


def test_remote_url():
    ok = MagicMock(returncode=0, stdout="git@github.com:acme/pay.git\n", stderr="")
    missing = MagicMock(returncode=2, stdout="", stderr="error: No such remote 'origin'")
    with patch("lore.core.git.subprocess.run", side_effect=[ok, missing]):
        provider = GitLogProvider()
        assert provider.remote_url("/repo") == "git@github.com:acme/pay.git"
        assert provider.remote_url("/repo") is None


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_log_against_real_repository(tmp_path):
    def git(*args):
        subprocess.run(["git", "-C", str(tmp_path), *args], check=True, capture_output=True)

    git("init", "-q")
    git("config", "user.email", "dev@example.com")
    git("config", "user.name", "Dev")
    (tmp_path / "a.md").write_text("# A\n")
    git("add", "a.md")
    git("commit", "-q", "-m", "Add A", "-m", "Body text")
    (tmp_path / "b.md").write_text("# B\n")
    git("add", "b.md")
    git("commit", "-q", "-m", "Add B")

    commits = GitLogProvider().log(str(tmp_path), 100)
    assert [c.subject for c in commits] == ["Add B", "Add A"]
    assert commits[0].files == ["b.md"]
    assert commits[1].body == "Body text"
    assert commits[1].author == "Dev"
    assert all(is_valid_commit_hash(c.hash) for c in commits)
