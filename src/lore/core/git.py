"""Version-control log provider backed by the ``git`` executable."""
import re
import subprocess
from typing import List, Optional

from lore.core.errors import GitLogError
from lore.core.models import CommitRecord
from lore.core.utils.logging import get_logger

logger = get_logger("lore.git")

RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
# hash, author, strict ISO date, subject, body; --name-only appends the file list.
LOG_FORMAT = f"{RECORD_SEP}%H{FIELD_SEP}%an{FIELD_SEP}%aI{FIELD_SEP}%s{FIELD_SEP}%b{FIELD_SEP}"

_COMMIT_HASH_RE = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)
_UNSAFE_PATH_RE = re.compile(r"[\x00-\x1f;&|`$(){}]")
_EMPTY_REPO_MARKERS = ("does not have any commits yet", "bad default revision 'HEAD'")


def is_valid_commit_hash(value: str) -> bool:
    return bool(value) and bool(_COMMIT_HASH_RE.match(value))


def is_valid_workspace_path(path: str) -> bool:
    """Reject empty paths and paths carrying control or shell metacharacters."""
    if not path:
        return False
    return not _UNSAFE_PATH_RE.search(path)


def parse_git_log(output: str) -> List[CommitRecord]:
    """Parse ``git log`` output produced with ``LOG_FORMAT`` and ``--name-only``.

    Records missing a field or carrying an invalid hash are dropped; parsing
    continues with the next record.
    """
    records: List[CommitRecord] = []
    for chunk in output.split(RECORD_SEP):
        if not chunk.strip():
            continue
        parts = chunk.split(FIELD_SEP, 5)
        if len(parts) < 6:
            logger.debug("git_log_record_malformed", preview=chunk[:80])
            continue
        commit_hash, author, date, subject, body, tail = parts
        commit_hash = commit_hash.strip()
        if not is_valid_commit_hash(commit_hash):
            logger.debug("git_log_record_bad_hash", value=commit_hash[:64])
            continue
        files = [line.strip() for line in tail.splitlines() if line.strip()]
        records.append(CommitRecord(
            hash=commit_hash,
            author=author.strip(),
            date=date.strip(),
            subject=subject.strip(),
            body=body.strip(),
            files=files,
        ))
    return records


class GitLogProvider:
    def __init__(self, git_bin: str = "git", timeout: float = 30.0):
        self.git_bin = git_bin
        self.timeout = timeout

    def _run(self, repo_path: str, args: List[str]) -> subprocess.CompletedProcess:
        if not is_valid_workspace_path(repo_path):
            raise GitLogError(f"Refusing to run git in suspicious path: {repo_path!r}")
        cmd = [self.git_bin, "-C", repo_path, "-c", "core.quotepath=off", *args]
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise GitLogError(f"git executable not found: {self.git_bin}",
                              hint="install git or put it on PATH") from e
        except subprocess.TimeoutExpired as e:
            raise GitLogError(f"git {args[0]} timed out after {self.timeout}s in {repo_path}") from e
        except OSError as e:
            raise GitLogError(f"Failed to spawn git: {e}") from e

    def log(self, repo_path: str, limit: int) -> List[CommitRecord]:
        """Return up to ``limit`` commits, newest first.

        A repository without commits yields an empty list; every other
        failure raises ``GitLogError``.
        """
        proc = self._run(repo_path, [
            "log",
            "--no-color",
            f"--pretty=format:{LOG_FORMAT}",
            "--name-only",
            f"-n{int(limit)}",
        ])
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            if any(marker in stderr for marker in _EMPTY_REPO_MARKERS):
                return []
            raise GitLogError(f"git log failed in {repo_path}: {stderr or f'exit {proc.returncode}'}")
        return parse_git_log(proc.stdout or "")

    def remote_url(self, repo_path: str, remote: str = "origin") -> Optional[str]:
        proc = self._run(repo_path, ["remote", "get-url", remote])
        if proc.returncode != 0:
            return None
        url = (proc.stdout or "").strip()
        return url or None
