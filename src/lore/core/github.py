"""Optional pull-request enrichment from the GitHub REST API.

The indexer only sees the ``PullRequestSource`` protocol. When no
repository can be determined the engine runs without a source at all.
"""
import json
import re
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import tenacity

from lore.core.errors import GitLogError, PullRequestSourceError
from lore.core.models import PullRequestRecord
from lore.core.utils.logging import get_logger

logger = get_logger("lore.github")

RETRYABLE_STATUS_CODES = frozenset({403, 429, 502, 503, 504})
MAX_PER_PAGE = 100

_SLUG_PATTERNS = (
    re.compile(r"^https?://(?:[^@/]+@)?github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$"),
    re.compile(r"^(?:ssh://)?git@github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$"),
)


@runtime_checkable
class PullRequestSource(Protocol):
    def list_pull_requests(self, limit: int) -> List[PullRequestRecord]: ...


def parse_github_slug(remote_url: Optional[str]) -> Optional[str]:
    """``owner/repo`` for an HTTPS or SSH GitHub remote, else None."""
    url = (remote_url or "").strip()
    for pattern in _SLUG_PATTERNS:
        m = pattern.match(url)
        if m:
            return f"{m.group(1)}/{m.group(2)}"
    return None


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, urllib.error.HTTPError):
        return exc.code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (urllib.error.URLError, socket.timeout, TimeoutError, ConnectionError))


def _log_retry(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    logger.warning("github_request_retry", attempt=retry_state.attempt_number,
                   error=f"{type(exc).__name__}: {exc}")


def _record_from_payload(item: Dict[str, Any]) -> PullRequestRecord:
    merged_at = item.get("merged_at")
    state = "merged" if merged_at else str(item.get("state") or "open")
    return PullRequestRecord(
        number=int(item["number"]),
        title=str(item.get("title") or ""),
        url=str(item.get("html_url") or item.get("url") or ""),
        body=str(item.get("body") or ""),
        author=str((item.get("user") or {}).get("login") or ""),
        state=state,
        created_at=str(item.get("created_at") or ""),
        merged_at=merged_at,
        labels=[str(label.get("name")) for label in item.get("labels") or [] if label.get("name")],
    )


class GitHubPullRequestSource:
    """Lists the most recently updated pull requests of one repository.

    Works without a token (subject to the anonymous rate limit). Rate-limit
    and transient network failures are retried with exponential backoff;
    anything left over surfaces as ``PullRequestSourceError``.
    """

    def __init__(self, repo: str, token: Optional[str] = None,
                 api_url: str = "https://api.github.com", timeout: float = 10.0,
                 max_attempts: int = 3, backoff: float = 1.0):
        if not repo or repo.count("/") != 1:
            raise ValueError(f"repository must look like 'owner/name', got {repo!r}")
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = max(0.0, float(backoff))

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "lore-indexer",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get(self, url: str) -> Any:
        req = urllib.request.Request(url, headers=self._headers(), method="GET")
        with urllib.request.urlopen(req, timeout=self.timeout) as r:
            return json.loads(r.read().decode("utf-8"))

    def _get_with_retry(self, url: str) -> Any:
        retrying = tenacity.Retrying(
            retry=tenacity.retry_if_exception(is_retryable_error),
            stop=tenacity.stop_after_attempt(self.max_attempts),
            wait=tenacity.wait_exponential(multiplier=self.backoff, max=30),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(self._get, url)

    def list_pull_requests(self, limit: int) -> List[PullRequestRecord]:
        params = urllib.parse.urlencode({
            "state": "all",
            "sort": "updated",
            "direction": "desc",
            "per_page": max(1, min(int(limit), MAX_PER_PAGE)),
        })
        url = f"{self.api_url}/repos/{self.repo}/pulls?{params}"
        try:
            payload = self._get_with_retry(url)
        except urllib.error.HTTPError as e:
            hint = "set LORE_GITHUB_TOKEN" if e.code in (401, 403, 404, 429) else ""
            raise PullRequestSourceError(f"GitHub returned HTTP {e.code} for {self.repo}", hint=hint) from e
        except (urllib.error.URLError, OSError) as e:
            raise PullRequestSourceError(f"GitHub request failed for {self.repo}: {e}") from e
        except ValueError as e:
            raise PullRequestSourceError(f"GitHub returned invalid JSON for {self.repo}: {e}") from e

        if not isinstance(payload, list):
            raise PullRequestSourceError(f"Unexpected GitHub response for {self.repo}")
        records: List[PullRequestRecord] = []
        for item in payload[:limit]:
            try:
                records.append(_record_from_payload(item))
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.debug("github_pull_request_malformed", repo=self.repo)
        logger.info("github_pull_requests_fetched", repo=self.repo, count=len(records))
        return records


def pull_request_source_from_config(cfg, git=None) -> Optional[GitHubPullRequestSource]:
    """Build a source when a repository is configured, or when a token is set and ``origin`` is on GitHub."""
    s = cfg.settings
    repo = cfg.github_repo
    if not repo and s.GITHUB_TOKEN and git is not None:
        try:
            repo = parse_github_slug(git.remote_url(cfg.workspace_root))
        except GitLogError as e:
            logger.debug("github_remote_detection_failed", error=e.message)
            repo = None
    if not repo:
        return None
    return GitHubPullRequestSource(repo, token=s.GITHUB_TOKEN, api_url=s.GITHUB_API_URL)
