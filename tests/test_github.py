import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from lore.core.config import Config
from lore.core.errors import PullRequestSourceError
from lore.core.github import (
    GitHubPullRequestSource,
    PullRequestSource,
    parse_github_slug,
    pull_request_source_from_config,
)
from lore.core.settings import Settings

PAYLOAD = [
    {
        "number": 12,
        "title": "Retry refunds",
        "html_url": "https://github.com/acme/pay/pull/12",
        "body": "Adds backoff",
        "user": {"login": "sam"},
        "state": "closed",
        "created_at": "2024-02-01T00:00:00Z",
        "merged_at": "2024-02-02T00:00:00Z",
        "labels": [{"name": "payments"}],
    },
    {
        "number": 13,
        "title": "Draft: tax rules",
        "html_url": "https://github.com/acme/pay/pull/13",
        "body": None,
        "user": None,
        "state": "open",
        "created_at": "2024-02-03T00:00:00Z",
        "merged_at": None,
        "labels": [],
    },
    {"title": "missing number"},
]


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def _ok(payload):
    return _Response(json.dumps(payload).encode("utf-8"))


def _http_error(code):
    return urllib.error.HTTPError("https://api.github.com", code, "error", {}, None)


@pytest.mark.parametrize("url,expected", [
    ("https://github.com/acme/pay.git", "acme/pay"),
    ("https://github.com/acme/pay", "acme/pay"),
    ("https://token@github.com/acme/pay.js.git", "acme/pay.js"),
    ("git@github.com:acme/pay.git", "acme/pay"),
    ("ssh://git@github.com/acme/pay.git", "acme/pay"),
    ("https://gitlab.com/acme/pay.git", None),
    ("", None),
    (None, None),
])
def test_parse_github_slug(url, expected):
    assert parse_github_slug(url) == expected


def test_list_pull_requests_maps_payload():
    source = GitHubPullRequestSource("acme/pay", token="t0k", backoff=0)
    with patch("lore.core.github.urllib.request.urlopen", return_value=_ok(PAYLOAD)) as urlopen:
        prs = source.list_pull_requests(30)

    assert isinstance(source, PullRequestSource)
    assert [p.number for p in prs] == [12, 13]
    assert prs[0].state == "merged"
    assert prs[0].author == "sam"
    assert prs[0].labels == ["payments"]
    assert prs[1].body == ""
    assert prs[1].author == ""

    req = urlopen.call_args.args[0]
    assert req.full_url.startswith("https://api.github.com/repos/acme/pay/pulls?")
    assert "state=all" in req.full_url
    assert "per_page=30" in req.full_url
    assert req.get_header("Authorization") == "Bearer t0k"


def test_rate_limit_is_retried_then_succeeds():
    source = GitHubPullRequestSource("acme/pay", backoff=0)
    responses = [_http_error(429), _http_error(403), _ok(PAYLOAD[:1])]
    with patch("lore.core.github.urllib.request.urlopen", side_effect=responses) as urlopen:
        prs = source.list_pull_requests(5)
    assert len(prs) == 1
    assert urlopen.call_count == 3


def test_persistent_failure_becomes_source_error():
    source = GitHubPullRequestSource("acme/pay", backoff=0, max_attempts=2)
    with patch("lore.core.github.urllib.request.urlopen", side_effect=_http_error(403)) as urlopen:
        with pytest.raises(PullRequestSourceError) as exc:
            source.list_pull_requests(5)
    assert urlopen.call_count == 2
    assert exc.value.code == "ERR_PR_SOURCE"
    assert "LORE_GITHUB_TOKEN" in exc.value.hint


def test_not_found_is_not_retried():
    source = GitHubPullRequestSource("acme/pay", backoff=0)
    with patch("lore.core.github.urllib.request.urlopen", side_effect=_http_error(404)) as urlopen:
        with pytest.raises(PullRequestSourceError, match="404"):
            source.list_pull_requests(5)
    assert urlopen.call_count == 1


def test_network_error_is_retried():
    source = GitHubPullRequestSource("acme/pay", backoff=0, max_attempts=3)
    err = urllib.error.URLError("connection refused")
    with patch("lore.core.github.urllib.request.urlopen", side_effect=err) as urlopen:
        with pytest.raises(PullRequestSourceError, match="connection refused"):
            source.list_pull_requests(5)
    assert urlopen.call_count == 3


def test_invalid_repo_slug():
    with pytest.raises(ValueError):
        GitHubPullRequestSource("just-a-name")


def test_source_from_config(tmp_path):
    git = MagicMock()
    git.remote_url.return_value = "git@github.com:acme/pay.git"

    plain = Config(settings=Settings(), workspace_root=str(tmp_path))
    assert pull_request_source_from_config(plain, git) is None
    git.remote_url.assert_not_called()

    explicit = Config(settings=Settings(), workspace_root=str(tmp_path), github_repo="acme/other")
    assert pull_request_source_from_config(explicit, git).repo == "acme/other"

    with_token = Config(settings=Settings(GITHUB_TOKEN="t0k"), workspace_root=str(tmp_path))
    source = pull_request_source_from_config(with_token, git)
    assert source.repo == "acme/pay"
    assert source.token == "t0k"
