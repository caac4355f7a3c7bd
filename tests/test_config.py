import json
import os

import pytest

from lore.core.config import Config, normalize_root, resolve_config_path
from lore.core.constants import DEFAULT_EXCLUDE_DIRS
from lore.core.errors import ConfigError
from lore.core.settings import Settings


def test_settings_defaults(tmp_path):
    s = Settings(WORKSPACE_ROOT=str(tmp_path))
    assert s.BATCH_SIZE == 10
    assert s.COMMIT_LIMIT == 200
    assert s.RESULT_LIMIT == 10
    assert s.batch_delay_seconds == pytest.approx(0.05)
    assert s.debounce_seconds == pytest.approx(0.5)
    assert s.db_path == os.path.join(str(tmp_path), ".lore", "index.db")


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("LORE_BATCH_SIZE", "25")
    monkeypatch.setenv("LORE_DEBOUNCE_MS", "120")
    monkeypatch.setenv("LORE_DB_PATH", "/var/lib/lore/index.db")
    monkeypatch.setenv("LORE_LOG_JSON", "true")
    s = Settings()
    assert s.BATCH_SIZE == 25
    assert s.debounce_seconds == pytest.approx(0.12)
    assert s.db_path_for("/anything") == "/var/lib/lore/index.db"
    assert s.LOG_JSON is True


def test_config_defaults_without_file(tmp_path):
    cfg = Config.load(workspace_root=str(tmp_path), settings_obj=Settings())
    assert cfg.workspace_root == normalize_root(str(tmp_path))
    assert ".md" in cfg.doc_extensions
    assert cfg.doc_dirs == []
    assert list(cfg.exclude_dirs) == list(DEFAULT_EXCLUDE_DIRS)
    assert cfg.github_repo is None
    assert cfg.db_path.endswith(os.path.join(".lore", "index.db"))


def test_config_file_overrides(tmp_path):
    (tmp_path / ".lore").mkdir()
    (tmp_path / ".lore" / "config.json").write_text(json.dumps({
        "doc_extensions": ["md", ".RST"],
        "doc_dirs": "handbook",
        "exclude_dirs": ["archive", "node_modules"],
        "github_repo": "acme/pay",
        "db_path": "var/index.db",
    }))
    cfg = Config.load(workspace_root=str(tmp_path), settings_obj=Settings())

    assert cfg.doc_extensions == [".md", ".rst"]
    assert cfg.doc_dirs == ["handbook"]
    assert "archive" in cfg.exclude_dirs
    assert cfg.exclude_dirs.count("node_modules") == 1
    assert cfg.github_repo == "acme/pay"
    assert cfg.db_path == os.path.join(cfg.workspace_root, "var/index.db")


def test_root_level_config_file_is_found(tmp_path):
    (tmp_path / "lore.json").write_text("{}")
    assert resolve_config_path(str(tmp_path)) == os.path.join(str(tmp_path), "lore.json")


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({"doc_dirs": 3})])
def test_invalid_config_raises(tmp_path, content):
    (tmp_path / "lore.json").write_text(content)
    with pytest.raises(ConfigError) as exc:
        Config.load(workspace_root=str(tmp_path), settings_obj=Settings())
    assert exc.value.code == "ERR_CONFIG"
