import json
import os
from pathlib import Path
from typing import List, Optional

from lore.core.constants import DEFAULT_DOC_EXTENSIONS, DEFAULT_EXCLUDE_DIRS
from lore.core.errors import ConfigError
from lore.core.settings import Settings, settings as global_settings

CONFIG_CANDIDATES = (".lore/config.json", "lore.json")


def normalize_root(path: Optional[str]) -> str:
    """Absolute, symlink-resolved root without a trailing separator."""
    p = path or os.getcwd()
    resolved = str(Path(p).expanduser().resolve())
    stripped = resolved.rstrip(os.sep)
    return stripped or os.sep


def resolve_config_path(root: str) -> str:
    """Find the config file in the given root."""
    for p in CONFIG_CANDIDATES:
        full = os.path.join(root, p)
        if os.path.exists(full):
            return full
    return os.path.join(root, CONFIG_CANDIDATES[0])


def _as_list(value: object, name: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"'{name}' must be a string or list of strings", hint="check the workspace config file")


class Config:
    """Per-workspace settings layered over the environment-driven ``Settings``."""

    def __init__(self, **kwargs):
        self.settings: Settings = kwargs.get("settings") or global_settings
        self.workspace_root = normalize_root(kwargs.get("workspace_root") or self.settings.WORKSPACE_ROOT)
        self.doc_extensions = [e.lower() if e.startswith(".") else f".{e.lower()}"
                               for e in kwargs.get("doc_extensions", DEFAULT_DOC_EXTENSIONS)]
        self.doc_dirs = list(kwargs.get("doc_dirs", []))
        self.exclude_dirs = list(DEFAULT_EXCLUDE_DIRS) + [d for d in kwargs.get("exclude_dirs", [])
                                                         if d not in DEFAULT_EXCLUDE_DIRS]
        self.github_repo = kwargs.get("github_repo") or self.settings.GITHUB_REPO
        self.db_path = kwargs.get("db_path") or self.settings.db_path_for(self.workspace_root)

    @classmethod
    def load(cls, path: Optional[str] = None, workspace_root: Optional[str] = None,
             settings_obj: Optional[Settings] = None) -> "Config":
        s = settings_obj or global_settings
        root = normalize_root(workspace_root or s.WORKSPACE_ROOT)
        cfg_path = path or resolve_config_path(root)

        data = {}
        if os.path.exists(cfg_path):
            try:
                with open(cfg_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                raise ConfigError(f"Invalid config file at {cfg_path}: {e}",
                                  hint="fix or remove the file to use defaults") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Invalid config file at {cfg_path}: expected a JSON object")

        kwargs = {"settings": s, "workspace_root": root}
        for key in ("doc_extensions", "doc_dirs", "exclude_dirs"):
            if key in data:
                kwargs[key] = _as_list(data[key], key)
        if data.get("github_repo"):
            kwargs["github_repo"] = str(data["github_repo"])
        if data.get("db_path"):
            kwargs["db_path"] = os.path.join(root, str(data["db_path"]))
        return cls(**kwargs)
