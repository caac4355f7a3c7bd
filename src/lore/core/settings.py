import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from lore.version import __version__
from lore.core.constants import (
    BM25_B,
    BM25_K1,
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_COMMIT_LIMIT,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_GIT_DEBOUNCE_SECONDS,
    DEFAULT_MAX_DOC_BYTES,
    DEFAULT_RESULT_LIMIT,
    DEFAULT_SEARCH_CAP,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LORE_",
        case_sensitive=True,
        extra="ignore",
    )

    # --- CORE ---
    VERSION: str = __version__
    WORKSPACE_ROOT: str = str(Path.cwd())
    DB_PATH: Optional[str] = None
    WORKSPACE_CONFIG_DIR_NAME: str = ".lore"

    # --- INDEXING ---
    COMMIT_LIMIT: int = DEFAULT_COMMIT_LIMIT
    BATCH_SIZE: int = DEFAULT_BATCH_SIZE
    BATCH_DELAY_MS: int = int(DEFAULT_BATCH_DELAY_SECONDS * 1000)
    DEBOUNCE_MS: int = int(DEFAULT_DEBOUNCE_SECONDS * 1000)
    GIT_DEBOUNCE_MS: int = int(DEFAULT_GIT_DEBOUNCE_SECONDS * 1000)
    GIT_TIMEOUT_SEC: int = 30
    MAX_DOC_BYTES: int = DEFAULT_MAX_DOC_BYTES

    # --- RETRIEVAL ---
    SEARCH_CAP: int = DEFAULT_SEARCH_CAP
    RESULT_LIMIT: int = DEFAULT_RESULT_LIMIT
    BM25_K1: float = BM25_K1
    BM25_B: float = BM25_B

    # --- LOGGING ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # --- PULL REQUESTS (optional) ---
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_REPO: Optional[str] = None
    GITHUB_PR_LIMIT: int = 30
    GITHUB_API_URL: str = "https://api.github.com"

    def db_path_for(self, root: str) -> str:
        if self.DB_PATH:
            return self.DB_PATH
        return os.path.join(root, self.WORKSPACE_CONFIG_DIR_NAME, "index.db")

    @property
    def db_path(self) -> str:
        return self.db_path_for(self.WORKSPACE_ROOT)

    @property
    def batch_delay_seconds(self) -> float:
        return max(0, self.BATCH_DELAY_MS) / 1000.0

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.DEBOUNCE_MS) / 1000.0

    @property
    def git_debounce_seconds(self) -> float:
        return max(0, self.GIT_DEBOUNCE_MS) / 1000.0


settings = Settings()
