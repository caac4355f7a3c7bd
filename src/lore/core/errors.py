"""Exception types raised by the lore engine.

Provider failures are caught by the indexer where they happen and the
affected step is skipped. Store failures propagate to whoever issued the
operation. Cancellation is never an error.
"""


class LoreError(RuntimeError):
    def __init__(self, code: str, message: str, hint: str = ""):
        super().__init__(message)
        self.code = code
        self.message = message
        self.hint = hint


class ProviderUnavailableError(LoreError):
    """An external collaborator (git, GitHub, file reader) failed or is missing."""


class GitLogError(ProviderUnavailableError):
    def __init__(self, message: str, hint: str = ""):
        super().__init__("ERR_GIT_LOG", message, hint)


class PullRequestSourceError(ProviderUnavailableError):
    def __init__(self, message: str, hint: str = ""):
        super().__init__("ERR_PR_SOURCE", message, hint)


class DocumentReadError(LoreError):
    def __init__(self, path: str, reason: str):
        super().__init__("ERR_DOC_READ", f"Failed to read {path}: {reason}")
        self.path = path


class StoreError(LoreError):
    def __init__(self, message: str, hint: str = ""):
        super().__init__("ERR_STORE", message, hint)


class ConfigError(LoreError):
    def __init__(self, message: str, hint: str = ""):
        super().__init__("ERR_CONFIG", message, hint)
