"""Exception hierarchy for the pipeline."""


class EurowatchError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(EurowatchError):
    """Raised when the configuration cannot be used."""


class FetchError(EurowatchError):
    """Raised when a document could not be retrieved after retries."""


class SittingNotFound(FetchError):
    """Raised when the Parliament site reports no document for a date (HTTP 404)."""

    def __init__(self, url: str):
        super().__init__(f"No document at {url}")
        self.url = url


class ClassificationError(EurowatchError):
    """Raised when the LLM response is not a taxonomy label."""


class StageError(EurowatchError):
    """Raised when a stage cannot complete."""
