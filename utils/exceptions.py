"""
Custom Exceptions
Error taxonomy shared by the curation pipeline, the run store and the lifecycle job.
"""


class CuratorError(Exception):
    """Base error for the curator."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CuratorError):
    """Missing or invalid configuration"""
    pass


class QuotaExceededError(CuratorError):
    """
    External quota or rate limit exhausted.

    Fatal to the current ingestion run; never retried automatically.
    """

    def __init__(self, message: str = "QUOTA_EXCEEDED", source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class TransientCollaboratorError(CuratorError):
    """Network or parse failure local to a single candidate"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class ClassifierOutputError(TransientCollaboratorError):
    """Classifier returned missing or malformed structured output"""

    def __init__(self, message: str, raw: str = "", **kwargs):
        super().__init__(message, source="classifier", **kwargs)
        self.raw = raw


class StorageError(CuratorError):
    """Record store failure"""
    pass


class DuplicateKeyError(StorageError):
    """Unique external ID constraint violated on insert"""

    def __init__(self, external_id: str):
        super().__init__(f"duplicate external id: {external_id}", {"external_id": external_id})
        self.external_id = external_id


class LLMError(CuratorError):
    """LLM call failure"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class RunCancelledError(CuratorError):
    """Cancellation has been requested for an active run."""
    pass
