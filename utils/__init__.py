"""
Utils Module
Logging and error types
"""
from .logger import configure_logging, setup_logger, get_logger
from .exceptions import (
    CuratorError,
    ClassifierOutputError,
    ConfigurationError,
    DuplicateKeyError,
    LLMError,
    QuotaExceededError,
    RunCancelledError,
    StorageError,
    TransientCollaboratorError,
)

__all__ = [
    "configure_logging",
    "setup_logger",
    "get_logger",
    "CuratorError",
    "ClassifierOutputError",
    "ConfigurationError",
    "DuplicateKeyError",
    "LLMError",
    "QuotaExceededError",
    "RunCancelledError",
    "StorageError",
    "TransientCollaboratorError",
]
