"""
Core module: Configuration, logging, and exception handling.
"""

from .config import Config, config
from .exceptions import (
    ConfigurationError,
    EvaluationError,
    InvalidTransitionError,
    JobConflictError,
    ProviderError,
    ProviderTimeoutError,
    StoreError,
)

__all__ = [
    "Config",
    "config",
    "ConfigurationError",
    "EvaluationError",
    "InvalidTransitionError",
    "JobConflictError",
    "ProviderError",
    "ProviderTimeoutError",
    "StoreError",
]
