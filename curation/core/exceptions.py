"""
Custom exceptions for the security fine-tuning curator.

These exceptions provide clear error semantics across the system.
Use them to distinguish between storage issues, provider failures,
state-machine violations and configuration errors.
"""


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


class StoreError(Exception):
    """Raised when the backing store rejects or fails an operation."""
    pass


class ProviderError(Exception):
    """Raised when the fine-tuning provider fails (transport or non-success status)."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its configured timeout."""
    pass


class InvalidTransitionError(Exception):
    """Raised when a job transition is not allowed from its current status."""
    pass


class JobConflictError(Exception):
    """Raised when another caller transitioned the same job first."""
    pass


class EvaluationError(Exception):
    """Raised when a model evaluation cannot be completed."""
    pass
