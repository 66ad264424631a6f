"""
Fine-tuning provider contract.

The orchestrator and evaluator only talk to providers through this interface,
so hosted APIs and the local LoRA trainer are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from curation.core.config import ProviderConfig, config
from curation.core.exceptions import ConfigurationError

from .schema import ProviderJobStatus


class FineTuningProvider(ABC):
    """
    Abstract fine-tuning provider.

    Implementations raise ProviderError for transport failures and
    non-success responses, and ProviderTimeoutError when a call exceeds its
    configured timeout.
    """

    @abstractmethod
    def submit(
        self,
        file_name: str,
        records: Sequence[Mapping[str, Any]],
        base_model: str,
        hyperparameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Upload a named training file and start a job.

        Returns:
            Provider job handle
        """
        pass

    @abstractmethod
    def get_status(self, handle: str) -> ProviderJobStatus:
        pass

    @abstractmethod
    def complete(self, model_id: str, messages: List[Dict[str, str]]) -> str:
        """
        Run the given model on a message sequence and return the reply text.
        """
        pass


def create_provider(provider_config: Optional[ProviderConfig] = None) -> FineTuningProvider:
    """
    Factory for the configured provider backend.
    """

    cfg = provider_config or config.provider
    backend = cfg.backend.strip().lower()

    if backend == "openai":
        from .openai_client import OpenAIFineTuningClient

        return OpenAIFineTuningClient(cfg)

    if backend == "local":
        from .local_provider import LocalLoraProvider

        return LocalLoraProvider(cfg)

    raise ConfigurationError(f"Unknown provider backend: {cfg.backend!r}")
