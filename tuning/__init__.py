"""
Fine-tuning provider clients.

Hosted (OpenAI-compatible HTTP) and local (LoRA via transformers + peft)
providers behind one contract.
"""

from .provider import FineTuningProvider, create_provider
from .schema import ProviderJobState, ProviderJobStatus, normalize_state

__all__ = [
    "FineTuningProvider",
    "create_provider",
    "ProviderJobState",
    "ProviderJobStatus",
    "normalize_state",
]
