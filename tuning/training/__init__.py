"""
Local LoRA fine-tuning utilities.

train_lora is imported lazily by the local provider so that the torch stack is
only required when local training is actually used.
"""

from .config import LoraTrainingConfig
from .dataset import load_training_records, render_chat, write_training_file

__all__ = [
    "LoraTrainingConfig",
    "load_training_records",
    "render_chat",
    "write_training_file",
]
