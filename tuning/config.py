"""
Configuration for local model inference.

Used by the local LoRA provider to run fine-tuned adapters for evaluation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LocalModelConfig(BaseModel):
    """
    Configuration for a local causal LM with an optional LoRA adapter.

    Notes:
    - model_path may be a local directory or a hub id.
    - temperature is 0.0 and sampling is disabled for deterministic replies.
    - local_files_only is switched on automatically for existing directories.
    """

    model_config = ConfigDict(protected_namespaces=())

    model_path: str = Field(..., description="Base model directory or hub id")
    adapter_path: Optional[str] = Field(None, description="LoRA adapter directory")
    max_new_tokens: int = Field(256, ge=1, le=2048)
    temperature: float = Field(0.0, ge=0.0, le=1.0)
    top_p: float = Field(0.9, ge=0.0, le=1.0)
    repetition_penalty: float = Field(1.05, ge=1.0, le=2.0)
    local_files_only: bool = False

    def model_post_init(self, __context: object) -> None:
        if Path(self.model_path).exists():
            self.local_files_only = True
